"""Exception types shared by the agent's components."""


class TimeMachineError(Exception):
    """Base exception for all agent errors"""


class SamplingError(TimeMachineError):
    """Raised when the foreground window or idle time cannot be read"""


class StoreError(TimeMachineError):
    """Raised when the session or feed store cannot be read or written"""


class FeedError(TimeMachineError):
    """Raised when the remote activity feed cannot be fetched or parsed"""
