"""Foreground window and idle-time sampling for Windows."""

from __future__ import annotations

import ctypes
import logging
from ctypes import wintypes
from datetime import datetime, timedelta
from typing import Optional, Protocol

import psutil

from .errors import SamplingError
from .models import Sample

logger = logging.getLogger(__name__)


class Sampler(Protocol):
    """Capability the polling loop needs from the operating system."""

    def sample(self, now: Optional[datetime] = None) -> Sample:
        ...

    def idle_seconds(self) -> int:
        ...


class WindowsIdleDetector:
    """Detects idle state using Win32 APIs."""

    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [("cbSize", wintypes.UINT), ("dwTime", wintypes.DWORD)]

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        # GetTickCount wraps at 32 bits like LASTINPUTINFO.dwTime.
        self._kernel32.GetTickCount.restype = wintypes.DWORD

    def idle_seconds(self) -> int:
        last_input = self.LASTINPUTINFO()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise SamplingError("GetLastInputInfo failed")
        elapsed_ms = (self._kernel32.GetTickCount() - last_input.dwTime) & 0xFFFFFFFF
        return int(elapsed_ms // 1000)


class WindowsActiveWindowProbe:
    """Retrieves the foreground window's title, process name, pid and executable."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def get_active_window(self) -> tuple[str, int, str, Optional[str]]:
        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return "unknown", 0, "", None

        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        window_title = buffer.value.strip()

        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        app, exe_path = _describe_process(pid.value)
        return app, int(pid.value), window_title, exe_path


def _describe_process(pid: int) -> tuple[str, Optional[str]]:
    if not pid:
        return "unknown", None
    try:
        process = psutil.Process(pid)
        name = process.name()
    except (psutil.Error, ProcessLookupError):
        return "unknown", None
    # Executable paths of elevated processes are often unreadable.
    try:
        exe_path = process.exe() or None
    except (psutil.Error, OSError):
        exe_path = None
    if name.lower().endswith(".exe"):
        name = name[:-4]
    return name, exe_path


class WindowsSampler:
    """Produces one :class:`Sample` per tick from Win32 and psutil."""

    def __init__(self, idle_threshold: timedelta) -> None:
        self.idle_threshold = idle_threshold
        self._probe = WindowsActiveWindowProbe()
        self._idle_detector = WindowsIdleDetector()

    def idle_seconds(self) -> int:
        return self._idle_detector.idle_seconds()

    def sample(self, now: Optional[datetime] = None) -> Sample:
        timestamp = now or datetime.now()
        try:
            idle = self.idle_seconds() >= self.idle_threshold.total_seconds()
            if idle:
                return Sample.observe(timestamp, is_idle=True)
            app, pid, title, exe_path = self._probe.get_active_window()
        except SamplingError:
            raise
        except OSError as exc:
            raise SamplingError(f"Failed to query the foreground window: {exc}") from exc
        return Sample.observe(
            timestamp, is_idle=False, app=app, pid=pid, title=title, exe_path=exe_path
        )


def create_default_sampler(idle_threshold: timedelta) -> Sampler:
    """Return the sampler for this machine; only Windows is supported."""
    if not hasattr(ctypes, "windll"):
        raise SamplingError("Foreground window sampling is only available on Windows.")
    return WindowsSampler(idle_threshold)
