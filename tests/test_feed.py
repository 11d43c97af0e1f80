import json
from datetime import datetime
from unittest.mock import Mock

import pytest
import requests

from timemachine.config import FeedSettings
from timemachine.db import database_connection
from timemachine.errors import FeedError
from timemachine.feed import FeedImporter, GitHubClient, parse_events

IMPORTED_AT = datetime(2026, 3, 2, 12, 0)

EVENTS = [
    {
        "id": "101",
        "type": "PushEvent",
        "repo": {"id": 1, "name": "octo/agent"},
        "created_at": "2026-03-02T10:15:00Z",
        "payload": {"size": 2},
    },
    {"id": "102", "type": "WatchEvent", "created_at": "not a date"},
    {"type": "PushEvent"},
    {"id": "", "type": "PushEvent"},
    "garbage",
]


def test_parse_events_skips_malformed_entries():
    events = parse_events(EVENTS, imported_at=IMPORTED_AT)

    assert [e.event_id for e in events] == ["101", "102"]
    push, watch = events
    assert push.repo == "octo/agent"
    assert push.event_type == "PushEvent"
    assert '"size":2' in push.payload
    assert watch.repo is None
    assert watch.created_time == IMPORTED_AT


def test_stored_payload_is_the_whole_event():
    [event] = parse_events(EVENTS[:1], imported_at=IMPORTED_AT)
    assert json.loads(event.payload) == EVENTS[0]


def test_parse_events_converts_to_local_time():
    [event] = parse_events(EVENTS[:1], imported_at=IMPORTED_AT)
    expected = datetime.fromisoformat("2026-03-02T10:15:00+00:00").astimezone().replace(tzinfo=None)
    assert event.created_time == expected


def test_parse_events_defaults_missing_type():
    [event] = parse_events([{"id": 7}], imported_at=IMPORTED_AT)
    assert event.event_id == "7"
    assert event.event_type == "unknown"


def test_parse_events_ignores_non_list_payload():
    assert parse_events({"message": "Bad credentials"}) == []


def _response(json_data=None, status=200):
    response = Mock()
    response.json.return_value = json_data
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return response


@pytest.fixture
def http():
    session = Mock(spec=requests.Session)
    session.headers = {}
    return session


def test_client_sends_auth_headers_and_caches_login(http):
    http.get.side_effect = [_response({"login": "octo"}), _response(EVENTS)]
    client = GitHubClient("secret", session=http)

    assert client.fetch_login() == "octo"
    assert client.fetch_login() == "octo"
    client.fetch_public_events("octo", per_page=30)

    assert http.headers["Authorization"] == "Bearer secret"
    assert http.headers["Accept"] == "application/vnd.github+json"
    urls = [call.args[0] for call in http.get.call_args_list]
    assert urls == [
        "https://api.github.com/user",
        "https://api.github.com/users/octo/events/public",
    ]
    assert http.get.call_args.kwargs["params"] == {"per_page": 30}


def test_client_wraps_http_errors(http):
    http.get.return_value = _response(status=401)
    client = GitHubClient("secret", session=http)

    with pytest.raises(FeedError):
        client.fetch_login()


def test_client_rejects_missing_login(http):
    http.get.return_value = _response({"message": "nope"})
    with pytest.raises(FeedError):
        GitHubClient("secret", session=http).fetch_login()


def test_import_is_idempotent(db_file, http):
    http.get.side_effect = [_response({"login": "octo"}), _response(EVENTS), _response(EVENTS)]
    importer = FeedImporter(db_file, FeedSettings(token="secret"), GitHubClient("secret", session=http))

    assert importer.import_once() == 2
    assert importer.import_once() == 0
    with database_connection(db_file) as conn:
        assert conn.execute("SELECT COUNT(*) FROM github_events").fetchone()[0] == 2


def test_network_failure_imports_nothing(db_file, http):
    http.get.side_effect = requests.ConnectionError("offline")
    importer = FeedImporter(db_file, FeedSettings(token="secret"), GitHubClient("secret", session=http))

    assert importer.import_once() == 0


def test_importer_disabled_without_token(db_file, monkeypatch):
    monkeypatch.delenv("TIMEMACHINE_GITHUB_TOKEN", raising=False)
    assert FeedImporter.from_settings(db_file, FeedSettings.from_env()) is None

    monkeypatch.setenv("TIMEMACHINE_GITHUB_TOKEN", "  abc  ")
    settings = FeedSettings.from_env()
    assert settings.token == "abc"
    assert FeedImporter.from_settings(db_file, settings) is not None
