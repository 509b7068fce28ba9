"""Tests for jenkins_mcp.client: auth, retry policy and the CSRF crumb cache."""

from __future__ import annotations

from unittest.mock import MagicMock, call, patch

import pytest
import requests

from jenkins_mcp.client import (
    CRUMB_PATH,
    CRUMB_TTL_SECONDS,
    CsrfToken,
    JenkinsClient,
    backoff_delay,
)
from jenkins_mcp.config import ClientConfig
from jenkins_mcp.errors import JenkinsConnectionError

BASE = "http://jenkins.local"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _mock_response(status_code: int = 200, json_data=None, headers: dict | None = None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.headers = headers or {}
    if json_data is not None:
        resp.json.return_value = json_data
    else:
        resp.json.side_effect = ValueError("no json")
    return resp


def _crumb(value: str = "abc") -> MagicMock:
    return _mock_response(200, {"crumbRequestField": "Jenkins-Crumb", "crumb": value})


def _client(max_retries: int = 3) -> tuple[JenkinsClient, MagicMock]:
    config = ClientConfig(f"{BASE}/", "alice", "s3cret", timeout=5, max_retries=max_retries)
    session = MagicMock(spec=requests.Session)
    return JenkinsClient(config, session=session), session


def _urls(session: MagicMock) -> list[str]:
    return [c.args[1] for c in session.request.call_args_list]


# ---------------------------------------------------------------------------
# backoff_delay
# ---------------------------------------------------------------------------


class TestBackoffDelay:
    @pytest.mark.parametrize("attempt,seconds", [(0, 1.0), (1, 2.0), (2, 4.0), (3, 8.0), (4, 8.0), (10, 8.0)])
    def test_doubles_then_caps(self, attempt, seconds):
        assert backoff_delay(attempt) == seconds


# ---------------------------------------------------------------------------
# Construction and GET
# ---------------------------------------------------------------------------


class TestGet:
    def test_session_configured(self):
        client, session = _client()
        assert client.base_url == BASE
        assert session.auth == ("alice", "s3cret")
        assert session.verify is True

    def test_get_attaches_accept_and_timeout(self):
        client, session = _client()
        session.request.return_value = _mock_response(200, {})
        client.get("/job/x/api/json")
        session.request.assert_called_once_with(
            "GET",
            f"{BASE}/job/x/api/json",
            timeout=5,
            params=None,
            headers={"Accept": "application/json"},
            stream=False,
            allow_redirects=True,
        )

    def test_relative_path_gets_leading_slash(self):
        client, _ = _client()
        assert client.url("queue/api/json") == f"{BASE}/queue/api/json"

    def test_absolute_url_kept(self):
        client, _ = _client()
        assert client.url("http://other/x") == "http://other/x"

    def test_4xx_returned_without_retry(self):
        client, session = _client()
        session.request.return_value = _mock_response(404)
        with patch("jenkins_mcp.client.time") as mock_time:
            resp = client.get("/job/missing/api/json")
        assert resp.status_code == 404
        assert session.request.call_count == 1
        mock_time.sleep.assert_not_called()


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------


@patch("jenkins_mcp.client.time")
class TestRetry:
    def test_503_until_max_retries_then_success(self, mock_time):
        client, session = _client(max_retries=3)
        session.request.side_effect = [
            _mock_response(503), _mock_response(503), _mock_response(503), _mock_response(200, {}),
        ]
        resp = client.get("/api/json")
        assert resp.status_code == 200
        assert session.request.call_count == 4
        assert mock_time.sleep.call_args_list == [call(1.0), call(2.0), call(4.0)]

    def test_exhausted_retries_return_last_response(self, mock_time):
        client, session = _client(max_retries=3)
        session.request.side_effect = [_mock_response(503) for _ in range(4)]
        resp = client.get("/api/json")
        assert resp.status_code == 503
        assert session.request.call_count == 4

    @pytest.mark.parametrize("status", [502, 504])
    def test_other_transient_statuses(self, mock_time, status):
        client, session = _client(max_retries=1)
        session.request.side_effect = [_mock_response(status), _mock_response(200, {})]
        assert client.get("/api/json").status_code == 200

    def test_500_not_retried(self, mock_time):
        client, session = _client()
        session.request.return_value = _mock_response(500)
        assert client.get("/api/json").status_code == 500
        assert session.request.call_count == 1

    def test_delay_capped_at_eight_seconds(self, mock_time):
        client, session = _client(max_retries=5)
        session.request.side_effect = [_mock_response(502) for _ in range(5)] + [_mock_response(200, {})]
        client.get("/api/json")
        delays = [c.args[0] for c in mock_time.sleep.call_args_list]
        assert delays == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_connection_error_then_success(self, mock_time):
        client, session = _client()
        session.request.side_effect = [requests.ConnectionError("reset"), _mock_response(200, {})]
        assert client.get("/api/json").status_code == 200
        mock_time.sleep.assert_called_once_with(1.0)

    def test_connection_error_exhausted_raises(self, mock_time):
        client, session = _client(max_retries=2)
        session.request.side_effect = requests.ConnectionError("dns failure")
        with pytest.raises(JenkinsConnectionError, match="Cannot reach Jenkins"):
            client.get("/api/json")
        assert session.request.call_count == 3

    def test_timeout_exhausted_raises(self, mock_time):
        client, session = _client(max_retries=0)
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(JenkinsConnectionError, match="did not respond"):
            client.get("/api/json")

    def test_malformed_url_propagates(self, mock_time):
        client, session = _client()
        session.request.side_effect = requests.exceptions.InvalidURL("bad url")
        with pytest.raises(requests.exceptions.InvalidURL):
            client.get("/api/json")
        assert session.request.call_count == 1

    def test_files_rewound_before_each_attempt(self, mock_time):
        client, session = _client(max_retries=1)
        client._csrf_token = CsrfToken.empty(0)
        mock_time.monotonic.return_value = 1.0
        handle = MagicMock()
        session.request.side_effect = [_mock_response(503), _mock_response(201)]
        client.post("/job/x/build", data={}, files={"file0": ("a.zip", handle, "application/zip")})
        assert handle.seek.call_args_list == [call(0), call(0)]


# ---------------------------------------------------------------------------
# CSRF crumb
# ---------------------------------------------------------------------------


@patch("jenkins_mcp.client.time")
class TestCsrfToken:
    def test_cached_within_ttl(self, mock_time):
        client, session = _client()
        session.request.return_value = _crumb()
        mock_time.monotonic.side_effect = [1000.0, 1000.0 + CRUMB_TTL_SECONDS - 1]

        first = client.get_csrf_token()
        second = client.get_csrf_token()

        assert first is second
        assert first.headers() == {"Jenkins-Crumb": "abc"}
        assert session.request.call_count == 1

    def test_refetched_after_ttl(self, mock_time):
        client, session = _client()
        session.request.side_effect = [_crumb("one"), _crumb("two")]
        mock_time.monotonic.side_effect = [1000.0, 1000.0 + CRUMB_TTL_SECONDS + 1]

        assert client.get_csrf_token().value == "one"
        assert client.get_csrf_token().value == "two"
        assert _urls(session) == [f"{BASE}{CRUMB_PATH}"] * 2

    def test_force_refresh(self, mock_time):
        client, session = _client()
        session.request.side_effect = [_crumb("one"), _crumb("two")]
        mock_time.monotonic.return_value = 1000.0
        client.get_csrf_token()
        assert client.get_csrf_token(force_refresh=True).value == "two"

    def test_invalidate(self, mock_time):
        client, session = _client()
        session.request.side_effect = [_crumb("one"), _crumb("two")]
        mock_time.monotonic.return_value = 1000.0
        client.get_csrf_token()
        client.invalidate_csrf_token()
        assert client.get_csrf_token().value == "two"

    def test_disabled_csrf_is_empty_and_cached(self, mock_time):
        client, session = _client()
        session.request.return_value = _mock_response(404)
        mock_time.monotonic.return_value = 1000.0

        token = client.get_csrf_token()
        assert token.is_empty
        assert token.headers() == {}
        client.get_csrf_token()
        assert session.request.call_count == 1

    def test_network_failure_yields_empty_uncached(self, mock_time):
        client, session = _client(max_retries=0)
        session.request.side_effect = [requests.ConnectionError("down"), _crumb()]
        mock_time.monotonic.return_value = 1000.0

        assert client.get_csrf_token().is_empty
        assert client.get_csrf_token().value == "abc"

    def test_malformed_crumb_response(self, mock_time):
        client, session = _client()
        session.request.return_value = _mock_response(200, {"unexpected": True})
        mock_time.monotonic.return_value = 1000.0
        assert client.get_csrf_token().is_empty


# ---------------------------------------------------------------------------
# POST
# ---------------------------------------------------------------------------


@patch("jenkins_mcp.client.time")
class TestPost:
    def test_crumb_attached_and_redirects_disabled(self, mock_time):
        client, session = _client()
        mock_time.monotonic.return_value = 1000.0
        session.request.side_effect = [_crumb(), _mock_response(201)]

        resp = client.post("/job/x/build", data={"a": "1"})

        assert resp.status_code == 201
        post_call = session.request.call_args_list[1]
        assert post_call.args == ("POST", f"{BASE}/job/x/build")
        assert post_call.kwargs["headers"]["Jenkins-Crumb"] == "abc"
        assert post_call.kwargs["headers"]["Accept"] == "application/json"
        assert post_call.kwargs["allow_redirects"] is False
        assert post_call.kwargs["data"] == {"a": "1"}

    def test_crumb_reused_across_posts(self, mock_time):
        client, session = _client()
        mock_time.monotonic.return_value = 1000.0
        session.request.side_effect = [_crumb(), _mock_response(201), _mock_response(201)]
        client.post("/job/a/build")
        client.post("/job/b/build")
        assert _urls(session).count(f"{BASE}{CRUMB_PATH}") == 1

    def test_403_with_crumb_refreshes_once(self, mock_time):
        client, session = _client()
        mock_time.monotonic.return_value = 1000.0
        session.request.side_effect = [
            _crumb("stale"), _mock_response(403), _crumb("fresh"), _mock_response(201),
        ]

        resp = client.post("/job/x/build")

        assert resp.status_code == 201
        assert session.request.call_count == 4
        assert session.request.call_args_list[3].kwargs["headers"]["Jenkins-Crumb"] == "fresh"

    def test_second_403_is_final(self, mock_time):
        client, session = _client()
        mock_time.monotonic.return_value = 1000.0
        session.request.side_effect = [
            _crumb("stale"), _mock_response(403), _crumb("fresh"), _mock_response(403),
        ]
        assert client.post("/job/x/build").status_code == 403
        assert session.request.call_count == 4

    def test_403_without_crumb_not_resent(self, mock_time):
        client, session = _client()
        mock_time.monotonic.return_value = 1000.0
        session.request.side_effect = [_mock_response(404), _mock_response(403)]
        assert client.post("/job/x/build").status_code == 403
        assert session.request.call_count == 2
