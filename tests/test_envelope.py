"""Tests for jenkins_mcp.envelope: result shapes and error classification."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from jenkins_mcp.envelope import (
    ErrorKind,
    classify_error,
    failure,
    failure_from_response,
    invalid_input,
    is_action_accepted,
    is_success_status,
    kind_for_status,
    success,
)
from jenkins_mcp.errors import (
    InputValidationError,
    JenkinsConnectionError,
    LocalFileAccessDenied,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status: int, json_data=None, text: str = "", headers: dict | None = None) -> MagicMock:
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status
    resp.headers = headers or {}
    resp.text = text
    if json_data is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_data
    return resp


def _http_error(status: int, json_data=None) -> requests.HTTPError:
    return requests.HTTPError(f"{status} error", response=_response(status, json_data))


# ---------------------------------------------------------------------------
# success / failure
# ---------------------------------------------------------------------------


class TestEnvelopes:
    def test_success_merges_data(self):
        assert success("get_job", {"a": 1}) == {"success": True, "operation": "get_job", "a": 1}

    def test_success_without_data(self):
        assert success("who_am_i") == {"success": True, "operation": "who_am_i"}

    def test_failure_shape(self):
        assert failure("get_job", "boom") == {
            "success": False, "operation": "get_job", "message": "boom",
        }

    def test_failure_merges_meta(self):
        result = failure("get_job", "boom", {"status_code": 500})
        assert result["status_code"] == 500
        assert result["message"] == "boom"

    def test_invalid_input(self):
        result = invalid_input("get_job", "job_full_name is required")
        assert result["success"] is False
        assert result["error_kind"] == "input_validation"


class TestStatusPolicy:
    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_2xx_is_success(self, status):
        assert is_success_status(status)

    @pytest.mark.parametrize("status", [302, 303, 400, 404, 500])
    def test_other_statuses_are_not(self, status):
        assert not is_success_status(status)

    def test_action_redirect_accepted(self):
        assert is_action_accepted(_response(302, headers={"Location": "http://j/job/x/5/"}))

    def test_action_redirect_to_login_rejected(self):
        resp = _response(302, headers={"Location": "http://j/login?from=%2Fjob%2Fx"})
        assert not is_action_accepted(resp)

    def test_action_error_rejected(self):
        assert not is_action_accepted(_response(500))

    @pytest.mark.parametrize("status,kind", [
        (401, ErrorKind.UNAUTHORIZED),
        (403, ErrorKind.FORBIDDEN),
        (404, ErrorKind.NOT_FOUND),
        (502, ErrorKind.TRANSIENT_SERVER),
        (503, ErrorKind.TRANSIENT_SERVER),
        (504, ErrorKind.TRANSIENT_SERVER),
        (400, ErrorKind.UPSTREAM_UNEXPECTED),
        (500, ErrorKind.UPSTREAM_UNEXPECTED),
        (None, ErrorKind.UNKNOWN),
    ])
    def test_kind_for_status(self, status, kind):
        assert kind_for_status(status) is kind


# ---------------------------------------------------------------------------
# classify_error
# ---------------------------------------------------------------------------


class TestClassifyError:
    def test_401(self):
        result = classify_error(_http_error(401), "get_job")
        assert result["success"] is False
        assert result["operation"] == "get_job"
        assert result["error_kind"] == "unauthorized"
        assert "authentication failed" in result["message"]
        assert result["status_code"] == 401

    def test_403(self):
        result = classify_error(_http_error(403), "trigger_build")
        assert result["error_kind"] == "forbidden"
        assert "CSRF" in result["message"]

    def test_404_names_operation(self):
        result = classify_error(_http_error(404), "get_build")
        assert result["message"] == "resource not found during get_build"

    def test_other_status_keeps_message(self):
        result = classify_error(_http_error(500), "get_job")
        assert result["error_kind"] == "upstream_unexpected"
        assert result["message"] == "500 error"
        assert result["status_code"] == 500

    def test_structured_body_preserved(self):
        body = {"error": "Bad crumb"}
        result = classify_error(_http_error(403, body), "trigger_build")
        assert result["response_data"] == body

    def test_non_object_body_not_preserved(self):
        result = classify_error(_http_error(403, ["x"]), "trigger_build")
        assert "response_data" not in result

    def test_connection_error(self):
        result = classify_error(JenkinsConnectionError("Cannot reach Jenkins"), "get_job")
        assert result["error_kind"] == "network"
        assert result["status_code"] is None
        assert result["message"] == "Cannot reach Jenkins"

    def test_raw_requests_timeout(self):
        result = classify_error(requests.Timeout("timed out"), "get_job")
        assert result["error_kind"] == "network"

    def test_unknown_error(self):
        result = classify_error(RuntimeError("weird"), "get_job")
        assert result["error_kind"] == "unknown"
        assert result["message"] == "weird"
        assert result["error_type"] == "RuntimeError"

    def test_input_validation(self):
        result = classify_error(InputValidationError("bad arg"), "get_job")
        assert result["error_kind"] == "input_validation"
        assert result["message"] == "bad arg"

    def test_local_file_denied(self):
        result = classify_error(LocalFileAccessDenied("/etc/passwd"), "trigger_build")
        assert result["error_kind"] == "local_file_access_denied"
        assert result["path"] == "/etc/passwd"

    def test_idempotent(self):
        error = _http_error(403, {"detail": "nope"})
        assert classify_error(error, "stop_build") == classify_error(error, "stop_build")


class TestFailureFromResponse:
    def test_keeps_handler_message_for_404(self):
        result = failure_from_response("get_job", _response(404, text="Not Found"), "Job not found: x")
        assert result["message"] == "Job not found: x"
        assert result["status_code"] == 404
        assert result["body"] == "Not Found"

    def test_uses_taxonomy_message_for_401(self):
        result = failure_from_response("get_job", _response(401), "Job not found: x")
        assert "authentication failed" in result["message"]
        assert result["error_kind"] == "unauthorized"

    def test_json_body_preserved(self):
        result = failure_from_response("get_job", _response(400, {"message": "bad"}), "oops")
        assert result["response_data"] == {"message": "bad"}
        assert "body" not in result
