"""
Uniform result shapes for every tool.

Each tool call yields exactly one envelope: a dict with a boolean ``success``
flag and the originating tool name under ``operation``.  Failures also carry a
human readable ``message`` and, when known, the upstream ``status_code``, an
``error_kind`` from ErrorKind, and any JSON object body under
``response_data``.
"""

from __future__ import annotations

import logging
from enum import Enum

import requests

from jenkins_mcp.errors import (
    InputValidationError,
    JenkinsConnectionError,
    LocalFileAccessDenied,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({502, 503, 504})

_MAX_BODY_CHARS = 2000


class ErrorKind(str, Enum):
    INPUT_VALIDATION = "input_validation"
    LOCAL_FILE_ACCESS_DENIED = "local_file_access_denied"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    TRANSIENT_SERVER = "transient_server"
    NETWORK = "network"
    UPSTREAM_UNEXPECTED = "upstream_unexpected"
    UNKNOWN = "unknown"


def success(operation: str, data: dict | None = None) -> dict:
    return {"success": True, "operation": operation, **(data or {})}


def failure(operation: str, message: str, meta: dict | None = None) -> dict:
    return {"success": False, "operation": operation, "message": message, **(meta or {})}


def is_success_status(status_code: int) -> bool:
    """Only 2xx counts as success.  Redirects are reported, not accepted."""
    return 200 <= status_code < 300


def is_action_accepted(response: requests.Response) -> bool:
    """Acceptance for Jenkins action endpoints (stop, kill, submitDescription,
    cancelItem) that answer with Post/Redirect/Get.

    A 302/303 counts unless it points at a login page, which is how Jenkins
    reports an anonymous or expired session.
    """
    status = response.status_code
    if is_success_status(status):
        return True
    if status in (302, 303):
        location = (response.headers.get("Location") or "").lower()
        if "login" in location:
            return False
        logger.debug("Action accepted via %d redirect to %s", status, location or "(none)")
        return True
    return False


def kind_for_status(status_code: int | None) -> ErrorKind:
    if status_code is None:
        return ErrorKind.UNKNOWN
    if status_code == 401:
        return ErrorKind.UNAUTHORIZED
    if status_code == 403:
        return ErrorKind.FORBIDDEN
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in TRANSIENT_STATUSES:
        return ErrorKind.TRANSIENT_SERVER
    return ErrorKind.UPSTREAM_UNEXPECTED


def _status_message(kind: ErrorKind, operation: str) -> str | None:
    if kind is ErrorKind.UNAUTHORIZED:
        return "authentication failed - check credentials"
    if kind is ErrorKind.FORBIDDEN:
        return "permission denied - check authorization or CSRF settings"
    if kind is ErrorKind.NOT_FOUND:
        return f"resource not found during {operation}"
    return None


def _structured_body(response) -> dict | None:
    """Return the response body when it is a JSON object, else None."""
    if response is None:
        return None
    try:
        data = response.json()
    except Exception:
        return None
    return data if isinstance(data, dict) else None


def _raw_body(response) -> str:
    try:
        text = response.text
    except Exception:
        return ""
    if not isinstance(text, str):
        return ""
    return text[:_MAX_BODY_CHARS]


def failure_from_response(
    operation: str,
    response: requests.Response,
    message: str,
    meta: dict | None = None,
) -> dict:
    """Failure envelope for a response a handler decided not to accept.

    401 and 403 get the standard taxonomy message because their cause is
    never the resource the caller named; other statuses keep ``message``.
    """
    status = response.status_code
    kind = kind_for_status(status)
    if kind in (ErrorKind.UNAUTHORIZED, ErrorKind.FORBIDDEN):
        message = _status_message(kind, operation)

    info = {"status_code": status, "error_kind": kind.value, **(meta or {})}
    data = _structured_body(response)
    if data is not None:
        info["response_data"] = data
    else:
        body = _raw_body(response)
        if body:
            info["body"] = body
    return failure(operation, message, info)


def classify_error(error: BaseException, operation: str) -> dict:
    """Convert any exception into a failure envelope.  Never raises."""
    if isinstance(error, LocalFileAccessDenied):
        return failure(operation, str(error), {
            "error_kind": ErrorKind.LOCAL_FILE_ACCESS_DENIED.value,
            "path": error.path,
        })
    if isinstance(error, InputValidationError):
        return failure(operation, str(error), {"error_kind": ErrorKind.INPUT_VALIDATION.value})

    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if not isinstance(status, int):
        status = None

    if status is not None:
        kind = kind_for_status(status)
        message = _status_message(kind, operation) or (
            str(error) or f"Jenkins returned HTTP {status} during {operation}"
        )
    elif isinstance(error, (JenkinsConnectionError, requests.ConnectionError, requests.Timeout)):
        kind = ErrorKind.NETWORK
        message = str(error) or f"Could not reach Jenkins during {operation}"
    else:
        kind = ErrorKind.UNKNOWN
        message = str(error) or f"Unexpected {type(error).__name__} during {operation}"

    info = {
        "status_code": status,
        "error_kind": kind.value,
        "error_type": type(error).__name__,
    }
    data = _structured_body(response)
    if data is not None:
        info["response_data"] = data

    if kind is ErrorKind.UNKNOWN:
        logger.debug("Unclassified error during %s", operation, exc_info=error)
    return failure(operation, message, info)


def invalid_input(operation: str, message: str) -> dict:
    """Failure for a bad tool argument, produced before any request is made."""
    return failure(operation, message, {"error_kind": ErrorKind.INPUT_VALIDATION.value})
