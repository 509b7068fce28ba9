"""Exception types raised inside the bridge.

Handlers never let these escape: they are caught at the tool boundary and
turned into failure envelopes by ``envelope.classify_error``.
"""

from __future__ import annotations

import requests


class ConfigError(EnvironmentError):
    """Settings are missing or malformed; raised before any client exists."""


class JenkinsError(Exception):
    """Base class for failures talking to Jenkins.

    ``response`` is the upstream response when one was received.
    """

    def __init__(self, message: str, response: requests.Response | None = None):
        super().__init__(message)
        self.response = response


class JenkinsConnectionError(JenkinsError):
    """No response after every retry (DNS failure, reset, timeout)."""


class InputValidationError(ValueError):
    """A tool argument is missing or malformed.  Detected before any request."""


class LocalFileAccessDenied(InputValidationError):
    """An absolute local path was given as a file parameter without permission."""

    def __init__(self, path: str):
        super().__init__(
            f"Absolute file path '{path}' is not allowed as a build parameter. "
            "Use a path relative to the working directory, or set "
            "JENKINS_ALLOW_ABSOLUTE_FILE_PATHS=true."
        )
        self.path = path
