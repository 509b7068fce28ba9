"""
Connection settings for the Jenkins bridge.

Values come from the environment (optionally populated from a .env file by the
server).  Everything is validated here so that a bad setting stops the process
before the first tool call rather than surfacing as an opaque HTTP failure.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import urlparse

from jenkins_mcp.errors import ConfigError

DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3

_FALSE_VALUES = ("false", "0", "no", "off")
_TRUE_VALUES = ("true", "1", "yes", "on")


@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    username: str | None = None
    token: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    verify_ssl: bool = True
    allow_absolute_file_paths: bool = False

    def __post_init__(self) -> None:
        base_url = (self.base_url or "").strip().rstrip("/")
        parsed = urlparse(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigError(
                f"Invalid Jenkins URL '{self.base_url}'. "
                "Expected something like https://jenkins.example.com"
            )
        if bool(self.username) != bool(self.token):
            raise ConfigError(
                "Jenkins credentials must be given as a pair: set both the user "
                "and the API token, or neither."
            )
        if self.timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ConfigError(f"Max retries must be >= 0, got {self.max_retries}")
        object.__setattr__(self, "base_url", base_url)

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.username and self.token:
            return (self.username, self.token)
        return None


def _flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _FALSE_VALUES:
        return False
    if raw in _TRUE_VALUES:
        return True
    raise ConfigError(f"{name} must be true or false, got '{raw}'")


def _number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got '{raw}'") from None


def load_config(environ: Mapping[str, str] | None = None) -> ClientConfig:
    """Build a ClientConfig from environment variables.

    JENKINS_USERNAME and JENKINS_API_TOKEN are accepted as aliases for
    JENKINS_USER and JENKINS_TOKEN.
    """
    env = os.environ if environ is None else environ

    url = env.get("JENKINS_URL", "").strip()
    if not url:
        raise ConfigError(
            "Missing required environment variable: JENKINS_URL. "
            "Copy .env.example to .env and fill in your Jenkins settings."
        )

    return ClientConfig(
        base_url=url,
        username=env.get("JENKINS_USER") or env.get("JENKINS_USERNAME") or None,
        token=env.get("JENKINS_TOKEN") or env.get("JENKINS_API_TOKEN") or None,
        timeout=_number(env, "JENKINS_TIMEOUT", DEFAULT_TIMEOUT, float),
        max_retries=_number(env, "JENKINS_MAX_RETRIES", DEFAULT_MAX_RETRIES, int),
        verify_ssl=_flag(env, "JENKINS_VERIFY_SSL", True),
        allow_absolute_file_paths=_flag(env, "JENKINS_ALLOW_ABSOLUTE_FILE_PATHS", False),
    )
