"""
Authenticated HTTP client for the Jenkins REST API.

The client owns everything transport related so the tool handlers never have
to: basic auth, the Accept header, the CSRF crumb, and a bounded retry policy.

Ordinary HTTP error statuses (4xx, and 5xx once retries are exhausted) are
returned to the caller as responses; only network faults that survive every
retry are raised, as JenkinsConnectionError.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import requests

from jenkins_mcp.config import ClientConfig
from jenkins_mcp.envelope import TRANSIENT_STATUSES
from jenkins_mcp.errors import JenkinsConnectionError

logger = logging.getLogger(__name__)

CRUMB_PATH = "/crumbIssuer/api/json"
CRUMB_TTL_SECONDS = 300

_BACKOFF_BASE_MS = 1000
_BACKOFF_CAP_MS = 8000


def backoff_delay(attempt: int) -> float:
    """Seconds to wait before retry ``attempt + 1``: 1, 2, 4, 8, 8, ..."""
    return min(_BACKOFF_BASE_MS * 2 ** attempt, _BACKOFF_CAP_MS) / 1000


@dataclass(frozen=True)
class CsrfToken:
    """A crumb issued by Jenkins.  An empty token means CSRF is disabled."""

    field: str | None
    value: str | None
    fetched_at: float

    @classmethod
    def empty(cls, fetched_at: float) -> "CsrfToken":
        return cls(None, None, fetched_at)

    @property
    def is_empty(self) -> bool:
        return not (self.field and self.value)

    def is_fresh(self, now: float, ttl: float = CRUMB_TTL_SECONDS) -> bool:
        return now - self.fetched_at < ttl

    def headers(self) -> dict:
        return {} if self.is_empty else {self.field: self.value}


def _rewind(files: dict | None) -> None:
    """Seek multipart file objects back to the start before (re)sending."""
    for part in (files or {}).values():
        fileobj = part[1] if isinstance(part, tuple) else part
        if hasattr(fileobj, "seek"):
            fileobj.seek(0)


class JenkinsClient:
    """One instance per Jenkins server, shared by every tool call."""

    def __init__(self, config: ClientConfig, session: requests.Session | None = None):
        self._config = config
        self._session = session or requests.Session()
        self._session.auth = config.auth
        self._session.verify = config.verify_ssl
        self._csrf_token: CsrfToken | None = None

        if not config.verify_ssl:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = "/" + path
        return f"{self._config.base_url}{path}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send one logical request, retrying network faults and 502/503/504."""
        url = self.url(path)
        max_retries = self._config.max_retries
        attempt = 0
        while True:
            _rewind(kwargs.get("files"))
            logger.debug("%s %s (attempt %d)", method, url, attempt + 1)
            try:
                response = self._session.request(
                    method, url, timeout=self._config.timeout, **kwargs,
                )
            except (requests.ConnectionError, requests.Timeout) as exc:
                if attempt < max_retries:
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "%s %s failed (%s); retry %d/%d in %.0fs",
                        method, url, type(exc).__name__, attempt + 1, max_retries, delay,
                    )
                    time.sleep(delay)
                    attempt += 1
                    continue
                if isinstance(exc, requests.Timeout):
                    message = (
                        f"Jenkins did not respond within {self._config.timeout:g} seconds "
                        f"({url}) after {attempt + 1} attempt(s)."
                    )
                else:
                    message = (
                        f"Cannot reach Jenkins at {self._config.base_url} after "
                        f"{attempt + 1} attempt(s). Verify the server is running and "
                        "JENKINS_URL is correct."
                    )
                raise JenkinsConnectionError(message) from exc

            if response.status_code in TRANSIENT_STATUSES and attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.warning(
                    "%s %s returned %d; retry %d/%d in %.0fs",
                    method, url, response.status_code, attempt + 1, max_retries, delay,
                )
                response.close()
                time.sleep(delay)
                attempt += 1
                continue
            return response

    def get(
        self,
        path: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
        stream: bool = False,
        allow_redirects: bool = True,
    ) -> requests.Response:
        """Authenticated GET.  Pass allow_redirects=False to inspect Location."""
        return self._request(
            "GET",
            path,
            params=params,
            headers={"Accept": "application/json", **(headers or {})},
            stream=stream,
            allow_redirects=allow_redirects,
        )

    def post(
        self,
        path: str,
        data=None,
        *,
        files: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> requests.Response:
        """Authenticated POST with the CSRF crumb attached.

        Redirects are never followed: Jenkins answers state-changing calls
        with a Location header (e.g. the queue item) that the caller needs.
        A 403 on a request that carried a crumb is retried once with a fresh
        crumb, since an expired crumb is the usual cause.
        """
        token = self.get_csrf_token()
        response = self._post_once(path, data, files, params, headers, token)
        if response.status_code == 403 and not token.is_empty:
            logger.info("POST %s rejected with 403; refreshing CSRF crumb", path)
            token = self.get_csrf_token(force_refresh=True)
            response.close()
            response = self._post_once(path, data, files, params, headers, token)
        return response

    def _post_once(self, path, data, files, params, headers, token: CsrfToken):
        return self._request(
            "POST",
            path,
            data=data,
            files=files,
            params=params,
            headers={**token.headers(), "Accept": "application/json", **(headers or {})},
            allow_redirects=False,
        )

    # ------------------------------------------------------------------
    # CSRF crumb
    # ------------------------------------------------------------------

    def get_csrf_token(self, force_refresh: bool = False) -> CsrfToken:
        """Return a crumb that is valid for the next state-changing request.

        Never raises: when the crumb cannot be obtained the empty token is
        returned and the POST goes out without one.  A 404 from the issuer
        means CSRF protection is disabled, which is cached like a real crumb.
        """
        now = time.monotonic()
        cached = self._csrf_token
        if not force_refresh and cached is not None and cached.is_fresh(now):
            return cached

        try:
            response = self.get(CRUMB_PATH)
        except Exception as exc:
            logger.warning("Could not fetch CSRF crumb: %s", exc)
            return CsrfToken.empty(now)

        if response.status_code == 404:
            logger.info("Crumb issuer not found; CSRF protection appears disabled")
            token = CsrfToken.empty(now)
        elif response.status_code == 200:
            try:
                data = response.json()
                token = CsrfToken(data["crumbRequestField"], data["crumb"], now)
            except (ValueError, KeyError, TypeError) as exc:
                logger.warning("Malformed crumb issuer response: %s", exc)
                return CsrfToken.empty(now)
        else:
            logger.warning("Crumb issuer returned HTTP %d", response.status_code)
            return CsrfToken.empty(now)

        self._csrf_token = token
        return token

    def invalidate_csrf_token(self) -> None:
        self._csrf_token = None

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "JenkinsClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
