"""Transports that deliver serialized log batches to a Loki endpoint."""

from __future__ import annotations

import abc
import asyncio
import base64
import concurrent.futures
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

from fenrir.types import AuthenticationMethod

PUSH_PATH = "/loki/api/v1/push"
CONTENT_TYPE = "application/json; charset=utf-8"
DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 3

_log = logging.getLogger(__name__)


class BackendError(Exception):
    """Raised when a log batch cannot be delivered."""


def push_url(endpoint: str) -> str:
    """Return the push URL for a Loki endpoint."""
    parts = urllib.parse.urlsplit(endpoint)
    if not parts.scheme or not parts.netloc:
        raise BackendError(f"invalid endpoint URL: {endpoint!r}")
    return urllib.parse.urljoin(endpoint, PUSH_PATH)


def basic_credentials(username: str, password: str) -> str:
    """Encode a user name and password for HTTP Basic authentication."""
    return base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")


class Backend(abc.ABC):
    """A destination for serialized log batches."""

    @property
    def authentication(self) -> AuthenticationMethod:
        """The authentication method used for requests."""
        return AuthenticationMethod.NONE

    @property
    def credentials(self) -> Optional[str]:
        """The encoded credentials, or None if there are none."""
        return None

    @abc.abstractmethod
    def send(self, payload: bytes):
        """Deliver a serialized batch of streams."""


class NoopBackend(Backend):
    """A backend that discards everything it is given."""

    def send(self, payload: bytes) -> None:
        return None


class HttpBackend(Backend):
    """A backend that posts batches to Loki and waits for the reply."""

    def __init__(
        self,
        endpoint: str,
        authentication: AuthenticationMethod = AuthenticationMethod.NONE,
        credentials: str = "",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self._authentication = authentication
        self._credentials = credentials
        self.timeout = timeout

    @property
    def authentication(self) -> AuthenticationMethod:
        return self._authentication

    @property
    def credentials(self) -> Optional[str]:
        return self._credentials or None

    def build_request(self, payload: bytes) -> urllib.request.Request:
        """Build the POST request carrying a payload."""
        headers = {"Content-Type": CONTENT_TYPE}
        if self._authentication is AuthenticationMethod.BASIC:
            headers["Authorization"] = f"Basic {self._credentials}"
        return urllib.request.Request(
            push_url(self.endpoint), data=bytes(payload), headers=headers, method="POST"
        )

    def _post(self, request: urllib.request.Request) -> None:
        with urllib.request.urlopen(request, timeout=self.timeout) as response:
            response.read()

    def send(self, payload: bytes) -> None:
        request = self.build_request(payload)
        try:
            self._post(request)
        except (OSError, ValueError) as exc:
            raise BackendError(str(exc)) from exc


class AsyncHttpBackend(HttpBackend):
    """A backend that posts batches in the background on an event loop."""

    def __init__(
        self,
        endpoint: str,
        loop: asyncio.AbstractEventLoop,
        authentication: AuthenticationMethod = AuthenticationMethod.NONE,
        credentials: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        super().__init__(endpoint, authentication, credentials, timeout)
        self.loop = loop
        self.retries = retries

    def send(self, payload: bytes) -> concurrent.futures.Future:
        """Schedule delivery and return a future resolving to whether it succeeded."""
        request = self.build_request(payload)
        return asyncio.run_coroutine_threadsafe(self._deliver(request), self.loop)

    async def _deliver(self, request: urllib.request.Request) -> bool:
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            try:
                await loop.run_in_executor(None, self._post, request)
                return True
            except urllib.error.HTTPError as exc:
                if 400 <= exc.code < 500 or attempt >= self.retries:
                    _log.error("Failed to send logs to Loki: %s", exc)
                    return False
            except (OSError, ValueError) as exc:
                if attempt >= self.retries:
                    _log.error("Failed to send logs to Loki: %s", exc)
                    return False
            attempt += 1