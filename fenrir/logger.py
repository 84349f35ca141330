"""A logging handler that batches records and pushes them to a Loki endpoint."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import urllib.parse
import warnings
from typing import Mapping, Optional

from fenrir.backends import (
    AsyncHttpBackend,
    Backend,
    BackendError,
    HttpBackend,
    NoopBackend,
    basic_credentials,
)
from fenrir.types import (
    AuthenticationMethod,
    NetworkingBackend,
    SerializationFormat,
    SerializedEvent,
    Serializer,
    Stream,
    serialize_noop,
    serializer_for,
)

DEFAULT_ENDPOINT = "http://localhost:3100"
DEFAULT_FLUSH_THRESHOLD = 100
LABELS_ATTRIBUTE = "labels"

# Records from the transport itself would feed back into the handler endlessly.
_IGNORED_LOGGERS = ("urllib", "urllib3", "http.client", "fenrir.backends")


class ConfigurationError(ValueError):
    """Raised when a handler is configured with invalid or incomplete settings."""


def _check_flush_threshold(size: int) -> None:
    if size <= 0:
        raise ConfigurationError("Buffer size must be greater than 0")


def _check_max_message_size(size: Optional[int]) -> None:
    if size is not None and size <= 0:
        raise ConfigurationError("Max message size must be greater than 0")


def _is_ignored(name: str) -> bool:
    return any(name == prefix or name.startswith(prefix + ".") for prefix in _IGNORED_LOGGERS)


def _label_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _structured_labels(record: logging.LogRecord) -> dict[str, str]:
    attached = getattr(record, LABELS_ATTRIBUTE, None)
    if not isinstance(attached, Mapping):
        return {}
    return {str(key): _label_value(value) for key, value in attached.items()}


def _running_loop() -> asyncio.AbstractEventLoop:
    try:
        return asyncio.get_running_loop()
    except RuntimeError as exc:
        raise ConfigurationError(
            "an async networking backend needs an event loop, but none is running"
        ) from exc


class Fenrir(logging.Handler):
    """Collects log records as Loki streams and pushes them in batches.

    Labels attached to a record through ``extra={"labels": {...}}`` are added
    to the labels of its stream.
    """

    def __init__(
        self,
        backend: Optional[Backend] = None,
        serializer: Serializer = serialize_noop,
        *,
        tags: Optional[Mapping[str, str]] = None,
        include_level: bool = False,
        include_framework: bool = False,
        json_events: bool = False,
        flush_threshold: int = DEFAULT_FLUSH_THRESHOLD,
        max_message_size: Optional[int] = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        _check_flush_threshold(flush_threshold)
        _check_max_message_size(max_message_size)
        self.backend = backend if backend is not None else NoopBackend()
        self.tags = dict(tags or {})
        self.include_level = include_level
        self.include_framework = include_framework
        self.json_events = json_events
        self.flush_threshold = flush_threshold
        self.max_message_size = max_message_size
        self._serializer = serializer
        self._buffer: list[Stream] = []
        self._buffer_lock = threading.Lock()

    @classmethod
    def builder(cls) -> "FenrirBuilder":
        """Return a builder with the default settings."""
        return FenrirBuilder()

    def _labels(self, record: logging.LogRecord) -> dict[str, str]:
        labels: dict[str, str] = {}
        if self.include_framework:
            labels["logging_framework"] = "fenrir"
        if self.include_level:
            labels["level"] = record.levelname
        labels.update(self.tags)
        labels.update(_structured_labels(record))
        return labels

    def _render(self, record: logging.LogRecord) -> str:
        if self.json_events:
            return SerializedEvent(
                level=record.levelname,
                target=record.name,
                message=record.getMessage(),
                file=record.pathname,
                line=record.lineno,
                module=record.module,
            ).to_json()
        return self.format(record)

    def emit(self, record: logging.LogRecord) -> None:
        """Buffer a record as a stream and flush once the threshold is reached."""
        if _is_ignored(record.name):
            return
        try:
            line = self._render(record)
            if (
                self.max_message_size is not None
                and len(line.encode("utf-8")) > self.max_message_size
            ):
                return
            stream = Stream(self._labels(record), [[str(time.time_ns()), line]])
            with self._buffer_lock:
                self._buffer.append(stream)
                size = len(self._buffer)
            if size >= self.flush_threshold:
                self.flush()
        except Exception:
            self.handleError(record)

    def flush(self) -> None:
        """Serialize all buffered streams and hand them to the backend."""
        with self._buffer_lock:
            batch, self._buffer = self._buffer, []
        if not batch:
            return
        try:
            payload = self._serializer(batch)
        except (TypeError, ValueError) as exc:
            self._report(BackendError(f"Could not serialize logs. The error was: {exc}"))
            return
        try:
            self.backend.send(payload)
        except BackendError as exc:
            self._report(exc)

    @staticmethod
    def _report(error: BackendError) -> None:
        if logging.raiseExceptions:
            raise error

    def pending(self) -> list[Stream]:
        """Return copies of the streams waiting to be flushed."""
        with self._buffer_lock:
            return [
                Stream(dict(stream.labels), [list(entry) for entry in stream.values])
                for stream in self._buffer
            ]

    def close(self) -> None:
        try:
            self.flush()
        except BackendError:
            pass
        finally:
            super().close()


class FenrirBuilder:
    """Collects settings step by step and creates a configured Fenrir handler."""

    def __init__(self) -> None:
        self._endpoint = DEFAULT_ENDPOINT
        self._authentication = AuthenticationMethod.NONE
        self._network = NetworkingBackend.NONE
        self._format = SerializationFormat.NONE
        self._tags: dict[str, str] = {}
        self._credentials = ""
        self._include_level = False
        self._include_framework = False
        self._json_events = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._flush_threshold = DEFAULT_FLUSH_THRESHOLD
        self._max_message_size: Optional[int] = None

    def endpoint(self, endpoint: str) -> "FenrirBuilder":
        """Set the Loki endpoint the logs are sent to."""
        parts = urllib.parse.urlsplit(endpoint)
        if not parts.scheme or not parts.netloc:
            raise ConfigurationError(f"invalid endpoint URL: {endpoint!r}")
        self._endpoint = endpoint
        return self

    def network(self, backend: NetworkingBackend) -> "FenrirBuilder":
        """Select the transport used to reach the endpoint."""
        self._network = NetworkingBackend(backend)
        return self

    def with_authentication(
        self, method: AuthenticationMethod, username: str, password: str
    ) -> "FenrirBuilder":
        """Authenticate against the endpoint with the given credentials."""
        method = AuthenticationMethod(method)
        if method is AuthenticationMethod.BASIC:
            self._credentials = basic_credentials(username, password)
        self._authentication = method
        return self

    def format(self, format: SerializationFormat) -> "FenrirBuilder":
        """Select the format batches are serialized to."""
        self._format = SerializationFormat(format)
        return self

    def json_event_format(self) -> "FenrirBuilder":
        """Encode each log line as a JSON object with its source information."""
        self._json_events = True
        return self

    def tag(self, name: str, value: str) -> "FenrirBuilder":
        """Attach a label to every stream."""
        self._tags[name] = value
        return self

    def include_level(self) -> "FenrirBuilder":
        """Attach the record's level as a label."""
        self._include_level = True
        return self

    def include_framework(self) -> "FenrirBuilder":
        """Attach a label naming the logging framework."""
        warnings.warn(
            "include_framework is deprecated; use tag() instead",
            DeprecationWarning,
            stacklevel=2,
        )
        self._include_framework = True
        return self

    def event_loop(self, loop: asyncio.AbstractEventLoop) -> "FenrirBuilder":
        """Use an event loop for asynchronous delivery."""
        self._loop = loop
        return self

    def event_loop_current(self) -> "FenrirBuilder":
        """Use the running event loop for asynchronous delivery."""
        self._loop = _running_loop()
        return self

    def flush_threshold(self, size: int) -> "FenrirBuilder":
        """Set how many records are buffered before they are sent."""
        _check_flush_threshold(size)
        self._flush_threshold = size
        return self

    def max_message_size(self, size: Optional[int]) -> "FenrirBuilder":
        """Drop records whose encoded line is longer than ``size`` bytes."""
        _check_max_message_size(size)
        self._max_message_size = size
        return self

    def build_with_validation(self) -> Fenrir:
        """Check that the settings are complete, then build the handler."""
        if self._network is NetworkingBackend.NONE:
            raise ConfigurationError(
                "You have to select a NetworkingBackend before creating an instance of Fenrir"
            )
        if self._format is SerializationFormat.NONE:
            raise ConfigurationError(
                "You have to select a SerializationFormat before creating an instance of Fenrir"
            )
        if self._loop is None and self._network.is_async():
            raise ConfigurationError(
                "You have to set an event loop before creating an instance of Fenrir "
                "if you want to use an async network backend"
            )
        return self.build()

    def _make_backend(self) -> Backend:
        if self._network is NetworkingBackend.HTTP:
            return HttpBackend(self._endpoint, self._authentication, self._credentials)
        if self._network is NetworkingBackend.ASYNC_HTTP:
            loop = self._loop if self._loop is not None else _running_loop()
            return AsyncHttpBackend(
                self._endpoint, loop, self._authentication, self._credentials
            )
        return NoopBackend()

    def build(self) -> Fenrir:
        """Build the handler from the collected settings."""
        _check_flush_threshold(self._flush_threshold)
        return Fenrir(
            self._make_backend(),
            serializer_for(self._format),
            tags=self._tags,
            include_level=self._include_level,
            include_framework=self._include_framework,
            json_events=self._json_events,
            flush_threshold=self._flush_threshold,
            max_message_size=self._max_message_size,
        )