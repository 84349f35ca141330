"""Configuration enums and the wire structures sent to a Loki push endpoint."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

Serializer = Callable[[Iterable["Stream"]], bytes]


class AuthenticationMethod(enum.Enum):
    """How requests to the remote endpoint are authenticated."""

    NONE = "none"
    BASIC = "basic"


class NetworkingBackend(enum.Enum):
    """The transport used to deliver log batches."""

    NONE = "none"
    HTTP = "http"
    ASYNC_HTTP = "async_http"

    def is_async(self) -> bool:
        """Return True if the backend delivers on an event loop."""
        return self is NetworkingBackend.ASYNC_HTTP


class SerializationFormat(enum.Enum):
    """The format log batches are serialized to before sending."""

    NONE = "none"
    JSON = "json"


def _dumps(value: object) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


@dataclass
class Stream:
    """A set of labels together with the log lines attached to them."""

    labels: dict[str, str] = field(default_factory=dict)
    values: list[list[str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Return the structure Loki expects for one stream."""
        return {
            "stream": dict(self.labels),
            "values": [list(entry) for entry in self.values],
        }


@dataclass(frozen=True)
class SerializedEvent:
    """A single log record encoded as a JSON log line."""

    level: str
    target: str
    message: str
    file: Optional[str] = None
    line: Optional[int] = None
    module: Optional[str] = None

    def to_json(self) -> str:
        """Encode the event as a compact JSON object."""
        return _dumps(
            {
                "file": self.file,
                "line": self.line,
                "module": self.module,
                "level": self.level,
                "target": self.target,
                "message": self.message,
            }
        )


def serialize_json(streams: Iterable[Stream]) -> bytes:
    """Serialize streams into the JSON body of a Loki push request."""
    body = {"streams": [stream.to_dict() for stream in streams]}
    return _dumps(body).encode("utf-8")


def serialize_noop(streams: Iterable[Stream]) -> bytes:
    """Check that every item is a stream and produce an empty body."""
    for stream in streams:
        if not isinstance(stream, Stream):
            raise TypeError(f"expected a Stream, got {type(stream).__name__}")
    return b""


_SERIALIZERS: dict[SerializationFormat, Serializer] = {
    SerializationFormat.NONE: serialize_noop,
    SerializationFormat.JSON: serialize_json,
}


def serializer_for(format: SerializationFormat) -> Serializer:
    """Return the serializer function for a serialization format."""
    try:
        return _SERIALIZERS[SerializationFormat(format)]
    except (KeyError, ValueError):
        raise ValueError(f"unknown serialization format: {format!r}") from None