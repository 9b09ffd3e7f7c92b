"""
Stream handles for the Sust engine.

A handle wraps a binary file-like resource provided by the host. The engine
only ever reads exact byte counts, drains to end-of-stream, or writes and
flushes; it never cares whether the bytes come from a console, a file or a
socket.
"""

from typing import Any, Optional
import logging
import threading

from .values import Value, expect_kind
from ..types import TypeKind
from ..errors import error_end_of_stream, error_stream_unavailable, error_invalid_range

logger = logging.getLogger(__name__)


class StreamHandle:
    """
    Base handle: a named reference to a host resource.

    Copies of a stream value share the same handle. `owns_resource` is False
    for console streams, whose resources outlive the program.
    """

    def __init__(self, resource: Optional[Any], name: str, owns_resource: bool = True):
        self._resource = resource
        self.name = name
        self.owns_resource = owns_resource
        self.closed = resource is None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"{type(self).__name__}({self.name!r}, {state})"

    def _require_open(self) -> Any:
        if self.closed:
            raise error_stream_unavailable(f"{self.name} is closed")
        return self._resource

    def close(self) -> None:
        """Close the handle; closing twice is harmless."""
        with self._lock:
            if self.closed:
                return
            self.closed = True
            if self.owns_resource:
                try:
                    self._resource.close()
                except OSError as e:
                    logger.debug("error closing %s: %s", self.name, e)


class InStream(StreamHandle):
    """A readable byte stream."""

    def read_exact(self, size: int) -> bytes:
        """
        Read exactly `size` bytes, blocking as needed.

        Raises end-of-stream when the resource runs dry first.
        """
        if size < 0:
            raise error_invalid_range(0, size)
        with self._lock:
            resource = self._require_open()
            chunks = []
            remaining = size
            while remaining > 0:
                try:
                    chunk = resource.read(remaining)
                except OSError as e:
                    raise error_stream_unavailable(f"{self.name}: {e}")
                if not chunk:
                    raise error_end_of_stream(size, size - remaining)
                chunks.append(chunk)
                remaining -= len(chunk)
            return b"".join(chunks)

    def read_all(self) -> bytes:
        """Read until end-of-stream."""
        with self._lock:
            resource = self._require_open()
            try:
                return resource.read()
            except OSError as e:
                raise error_stream_unavailable(f"{self.name}: {e}")


class OutStream(StreamHandle):
    """A writable byte stream; every write is flushed."""

    def write(self, data: bytes) -> None:
        with self._lock:
            resource = self._require_open()
            try:
                resource.write(data)
                resource.flush()
            except OSError as e:
                raise error_stream_unavailable(f"{self.name}: {e}")


def require_in(value: Value) -> InStream:
    """The bound handle of an in_stream value."""
    expect_kind(value, TypeKind.IN_STREAM)
    if value.data is None:
        raise error_stream_unavailable("in_stream is not bound")
    return value.data


def require_out(value: Value) -> OutStream:
    """The bound handle of an out_stream value."""
    expect_kind(value, TypeKind.OUT_STREAM)
    if value.data is None:
        raise error_stream_unavailable("out_stream is not bound")
    return value.data
