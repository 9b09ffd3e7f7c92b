"""
Host services: where stream resources and imported scripts come from.

The engine asks the host for resources and never special-cases what backs
them. `LocalHost` maps requests onto the local file system and TCP sockets;
tests substitute their own host.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple
import logging
import socket
import sys
import threading

from .streams import InStream, OutStream
from .values import decode_text
from ..errors import error_stream_unavailable

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """An accepted TCP connection."""
    address: str
    port: int
    input: InStream
    output: OutStream
    sock: Optional[socket.socket] = None

    def close(self) -> None:
        self.input.close()
        self.output.close()
        if self.sock is not None:
            self.sock.close()


class HostServices:
    """Interface the engine uses to reach the outside world."""

    def open_file_in(self, path: str) -> InStream:
        raise NotImplementedError

    def open_file_out(self, path: str) -> OutStream:
        raise NotImplementedError

    def connect_tcp(self, address: str, port: int) -> Tuple[InStream, OutStream]:
        raise NotImplementedError

    def listen_tcp(self, address: str, port: int) -> Iterator[Connection]:
        raise NotImplementedError

    def read_script(self, path: str) -> str:
        raise NotImplementedError


def console_out(stdout=None) -> OutStream:
    """Wrap the process stdout (or the given binary stream) as `cout`."""
    if stdout is None:
        stdout = sys.stdout.buffer
    return OutStream(stdout, "cout", owns_resource=False)


def console_in(stdin=None) -> InStream:
    """Wrap the process stdin (or the given binary stream) as `cin`."""
    if stdin is None:
        stdin = sys.stdin.buffer
    return InStream(stdin, "cin", owns_resource=False)


class LocalHost(HostServices):
    """File system and TCP access for the running process."""

    def __init__(self, backlog: int = 16, import_root: Optional[str] = None):
        self.backlog = backlog
        self.import_root = Path(import_root) if import_root else None
        self._listeners: List[socket.socket] = []
        self._lock = threading.Lock()

    def _resolve(self, path: str) -> Path:
        resolved = Path(path)
        if self.import_root is not None and not resolved.is_absolute():
            resolved = self.import_root / resolved
        return resolved

    def open_file_in(self, path: str) -> InStream:
        try:
            resource = open(path, "rb")
        except OSError as e:
            raise error_stream_unavailable(f"cannot open '{path}' for reading: {e.strerror}")
        return InStream(resource, f"file:{path}")

    def open_file_out(self, path: str) -> OutStream:
        try:
            resource = open(path, "wb")
        except OSError as e:
            raise error_stream_unavailable(f"cannot open '{path}' for writing: {e.strerror}")
        return OutStream(resource, f"file:{path}")

    def connect_tcp(self, address: str, port: int) -> Tuple[InStream, OutStream]:
        try:
            sock = socket.create_connection((address, port))
        except OSError as e:
            raise error_stream_unavailable(f"cannot connect to {address}:{port}: {e}")
        name = f"tcp:{address}:{port}"
        logger.debug("connected to %s:%d", address, port)
        # The makefile objects keep the socket alive until both are closed
        reader = sock.makefile("rb")
        writer = sock.makefile("wb")
        sock.close()
        return InStream(reader, name), OutStream(writer, name)

    def listen_tcp(self, address: str, port: int) -> Iterator[Connection]:
        """
        Accept connections until the listening socket is closed.

        `shutdown()` closes every listener, which ends the iteration.
        """
        try:
            server = socket.create_server((address, port), backlog=self.backlog)
        except OSError as e:
            raise error_stream_unavailable(f"cannot listen on {address}:{port}: {e}")
        with self._lock:
            self._listeners.append(server)
        logger.debug("listening on %s:%d", address, port)

        try:
            while True:
                try:
                    sock, (peer_address, peer_port, *_) = server.accept()
                except OSError:
                    # Closed by shutdown()
                    break
                name = f"tcp:{peer_address}:{peer_port}"
                yield Connection(
                    address=peer_address,
                    port=peer_port,
                    input=InStream(sock.makefile("rb"), name),
                    output=OutStream(sock.makefile("wb"), name),
                    sock=sock,
                )
        finally:
            with self._lock:
                if server in self._listeners:
                    self._listeners.remove(server)
            server.close()

    def shutdown(self) -> None:
        """Close all listening sockets."""
        with self._lock:
            listeners = list(self._listeners)
        for server in listeners:
            try:
                # Wakes a thread blocked in accept()
                server.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            server.close()

    def read_script(self, path: str) -> str:
        resolved = self._resolve(path)
        try:
            data = resolved.read_bytes()
        except OSError as e:
            raise error_stream_unavailable(f"cannot read script '{resolved}': {e.strerror}")
        return decode_text(data)
