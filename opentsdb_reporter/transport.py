"""Per-cycle TCP delivery of protocol lines.

A transport owns exactly one connection for exactly one report cycle:
open, stream, flush, close. There is no pooling or keep-alive, and the
collector's side of the connection is never read.
"""

from __future__ import annotations

import logging
import socket
from contextlib import contextmanager
from typing import (
    Any,
    BinaryIO,
    Callable,
    Iterable,
    Iterator,
    Optional,
    Protocol,
    runtime_checkable,
)

from .exceptions import ConnectError, WriteError
from .schema import ProtocolLine

logger = logging.getLogger(__name__)

Connector = Callable[..., socket.socket]


@runtime_checkable
class LineTransport(Protocol):
    """Protocol that per-cycle transports must satisfy.

    ``close()`` must be safe to call after any failure and must not raise.
    """

    def open(self) -> None:
        """Connect to the destination."""
        ...

    def write_lines(self, lines: Iterable[ProtocolLine]) -> int:
        """Stream lines and return how many were written."""
        ...

    def flush(self) -> bool:
        """Push buffered bytes out; return False if that failed."""
        ...

    def close(self) -> None:
        """Tear the connection down."""
        ...


class SocketTransport:
    """Write protocol lines to a TCP socket through a buffered stream.

    Args:
        host: Collector host name or address.
        port: Collector port (OpenTSDB's telnet listener, 4242 by default).
        timeout: Connect and write timeout in seconds; None blocks.
        connector: Connection factory with ``socket.create_connection``'s
            signature.

    Example::

        with SocketTransport("tsdb.internal", 4242) as transport:
            transport.write_lines(lines)
            transport.flush()
    """

    def __init__(
        self,
        host: str,
        port: int,
        *,
        timeout: Optional[float] = None,
        connector: Connector = socket.create_connection,
    ) -> None:
        self._address = (host, int(port))
        self._timeout = timeout
        self._connector = connector
        self._socket: Optional[socket.socket] = None
        self._stream: Optional[BinaryIO] = None
        self._closed = False

    @property
    def address(self) -> tuple[str, int]:
        return self._address

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Connect to the collector.

        Raises:
            ConnectError: If the destination cannot be reached, or the
                transport was already used.
        """
        if self._closed or self._socket is not None:
            raise ConnectError("Transport is single-use; create a new one per cycle")
        host, port = self._address
        try:
            sock = self._connector(self._address, self._timeout)
        except OSError as exc:
            raise ConnectError(f"Cannot connect to {host}:{port}: {exc}") from exc
        self._socket = sock
        try:
            self._stream = sock.makefile("wb")
        except OSError as exc:
            self.close()
            raise ConnectError(f"Cannot open stream to {host}:{port}: {exc}") from exc

    def write_lines(self, lines: Iterable[ProtocolLine]) -> int:
        """Stream rendered lines to the connection.

        Raises:
            WriteError: On any I/O failure, or when the transport is not open.
        """
        stream = self._stream
        if stream is None or self._closed:
            raise WriteError("Transport is not open")
        written = 0
        try:
            for line in lines:
                stream.write(line.render().encode("utf-8"))
                written += 1
        except (OSError, ValueError) as exc:
            raise WriteError(f"Error sending to {self._describe()}: {exc}") from exc
        return written

    def flush(self) -> bool:
        """Force buffered bytes out. Failures are logged, never raised."""
        if self._stream is None or self._closed:
            return False
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            logger.error("Error while flushing writer to %s: %s", self._describe(), exc)
            return False
        return True

    def close(self) -> None:
        """Release the stream and socket once. Failures are logged, never raised."""
        if self._closed:
            return
        self._closed = True
        stream, sock = self._stream, self._socket
        self._stream = None
        self._socket = None
        if stream is not None:
            try:
                # Buffered bytes that could not be flushed are discarded.
                stream.close()
            except (OSError, ValueError) as exc:
                logger.debug("Error while closing stream to %s: %s", self._describe(), exc)
        if sock is not None:
            try:
                sock.close()
            except OSError as exc:
                logger.error("Error while closing socket to %s: %s", self._describe(), exc)

    def __enter__(self) -> "SocketTransport":
        self.open()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        try:
            if exc_type is not None:
                self.flush()
        finally:
            self.close()

    def _describe(self) -> str:
        host, port = self._address
        return f"{host}:{port}"


@contextmanager
def open_cycle(transport: LineTransport) -> Iterator[LineTransport]:
    """Hold ``transport`` open for one cycle.

    A failed ``open()`` propagates with nothing to release. Once open,
    leaving the block on an error triggers a best-effort flush; the
    transport is closed on every exit path and the original error is
    re-raised unchanged.
    """
    transport.open()
    try:
        yield transport
    except BaseException:
        transport.flush()
        raise
    finally:
        transport.close()


__all__ = ["Connector", "LineTransport", "SocketTransport", "open_cycle"]
