"""Socket setup helpers and the framed TCP packet format.

A packet on the wire is laid out as::

    4 bytes  START_MARKER
    4 bytes  payload length N
    N bytes  payload
    4 bytes  END_MARKER

All integer fields are little-endian.
"""

from __future__ import annotations

import errno
import random
import select
import socket
import struct
from enum import Enum

START_MARKER = 0xBAADF00D
END_MARKER = 0xDEADBEEF
STREAM_BUFFER_SIZE = 65536
HEADER_SIZE = 8
TRAILER_SIZE = 4
BLOCK_SIZE = 4

_U32 = struct.Struct("<I")
_WSAEWOULDBLOCK = 10035
_IN_PROGRESS = {
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    errno.EAGAIN,
    errno.EALREADY,
    _WSAEWOULDBLOCK,
}


class SocketErrorKind(Enum):
    """What stage of socket handling failed."""

    CREATE = "create"
    BIND = "bind"
    LISTEN = "listen"
    RESOLVE = "resolve"
    CONNECT = "connect"
    TIMEOUT = "timeout"
    SELECT = "select"
    GETSOCKOPT = "getsockopt"
    CLOSED = "closed"


class SocketError(Exception):
    """A socket operation failed; ``kind`` says which stage."""

    def __init__(self, kind: SocketErrorKind, message: str = "") -> None:
        super().__init__(message or f"socket {kind.value} failed")
        self.kind = kind


def _marker_bytes(marker: int) -> bytes:
    return _U32.pack(marker)


def generate_random_data(
    min_blocks: int, max_blocks: int, rng: random.Random | None = None
) -> bytes:
    """Build a packet with a random number of 4-byte blocks of random payload."""
    if min_blocks < 0 or max_blocks < min_blocks:
        raise ValueError("block range must satisfy 0 <= min_blocks <= max_blocks")
    rng = rng if rng is not None else random.Random()
    blocks = rng.randint(min_blocks, max_blocks)
    payload = bytes(rng.randrange(256) for _ in range(blocks * BLOCK_SIZE))
    return (
        _U32.pack(START_MARKER)
        + _U32.pack(len(payload))
        + payload
        + _U32.pack(END_MARKER)
    )


def find_marker_in_buffer(buffer: bytes | bytearray, marker: int) -> int:
    """Return the index of the first occurrence of a marker, or -1 if absent."""
    if marker not in (START_MARKER, END_MARKER):
        raise ValueError(f"unknown marker 0x{marker:X}")
    if len(buffer) < 4:
        return -1
    return bytes(buffer).find(_marker_bytes(marker))


def setup_listening_server_socket(port: int) -> socket.socket:
    """Create a TCP socket listening on every interface at ``port``."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        raise SocketError(SocketErrorKind.CREATE, str(exc)) from exc
    try:
        sock.bind(("", port))
    except OSError as exc:
        sock.close()
        raise SocketError(SocketErrorKind.BIND, str(exc)) from exc
    try:
        sock.listen(socket.SOMAXCONN)
    except OSError as exc:
        sock.close()
        raise SocketError(SocketErrorKind.LISTEN, str(exc)) from exc
    return sock


def setup_socket(
    is_server: bool, is_tcp: bool, host: str, port: int
) -> tuple[socket.socket, tuple[str, int]]:
    """Create a server or client socket and return it with its address.

    A server is bound to every interface (and listens when TCP). A client
    resolves ``host`` to an IPv4 address but does not connect.
    """
    kind = socket.SOCK_STREAM if is_tcp else socket.SOCK_DGRAM
    try:
        sock = socket.socket(socket.AF_INET, kind)
    except OSError as exc:
        raise SocketError(SocketErrorKind.CREATE, str(exc)) from exc

    if is_server:
        address = ("", port)
        try:
            sock.bind(address)
        except OSError as exc:
            sock.close()
            raise SocketError(SocketErrorKind.BIND, str(exc)) from exc
        if is_tcp:
            try:
                sock.listen(socket.SOMAXCONN)
            except OSError as exc:
                sock.close()
                raise SocketError(SocketErrorKind.LISTEN, str(exc)) from exc
        return sock, address

    try:
        infos = socket.getaddrinfo(host, None, socket.AF_INET, kind)
    except (OSError, UnicodeError) as exc:
        sock.close()
        raise SocketError(SocketErrorKind.RESOLVE, f"cannot resolve {host}") from exc
    if not infos:
        sock.close()
        raise SocketError(SocketErrorKind.RESOLVE, f"cannot resolve {host}")
    ip = infos[0][4][0]
    return sock, (ip, port)


def connect_with_timeout(
    sock: socket.socket, address: tuple[str, int], timeout_seconds: int
) -> None:
    """Connect ``sock`` to ``address``, failing after ``timeout_seconds``."""
    if timeout_seconds <= 0:
        raise SocketError(SocketErrorKind.TIMEOUT, "timeout must be positive")
    try:
        sock.setblocking(False)
    except OSError as exc:
        raise SocketError(SocketErrorKind.CONNECT, str(exc)) from exc
    try:
        result = sock.connect_ex(address)
        if result == 0:
            return
        if result not in _IN_PROGRESS:
            raise SocketError(SocketErrorKind.CONNECT, errno.errorcode.get(result, str(result)))
        try:
            _, writable, _ = select.select([], [sock], [], timeout_seconds)
        except (OSError, ValueError) as exc:
            raise SocketError(SocketErrorKind.SELECT, str(exc)) from exc
        if not writable:
            raise SocketError(SocketErrorKind.TIMEOUT, f"no connection within {timeout_seconds}s")
        try:
            so_error = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
        except OSError as exc:
            raise SocketError(SocketErrorKind.GETSOCKOPT, str(exc)) from exc
        if so_error != 0:
            raise SocketError(
                SocketErrorKind.CONNECT, errno.errorcode.get(so_error, str(so_error))
            )
    finally:
        try:
            sock.setblocking(True)
        except OSError:
            pass


class PacketStream:
    """Accumulates bytes from a TCP stream and extracts complete packets."""

    def __init__(self, sock: socket.socket | None = None) -> None:
        self.sock = sock
        self._buffer = bytearray()

    @property
    def buffered(self) -> bytes:
        """Bytes received but not yet returned as part of a packet."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> None:
        """Add received bytes to the stream buffer."""
        self._buffer.extend(data)

    def next_packet(self, max_size: int = STREAM_BUFFER_SIZE) -> bytes | None:
        """Return the next complete packet, or None if more data is needed.

        Data before a start marker is discarded. A frame whose end marker is
        missing is abandoned one byte at a time. A valid packet larger than
        ``max_size`` is dropped and ValueError is raised.
        """
        buf = self._buffer
        while True:
            start = find_marker_in_buffer(buf, START_MARKER)
            if start < 0:
                if len(buf) > 3:
                    del buf[:-3]
                return None
            if start > 0:
                del buf[:start]
            if len(buf) < HEADER_SIZE:
                return None
            (payload_length,) = _U32.unpack_from(buf, 4)
            total = HEADER_SIZE + payload_length + TRAILER_SIZE
            if len(buf) < total:
                return None
            (end_marker,) = _U32.unpack_from(buf, HEADER_SIZE + payload_length)
            if end_marker != END_MARKER:
                del buf[:1]
                continue
            if total > max_size:
                del buf[:total]
                raise ValueError(
                    f"packet of {total} bytes exceeds the {max_size} byte limit"
                )
            packet = bytes(buf[:total])
            del buf[:total]
            return packet

    def read_packet(self, max_size: int = STREAM_BUFFER_SIZE) -> bytes:
        """Receive from the socket until a complete packet is available."""
        if self.sock is None:
            raise SocketError(SocketErrorKind.CLOSED, "no socket attached")
        while True:
            packet = self.next_packet(max_size)
            if packet is not None:
                return packet
            room = STREAM_BUFFER_SIZE - len(self._buffer)
            if room <= 0:
                self._buffer.clear()
                continue
            try:
                data = self.sock.recv(room)
            except OSError as exc:
                raise SocketError(SocketErrorKind.CLOSED, str(exc)) from exc
            if not data:
                raise SocketError(SocketErrorKind.CLOSED, "connection closed by peer")
            self.feed(data)