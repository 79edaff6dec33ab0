"""Framed command protocol and the TCP server that accepts commands.

A command packet is laid out big-endian as::

    4 bytes  START_MARKER
    4 bytes  total packet length (16 + body length)
    4 bytes  message index
    n bytes  body
    4 bytes  END_MARKER

Every accepted command is answered with an ACK packet of the same form
whose body is ``ACK <received index>``.
"""

from __future__ import annotations

import select
import socket
import struct
import threading
from enum import Enum
from typing import Callable

from etherrecorder.command_processor import process_command
from etherrecorder.config import Config
from etherrecorder.levels import LogLevel
from etherrecorder.logger import Logger, get_thread_label
from etherrecorder.sockets import (
    END_MARKER,
    START_MARKER,
    SocketError,
    setup_listening_server_socket,
)

BUFFER_SIZE = 4096
MIN_MESSAGE_SIZE = 16
MAX_MESSAGE_SIZE = 2016
TIMEOUT_SEC = 5
DEFAULT_LISTENING_PORT = 4100
ACCEPT_POLL_SEC = 1.0

_U32 = struct.Struct(">I")
_START = _U32.pack(START_MARKER)


class State(Enum):
    """Stage of the command protocol state machine."""

    WAIT_FOR_START = 0
    WAIT_FOR_LENGTH = 1
    WAIT_FOR_MESSAGE = 2
    SEND_ACK = 3


class ProtocolError(Exception):
    """A malformed packet was received; ``acks`` holds ACKs produced before it."""

    def __init__(self, message: str, acks: list[bytes] | None = None) -> None:
        super().__init__(message)
        self.acks: list[bytes] = list(acks or [])


def build_packet(index: int, body: str | bytes) -> bytes:
    """Frame a body with markers, total length and index."""
    payload = body.encode("utf-8") if isinstance(body, str) else bytes(body)
    try:
        return (
            _START
            + _U32.pack(MIN_MESSAGE_SIZE + len(payload))
            + _U32.pack(index)
            + payload
            + _U32.pack(END_MARKER)
        )
    except struct.error as exc:
        raise ValueError(f"cannot frame packet: {exc}") from exc


def listening_port_from_config(config: Config) -> int:
    """Port the command interface listens on."""
    return config.get_int("command_interface", "listening_port", DEFAULT_LISTENING_PORT)


class CommandProtocol:
    """Incremental parser for command packets that produces ACK packets."""

    def __init__(self, on_command: Callable[[str], object] | None = None) -> None:
        self._on_command = on_command
        self._buffer = bytearray()
        self.state = State.WAIT_FOR_START
        self.message_length = 0
        self.received_index = 0
        self.ack_index = 1
        self._handlers = {
            State.WAIT_FOR_START: self._wait_for_start,
            State.WAIT_FOR_LENGTH: self._wait_for_length,
            State.WAIT_FOR_MESSAGE: self._wait_for_message,
        }

    @property
    def buffered(self) -> int:
        """Number of bytes received but not yet consumed."""
        return len(self._buffer)

    @property
    def room(self) -> int:
        """Space left in the receive buffer."""
        return BUFFER_SIZE - len(self._buffer)

    def feed(self, data: bytes) -> list[bytes]:
        """Consume received bytes and return the ACK packets to send, in order.

        On a malformed packet the state is reset, buffered data is dropped
        and ProtocolError is raised carrying any ACKs already produced.
        """
        self._buffer.extend(data)
        acks: list[bytes] = []
        while True:
            if self.state is State.SEND_ACK:
                acks.append(self.build_ack())
                continue
            if not self._buffer:
                break
            try:
                progressed = self._handlers[self.state]()
            except ProtocolError as exc:
                self.state = State.WAIT_FOR_START
                self._buffer.clear()
                raise ProtocolError(str(exc), acks) from None
            if not progressed:
                break
        return acks

    def build_ack(self) -> bytes:
        """Build the ACK for the last received message and return to the start state."""
        packet = build_packet(self.ack_index, f"ACK {self.received_index}")
        self.ack_index = (self.ack_index + 1) & 0xFFFFFFFF
        self.message_length = 0
        self.state = State.WAIT_FOR_START
        return packet

    def _consume(self, size: int) -> None:
        del self._buffer[:size]

    def _wait_for_start(self) -> bool:
        if len(self._buffer) < 4:
            return False
        if self._buffer[:4] != _START:
            self._consume(1)
            return True
        self._consume(4)
        self.state = State.WAIT_FOR_LENGTH
        return True

    def _wait_for_length(self) -> bool:
        if len(self._buffer) < 4:
            return False
        (length,) = _U32.unpack_from(self._buffer, 0)
        self.message_length = length
        if length < MIN_MESSAGE_SIZE or length > MAX_MESSAGE_SIZE:
            raise ProtocolError(f"Invalid message length: {length}")
        self._consume(4)
        self.state = State.WAIT_FOR_MESSAGE
        return True

    def _wait_for_message(self) -> bool:
        remaining = self.message_length - 8
        if len(self._buffer) < remaining:
            return False
        (self.received_index,) = _U32.unpack_from(self._buffer, 0)
        body_length = self.message_length - MIN_MESSAGE_SIZE
        (end_marker,) = _U32.unpack_from(self._buffer, 4 + body_length)
        if end_marker != END_MARKER:
            self._consume(remaining)
            raise ProtocolError(f"Invalid end marker: 0x{end_marker:08X}")
        raw = bytes(self._buffer[4:4 + body_length]).split(b"\0", 1)[0]
        body = raw.decode("utf-8", errors="replace")
        self._consume(remaining)
        self.state = State.SEND_ACK
        if self._on_command is not None:
            self._on_command(body)
        return True


class CommandInterface:
    """TCP server that receives command packets and acknowledges them."""

    def __init__(
        self,
        config: Config,
        logger: Logger,
        shutdown: threading.Event | None = None,
    ) -> None:
        self.config = config
        self.logger = logger
        self.shutdown = shutdown if shutdown is not None else threading.Event()
        self.port = listening_port_from_config(config)
        self.protocol = CommandProtocol(self._handle_command)

    def _handle_command(self, body: str) -> None:
        process_command(body, self.logger)
        self.logger.log(
            LogLevel.INFO,
            "Received message (index %d): %s",
            self.protocol.received_index,
            body,
        )

    def serve_connection(self, sock: socket.socket) -> None:
        """Handle one client until it disconnects or shutdown is requested."""
        log = self.logger.log
        try:
            while not self.shutdown.is_set():
                try:
                    readable, _, _ = select.select([sock], [], [], TIMEOUT_SEC)
                except (OSError, ValueError):
                    log(LogLevel.ERROR, "Connection closed.")
                    break
                data = b""
                if readable:
                    room = self.protocol.room
                    if room <= 0:
                        log(LogLevel.WARN, "No receive buffer space available.")
                    else:
                        try:
                            data = sock.recv(room)
                        except OSError:
                            data = b""
                        if not data:
                            log(LogLevel.ERROR, "Connection closed.")
                            break
                try:
                    acks = self.protocol.feed(data)
                except ProtocolError as exc:
                    acks = exc.acks
                    log(LogLevel.ERROR, "%s", exc)
                    log(LogLevel.ERROR, "Error processing packet. Resetting state.")
                for ack in acks:
                    try:
                        sock.sendall(ack)
                    except OSError:
                        log(LogLevel.ERROR, "Failed to send ACK.")
                        break
                    log(LogLevel.INFO, "Sent ACK %d", self.protocol.received_index)
        finally:
            sock.close()
            log(LogLevel.INFO, "Client disconnected.")

    def run(self) -> None:
        """Listen for clients and serve them one at a time until shutdown."""
        log = self.logger.log
        try:
            server = setup_listening_server_socket(self.port)
        except SocketError as exc:
            log(LogLevel.ERROR, "Server setup failed: %s", exc)
            return
        label = get_thread_label() or ""
        log(LogLevel.INFO, "%s is listening on port %d", label, self.port)
        with server:
            server.settimeout(ACCEPT_POLL_SEC)
            while not self.shutdown.is_set():
                try:
                    client, _ = server.accept()
                except socket.timeout:
                    continue
                except OSError:
                    if self.shutdown.is_set():
                        break
                    log(LogLevel.ERROR, "Accept failed.")
                    continue
                client.setblocking(True)
                log(LogLevel.INFO, "Client connected.")
                self.serve_connection(client)
                log(LogLevel.INFO, "Client disconnected. Waiting for a new connection...")
            log(LogLevel.INFO, "%s is shutting down...", label)