"""TCP/UDP client that connects to a server and hex-dumps what it receives."""

from __future__ import annotations

import select
import socket
import threading
from dataclasses import dataclass, field

from etherrecorder.config import Config
from etherrecorder.levels import LogLevel
from etherrecorder.logger import Logger, set_thread_label
from etherrecorder.sockets import SocketError, connect_with_timeout, setup_socket

BUFFER_SIZE = 8192
BLOCKING_TIMEOUT_SEC = 10
CONNECT_TIMEOUT_SEC = 5
MAX_BACKOFF_SEC = 32
IDLE_SEND_WAIT_SEC = 0.5
THREAD_JOIN_TIMEOUT_SEC = 5.0

BLOCK_SIZE = 4
BLOCK_CHAR_COUNT = BLOCK_SIZE * 2
COL_WIDTH = BLOCK_CHAR_COUNT + 1
MAX_ROW_CHARS = 255

SEND_THREAD_LABEL = "CLIENT.SEND"
RECEIVE_THREAD_LABEL = "CLIENT.RECEIVE"

_HEX = "0123456789ABCDEF"


def next_backoff(backoff: int) -> int:
    """Double a retry delay in seconds, capping it at 32."""
    return backoff * 2 if backoff < MAX_BACKOFF_SEC else MAX_BACKOFF_SEC


class HexRowFormatter:
    """Lays bytes out as rows of 4-byte hex columns, continuing across calls.

    Each column shows eight characters followed by a space; positions not
    filled by the current call are shown as dots. The position within the
    row carries over from one call to the next.
    """

    def __init__(self, cols: int = 4) -> None:
        if cols < 1 or cols * COL_WIDTH > MAX_ROW_CHARS:
            raise ValueError(f"column count out of range: {cols}")
        self.cols = cols
        self.start = 0

    @property
    def row_capacity(self) -> int:
        """Number of bytes one row holds."""
        return self.cols * BLOCK_SIZE

    def _blank_row(self) -> list[str]:
        return list(("." * BLOCK_CHAR_COUNT + " ") * self.cols)

    def format(self, data: bytes) -> list[str]:
        """Return the rows that show ``data``, one string per row."""
        rows: list[str] = []
        view = memoryview(bytes(data))
        while view:
            row = self._blank_row()
            avail = self.row_capacity - self.start
            chunk, view = view[:avail], view[avail:]
            for pos, byte in enumerate(chunk, self.start):
                col, offset = divmod(pos, BLOCK_SIZE)
                dest = col * COL_WIDTH + offset * 2
                row[dest] = _HEX[byte >> 4]
                row[dest + 1] = _HEX[byte & 0x0F]
            self.start += len(chunk)
            if self.start >= self.row_capacity:
                self.start = 0
            rows.append("".join(row))
        return rows


@dataclass
class ClientSettings:
    """Where the client connects and what it sends."""

    server_hostname: str = "127.0.0.2"
    port: int = 4200
    send_interval_ms: int = 2000
    send_test_data: bool = False
    is_tcp: bool = True
    data: bytes = field(default=bytes(1000))
    suppress_send_data: bool = True

    def apply_config(self, config: Config) -> None:
        """Override settings from the [network] and [debug] sections."""
        hostname = config.get_string("network", "client.server_hostname")
        if hostname:
            self.server_hostname = hostname
        self.port = config.get_int("network", "client.port", self.port)
        self.send_interval_ms = config.get_int(
            "network", "client.send_interval_ms", self.send_interval_ms
        )
        self.send_test_data = config.get_bool("network", "client.send_test_data", False)
        self.suppress_send_data = config.get_bool(
            "debug", "suppress_client_send_data", False
        )


def _is_open(sock: socket.socket) -> bool:
    return sock.fileno() != -1


class Client:
    """Connects to the configured server, reconnecting whenever the link drops."""

    def __init__(
        self,
        settings: ClientSettings,
        logger: Logger,
        shutdown: threading.Event | None = None,
    ) -> None:
        self.settings = settings
        self.logger = logger
        self.shutdown = shutdown if shutdown is not None else threading.Event()
        self.formatter = HexRowFormatter()

    def connect(self) -> socket.socket | None:
        """Set up a socket, retrying with exponential backoff.

        Returns None if shutdown is requested before a socket is ready.
        """
        log = self.logger.log
        settings = self.settings
        backoff = 1
        while not self.shutdown.is_set():
            log(
                LogLevel.DEBUG,
                "Client Manager Attempting to connect to server %s on port %d...",
                settings.server_hostname,
                settings.port,
            )
            try:
                sock, address = setup_socket(
                    False, settings.is_tcp, settings.server_hostname, settings.port
                )
            except SocketError as exc:
                log(LogLevel.ERROR, "Socket setup failed. Retrying in %d seconds...", backoff)
                log(LogLevel.ERROR, "%s", exc)
                self.shutdown.wait(backoff)
                backoff = next_backoff(backoff)
                continue

            if not settings.is_tcp:
                try:
                    sock.connect(address)
                except OSError as exc:
                    sock.close()
                    log(LogLevel.ERROR, "%s", exc)
                    self.shutdown.wait(backoff)
                    backoff = next_backoff(backoff)
                    continue
                log(LogLevel.INFO, "UDP Client ready to send on port %d.", settings.port)
                return sock

            try:
                connect_with_timeout(sock, address, CONNECT_TIMEOUT_SEC)
            except SocketError as exc:
                log(LogLevel.ERROR, "Connection failed. Retrying in %d seconds...", backoff)
                log(LogLevel.ERROR, "%s", exc)
                sock.close()
                self.shutdown.wait(backoff)
                backoff = next_backoff(backoff)
                continue
            log(LogLevel.INFO, "Client Manager connected to server.")
            return sock

        log(LogLevel.INFO, "Client Manager attempt to connect exiting due to app shutdown.")
        return None

    def _log_received(self, data: bytes) -> None:
        log = self.logger.log
        log(LogLevel.INFO, "%d bytes received: top", len(data))
        for row in self.formatter.format(data):
            log(LogLevel.INFO, "%s", row)
        log(LogLevel.INFO, "%d bytes received: bottom", len(data))

    def receive_loop(self, sock: socket.socket, closed: threading.Event) -> None:
        """Log everything received until the peer closes, shutdown or ``closed``."""
        log = self.logger.log
        if not _is_open(sock):
            log(LogLevel.ERROR, "Invalid socket. Exiting receive thread.")
            return
        while not self.shutdown.is_set() and not closed.is_set():
            try:
                readable, _, _ = select.select([sock], [], [], BLOCKING_TIMEOUT_SEC)
            except (OSError, ValueError):
                log(LogLevel.ERROR, "Select error in receive thread. Exiting loop.")
                break
            if not readable:
                log(
                    LogLevel.DEBUG,
                    "Timeout: No data received within %d seconds",
                    BLOCKING_TIMEOUT_SEC,
                )
                continue
            try:
                data = sock.recv(BUFFER_SIZE)
                error = ""
            except OSError as exc:
                data, error = b"", str(exc)
            if not data:
                log(LogLevel.ERROR, "recv error or connection closed: %s", error or "closed")
                log(LogLevel.ERROR, "Connection closed by server. Closing socket.")
                break
            log(LogLevel.DEBUG, "Received %d bytes", len(data))
            self._log_received(data)

        sock.close()
        closed.set()
        log(LogLevel.INFO, "Receive thread exiting.")

    def send_loop(self, sock: socket.socket, closed: threading.Event) -> None:
        """Send the test data periodically until the link closes or shutdown."""
        log = self.logger.log
        settings = self.settings
        while not self.shutdown.is_set() and not closed.is_set():
            if not _is_open(sock):
                log(LogLevel.INFO, "Send thread detected socket closure. Exiting.")
                break
            if not settings.send_test_data or not settings.data or settings.send_interval_ms <= 0:
                self.shutdown.wait(IDLE_SEND_WAIT_SEC)
                continue
            try:
                _, writable, _ = select.select([], [sock], [], BLOCKING_TIMEOUT_SEC)
            except (OSError, ValueError):
                log(LogLevel.ERROR, "Select error in send thread. Exiting loop.")
                break
            if not writable:
                log(
                    LogLevel.DEBUG,
                    "Timeout: No write availability within %d seconds",
                    BLOCKING_TIMEOUT_SEC,
                )
                continue
            try:
                sent = sock.send(settings.data)
            except OSError:
                log(LogLevel.ERROR, "Send error while sending periodic data.")
                sock.close()
                closed.set()
                break
            log(LogLevel.INFO, "Periodic send: sent %d bytes", sent)
            self.shutdown.wait(settings.send_interval_ms / 1000)

        log(LogLevel.INFO, "Send thread exiting.")

    def _start_worker(self, label: str, loop, sock: socket.socket, closed: threading.Event):
        def target() -> None:
            set_thread_label(label)
            loop(sock, closed)

        worker = threading.Thread(target=target, name=label, daemon=True)
        worker.start()
        return worker

    def run(self) -> None:
        """Connect, run the send and receive loops, and reconnect until shutdown."""
        log = self.logger.log
        log(
            LogLevel.INFO,
            "Client Manager will attempt to connect to Server: %s, port: %d",
            self.settings.server_hostname,
            self.settings.port,
        )
        while not self.shutdown.is_set():
            sock = self.connect()
            if sock is None:
                log(LogLevel.INFO, "Shutdown requested before communication started.")
                return
            closed = threading.Event()
            sender = self._start_worker(SEND_THREAD_LABEL, self.send_loop, sock, closed)
            receiver = self._start_worker(RECEIVE_THREAD_LABEL, self.receive_loop, sock, closed)

            while not self.shutdown.is_set():
                log(
                    LogLevel.INFO,
                    "CLIENT: Looping on waiting for send and receive threads to indicate they're done",
                )
                sender.join(THREAD_JOIN_TIMEOUT_SEC)
                receiver.join(THREAD_JOIN_TIMEOUT_SEC)
                if not sender.is_alive() and not receiver.is_alive():
                    break

            if _is_open(sock):
                log(LogLevel.INFO, "Closing socket")
                sock.close()
            if self.shutdown.is_set():
                log(LogLevel.INFO, "CLIENT: Shutdown is signaled detected by client")
            log(LogLevel.INFO, "CLIENT: Connection lost. Attempting to reconnect...")

        log(LogLevel.INFO, "CLIENT: Exiting client thread.")