"""Application threads: the client, the command interface and the logger."""

from __future__ import annotations

import sys
import threading
import time
from typing import Callable

from etherrecorder.client import Client, ClientSettings
from etherrecorder.command_interface import CommandInterface
from etherrecorder.config import Config
from etherrecorder.levels import LogLevel
from etherrecorder.logger import Logger, get_thread_label, set_thread_label

CLIENT_LABEL = "CLIENT"
COMMAND_INTERFACE_LABEL = "COMMAND_INTERFACE"
LOGGER_LABEL = "LOGGER"

LOGGER_READY_TIMEOUT_SEC = 5.0
LOGGER_POLL_SEC = 0.001


def parse_suppressed(value: str | None) -> list[str]:
    """Split a comma-separated list of thread labels, dropping empty items."""
    if not value:
        return []
    return [token for token in value.split(",") if token]


class AppThread:
    """A named worker thread that runs an optional init step before its target.

    The thread labels itself for logging. If ``init`` returns a false value
    the target is not run.
    """

    def __init__(
        self,
        label: str,
        target: Callable[[], object],
        init: Callable[[], object] | None = None,
        suppressed: bool = False,
    ) -> None:
        self.label = label
        self.target = target
        self.init = init
        self.suppressed = suppressed
        self._thread: threading.Thread | None = None

    def _run(self) -> None:
        set_thread_label(self.label)
        if self.init is not None and not self.init():
            print(f"[{self.label}] Initialisation failed, exiting thread")
            return
        self.target()

    def start(self) -> None:
        """Start the thread; a thread can be started only once."""
        if self._thread is not None:
            raise RuntimeError(f"thread {self.label} already started")
        self._thread = threading.Thread(target=self._run, name=self.label, daemon=True)
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread; return True if it has finished or never started."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def is_alive(self) -> bool:
        """Whether the thread is currently running."""
        return self._thread is not None and self._thread.is_alive()


class Application:
    """Owns the application threads and coordinates their start and shutdown."""

    def __init__(self, config: Config, logger: Logger) -> None:
        self.config = config
        self.logger = logger
        self.shutdown_event = threading.Event()
        self.logger_ready = threading.Event()
        self.threads: list[AppThread] = [
            AppThread(CLIENT_LABEL, self._run_client, self.wait_for_logger),
            AppThread(
                COMMAND_INTERFACE_LABEL, self._run_command_interface, self.wait_for_logger
            ),
            AppThread(LOGGER_LABEL, self.logger_loop),
        ]

    def _run_client(self) -> None:
        settings = ClientSettings()
        settings.apply_config(self.config)
        Client(settings, self.logger, self.shutdown_event).run()

    def _run_command_interface(self) -> None:
        CommandInterface(self.config, self.logger, self.shutdown_event).run()

    def check_for_suppression(self) -> list[str]:
        """Mark threads named in [debug] suppress_threads; return those marked."""
        names = {
            name.lower()
            for name in parse_suppressed(
                self.config.get_string("debug", "suppress_threads", "")
            )
        }
        marked = []
        for thread in self.threads:
            if thread.label.lower() in names:
                thread.suppressed = True
                marked.append(thread.label)
        return marked

    def start_threads(self) -> None:
        """Apply suppression and start every thread that is not suppressed."""
        self.check_for_suppression()
        for thread in self.threads:
            if not thread.suppressed:
                thread.start()

    def wait_for_logger(self, timeout: float = LOGGER_READY_TIMEOUT_SEC) -> bool:
        """Block until the logger thread is ready, then set up this thread's log file."""
        if not self.logger_ready.wait(timeout):
            return False
        label = get_thread_label()
        if label:
            self.logger.set_thread_log_file_from_config(self.config, label)
        self.logger.log(LogLevel.INFO, "Thread %s initialised", label or "")
        return True

    def logger_loop(self) -> None:
        """Publish queued log entries until shutdown, then flush what remains."""
        self.logger.log(LogLevel.INFO, "Logger thread started")
        self.logger_ready.set()
        while not self.shutdown_event.is_set():
            self.logger.drain_queue()
            self.shutdown_event.wait(LOGGER_POLL_SEC)
        self._wait_for_other_threads()
        self.logger.log(LogLevel.INFO, "Logger thread shutting down.")
        self.logger.drain_queue()

    def _wait_for_other_threads(self) -> None:
        current = (get_thread_label() or "").lower()
        for thread in self.threads:
            if thread.suppressed or thread.label.lower() == current:
                continue
            thread.join()
        self.logger.log(LogLevel.INFO, "Logger has seen all other threads complete")
        self.logger.drain_queue()

    def wait_for_all_threads(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for every unsuppressed thread to finish."""
        active = [thread for thread in self.threads if not thread.suppressed]
        if not active:
            print("No threads to wait for", file=sys.stderr)
            return True
        deadline = time.monotonic() + timeout_ms / 1000
        for thread in active:
            thread.join(max(0.0, deadline - time.monotonic()))
        if any(thread.is_alive() for thread in active):
            return False
        print("all threads have completed")
        return True

    def shutdown(self) -> None:
        """Ask every thread to stop."""
        self.shutdown_event.set()