"""Thread-aware logger with per-thread log files, rotation and a publish queue."""

from __future__ import annotations

import itertools
import os
import sys
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, TextIO

from etherrecorder.levels import (
    ANSI_RESET,
    LogLevel,
    LogOutput,
    TimestampGranularity,
    level_colour,
    level_label,
    log_level_from_string,
    log_output_from_string,
    timestamp_granularity_from_string,
)
from etherrecorder.log_queue import LogEntry, LogQueue

if TYPE_CHECKING:
    from etherrecorder.config import Config

MAX_LOG_FAILURES = 100
MAX_DIRECTORY_FAILURE_REPORTS = 5
MAX_THREADS = 100
DEFAULT_LOG_FILE_NAME = "log_file.log"
DEFAULT_LOG_FILE_SIZE = 10_485_760
DEFAULT_LEADING_ZEROS = 12
UNKNOWN_THREAD = "UNKNOWN"

CONFIG_SECTION = "logger"
CONFIG_LOG_PATH_KEY = "log_file_path"
CONFIG_LOG_FILE_KEY = "log_file_name"

_NANOS_PER_SECOND = 1_000_000_000

_thread_state = threading.local()


def set_thread_label(label: str | None) -> None:
    """Name the calling thread for log output."""
    _thread_state.label = label


def get_thread_label() -> str | None:
    """Return the calling thread's label, or None if it has none."""
    return getattr(_thread_state, "label", None)


@dataclass
class _LogFile:
    label: str
    path: str
    handle: TextIO | None = None

    def close(self) -> None:
        if self.handle is not None:
            self.handle.close()
            self.handle = None


def _join_log_path(directory: str, name: str) -> str:
    return os.path.join(directory, name) if directory else name


class Logger:
    """Formats log entries and publishes them to the screen and log files."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counter = itertools.count(1)
        self._counter_lock = threading.Lock()
        self.level = LogLevel.DEBUG
        self.output = LogOutput.BOTH
        self.granularity = TimestampGranularity.NANOSECOND
        self.use_ansi_colours = False
        self.leading_zeros = DEFAULT_LEADING_ZEROS
        self.file_size = DEFAULT_LOG_FILE_SIZE
        self.purge_on_restart = False
        self.stream: TextIO | None = None
        self.queue = LogQueue(overflow_handler=self._publish_overflow)
        self.queue_enabled = False
        self._app_file = _LogFile("", DEFAULT_LOG_FILE_NAME)
        self._thread_files: list[_LogFile] = []
        self._open_failures = 0
        self._directory_failures = 0

    @property
    def log_file_name(self) -> str:
        """Path of the main application log file."""
        return self._app_file.path

    def configure(self, config: Config) -> str:
        """Apply the [logger] settings, enable queued logging and return a status line."""
        with self._lock:
            self.purge_on_restart = config.get_bool(
                CONFIG_SECTION, "purge_logs_on_restart", self.purge_on_restart
            )
            self.output = log_output_from_string(
                config.get_string(CONFIG_SECTION, "log_destination"), LogOutput.SCREEN
            )
            self.granularity = timestamp_granularity_from_string(
                config.get_string(CONFIG_SECTION, "timestamp_granularity"),
                TimestampGranularity.NANOSECOND,
            )
            self.use_ansi_colours = config.get_bool(
                CONFIG_SECTION, "ansi_colours", self.use_ansi_colours
            )
            self.leading_zeros = config.get_int(
                CONFIG_SECTION, "log_leading_zeros", self.leading_zeros
            )
            self.file_size = config.get_int(CONFIG_SECTION, "log_file_size", self.file_size)

            directory = config.get_string(CONFIG_SECTION, CONFIG_LOG_PATH_KEY) or ""
            name = config.get_string(CONFIG_SECTION, CONFIG_LOG_FILE_KEY)
            if name is None:
                name = DEFAULT_LOG_FILE_NAME
            if name:
                path = _join_log_path(directory, name)
                if path != self._app_file.path:
                    self._app_file.close()
                    self._app_file.path = path

            self.queue = LogQueue(overflow_handler=self._publish_overflow)
            self.queue_enabled = True
            return f"Logger initialised. App logging to {self._app_file.path}"

    def set_level(self, level: LogLevel) -> None:
        """Set the lowest level that is logged."""
        self.level = LogLevel(level)

    def set_output(self, output: LogOutput) -> None:
        """Choose where entries are published."""
        self.output = output

    def set_thread_log_file(self, label: str, filename: str) -> bool:
        """Route entries from the labelled thread to their own file.

        Returns False once the maximum number of thread files is registered.
        The file is opened when the first entry for it is published.
        """
        with self._lock:
            if len(self._thread_files) >= MAX_THREADS:
                return False
            self._thread_files.append(_LogFile(label, filename))
            return True

    def set_thread_log_file_from_config(self, config: Config, label: str) -> None:
        """Read the log level and the thread's own log file from the configuration."""
        file_name = config.get_string(CONFIG_SECTION, f"{label}.{CONFIG_LOG_FILE_KEY}")
        directory = config.get_string(CONFIG_SECTION, CONFIG_LOG_PATH_KEY)
        self.level = log_level_from_string(
            config.get_string(CONFIG_SECTION, "log_level"), LogLevel.INFO
        )
        if file_name:
            self.set_thread_log_file(label, _join_log_path(directory or "", file_name))

    def create_entry(self, level: LogLevel, message: str) -> LogEntry:
        """Stamp a message with the next index, the time and the thread label."""
        with self._counter_lock:
            index = next(self._counter)
        label = get_thread_label()
        return LogEntry(
            index=index,
            timestamp=time.time_ns(),
            level=LogLevel(level),
            thread_label=label if label is not None else UNKNOWN_THREAD,
            message=message,
        )

    def format_entry(self, entry: LogEntry, use_colour: bool) -> str:
        """Render an entry as one line; use_colour selects console formatting."""
        seconds, nanos = divmod(entry.timestamp, _NANOS_PER_SECOND)
        stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(seconds))
        digits = self.granularity.fraction_digits
        if digits > 0:
            fraction = nanos // (_NANOS_PER_SECOND // self.granularity.value)
            stamp = f"{stamp}.{fraction:0{digits}d}"
        width = self.leading_zeros if self.leading_zeros >= 0 else DEFAULT_LEADING_ZEROS
        if use_colour:
            colour = level_colour(entry.level) if self.use_ansi_colours else ""
            reset = ANSI_RESET
        else:
            colour = reset = ""
        return (
            f"{entry.index:0{width}d} {stamp} "
            f"{colour}{level_label(entry.level)}{reset}: "
            f"[{entry.thread_label}] {entry.message}"
        )

    def log(self, level: LogLevel, message: str, *args: object) -> LogEntry | None:
        """Log a printf-style message; returns the entry, or None if filtered out."""
        if level < self.level:
            return None
        text = message % args if args else message
        entry = self.create_entry(level, text)
        if self.queue_enabled:
            self.queue.push(entry)
        else:
            self.log_now(entry)
        return entry

    def log_now(self, entry: LogEntry) -> None:
        """Publish an entry immediately, bypassing the queue."""
        with self._lock:
            if self.output in (LogOutput.FILE, LogOutput.BOTH):
                target = self._select_file(entry.thread_label)
                if self.output in (LogOutput.FILE, LogOutput.BOTH) and target.handle:
                    target.handle.write(self.format_entry(entry, False) + "\n")
                    target.handle.flush()
            if self.output in (LogOutput.SCREEN, LogOutput.BOTH):
                stream = self.stream if self.stream is not None else sys.stderr
                stream.write(self.format_entry(entry, True) + "\n")
                stream.flush()

    def drain_queue(self) -> int:
        """Publish every queued entry and return how many there were."""
        count = 0
        for entry in self.queue.drain():
            self.log_now(entry)
            count += 1
        return count

    def close(self) -> None:
        """Close every open log file and forget the per-thread files."""
        with self._lock:
            self._app_file.close()
            for log_file in self._thread_files:
                log_file.close()
            self._thread_files.clear()

    def _select_file(self, label: str) -> _LogFile:
        target = self._app_file
        self._rotate_if_needed(target)
        if not self._open_if_needed(target):
            self.output = LogOutput.SCREEN
        lowered = label.lower()
        for log_file in self._thread_files:
            if log_file.label.lower() == lowered:
                self._rotate_if_needed(log_file)
                if not self._open_if_needed(log_file):
                    print(f"File Error: Could not open log file for thread {label}", file=sys.stderr)
                return log_file
        return target

    def _open_if_needed(self, log_file: _LogFile) -> bool:
        if log_file.handle is not None:
            return True
        directory = os.path.dirname(log_file.path)
        if directory:
            try:
                os.makedirs(directory, exist_ok=True)
            except OSError:
                if self._directory_failures < MAX_DIRECTORY_FAILURE_REPORTS:
                    print(
                        f"Failed to create directory structure for logging: {directory}",
                        file=sys.stderr,
                    )
                    self._directory_failures += 1
        mode = "w" if self.purge_on_restart else "a"
        try:
            log_file.handle = open(log_file.path, mode, encoding="utf-8")
        except OSError:
            if self._open_failures == 0:
                print(f"Failed to open log file: {log_file.path}", file=sys.stderr)
            self._open_failures += 1
            if self._open_failures >= MAX_LOG_FAILURES:
                print(
                    f"Unrecoverable failure to open log file: {log_file.path}. Exiting",
                    file=sys.stderr,
                )
                raise SystemExit(1)
            return False
        self._open_failures = 0
        return True

    def _rotate_if_needed(self, log_file: _LogFile) -> None:
        if log_file.handle is None:
            return
        try:
            size = os.stat(log_file.path).st_size
        except OSError:
            return
        if size < self.file_size:
            return
        log_file.close()
        rotated = Path(log_file.path).parent / (time.strftime("log_%Y-%m-%d.txt") + ".old")
        try:
            os.replace(log_file.path, rotated)
        except OSError:
            pass
        try:
            log_file.handle = open(log_file.path, "a", encoding="utf-8")
        except OSError:
            log_file.handle = None

    def _publish_overflow(self, purged: list[LogEntry]) -> None:
        with self._lock:
            notice = self.create_entry(
                LogLevel.ERROR,
                f"Log queue overflow. Publishing oldest {len(purged)} log entries immediately",
            )
            self.log_now(notice)
            for entry in purged:
                self.log_now(entry)