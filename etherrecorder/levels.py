"""Log levels, output destinations and timestamp granularities."""

from __future__ import annotations

from enum import Enum, IntEnum

ANSI_RESET = "\x1b[0m"


class LogLevel(IntEnum):
    """Severity of a log message, ordered from least to most severe."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    NOTICE = 3
    WARN = 4
    ERROR = 5
    CRITICAL = 6
    FATAL = 7


class LogOutput(Enum):
    """Where published log entries go."""

    FILE = "file"
    SCREEN = "screen"
    BOTH = "both"


class TimestampGranularity(IntEnum):
    """Sub-second resolution of timestamps, as fractions of a second."""

    NANOSECOND = 1_000_000_000
    MICROSECOND = 1_000_000
    MILLISECOND = 1_000
    CENTISECOND = 100
    DECISECOND = 10
    SECOND = 1

    @property
    def fraction_digits(self) -> int:
        """Number of digits printed after the decimal point."""
        return len(str(self.value)) - 1


_LEVEL_NAMES = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "notice": LogLevel.NOTICE,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
    "err": LogLevel.ERROR,
    "critical": LogLevel.CRITICAL,
    "fatal": LogLevel.FATAL,
    "fatal error": LogLevel.FATAL,
}

_OUTPUT_NAMES = {
    "file": LogOutput.FILE,
    "log_file": LogOutput.FILE,
    "console": LogOutput.SCREEN,
    "screen": LogOutput.SCREEN,
    "terminal": LogOutput.SCREEN,
    "stderr": LogOutput.SCREEN,
    "stdout": LogOutput.SCREEN,
    "file and console": LogOutput.BOTH,
    "file_and_console": LogOutput.BOTH,
    "both": LogOutput.BOTH,
    "all": LogOutput.BOTH,
}

_GRANULARITY_NAMES = {member.name.lower(): member for member in TimestampGranularity}

_LABELS = {
    LogLevel.DEBUG: "DEBUG",
    LogLevel.INFO: "INFO ",
    LogLevel.WARN: "WARN ",
    LogLevel.ERROR: "ERROR",
    LogLevel.FATAL: "FATAL",
}

_COLOURS = {
    LogLevel.DEBUG: "\x1b[36m",
    LogLevel.INFO: "\x1b[32m",
    LogLevel.NOTICE: "\x1b[34m",
    LogLevel.WARN: "\x1b[33m",
    LogLevel.ERROR: "\x1b[31m",
    LogLevel.CRITICAL: "\x1b[35m",
    LogLevel.FATAL: "\x1b[41m",
}


def log_level_from_string(text: str | None, default: LogLevel) -> LogLevel:
    """Map a level name (case-insensitive) to a LogLevel, else return default."""
    if text is None:
        return default
    return _LEVEL_NAMES.get(text.lower(), default)


def log_output_from_string(text: str | None, default: LogOutput) -> LogOutput:
    """Map a destination name (case-insensitive) to a LogOutput, else return default."""
    if text is None:
        return default
    return _OUTPUT_NAMES.get(text.lower(), default)


def timestamp_granularity_from_string(
    text: str | None, default: TimestampGranularity
) -> TimestampGranularity:
    """Map a granularity name (case-insensitive) to its enum, else return default."""
    if text is None:
        return default
    return _GRANULARITY_NAMES.get(text.lower(), default)


def level_label(level: LogLevel) -> str:
    """Five-character label printed for a level."""
    return _LABELS.get(level, "UNKNN")


def level_colour(level: LogLevel) -> str:
    """ANSI colour escape for a level, or an empty string if it has none."""
    return _COLOURS.get(level, "")