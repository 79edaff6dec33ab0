"""Interpretation of text commands received over the command interface."""

from __future__ import annotations

from etherrecorder.levels import LogLevel
from etherrecorder.logger import Logger

MAX_COMMAND_LENGTH = 255
SOME_COMMAND = "SOME_COMMAND"

_WHITESPACE = " \t\n\v\f\r"

_LOG_LEVELS = {
    "trace": LogLevel.TRACE,
    "debug": LogLevel.DEBUG,
    "info": LogLevel.INFO,
    "notice": LogLevel.NOTICE,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "error": LogLevel.ERROR,
    "critical": LogLevel.CRITICAL,
    "fatal": LogLevel.FATAL,
}


def _process_log_level(value: str, logger: Logger) -> bool:
    level = _LOG_LEVELS.get(value.lower())
    if level is None:
        logger.log(LogLevel.WARN, "Unknown log level: %s", value)
        return False
    logger.set_level(level)
    logger.log(LogLevel.INFO, "Log level changed to %s", value.lower())
    return True


def process_command(command: str, logger: Logger) -> bool:
    """Carry out a command; return True if it was recognised and applied.

    ``log_level = <name>`` changes the logger's level, tolerating spaces
    around the name, the key and the '='. ``SOME_COMMAND`` is accepted
    as is. Anything else is reported as unknown.
    """
    trimmed = command[:MAX_COMMAND_LENGTH].strip(_WHITESPACE)

    left, sep, right = trimmed.partition("=")
    if sep:
        left = left.strip(_WHITESPACE)
        if left.lower() == "log_level":
            return _process_log_level(right.strip(_WHITESPACE), logger)
        trimmed = left

    if trimmed == SOME_COMMAND:
        logger.log(LogLevel.INFO, "Processing %s", SOME_COMMAND)
        return True

    logger.log(LogLevel.WARN, "Unknown command: %s", trimmed)
    return False