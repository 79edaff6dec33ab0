"""Command-line entry point."""

from __future__ import annotations

import os
import sys

from etherrecorder.config import Config, ConfigError
from etherrecorder.levels import LogLevel
from etherrecorder.logger import Logger, set_thread_label
from etherrecorder.threads import Application

PROGRAM_NAME = "etherrecorder"
DEFAULT_CONFIG_FILE = "config.ini"
HEARTBEAT_MS = 7620
EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def _print_usage() -> None:
    print(f"Usage: {PROGRAM_NAME} [-c <config_file>]")
    print("  -c <config_file>  Specify the configuration file (optional).")
    print("  -h                Show this help message.")


def parse_args(argv: list[str] | None = None) -> str | None:
    """Return the configuration file to use, or None if the program should stop.

    ``-h`` and unknown arguments print usage and yield None.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    config_file = DEFAULT_CONFIG_FILE
    position = 0
    while position < len(args):
        arg = args[position]
        if arg == "-c" and position + 1 < len(args):
            position += 1
            if args[position]:
                config_file = args[position]
        elif arg == "-h":
            _print_usage()
            return None
        else:
            print(f"Unknown argument: {arg}")
            _print_usage()
            return None
        position += 1
    return config_file


def _print_working_directory() -> None:
    try:
        print(f"Current working directory: {os.getcwd()}")
    except OSError as exc:
        print(f"getcwd_error: {exc}", file=sys.stderr)


def main(argv: list[str] | None = None) -> int:
    """Run the recorder until every thread has finished."""
    config_file = parse_args(argv)
    if config_file is None:
        return EXIT_FAILURE

    set_thread_label("MAIN")
    _print_working_directory()

    config = Config()
    try:
        path = config.load(config_file)
        print(f"Loading configuration file: {path}")
    except ConfigError as exc:
        print(f"Failed to initialise configuration: {exc}")
        print("Default settings will be used")

    logger = Logger()
    logger.configure(config)
    logger.log(LogLevel.INFO, "Logger initialised successfully")

    app = Application(config, logger)
    app.start_threads()
    logger.log(LogLevel.DEBUG, "App threads started")

    while True:
        try:
            if app.wait_for_all_threads(HEARTBEAT_MS):
                break
            logger.log(LogLevel.DEBUG, "HEARTBEAT")
        except KeyboardInterrupt:
            app.shutdown()

    logger.log(LogLevel.INFO, "Exiting application")
    logger.drain_queue()
    logger.close()
    config.clear()
    print("Main thread finally exiting")
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())