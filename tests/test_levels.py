import pytest

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


@pytest.mark.parametrize(
    "text, expected",
    [
        ("trace", LogLevel.TRACE),
        ("DEBUG", LogLevel.DEBUG),
        ("Info", LogLevel.INFO),
        ("notice", LogLevel.NOTICE),
        ("warn", LogLevel.WARN),
        ("warning", LogLevel.WARN),
        ("error", LogLevel.ERROR),
        ("ERR", LogLevel.ERROR),
        ("critical", LogLevel.CRITICAL),
        ("fatal", LogLevel.FATAL),
        ("Fatal Error", LogLevel.FATAL),
    ],
)
def test_log_level_from_string(text, expected):
    assert log_level_from_string(text, LogLevel.INFO) is expected


@pytest.mark.parametrize("text", [None, "", "verbose", "warn "])
def test_log_level_from_string_default(text):
    assert log_level_from_string(text, LogLevel.NOTICE) is LogLevel.NOTICE


def test_levels_are_ordered_by_severity():
    names = ["trace", "debug", "info", "notice", "warn", "error", "critical", "fatal"]
    parsed = [log_level_from_string(name, LogLevel.INFO) for name in names]
    assert len(set(parsed)) == len(names)
    assert sorted(parsed) == parsed


@pytest.mark.parametrize(
    "text, expected",
    [
        ("file", LogOutput.FILE),
        ("LOG_FILE", LogOutput.FILE),
        ("console", LogOutput.SCREEN),
        ("screen", LogOutput.SCREEN),
        ("terminal", LogOutput.SCREEN),
        ("stderr", LogOutput.SCREEN),
        ("stdout", LogOutput.SCREEN),
        ("file and console", LogOutput.BOTH),
        ("file_and_console", LogOutput.BOTH),
        ("Both", LogOutput.BOTH),
        ("all", LogOutput.BOTH),
    ],
)
def test_log_output_from_string(text, expected):
    assert log_output_from_string(text, LogOutput.SCREEN) is expected


@pytest.mark.parametrize("text", [None, "printer", ""])
def test_log_output_from_string_default(text):
    assert log_output_from_string(text, LogOutput.FILE) is LogOutput.FILE


@pytest.mark.parametrize("member", list(TimestampGranularity))
def test_granularity_from_its_name(member):
    assert timestamp_granularity_from_string(member.name.upper(), TimestampGranularity.SECOND) is member
    assert timestamp_granularity_from_string(member.name.lower(), TimestampGranularity.SECOND) is member


@pytest.mark.parametrize("text", [None, "fortnight", "ms"])
def test_granularity_default(text):
    default = TimestampGranularity.MILLISECOND
    assert timestamp_granularity_from_string(text, default) is default


def test_granularity_values_fixed_by_format():
    nano = timestamp_granularity_from_string("nanosecond", TimestampGranularity.SECOND)
    second = timestamp_granularity_from_string("second", TimestampGranularity.NANOSECOND)
    assert nano == 1000000000
    assert second == 1


@pytest.mark.parametrize("member", list(TimestampGranularity))
def test_fraction_digits_match_power_of_ten(member):
    parsed = timestamp_granularity_from_string(member.name, TimestampGranularity.SECOND)
    assert 10 ** parsed.fraction_digits == parsed.value


def test_second_granularity_has_no_fraction():
    parsed = timestamp_granularity_from_string("second", TimestampGranularity.NANOSECOND)
    assert parsed.fraction_digits == 0


@pytest.mark.parametrize(
    "level, label",
    [
        (LogLevel.DEBUG, "DEBUG"),
        (LogLevel.INFO, "INFO "),
        (LogLevel.WARN, "WARN "),
        (LogLevel.ERROR, "ERROR"),
        (LogLevel.FATAL, "FATAL"),
        (LogLevel.TRACE, "UNKNN"),
        (LogLevel.NOTICE, "UNKNN"),
        (LogLevel.CRITICAL, "UNKNN"),
    ],
)
def test_level_label(level, label):
    assert level_label(level) == label


@pytest.mark.parametrize("level", list(LogLevel))
def test_labels_have_fixed_width(level):
    assert len(level_label(level)) == len("UNKNN")


def test_level_colours():
    assert level_colour(LogLevel.DEBUG) == "\x1b[36m"
    assert level_colour(LogLevel.ERROR) == "\x1b[31m"
    assert level_colour(LogLevel.FATAL) == "\x1b[41m"
    assert level_colour(LogLevel.TRACE) == ""


def test_colours_are_ansi_escapes_and_reset_is_fixed():
    assert ANSI_RESET == "\x1b[0m"
    for level in LogLevel:
        colour = level_colour(level)
        assert colour == "" or (colour.startswith("\x1b[") and colour.endswith("m"))