"""INI-style configuration storage with case-insensitive section and key lookup."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable, Iterator

MAX_LINE_LENGTH = 256
MAX_SECTION_LENGTH = 50
MAX_KEY_LENGTH = 50
MAX_VALUE_LENGTH = 200

_WHITESPACE = " \t\n\v\f\r"
_UINT64_MAX = 2**64 - 1

_TRUE_WORDS = frozenset({"true", "yes", "on"})
_FALSE_WORDS = frozenset({"false", "no", "off"})

_INT_RE = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")
_HEX_RE = re.compile(
    r"[ \t\n\v\f\r]*([+-]?)(?:0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]+)"
)


class ConfigError(Exception):
    """Raised when a configuration file cannot be located or read."""


def _physical_lines(lines: Iterable[str]) -> Iterator[str]:
    """Split lines into the fixed-size chunks a line reader of limited width sees."""
    width = MAX_LINE_LENGTH - 1
    for line in lines:
        if len(line) <= width:
            yield line
            continue
        for start in range(0, len(line), width):
            yield line[start:start + width]


def _strip_comment(line: str) -> str:
    """Drop a ';' or '#' comment that does not sit inside quotes."""
    in_quotes = False
    for pos, char in enumerate(line):
        if char in "\"'":
            in_quotes = not in_quotes
        elif not in_quotes and char in ";#":
            return line[:pos].strip(_WHITESPACE)
    return line.strip(_WHITESPACE)


def _parse_int(text: str) -> int:
    match = _INT_RE.match(text)
    return int(match.group(1)) if match else 0


def _parse_hex(text: str) -> int:
    match = _HEX_RE.match(text)
    if not match:
        return 0
    sign, digits = match.groups()
    value = int(digits, 16)
    if value > _UINT64_MAX:
        return _UINT64_MAX
    if sign == "-":
        return (-value) % (_UINT64_MAX + 1)
    return value


class Config:
    """Configuration values grouped by section; later entries override earlier ones."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], str] = {}

    def load(self, filename: str | Path) -> Path:
        """Read a configuration file and return its resolved path."""
        try:
            path = Path(filename).expanduser().resolve()
        except (OSError, RuntimeError) as exc:
            raise ConfigError(f"Failed to resolve full path for: {filename}") from exc
        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                self.read_lines(handle)
        except OSError as exc:
            raise ConfigError(f"Failed to load configuration file: {path}") from exc
        return path

    def read_lines(self, lines: Iterable[str]) -> None:
        """Parse configuration text given as an iterable of lines."""
        section = ""
        for raw in _physical_lines(lines):
            line = _strip_comment(raw.strip(_WHITESPACE))
            if not line:
                continue
            if line.startswith("["):
                end = line.find("]")
                if end != -1:
                    section = line[1:end][: MAX_SECTION_LENGTH - 1]
                continue
            key, sep, value = line.partition("=")
            if sep:
                self._store(section, key.strip(_WHITESPACE), value.strip(_WHITESPACE))

    def _store(self, section: str, key: str, value: str) -> None:
        section = section[: MAX_SECTION_LENGTH - 1]
        key = key[: MAX_KEY_LENGTH - 1]
        value = value[: MAX_VALUE_LENGTH - 1]
        self._entries[(section.lower(), key.lower())] = value

    def get_string(self, section: str, key: str, default: str | None = None) -> str | None:
        """Return the raw value for section/key, or default when absent."""
        return self._entries.get((section.lower(), key.lower()), default)

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        """Return the leading integer of the value; 0 if it has none."""
        value = self.get_string(section, key)
        return default if value is None else _parse_int(value)

    def get_bool(self, section: str, key: str, default: bool = False) -> bool:
        """Interpret true/yes/on/1 and false/no/off/0; anything else yields default."""
        value = self.get_string(section, key)
        if value is None:
            return default
        lowered = value.lower()
        if lowered in _TRUE_WORDS or value == "1":
            return True
        if lowered in _FALSE_WORDS or value == "0":
            return False
        return default

    def get_hex(self, section: str, key: str, default: int = 0) -> int:
        """Return the value parsed as an unsigned 64-bit hexadecimal number."""
        value = self.get_string(section, key)
        return default if value is None else _parse_hex(value)

    def clear(self) -> None:
        """Forget every stored entry."""
        self._entries.clear()