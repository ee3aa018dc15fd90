"""Output destinations for the JSON lines rendered by :class:`rxotel.logging.Logger`.

Any object with a ``write(str)`` method can be a destination (``sys.stderr``,
``io.StringIO``, an open file). :class:`MultiWriter` fans a line out to
several destinations and :class:`ConsoleWriter` turns it into a compact
human-readable line.
"""

import json
import sys
from datetime import datetime, timezone
from typing import Any, Protocol, TextIO

from .logging import (
    CALLER_FIELD,
    ERROR_FIELD,
    LEVEL_FIELD,
    MESSAGE_FIELD,
    TIME_FIELD,
    TIME_FORMAT,
    Level,
)


class Writer(Protocol):
    def write(self, data: str) -> Any: ...


class MultiWriter:
    """Write every line to all ``writers``, in order."""

    def __init__(self, *writers: Writer):
        self.writers = tuple(writers)

    def write(self, data: str) -> int:
        for writer in self.writers:
            writer.write(data)
        return len(data)

    def flush(self) -> None:
        for writer in self.writers:
            flush = getattr(writer, "flush", None)
            if flush is not None:
                flush()


_RESET = "\x1b[0m"
_BOLD = "1"
_RED = "31"
_GREEN = "32"
_YELLOW = "33"
_MAGENTA = "35"
_CYAN = "36"
_DARK_GRAY = "90"

_LEVEL_COLORS = {
    Level.TRACE: _MAGENTA,
    Level.DEBUG: _YELLOW,
    Level.INFO: _GREEN,
    Level.WARN: _RED,
    Level.ERROR: _RED,
    Level.FATAL: _RED,
    Level.PANIC: _RED,
}


def _kitchen(moment: datetime) -> str:
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d}{suffix}"


class ConsoleWriter:
    """Human-friendly renderer for rendered log lines.

    Example output:
        3:04PM INF connection established peer=abc123 port=8765
        3:05PM ERR app.py:42 > request failed error="timed out"

    Parameters:
        out: Destination stream, ``sys.stderr`` when omitted (resolved on
            every write so it can be swapped at runtime).
        no_color: Disable ANSI colors.
        time_format: ``strftime`` format for the timestamp; the default is
            the short ``3:04PM`` form in local time.

    Lines that are not valid JSON objects are written through unchanged.
    """

    def __init__(
        self,
        out: TextIO | None = None,
        *,
        no_color: bool = False,
        time_format: str | None = None,
    ):
        self.out = out
        self.no_color = no_color
        self.time_format = time_format

    def _stream(self) -> TextIO:
        return self.out if self.out is not None else sys.stderr

    def _colorize(self, text: str, *codes: str) -> str:
        codes = tuple(code for code in codes if code)
        if self.no_color or not codes:
            return text
        return f"\x1b[{';'.join(codes)}m{text}{_RESET}"

    def write(self, data: str) -> int:
        try:
            event = json.loads(data)
        except ValueError:
            event = None

        if isinstance(event, dict):
            self._stream().write(self.format(event))
        else:
            self._stream().write(data)
        return len(data)

    def flush(self) -> None:
        self._stream().flush()

    def format(self, event: dict[str, Any]) -> str:
        event = dict(event)
        parts = [
            self._format_time(event.pop(TIME_FIELD, None)),
            self._format_level(event.pop(LEVEL_FIELD, None)),
        ]

        caller = event.pop(CALLER_FIELD, None)
        if caller:
            parts.append(self._colorize(str(caller), _BOLD) + self._colorize(" >", _CYAN))

        message = event.pop(MESSAGE_FIELD, None)
        if message:
            parts.append(str(message))

        for key in sorted(event):
            parts.append(self._format_field(key, event[key]))

        return " ".join(part for part in parts if part) + "\n"

    def _format_time(self, value: Any) -> str:
        if not isinstance(value, str):
            return self._colorize("<nil>", _DARK_GRAY)
        try:
            moment = datetime.strptime(value, TIME_FORMAT).replace(tzinfo=timezone.utc)
        except ValueError:
            return self._colorize(value, _DARK_GRAY)
        moment = moment.astimezone()
        text = moment.strftime(self.time_format) if self.time_format else _kitchen(moment)
        return self._colorize(text, _DARK_GRAY)

    def _format_level(self, value: Any) -> str:
        try:
            level = Level.parse(value)
        except ValueError:
            return "???"
        if level == Level.ERROR or level >= Level.FATAL:
            return self._colorize(level.short, _RED, _BOLD)
        return self._colorize(level.short, _LEVEL_COLORS.get(level, ""))

    def _format_field(self, key: str, value: Any) -> str:
        if isinstance(value, str):
            text = json.dumps(value, ensure_ascii=False) if (" " in value or not value) else value
        else:
            text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))

        if key == ERROR_FIELD:
            return self._colorize(f"{key}=", _CYAN) + self._colorize(text, _RED, _BOLD)
        return self._colorize(f"{key}=", _CYAN) + text
