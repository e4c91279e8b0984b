"""Leveled, structured logging with JSON and pretty renderers.

A ``Logger`` is an explicit value built once from configuration and
passed to the tree builder, the dispatcher, the shutdown coordinator,
and every handler. Each one owns a private stdlib ``logging.Logger``
with a single stream handler, so nothing is shared through the global
logging registry.

Entries are written synchronously, one line each, in call order.
"""

import json
import logging
import sys
from collections.abc import Mapping
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any, TextIO

from burrow.errors import ConfigurationError

_FIELDS_ATTR = "burrow_fields"


class Level(IntEnum):
    """Log levels, ordered by severity, on the stdlib numeric scale."""

    TRACE = 5
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARN = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: "str | int | Level") -> "Level":
        """Resolve a level name or number.

        Accepts ``warning`` and ``critical`` as aliases for ``warn`` and
        ``fatal``. Raises ``ConfigurationError`` for anything else.
        """
        if isinstance(value, Level):
            return value
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                msg = f"Unknown log level {value!r}"
                raise ConfigurationError(msg) from None
        name = _ALIASES.get(value.strip().lower(), value.strip().lower())
        try:
            return cls[name.upper()]
        except KeyError:
            msg = f"Unknown log level {value!r}"
            raise ConfigurationError(msg) from None


_ALIASES = {"warning": "warn", "critical": "fatal"}

# ANSI foreground codes
_GREEN = 32
_YELLOW = 33
_BLUE = 34
_RED = 31
_GRAY = 90

_LEVEL_COLORS = {
    Level.TRACE: _GRAY,
    Level.DEBUG: _BLUE,
    Level.INFO: _GREEN,
    Level.WARN: _YELLOW,
    Level.ERROR: _RED,
    Level.FATAL: _RED,
}


def colorize(text: str, code: int, enabled: bool) -> str:
    """Wrap *text* in an ANSI color, or return it untouched."""
    if not enabled:
        return text
    return f"\x1b[{code}m{text}\x1b[39m"


def colorize_status(status: int, enabled: bool) -> str:
    """Green below 400, yellow for 4xx, red from 500."""
    if status >= 500:
        code = _RED
    elif status >= 400:
        code = _YELLOW
    else:
        code = _GREEN
    return colorize(str(status), code, enabled)


def colorize_duration(duration_ms: float, enabled: bool) -> str:
    """Green below 500ms, yellow below 1000ms, red otherwise."""
    if duration_ms >= 1000:
        code = _RED
    elif duration_ms >= 500:
        code = _YELLOW
    else:
        code = _GREEN
    return colorize(f"{duration_ms:.1f}ms", code, enabled)


def _iso_date(created: float) -> str:
    stamp = datetime.fromtimestamp(created, tz=UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def _level_of(record: logging.LogRecord) -> Level:
    try:
        return Level(record.levelno)
    except ValueError:
        return Level.INFO


class JsonFormatter(logging.Formatter):
    """Serialize each entry as one JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": _level_of(record).label,
            "date": _iso_date(record.created),
        }
        entry.update(getattr(record, _FIELDS_ATTR, None) or {})
        entry["message"] = record.getMessage()
        if record.exc_info:
            entry["stack"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """``[date] level (event): message``, colorized when enabled."""

    def __init__(self, *, colors: bool = False) -> None:
        super().__init__()
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:
        level = _level_of(record)
        fields = getattr(record, _FIELDS_ATTR, None) or {}
        event = fields.get("event")
        return "[{date}] {level}{event}: {message}".format(
            date=colorize(_iso_date(record.created), _GRAY, self.colors),
            level=colorize(level.label, _LEVEL_COLORS[level], self.colors),
            event=f" ({event})" if event else "",
            message=record.getMessage(),
        )


class Logger:
    """A leveled logger with a fixed minimum level and renderer.

    Usage::

        log = Logger(level="debug", style="pretty")
        log.info("Server listening on %s", url)
        log.log_structured("warn", {"event": "http-router", "message": "skipped"})
    """

    __slots__ = ("_logger", "colors", "level", "style")

    def __init__(
        self,
        *,
        level: str | int | Level = Level.INFO,
        style: str = "json",
        colors: bool | None = None,
        stream: TextIO | None = None,
        name: str = "burrow",
    ) -> None:
        if style not in ("json", "pretty"):
            msg = f"Unknown log style {style!r}"
            raise ConfigurationError(msg)
        self.level = Level.parse(level)
        self.style = style
        # Colors only ever apply to the pretty renderer.
        self.colors = style == "pretty" and (True if colors is None else colors)

        handler = logging.StreamHandler(sys.stdout if stream is None else stream)
        if style == "json":
            handler.setFormatter(JsonFormatter())
        else:
            handler.setFormatter(PrettyFormatter(colors=self.colors))

        self._logger = logging.Logger(name, level=int(self.level))
        self._logger.propagate = False
        self._logger.addHandler(handler)

    @classmethod
    def from_config(cls, config: Any, stream: TextIO | None = None) -> "Logger":
        """Build a logger from a ``ServerConfig``."""
        return cls(
            level=config.log_level,
            style=config.log_style,
            colors=not config.no_color,
            stream=stream,
        )

    def supports(self, level: str | int | Level) -> bool:
        """True when entries at *level* would be written."""
        return Level.parse(level) >= self.level

    def log(self, level: str | int | Level, message: object, *args: object) -> None:
        """Write one entry, formatting *message* with ``%``-style *args*."""
        resolved = Level.parse(level)
        if resolved < self.level:
            return
        self._logger.log(int(resolved), message, *args, exc_info=_exc_info(message))

    def log_structured(self, level: str | int | Level, fields: Mapping[str, Any]) -> None:
        """Write one entry whose structured *fields* are merged into it.

        A ``message`` field takes the same formatting path as ``log``.
        """
        resolved = Level.parse(level)
        if resolved < self.level:
            return
        extra = dict(fields)
        message = extra.pop("message", "")
        self._logger.log(
            int(resolved),
            message,
            exc_info=_exc_info(message),
            extra={_FIELDS_ATTR: extra},
        )

    def trace(self, message: object, *args: object) -> None:
        self.log(Level.TRACE, message, *args)

    def debug(self, message: object, *args: object) -> None:
        self.log(Level.DEBUG, message, *args)

    def info(self, message: object, *args: object) -> None:
        self.log(Level.INFO, message, *args)

    def warn(self, message: object, *args: object) -> None:
        self.log(Level.WARN, message, *args)

    def error(self, message: object, *args: object) -> None:
        self.log(Level.ERROR, message, *args)

    def fatal(self, message: object, *args: object) -> None:
        self.log(Level.FATAL, message, *args)


def _exc_info(message: object) -> Any:
    if isinstance(message, BaseException):
        return (type(message), message, message.__traceback__)
    return None
