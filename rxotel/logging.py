import json
import sys
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, Callable, Iterable, Literal, Optional, Protocol

import reactivex as rx
from opentelemetry import context as otel_context
from opentelemetry.context import Context
from reactivex import Observable, Observer, Subject
from reactivex import operators as ops

from .mechanism import PanicError, RxException

"""
The objects to deal with loggings.

A structured logging facade: a ``Logger`` hands out ``LogEvent`` builders,
each fired event becomes a ``LogItem`` that is passed to the logger's hooks,
written to its writer as a JSON line and forwarded to its subscribers.
"""

LOG_LEVEL = Literal["TRACE", "DEBUG", "INFO", "WARN", "ERROR", "FATAL", "PANIC"]

LEVEL_FIELD = "level"
TIME_FIELD = "time"
MESSAGE_FIELD = "message"
ERROR_FIELD = "error"
ERROR_TYPE_FIELD = "error.type"
STACK_FIELD = "stack"
CALLER_FIELD = "caller"

TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class Level(IntEnum):
    """Ordered log levels. ``DISABLED`` is only meaningful as a threshold."""

    TRACE = -1
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4
    PANIC = 5
    DISABLED = 7

    @property
    def label(self) -> str:
        return self.name.lower()

    @property
    def short(self) -> str:
        return _SHORT_NAMES[self]

    @classmethod
    def parse(cls, level: "Level | LOG_LEVEL | str | int") -> "Level":
        """
        Resolve a level given as a member, its integer value or its name.
        The names ``WARNING`` and ``CRITICAL`` are accepted as aliases.
        """
        if isinstance(level, Level):
            return level
        if isinstance(level, int):
            return cls(level)
        name = str(level).upper()
        name = _ALIASES.get(name, name)
        try:
            return cls[name]
        except KeyError:
            raise ValueError(f"Unknown log level '{level}'.") from None


_SHORT_NAMES = {
    Level.TRACE: "TRC",
    Level.DEBUG: "DBG",
    Level.INFO: "INF",
    Level.WARN: "WRN",
    Level.ERROR: "ERR",
    Level.FATAL: "FTL",
    Level.PANIC: "PNC",
    Level.DISABLED: "???",
}

_ALIASES = {"WARNING": "WARN", "CRITICAL": "FATAL"}


# =============================================================================
# Error stack marshaling
# =============================================================================

# Process-wide: install once during setup, before concurrent logging starts.
# There is no lock, concurrent installs are last-write-wins.
_error_stack_marshaler: Optional[Callable[[BaseException], Any]] = None


def set_error_stack_marshaler(marshaler: Optional[Callable[[BaseException], Any]]) -> None:
    """
    Install the function that turns an exception into the ``stack`` field.
    Events only carry a stack when one is installed and the event asked for it.
    """
    global _error_stack_marshaler
    _error_stack_marshaler = marshaler


def get_error_stack_marshaler() -> Optional[Callable[[BaseException], Any]]:
    return _error_stack_marshaler


# =============================================================================
# Field encoding
# =============================================================================


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds() * 1000
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", "replace")
    if isinstance(value, (set, frozenset)):
        return list(value)
    if hasattr(value, "tolist"):
        # numpy scalars and arrays
        return value.tolist()
    return str(value)


def _encode(value: Any) -> str:
    try:
        return json.dumps(value, default=_json_default, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError):
        # unsupported keys or circular containers
        return json.dumps(repr(value), ensure_ascii=False)


def encode_field(key: str, value: Any) -> str:
    """Encode one ``"key":value`` fragment of a field buffer."""
    return f"{_encode(str(key))}:{_encode(value)}"


def _error_type(error: BaseException) -> str:
    cls = type(error)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _caller(skip: int) -> str:
    frame = sys._getframe(1)
    while frame is not None and frame.f_globals.get("__name__") == __name__:
        frame = frame.f_back
    for _ in range(skip):
        if frame is None or frame.f_back is None:
            break
        frame = frame.f_back
    if frame is None:
        return ""
    return f"{frame.f_code.co_filename}:{frame.f_lineno}"


# =============================================================================
# Log items and events
# =============================================================================


class LogItem:
    """
    Use this term to represent the emitted log information.

    ``fields`` holds the encoded ``"key":value`` JSON fragments of the event,
    in the order they were added. ``buf`` joins them (after the level) into
    the JSON object hooks decode, ``render()`` produces the line written to
    the logger's writer.
    """

    def __init__(
        self,
        msg: Any,
        level: LOG_LEVEL | Level = "INFO",
        source: str = "Unknown",
        *,
        fields: Iterable[str] = (),
        context: Context | None = None,
        enabled: bool = True,
        logger: Optional["Logger"] = None,
        timestamp_ns: int | None = None,
    ):
        self.level = Level.parse(level)
        self.timestamp_ns = time.time_ns() if timestamp_ns is None else timestamp_ns
        self.timestamp_str = datetime.fromtimestamp(
            self.timestamp_ns / 1e9, tz=timezone.utc
        ).strftime(TIME_FORMAT)
        self.source = source
        self.msg = msg
        self.fields = tuple(fields)
        self.context = context if context is not None else otel_context.get_current()
        self.enabled = enabled
        self.logger = logger

    @property
    def message(self) -> str:
        return "" if self.msg is None else str(self.msg)

    @property
    def fragments(self) -> tuple[str, ...]:
        return (encode_field(LEVEL_FIELD, self.level.label), *self.fields)

    @property
    def buf(self) -> str:
        return "{" + ",".join(self.fragments) + "}"

    def render(self) -> str:
        parts = [
            encode_field(LEVEL_FIELD, self.level.label),
            encode_field(TIME_FIELD, self.timestamp_str),
            *self.fields,
        ]
        if self.message:
            parts.append(encode_field(MESSAGE_FIELD, self.message))
        return "{" + ",".join(parts) + "}\n"

    def __str__(self) -> str:
        return f"[{self.level.name}] {self.timestamp_str} {self.source}\t: {self.msg}\n"


class LogEvent:
    """
    Builder for a single log event, obtained from ``Logger.info()`` and friends.

    Every method returns the event so calls can be chained; ``msg()`` (or
    ``send()``) fires it. An event below the logger's level is disabled and
    all of its methods are no-ops.

    Example:
        >>> logger.info().field("peer", "abc123").fields(port=8765).msg("connected")
        >>> logger.error().err(exc).stack().msg("request failed")
    """

    def __init__(self, logger: "Logger", level: Level, enabled: bool = True):
        self._logger = logger
        self._level = level
        self._enabled = enabled
        self._fields: list[str] = list(logger.context_fields) if enabled else []
        self._context: Context | None = None
        self._error: BaseException | None = None
        self._stack = logger.stack
        self._caller_skip = logger.caller_skip

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def level(self) -> Level:
        return self._level

    def field(self, key: str, value: Any) -> "LogEvent":
        if self._enabled:
            self._fields.append(encode_field(key, value))
        return self

    def fields(self, **fields: Any) -> "LogEvent":
        for key, value in fields.items():
            self.field(key, value)
        return self

    def raw_json(self, key: str, raw: str | bytes) -> "LogEvent":
        """Add ``raw`` verbatim as the JSON value of ``key``. It is not validated."""
        if self._enabled:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode("utf-8", "replace")
            self._fields.append(f"{_encode(str(key))}:{raw}")
        return self

    def err(self, error: BaseException | None) -> "LogEvent":
        if self._enabled and error is not None:
            self._error = error
            self._fields.append(encode_field(ERROR_FIELD, str(error)))
            self._fields.append(encode_field(ERROR_TYPE_FIELD, _error_type(error)))
        return self

    def stack(self) -> "LogEvent":
        """Attach the marshaled stack of the event's error, if a marshaler is installed."""
        self._stack = True
        return self

    def caller(self, skip: int = 0) -> "LogEvent":
        self._caller_skip = skip
        return self

    def ctx(self, context: Context) -> "LogEvent":
        """Use ``context`` (and the span active in it) instead of the current one."""
        self._context = context
        return self

    def msg(self, message: Any = "") -> None:
        if not self._enabled:
            return

        fields = list(self._fields)
        marshaler = get_error_stack_marshaler()
        if self._stack and self._error is not None and marshaler is not None:
            fields.append(encode_field(STACK_FIELD, marshaler(self._error)))
        if self._caller_skip is not None:
            fields.append(encode_field(CALLER_FIELD, _caller(self._caller_skip)))

        item = LogItem(
            message,
            self._level,
            self._logger.name,
            fields=fields,
            context=self._context,
            logger=self._logger,
        )
        self._logger.on_next(item)

        if self._level == Level.FATAL:
            sys.exit(1)
        if self._level == Level.PANIC:
            raise PanicError(item.message)

    def msgf(self, fmt: str, *args: Any) -> None:
        self.msg(fmt % args if args else fmt)

    def send(self) -> None:
        self.msg("")


class Hook(Protocol):
    """Receives every fired event before it is written."""

    def run(self, item: LogItem) -> None: ...


# =============================================================================
# Reactive operators
# =============================================================================


def keep_log(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """
    A decorator to keep the log item type. Can be used to monkey-patch the function to keep the log item type.
    """

    def wrapper(x):
        if isinstance(x, LogItem):
            return x
        else:
            return func(x)

    return wrapper


def _level_set(levels: Iterable[LOG_LEVEL | Level] | None) -> set[Level]:
    if levels is None:
        return {level for level in Level if level != Level.DISABLED}
    return {Level.parse(level) for level in levels}


def log_filter(levels: Iterable[LOG_LEVEL | Level] | None = None):
    """
    The operator to filter the log items by the level.
    """
    accepted = _level_set(levels)
    return ops.filter(lambda log: isinstance(log, LogItem) and log.level in accepted)


def drop_log():
    return ops.filter(lambda log: not isinstance(log, LogItem))


def log_redirect_to(
    log_observer: Observer | Callable,
    levels: Iterable[LOG_LEVEL | Level] | None = None,
):
    """
    The operator redirect the log items to the specified observer (or function), and forward other items.
    The log items outside the specifed levels are ignored.
    """
    accepted = _level_set(levels)

    def _log_redirect_to(source):
        def subscribe(observer, scheduler=None):

            if hasattr(log_observer, "on_next"):
                redirect_fun = log_observer.on_next
            else:
                redirect_fun = log_observer

            def on_next(value: Any) -> None:
                if isinstance(value, LogItem):
                    if value.level in accepted:
                        redirect_fun(value)  # type: ignore

                else:
                    observer.on_next(value)

            return source.subscribe(
                on_next=on_next,
                on_error=observer.on_error,
                on_completed=observer.on_completed,
                scheduler=scheduler,
            )

        return Observable(subscribe)

    return _log_redirect_to


# =============================================================================
# Components
# =============================================================================


class LogComp(ABC):
    """
    The abstract class for the log source, a component that can log messages.
    """

    @abstractmethod
    def set_super(self, obs: rx.abc.ObserverBase | Callable): ...

    @abstractmethod
    def log(self, msg: Any, level: LOG_LEVEL = "INFO", **fields: Any): ...

    @abstractmethod
    def get_rx_exception(self, error: Exception, note: str = "") -> RxException: ...


class NamedLogComp(LogComp):
    def __init__(self, name: str = "LogSource"):
        self.name = name
        self.super_obs: Optional[rx.abc.ObserverBase | Callable] = None

    def set_super(self, obs: rx.abc.ObserverBase | Callable):
        """
        Set the super observer (usually a ``Logger``) to redirect the log messages.
        """
        self.super_obs = obs

    def log(self, msg: Any, level: LOG_LEVEL = "INFO", **fields: Any):
        """
        Log a message with the specified level. The component name is sent as the ``source`` field.
        """
        if self.super_obs is None:
            raise RxException(
                RuntimeError("Super observer is not set. Please call set_super() first."),
                source=self.name,
            )
        encoded = [encode_field("source", self.name)]
        encoded.extend(encode_field(key, value) for key, value in fields.items())
        log_item = LogItem(msg, level, self.name, fields=encoded)
        if hasattr(self.super_obs, "on_next"):
            self.super_obs.on_next(log_item)
        else:
            self.super_obs(log_item)  # type: ignore

    def get_rx_exception(self, error: Exception, note: str = "") -> RxException:
        """
        Get a RxException with the specified source and note.
        """
        return RxException(error, source=self.name, note=note)


# =============================================================================
# Logger
# =============================================================================


class Logger(Subject):
    """
    Logger is a Subject that builds, dispatches and forwards LogItem entries.

    Behavior
    - ``trace()`` ... ``panic()`` return a ``LogEvent``; firing it runs every
      hook, writes the JSON line to ``writer`` and forwards the item to the
      subscribers. ``fatal`` events exit the process with status 1 and
      ``panic`` events raise ``PanicError`` once dispatched.
    - LogItems pushed through ``on_next`` (e.g. by a ``NamedLogComp``) take the
      same path. Items below ``level`` are dropped, non-log items are ignored.
    - Conceptually not a terminal observer: errors are recorded as LogItem and
      forwarded rather than terminating the stream.
    - Never completes (`on_completed` is a no-op).
    - Loggers are not modified in place; ``output``, ``hook``, ``with_*``
      return derived loggers.

    Parameters
    - writer: Optional destination with a ``write(str)`` method.
    - name: Source name stamped on every item.
    - level: Minimum level of the events that fire.
    - hooks: Objects with a ``run(item)`` method, called for every fired item.
    - fields: Pre-encoded fields added to every event.
    - caller_skip: When set, every event carries a ``caller`` field; the value
      is the number of extra frames to skip above the logging call.
    - stack: Attach the marshaled error stack to every event with an error.
    """

    def __init__(
        self,
        writer: Any = None,
        *,
        name: str = "Unknown",
        level: LOG_LEVEL | Level = Level.TRACE,
        hooks: Iterable[Hook] = (),
        fields: Iterable[str] = (),
        caller_skip: int | None = None,
        stack: bool = False,
    ):
        super().__init__()
        self.writer = writer
        self.name = name
        self.level = Level.parse(level)
        self.hooks: tuple[Hook, ...] = tuple(hooks)
        self.context_fields: tuple[str, ...] = tuple(fields)
        self.caller_skip = caller_skip
        self.stack = stack

    def _derive(self, **changes: Any) -> "Logger":
        settings = dict(
            writer=self.writer,
            name=self.name,
            level=self.level,
            hooks=self.hooks,
            fields=self.context_fields,
            caller_skip=self.caller_skip,
            stack=self.stack,
        )
        settings.update(changes)
        return Logger(**settings)

    def output(self, writer: Any) -> "Logger":
        return self._derive(writer=writer)

    def hook(self, *hooks: Hook) -> "Logger":
        return self._derive(hooks=self.hooks + hooks)

    def with_level(self, level: LOG_LEVEL | Level) -> "Logger":
        return self._derive(level=level)

    def with_fields(self, **fields: Any) -> "Logger":
        encoded = tuple(encode_field(key, value) for key, value in fields.items())
        return self._derive(fields=self.context_fields + encoded)

    def with_caller(self, skip: int = 0) -> "Logger":
        return self._derive(caller_skip=skip)

    def with_stack(self) -> "Logger":
        return self._derive(stack=True)

    def is_enabled(self, level: LOG_LEVEL | Level) -> bool:
        level = Level.parse(level)
        return self.level <= level < Level.DISABLED

    def new_event(self, level: LOG_LEVEL | Level) -> LogEvent:
        level = Level.parse(level)
        return LogEvent(self, level, self.is_enabled(level))

    def trace(self) -> LogEvent:
        return self.new_event(Level.TRACE)

    def debug(self) -> LogEvent:
        return self.new_event(Level.DEBUG)

    def info(self) -> LogEvent:
        return self.new_event(Level.INFO)

    def warn(self) -> LogEvent:
        return self.new_event(Level.WARN)

    warning = warn

    def error(self) -> LogEvent:
        return self.new_event(Level.ERROR)

    def fatal(self) -> LogEvent:
        return self.new_event(Level.FATAL)

    def panic(self) -> LogEvent:
        return self.new_event(Level.PANIC)

    def log(self, msg: Any, level: LOG_LEVEL | Level = "INFO") -> None:
        """Shortcut for ``new_event(level).msg(msg)``."""
        self.new_event(level).msg(msg)

    def on_next(self, value: Any) -> None:
        if not isinstance(value, LogItem):
            return
        if not value.enabled or not self.is_enabled(value.level):
            return
        try:
            for hook in self.hooks:
                hook.run(value)
            if self.writer is not None:
                self.writer.write(value.render())
            super().on_next(value)

        except Exception as e:
            rx_exception = RxException(e, source=self.name, note="Error in Logger")
            self.on_error(rx_exception)

    def on_completed(self) -> None:
        """
        The logger will never be completed.
        """
        pass

    def on_error(self, error: Exception) -> None:
        """
        Log the error as an ERROR item to the hooks and subscribers. The writer
        is skipped since it may be the failing part.
        """
        if isinstance(error, RxException):
            logitem = LogItem(str(error), "ERROR", source=error.source, logger=self)
        else:
            logitem = LogItem(str(error), "ERROR", source=self.name, logger=self)

        for hook in self.hooks:
            hook.run(logitem)
        super().on_next(logitem)


# =============================================================================
# Context propagation
# =============================================================================

_LOGGER_KEY = otel_context.create_key("rxotel-logger")

_DISABLED_LOGGER = Logger(name="disabled", level=Level.DISABLED)


def with_logger(logger: Logger, ctx: Context | None = None) -> Context:
    """Return a copy of ``ctx`` (default: the current context) carrying ``logger``."""
    return otel_context.set_value(_LOGGER_KEY, logger, ctx)


def from_context(ctx: Context | None = None) -> Logger:
    """Return the logger stored in ``ctx``, or a disabled logger when there is none."""
    logger = otel_context.get_value(_LOGGER_KEY, ctx)
    if isinstance(logger, Logger):
        return logger
    return _DISABLED_LOGGER
