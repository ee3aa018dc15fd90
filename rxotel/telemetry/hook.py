"""OpenTelemetry hook for the :mod:`rxotel.logging` facade.

:class:`OTelHook` is attached to a :class:`~rxotel.logging.Logger` and runs
for every fired event. It decodes the event's field buffer, converts the
fields into attributes, optionally mirrors them onto the active span, and
emits an OTel log record through the configured OTel logger.
"""

import json
import time
from dataclasses import dataclass
from typing import Any

from opentelemetry import trace
from opentelemetry._logs import Logger as APILogger
from opentelemetry._logs import LogRecord
from opentelemetry.context import Context
from opentelemetry.semconv.trace import SpanAttributes
from opentelemetry.trace import Span, Status, StatusCode

from ..logging import (
    CALLER_FIELD,
    ERROR_FIELD,
    ERROR_TYPE_FIELD,
    STACK_FIELD,
    Level,
    LogItem,
    from_context,
)
from ..utils import parse_caller
from .converters import Value, convert, severity, to_trace_attribute

EXCEPTION_EVENT_NAME = "exception"


@dataclass(frozen=True)
class HookConfig:
    """Settings of an :class:`OTelHook`; fixed once the logger is built.

    Attributes:
        otel_logger: OTel logger the records are emitted through.
        source: Turn the ``caller`` field into ``code.filepath``/``code.lineno``.
        attach_span_event: Add every event to the active span as a span event.
        attach_span_error: Record the ``error`` field as a span exception.
        set_span_error: Set the span status to ERROR for events at or above
            ``set_span_error_level``.
    """

    otel_logger: APILogger
    source: bool = False
    attach_span_event: bool = False
    attach_span_error: bool = False
    set_span_error: bool = False
    set_span_error_level: Level = Level.ERROR


class OTelHook:
    """Turns fired log events into OTel log records and span updates.

    Example:
        >>> hook = OTelHook(HookConfig(provider.get_logger("app"), attach_span_event=True))
        >>> logger = Logger(sys.stderr, hooks=[hook])
        >>> with tracer.start_as_current_span("work"):
        ...     logger.info().field("k", "v").msg("step done")
    """

    def __init__(self, config: HookConfig):
        self._config = config

    @property
    def config(self) -> HookConfig:
        return self._config

    def run(self, item: LogItem) -> None:
        if not item.enabled:
            return

        fields = self.extract_fields(item)
        attributes = self.process(item.context, item.message, item.level, fields)
        self.emit(item.context, item.message, item.level, attributes)

    def extract_fields(self, item: LogItem) -> dict[str, Any]:
        """Decode the item's field buffer.

        A buffer that does not decode is reported as an ERROR event on the
        logger that fired the item; the fields are then recovered one by one,
        skipping the ones that do not decode.
        """
        try:
            fields = json.loads(item.buf)
        except ValueError as e:
            self._report_decode_error(item, e)
            return self._salvage_fields(item)
        return fields if isinstance(fields, dict) else {}

    def _report_decode_error(self, item: LogItem, error: ValueError) -> None:
        logger = item.logger if item.logger is not None else from_context(item.context)
        (
            logger.error()
            .ctx(item.context)
            .err(error)
            .field("log.level", item.level.label)
            .field("log.message", item.message)
            .msg("could not decode the log event's field buffer")
        )

    @staticmethod
    def _salvage_fields(item: LogItem) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        for fragment in item.fragments:
            try:
                decoded = json.loads("{" + fragment + "}")
            except ValueError:
                continue
            fields.update(decoded)
        return fields

    def process(
        self,
        ctx: Context,
        message: str,
        level: Level,
        fields: dict[str, Any],
    ) -> list[tuple[str, Value]]:
        """Convert ``fields`` into log attributes and apply the span side effects.

        ``error``, ``error.type`` and ``stack`` fields are kept as attributes
        and also feed the span exception; a ``caller`` field becomes
        ``code.filepath`` and ``code.lineno`` when source capture is on.

        Returns:
            The log attributes, in field order.
        """
        config = self._config
        span = trace.get_current_span(ctx)

        attributes: list[tuple[str, Value]] = []
        error_message: str | None = None
        error_type: str | None = None
        stacktrace: str | None = None

        for key, raw in fields.items():
            if key == ERROR_FIELD:
                value = convert(raw)
                error_message = str(value)
                attributes.append((key, value))

            elif key == ERROR_TYPE_FIELD:
                value = convert(raw)
                error_type = str(value)
                attributes.append((key, value))

            elif key == STACK_FIELD:
                value = convert(raw)
                stacktrace = str(value)
                attributes.append((key, value))

            elif key == CALLER_FIELD and config.source:
                location = parse_caller(raw)
                if location is None:
                    continue
                filepath, lineno = location
                attributes.append((SpanAttributes.CODE_FILEPATH, convert(filepath)))
                attributes.append((SpanAttributes.CODE_LINENO, convert(lineno)))

            else:
                attributes.append((key, convert(raw)))

        if config.attach_span_event:
            # the exception event carries these when span errors are attached
            skipped = (
                {ERROR_FIELD, ERROR_TYPE_FIELD, STACK_FIELD} if config.attach_span_error else set()
            )
            span.add_event(
                message,
                attributes={
                    key: to_trace_attribute(value)
                    for key, value in attributes
                    if key not in skipped
                },
            )

        if config.attach_span_error and error_message is not None:
            self._record_error(span, error_message, error_type, stacktrace)

        if config.set_span_error and level >= config.set_span_error_level:
            span.set_status(Status(StatusCode.ERROR, error_message))

        return attributes

    @staticmethod
    def _record_error(
        span: Span, message: str, error_type: str | None, stacktrace: str | None
    ) -> None:
        attributes = {SpanAttributes.EXCEPTION_MESSAGE: message}
        if error_type is not None:
            attributes[SpanAttributes.EXCEPTION_TYPE] = error_type
        if stacktrace is not None:
            attributes[SpanAttributes.EXCEPTION_STACKTRACE] = stacktrace
        span.add_event(EXCEPTION_EVENT_NAME, attributes=attributes)

    def emit(
        self,
        ctx: Context,
        message: str,
        level: Level,
        attributes: list[tuple[str, Value]],
    ) -> None:
        """Build the OTel log record and hand it to the OTel logger."""
        severity_number, severity_text = severity(level)
        record = LogRecord(
            timestamp=time.time_ns(),
            context=ctx,
            severity_number=severity_number,
            severity_text=severity_text,
            body=message,
            attributes={key: value.as_any() for key, value in attributes},
        )
        self._config.otel_logger.emit(record)
