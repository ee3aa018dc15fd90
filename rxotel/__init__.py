"""Convenience exports for the :mod:`rxotel` package."""

from .logging import (  # noqa: F401
    LOG_LEVEL,
    Hook,
    Level,
    LogComp,
    LogEvent,
    Logger,
    LogItem,
    NamedLogComp,
    drop_log,
    from_context,
    get_error_stack_marshaler,
    keep_log,
    log_filter,
    log_redirect_to,
    set_error_stack_marshaler,
    with_logger,
)
from .mechanism import ConfigurationError, PanicError, RxException  # noqa: F401
from .telemetry import (  # noqa: F401
    HookConfig,
    OTelHook,
    Value,
    configure_telemetry,
    convert,
    new,
    severity,
    to_trace_attribute,
    with_attach_span_error,
    with_attach_span_event,
    with_attributes,
    with_logger_provider,
    with_schema_url,
    with_set_span_error,
    with_source,
    with_stack_trace,
    with_version,
    with_writers,
)
from .writers import ConsoleWriter, MultiWriter  # noqa: F401

__all__ = [
    "RxException",
    "ConfigurationError",
    "PanicError",

    "LogItem",
    "LogEvent",
    "LOG_LEVEL",
    "Level",
    "Hook",
    "keep_log",
    "log_filter",
    "drop_log",
    "log_redirect_to",
    "LogComp",
    "NamedLogComp",
    "Logger",
    "with_logger",
    "from_context",
    "set_error_stack_marshaler",
    "get_error_stack_marshaler",

    # writers
    "ConsoleWriter",
    "MultiWriter",

    # telemetry
    "new",
    "configure_telemetry",
    "convert",
    "severity",
    "to_trace_attribute",
    "Value",
    "HookConfig",
    "OTelHook",
    "with_writers",
    "with_version",
    "with_schema_url",
    "with_attributes",
    "with_logger_provider",
    "with_source",
    "with_attach_span_error",
    "with_attach_span_event",
    "with_stack_trace",
    "with_set_span_error",
]
