"""OpenTelemetry bridge for the :mod:`rxotel.logging` facade.

This package holds the value converters, the :class:`OTelHook` that turns
fired log events into OTel log records and span updates, the ``with_*``
options, :func:`new` which wires them into a logger, and a provider setup
helper.
"""

from .bridge import new
from .config import configure_telemetry
from .converters import (
    EMPTY,
    Kind,
    KeyValue,
    Value,
    bool_value,
    bytes_value,
    convert,
    convert_int,
    float64_value,
    int64_value,
    map_value,
    severity,
    slice_value,
    string_value,
    to_trace_attribute,
)
from .hook import HookConfig, OTelHook
from .options import (
    Config,
    Option,
    apply_options,
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

__all__ = [
    # bridge
    "new",
    # config
    "configure_telemetry",
    # converters
    "Kind",
    "KeyValue",
    "Value",
    "EMPTY",
    "bool_value",
    "string_value",
    "int64_value",
    "float64_value",
    "bytes_value",
    "slice_value",
    "map_value",
    "convert",
    "convert_int",
    "severity",
    "to_trace_attribute",
    # hook
    "HookConfig",
    "OTelHook",
    # options
    "Config",
    "Option",
    "apply_options",
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
