"""OTel provider setup for applications embedding :mod:`rxotel`.

The bridge itself only needs a ``LoggerProvider`` (and an active span, if
any). :func:`configure_telemetry` builds the SDK providers an application
would otherwise assemble by hand.
"""

import os

from opentelemetry import trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    BatchLogRecordProcessor,
    LogRecordExporter,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter

DEFAULT_SERVICE_NAME = "rxotel"


def configure_telemetry(
    service_name: str | None = None,
    service_version: str = "",
    span_exporter: SpanExporter | None = None,
    log_exporter: LogRecordExporter | None = None,
    batch_logs: bool = True,
    set_global: bool = False,
) -> tuple[TracerProvider, LoggerProvider]:
    """
    Configure OTel providers for an application using rxotel loggers.

    Creates TracerProvider and LoggerProvider sharing one resource. By
    default the providers are only returned, for explicit injection with
    ``with_logger_provider``; ``set_global=True`` also installs them as the
    process-wide providers, which ``new()`` falls back to.

    Args:
        service_name: Service identifier for resource attributes. Defaults to
            ``$OTEL_SERVICE_NAME``, then ``"rxotel"``.
        service_version: Service version for resource attributes.
        span_exporter: Optional span exporter
            (e.g., OTLPSpanExporter, ConsoleSpanExporter).
        log_exporter: Optional log exporter
            (e.g., OTLPLogExporter, ConsoleLogRecordExporter).
        batch_logs: If True, use BatchLogRecordProcessor
            (better for network exporters). If False, use
            SimpleLogRecordProcessor (immediate, better for console).
        set_global: Install the providers process-wide. OTel only allows
            this once per process.

    Returns:
        Tuple of (TracerProvider, LoggerProvider).

    Example:
        >>> from opentelemetry.sdk.trace.export import ConsoleSpanExporter
        >>>
        >>> tracer_provider, logger_provider = configure_telemetry(
        ...     service_name="my-app",
        ...     span_exporter=ConsoleSpanExporter(),
        ... )
        >>> ctx = new(None, "my-app", with_writers(sys.stderr),
        ...           with_logger_provider(logger_provider))
    """
    resource = Resource.create(
        {
            "service.name": service_name
            or os.environ.get("OTEL_SERVICE_NAME")
            or DEFAULT_SERVICE_NAME,
            "service.version": service_version,
        }
    )

    tracer_provider = TracerProvider(resource=resource)
    if span_exporter:
        tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))

    logger_provider = LoggerProvider(resource=resource)
    if log_exporter:
        if batch_logs:
            logger_provider.add_log_record_processor(
                BatchLogRecordProcessor(log_exporter)
            )
        else:
            logger_provider.add_log_record_processor(
                SimpleLogRecordProcessor(log_exporter)
            )

    if set_global:
        trace.set_tracer_provider(tracer_provider)
        set_logger_provider(logger_provider)

    return tracer_provider, logger_provider
