"""Construction of a logger bridged to OpenTelemetry."""

from opentelemetry._logs import get_logger_provider
from opentelemetry.context import Context

from ..logging import Logger, set_error_stack_marshaler, with_logger
from ..mechanism import ConfigurationError
from ..utils import get_full_error_info
from ..writers import MultiWriter
from .hook import OTelHook
from .options import Option, apply_options


def new(ctx: Context | None, instrumentation_name: str, *options: Option) -> Context:
    """
    Build a logger whose events are also emitted as OTel log records, and
    return ``ctx`` (default: the current context) carrying it.

    Args:
        ctx: Context to derive from.
        instrumentation_name: Name of the OTel logger and source of the events.
        *options: ``with_*`` options from :mod:`rxotel.telemetry.options`.

    Returns:
        A new context; retrieve the logger with ``from_context``.

    Raises:
        ConfigurationError: No writer was given.

    Example:
        >>> ctx = new(None, "myapp", with_writers(ConsoleWriter()), with_attach_span_event())
        >>> logger = from_context(ctx)
        >>> logger.info().field("user", "bob").msg("signed in")
    """
    config = apply_options(options)
    if not config.writers:
        raise ConfigurationError("must specify at least one writer")

    if len(config.writers) == 1:
        writer = config.writers[0]
    else:
        writer = MultiWriter(*config.writers)

    provider = config.logger_provider or get_logger_provider()
    otel_logger = provider.get_logger(
        instrumentation_name,
        version=config.version,
        schema_url=config.schema_url,
        attributes=config.attributes,
    )

    if config.stack_trace:
        # process-wide, see set_error_stack_marshaler
        set_error_stack_marshaler(get_full_error_info)

    logger = Logger(
        writer,
        name=instrumentation_name,
        hooks=(OTelHook(config.hook_config(otel_logger)),),
        caller_skip=config.source_skip if config.source else None,
        stack=config.stack_trace,
    )
    return with_logger(logger, ctx)
