"""Options accepted by :func:`rxotel.telemetry.new`.

Each option is a function ``Config -> Config``; :func:`apply_options` folds
them, in order, over the default :class:`Config`.

Example:
    >>> config = apply_options([with_writers(sys.stderr), with_attach_span_event()])
    >>> config.attach_span_event
    True
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from functools import reduce
from typing import Any

from opentelemetry._logs import Logger as APILogger
from opentelemetry._logs import LoggerProvider
from opentelemetry.util.types import AttributeValue

from ..logging import LOG_LEVEL, Level
from .hook import HookConfig


@dataclass(frozen=True)
class Config:
    writers: tuple[Any, ...] = ()
    version: str | None = None
    schema_url: str | None = None
    attributes: Mapping[str, AttributeValue] | None = None
    logger_provider: LoggerProvider | None = None
    source: bool = False
    source_skip: int = 0
    attach_span_error: bool = False
    attach_span_event: bool = False
    stack_trace: bool = False
    set_span_error: bool = False
    set_span_error_level: Level = Level.ERROR

    def hook_config(self, otel_logger: APILogger) -> HookConfig:
        return HookConfig(
            otel_logger=otel_logger,
            source=self.source,
            attach_span_event=self.attach_span_event,
            attach_span_error=self.attach_span_error,
            set_span_error=self.set_span_error,
            set_span_error_level=self.set_span_error_level,
        )


Option = Callable[[Config], Config]


def apply_options(options: Iterable[Option], config: Config | None = None) -> Config:
    return reduce(lambda current, option: option(current), options, config or Config())


def with_writers(*writers: Any) -> Option:
    """Add output destinations; several destinations receive identical lines."""

    def _apply(config: Config) -> Config:
        return replace(config, writers=config.writers + writers)

    return _apply


def with_version(version: str) -> Option:
    """Set the instrumentation scope version."""

    def _apply(config: Config) -> Config:
        return replace(config, version=version)

    return _apply


def with_schema_url(schema_url: str) -> Option:
    """Set the instrumentation scope schema URL."""

    def _apply(config: Config) -> Config:
        return replace(config, schema_url=schema_url)

    return _apply


def with_attributes(attributes: Mapping[str, AttributeValue]) -> Option:
    """Add instrumentation scope attributes; later keys win."""

    def _apply(config: Config) -> Config:
        return replace(config, attributes={**(config.attributes or {}), **attributes})

    return _apply


def with_logger_provider(provider: LoggerProvider) -> Option:
    """Use ``provider`` instead of the process-wide logger provider."""

    def _apply(config: Config) -> Config:
        return replace(config, logger_provider=provider)

    return _apply


def with_source(skip: int = 0) -> Option:
    """Record where each event was logged from.

    ``skip`` is the number of extra frames above the logging call to skip,
    for callers that wrap the logger in helpers of their own.
    """

    def _apply(config: Config) -> Config:
        return replace(config, source=True, source_skip=skip)

    return _apply


def with_attach_span_error() -> Option:
    def _apply(config: Config) -> Config:
        return replace(config, attach_span_error=True)

    return _apply


def with_attach_span_event() -> Option:
    def _apply(config: Config) -> Config:
        return replace(config, attach_span_event=True)

    return _apply


def with_stack_trace() -> Option:
    """Attach the error's stack to every event carrying an error.

    Installs the process-wide error stack marshaler when the logger is built.
    """

    def _apply(config: Config) -> Config:
        return replace(config, stack_trace=True)

    return _apply


def with_set_span_error(level: LOG_LEVEL | Level = Level.ERROR) -> Option:
    """Set the active span's status to ERROR for events at or above ``level``."""
    threshold = Level.parse(level)

    def _apply(config: Config) -> Config:
        return replace(config, set_span_error=True, set_span_error_level=threshold)

    return _apply
