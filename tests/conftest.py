"""Shared test fixtures for rxotel tests."""

from unittest.mock import MagicMock

import pytest
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import (
    LogRecordExporter,
    LogRecordExportResult,
    SimpleLogRecordProcessor,
)
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from rxotel.logging import set_error_stack_marshaler


class CollectingLogRecordExporter(LogRecordExporter):
    """Keeps every exported log record in memory."""

    def __init__(self):
        self.records = []

    def export(self, batch):
        for readable_record in batch:
            self.records.append(readable_record.log_record)
        return LogRecordExportResult.SUCCESS

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return True


@pytest.fixture(autouse=True)
def reset_error_stack_marshaler():
    """The marshaler is process-wide; keep tests independent."""
    set_error_stack_marshaler(None)
    yield
    set_error_stack_marshaler(None)


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    """SDK tracer recording finished spans into ``span_exporter``."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return provider.get_tracer("rxotel.tests")


@pytest.fixture
def log_exporter():
    return CollectingLogRecordExporter()


@pytest.fixture
def logger_provider(log_exporter):
    """SDK logger provider exporting synchronously into ``log_exporter``."""
    provider = LoggerProvider()
    provider.add_log_record_processor(SimpleLogRecordProcessor(log_exporter))
    return provider


@pytest.fixture
def mock_provider():
    """Logger provider mock; emitted records land on ``get_logger().emit``."""
    return MagicMock()
