"""Tests for rxotel.logging - log items, events, loggers and rx operators."""

import inspect
import io
import json
from unittest.mock import MagicMock

import numpy as np
import pytest
import reactivex as rx
from opentelemetry import context as otel_context

from rxotel.logging import (
    Level,
    Logger,
    LogItem,
    NamedLogComp,
    drop_log,
    encode_field,
    from_context,
    keep_log,
    log_filter,
    log_redirect_to,
    set_error_stack_marshaler,
    with_logger,
)
from rxotel.mechanism import PanicError, RxException


class Collector:
    def __init__(self):
        self.items = []

    def on_next(self, value):
        self.items.append(value)

    def on_error(self, error):
        raise error

    def on_completed(self):
        pass


def written_events(buffer: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in buffer.getvalue().splitlines()]


# =============================================================================
# Tests for rx operators
# =============================================================================


def test_log_filter():
    logs = [LogItem('a', 'INFO'), LogItem('b', 'DEBUG'), 'x']
    collected = []
    rx.from_(logs).pipe(log_filter({'DEBUG'})).subscribe(collected.append)

    assert len(collected) == 1
    log = collected[0]
    assert isinstance(log, LogItem)
    assert log.level == Level.DEBUG
    assert log.msg == 'b'


def test_log_filter_defaults_to_every_level():
    logs = [LogItem('a', 'TRACE'), LogItem('b', 'PANIC'), 'x']
    collected = []
    rx.from_(logs).pipe(log_filter()).subscribe(collected.append)

    assert [log.msg for log in collected] == ['a', 'b']


def test_drop_log():
    items = [LogItem('a'), 'keep']
    collected = []
    rx.from_(items).pipe(drop_log()).subscribe(collected.append)

    assert collected == ['keep']


def test_log_redirect_to():
    target = Collector()
    output = []
    source = [LogItem('x', 'INFO'), LogItem('y', 'DEBUG'), 1]
    rx.from_(source).pipe(log_redirect_to(target, {'INFO'})).subscribe(output.append)

    assert output == [1]
    assert len(target.items) == 1
    assert isinstance(target.items[0], LogItem)
    assert target.items[0].msg == 'x'


def test_log_redirect_to_function():
    redirected = []
    output = []
    rx.from_([LogItem('x'), 2]).pipe(log_redirect_to(redirected.append)).subscribe(output.append)

    assert output == [2]
    assert [log.msg for log in redirected] == ['x']


def test_keep_log():
    double = keep_log(lambda x: x * 2)
    item = LogItem('a')

    assert double(3) == 6
    assert double(item) is item


# =============================================================================
# Tests for Level
# =============================================================================


@pytest.mark.parametrize(
    "given, expected",
    [
        ("INFO", Level.INFO),
        ("info", Level.INFO),
        ("warning", Level.WARN),
        ("CRITICAL", Level.FATAL),
        (3, Level.ERROR),
        (Level.PANIC, Level.PANIC),
    ],
)
def test_level_parse(given, expected):
    assert Level.parse(given) is expected


def test_level_parse_unknown():
    with pytest.raises(ValueError):
        Level.parse("LOUD")


def test_level_order():
    assert Level.TRACE < Level.DEBUG < Level.INFO < Level.WARN < Level.ERROR < Level.FATAL < Level.PANIC
    assert Level.INFO.label == "info"
    assert Level.WARN.short == "WRN"


# =============================================================================
# Tests for field encoding and LogItem
# =============================================================================


def test_encode_field_scalars():
    assert encode_field("n", 3) == '"n":3'
    assert encode_field("s", "hi") == '"s":"hi"'
    assert encode_field("b", True) == '"b":true'
    assert encode_field("none", None) == '"none":null'


def test_encode_field_numpy_values():
    assert encode_field("n", np.int64(3)) == '"n":3'
    assert encode_field("a", np.array([1, 2])) == '"a":[1,2]'


def test_encode_field_unencodable_falls_back_to_repr():
    assert encode_field("k", {(1, 2): "a"}) == '"k":"{(1, 2): \'a\'}"'

    cyclic = [1]
    cyclic.append(cyclic)
    assert encode_field("c", cyclic) == '"c":"[1, [...]]"'


def test_log_item_buf():
    item = LogItem("hello", "WARN", fields=[encode_field("k", "v")])

    assert json.loads(item.buf) == {"level": "warn", "k": "v"}
    assert item.fragments == ('"level":"warn"', '"k":"v"')


def test_log_item_render_order():
    item = LogItem("hello", "INFO", fields=[encode_field("b", 1), encode_field("a", 2)])
    event = json.loads(item.render())

    assert list(event) == ["level", "time", "b", "a", "message"]
    assert event["message"] == "hello"
    assert item.render().endswith("}\n")


def test_log_item_render_omits_empty_message():
    event = json.loads(LogItem("", "INFO").render())
    assert "message" not in event


def test_log_item_time_is_utc_seconds():
    item = LogItem("x", timestamp_ns=1_000_000_000 * 1_000_000_000)
    assert item.timestamp_str == "2001-09-09T01:46:40Z"


def test_log_item_captures_current_context():
    key = otel_context.create_key("test-key")
    token = otel_context.attach(otel_context.set_value(key, "here"))
    try:
        item = LogItem("x")
    finally:
        otel_context.detach(token)

    assert otel_context.get_value(key, item.context) == "here"


# =============================================================================
# Tests for Logger and LogEvent
# =============================================================================


class TestLogger:
    """Tests for the event builder and dispatch path."""

    def test_writes_json_line(self):
        buffer = io.StringIO()
        Logger(buffer).info().field("k", "v").fields(n=1).msg("hello")

        [event] = written_events(buffer)
        assert event["level"] == "info"
        assert event["k"] == "v"
        assert event["n"] == 1
        assert event["message"] == "hello"

    def test_level_threshold(self):
        buffer = io.StringIO()
        logger = Logger(buffer, level="WARN")

        event = logger.info()
        event.field("k", "v").msg("dropped")
        logger.warn().msg("kept")

        assert not event.enabled
        assert [e["message"] for e in written_events(buffer)] == ["kept"]

    def test_disabled_level_never_fires(self):
        logger = Logger(level=Level.DISABLED)
        assert not logger.is_enabled(Level.PANIC)

    def test_context_fields_come_first(self):
        buffer = io.StringIO()
        logger = Logger(buffer).with_fields(service="api")
        logger.info().field("k", "v").msg("x")

        assert list(written_events(buffer)[0]) == ["level", "time", "service", "k", "message"]

    def test_derived_logger_leaves_original_unchanged(self):
        logger = Logger(io.StringIO(), name="orig")
        derived = logger.with_level("ERROR").with_fields(a=1).with_caller()

        assert logger.level == Level.TRACE
        assert logger.context_fields == ()
        assert logger.caller_skip is None
        assert derived.level == Level.ERROR
        assert derived.name == "orig"

    def test_output_replaces_writer(self):
        first, second = io.StringIO(), io.StringIO()
        Logger(first).output(second).info().msg("x")

        assert first.getvalue() == ""
        assert written_events(second)[0]["message"] == "x"

    def test_hooks_run_before_write(self):
        buffer = io.StringIO()
        seen = []
        hook = MagicMock()
        hook.run.side_effect = lambda item: seen.append(buffer.getvalue())

        Logger(buffer).hook(hook).info().msg("x")

        hook.run.assert_called_once()
        item = hook.run.call_args[0][0]
        assert isinstance(item, LogItem)
        assert item.message == "x"
        assert seen == [""]

    def test_subscribers_receive_items(self):
        collector = Collector()
        logger = Logger(name="svc")
        logger.subscribe(collector)
        logger.error().msg("bad")

        assert len(collector.items) == 1
        assert collector.items[0].level == Level.ERROR
        assert collector.items[0].source == "svc"
        assert collector.items[0].logger is logger

    def test_non_log_items_are_ignored(self):
        collector = Collector()
        logger = Logger()
        logger.subscribe(collector)
        logger.on_next("not a log")

        assert collector.items == []

    def test_on_completed_is_noop(self):
        collector = Collector()
        logger = Logger()
        logger.subscribe(collector)
        logger.on_completed()
        logger.info().msg("still alive")

        assert len(collector.items) == 1

    def test_failing_hook_becomes_error_item(self):
        buffer = io.StringIO()
        collector = Collector()
        hook = MagicMock()
        hook.run.side_effect = [RuntimeError("hook broke"), None]
        logger = Logger(buffer, name="svc", hooks=[hook])
        logger.subscribe(collector)

        logger.info().msg("x")

        assert buffer.getvalue() == ""
        assert len(collector.items) == 1
        error_item = collector.items[0]
        assert error_item.level == Level.ERROR
        assert "hook broke" in error_item.message
        assert error_item.source == "svc"

    def test_log_shortcut(self):
        buffer = io.StringIO()
        Logger(buffer).log("short", "DEBUG")

        [event] = written_events(buffer)
        assert event["level"] == "debug"
        assert event["message"] == "short"

    def test_msgf_and_send(self):
        buffer = io.StringIO()
        logger = Logger(buffer)
        logger.info().msgf("%d items", 3)
        logger.info().field("k", 1).send()

        first, second = written_events(buffer)
        assert first["message"] == "3 items"
        assert "message" not in second

    def test_raw_json(self):
        buffer = io.StringIO()
        Logger(buffer).info().raw_json("payload", b'{"a":[1,2]}').msg("x")

        assert written_events(buffer)[0]["payload"] == {"a": [1, 2]}

    def test_err_adds_error_field(self):
        buffer = io.StringIO()
        logger = Logger(buffer)
        logger.error().err(ValueError("boom")).msg("failed")
        logger.error().err(None).msg("no error")

        first, second = written_events(buffer)
        assert first["error"] == "boom"
        assert "error" not in second
        assert first["error.type"] == "ValueError"
        assert "error.type" not in second

    def test_err_type_is_qualified_outside_builtins(self):
        class LookupFailed(Exception):
            pass

        buffer = io.StringIO()
        Logger(buffer).error().err(LookupFailed("")).msg("failed")

        [event] = written_events(buffer)
        assert event["error"] == ""
        assert event["error.type"] == f"{__name__}.{LookupFailed.__qualname__}"

    def test_stack_needs_marshaler(self):
        buffer = io.StringIO()
        logger = Logger(buffer)
        logger.error().err(ValueError("boom")).stack().msg("without marshaler")

        set_error_stack_marshaler(lambda e: f"stack of {e}")
        logger.error().err(ValueError("boom")).stack().msg("with marshaler")
        logger.error().err(ValueError("boom")).msg("not requested")
        logger.with_stack().error().err(ValueError("boom")).msg("logger default")

        events = written_events(buffer)
        assert "stack" not in events[0]
        assert events[1]["stack"] == "stack of boom"
        assert "stack" not in events[2]
        assert events[3]["stack"] == "stack of boom"

    def test_caller_field(self):
        buffer = io.StringIO()
        logger = Logger(buffer).with_caller()

        line = inspect.currentframe().f_lineno + 1
        logger.info().msg("here")

        assert written_events(buffer)[0]["caller"] == f"{__file__}:{line}"

    def test_caller_skip(self):
        buffer = io.StringIO()
        logger = Logger(buffer)

        def helper():
            logger.info().caller(1).msg("from helper")

        line = inspect.currentframe().f_lineno + 1
        helper()

        assert written_events(buffer)[0]["caller"] == f"{__file__}:{line}"

    def test_fatal_exits_after_write(self):
        buffer = io.StringIO()
        with pytest.raises(SystemExit) as excinfo:
            Logger(buffer).fatal().msg("giving up")

        assert excinfo.value.code == 1
        assert written_events(buffer)[0]["level"] == "fatal"

    def test_panic_raises_after_write(self):
        buffer = io.StringIO()
        with pytest.raises(PanicError) as excinfo:
            Logger(buffer).panic().msg("invariant broken")

        assert excinfo.value.message == "invariant broken"
        assert written_events(buffer)[0]["level"] == "panic"

    def test_disabled_panic_does_not_raise(self):
        Logger(level=Level.DISABLED).panic().msg("ignored")


# =============================================================================
# Tests for NamedLogComp
# =============================================================================


def test_named_log_comp_forwards_to_logger():
    buffer = io.StringIO()
    comp = NamedLogComp("worker")
    comp.set_super(Logger(buffer))
    comp.log("started", "WARN", port=8765)

    [event] = written_events(buffer)
    assert event["level"] == "warn"
    assert event["source"] == "worker"
    assert event["port"] == 8765
    assert event["message"] == "started"


def test_named_log_comp_to_function():
    received = []
    comp = NamedLogComp("worker")
    comp.set_super(received.append)
    comp.log("x")

    assert received[0].source == "worker"


def test_named_log_comp_without_super():
    with pytest.raises(RxException):
        NamedLogComp("worker").log("x")


def test_named_log_comp_rx_exception():
    error = NamedLogComp("worker").get_rx_exception(ValueError("bad"), note="while reading")

    assert error.source == "worker"
    assert str(error) == "<worker> while reading: bad"


# =============================================================================
# Tests for context propagation
# =============================================================================


def test_from_context_without_logger_is_disabled():
    logger = from_context(otel_context.Context())

    assert not logger.info().enabled
    logger.panic().msg("ignored")


def test_with_logger_round_trip():
    logger = Logger(io.StringIO())
    ctx = with_logger(logger)

    assert from_context(ctx) is logger
    assert from_context() is not logger


def test_from_context_uses_current_context():
    logger = Logger(io.StringIO())
    token = otel_context.attach(with_logger(logger))
    try:
        assert from_context() is logger
    finally:
        otel_context.detach(token)
