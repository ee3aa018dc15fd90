"""Conversion of log field values into OpenTelemetry attribute values.

A field value of any type is first converted into a :class:`Value`, the
canonical attribute representation. The same ``Value`` then feeds both the
log record (:meth:`Value.as_any`) and, flattened by
:func:`to_trace_attribute`, the span attributes, so what is logged and what
is traced always agree.
"""

import dataclasses
import inspect
import math
import weakref
from collections.abc import Mapping, Sequence, Set
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import numpy as np
from opentelemetry._logs import SeverityNumber
from opentelemetry.util.types import AttributeValue

from ..logging import Level

INT64_MAX = 2**63 - 1
INT64_MIN = -(2**63)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)


class Kind(Enum):
    EMPTY = "empty"
    BOOL = "bool"
    STRING = "string"
    INT64 = "int64"
    FLOAT64 = "float64"
    BYTES = "bytes"
    SLICE = "slice"
    MAP = "map"


@dataclass(frozen=True)
class KeyValue:
    key: str
    value: "Value"

    def __str__(self) -> str:
        return f"{self.key}:{self.value}"


@dataclass(frozen=True)
class Value:
    """Immutable tagged attribute value.

    ``data`` is ``None`` for ``EMPTY``, a tuple of :class:`Value` for
    ``SLICE``, a tuple of :class:`KeyValue` for ``MAP`` and the plain Python
    scalar (``bool``, ``str``, ``int``, ``float``, ``bytes``) otherwise.
    """

    kind: Kind = Kind.EMPTY
    data: Any = None

    def as_any(self) -> Any:
        """Return the value as an OTel log ``AnyValue`` (nested lists/dicts)."""
        if self.kind is Kind.SLICE:
            return [item.as_any() for item in self.data]
        if self.kind is Kind.MAP:
            return {kv.key: kv.value.as_any() for kv in self.data}
        return self.data

    def __str__(self) -> str:
        if self.kind is Kind.STRING:
            return self.data
        if self.kind is Kind.BOOL:
            return "true" if self.data else "false"
        if self.kind is Kind.INT64:
            return str(self.data)
        if self.kind is Kind.FLOAT64:
            return _format_float(self.data)
        if self.kind is Kind.BYTES:
            return self.data.decode("utf-8", "replace")
        if self.kind in (Kind.SLICE, Kind.MAP):
            return "[" + " ".join(str(item) for item in self.data) + "]"
        return ""


EMPTY = Value()


def bool_value(value: bool) -> Value:
    return Value(Kind.BOOL, bool(value))


def string_value(value: str) -> Value:
    return Value(Kind.STRING, value)


def int64_value(value: int) -> Value:
    return Value(Kind.INT64, value)


def float64_value(value: float) -> Value:
    return Value(Kind.FLOAT64, float(value))


def bytes_value(value: bytes) -> Value:
    return Value(Kind.BYTES, bytes(value))


def slice_value(*values: Value) -> Value:
    return Value(Kind.SLICE, tuple(values))


def map_value(*pairs: KeyValue) -> Value:
    return Value(Kind.MAP, tuple(pairs))


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = repr(value)
    return text[:-2] if text.endswith(".0") else text


# =============================================================================
# Value conversion
# =============================================================================


def convert_int(value: int) -> Value:
    """INT64 inside the signed 64-bit range, the decimal digits as STRING outside it."""
    if INT64_MIN <= value <= INT64_MAX:
        return int64_value(value)
    return string_value(str(value))


def convert(value: Any) -> Value:
    """Convert any value into a :class:`Value`. Never raises.

    Scalars map onto the matching kind; durations and datetimes become
    nanosecond integers; complex numbers a map of ``r`` and ``i``; mappings
    and sequences are converted recursively; record-like objects are
    formatted with their field names; anything else becomes the string
    ``"unhandled: (<type>) <repr>"``.
    """
    return _convert(value, ())


def _convert(value: Any, seen: tuple[int, ...]) -> Value:
    try:
        return _dispatch(value, seen)
    except Exception:
        return _unhandled(value, object.__repr__(value))


def _dispatch(value: Any, seen: tuple[int, ...]) -> Value:
    if isinstance(value, Value):
        return value
    if value is None:
        return EMPTY
    if isinstance(value, weakref.ReferenceType):
        return _convert(value(), seen)

    # timedelta64 subclasses np.signedinteger
    if isinstance(value, np.timedelta64):
        return convert_int(int(value.astype("timedelta64[ns]").astype(np.int64)))
    if isinstance(value, np.datetime64):
        return convert_int(int(value.astype("datetime64[ns]").astype(np.int64)))

    if isinstance(value, (bool, np.bool_)):
        return bool_value(bool(value))
    if isinstance(value, str):
        return string_value(str.__str__(value))
    if isinstance(value, (int, np.integer)):
        return convert_int(int(value))
    if isinstance(value, (float, np.floating)):
        return float64_value(float(value))

    if isinstance(value, timedelta):
        return convert_int(value // _MICROSECOND * 1000)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.astimezone()
        return convert_int((value - _EPOCH) // _MICROSECOND * 1000)

    if isinstance(value, (complex, np.complexfloating)):
        number = complex(value)
        return map_value(
            KeyValue("r", float64_value(number.real)),
            KeyValue("i", float64_value(number.imag)),
        )
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes_value(bytes(value))
    if isinstance(value, BaseException):
        return string_value(str(value))
    if isinstance(value, Enum):
        return string_value(value.name)

    if id(value) in seen:
        return _unhandled(value, "[...]")

    if _is_dataclass_instance(value) or _is_namedtuple(value):
        return string_value(_format_record(value))

    if isinstance(value, Mapping):
        inner = seen + (id(value),)
        return map_value(
            *(
                KeyValue(_format_key(key), _convert(item, inner))
                for key, item in value.items()
            )
        )

    if isinstance(value, np.ndarray) and value.ndim == 0:
        return _convert(value[()], seen)
    if isinstance(value, (np.ndarray, Sequence, Set)):
        inner = seen + (id(value),)
        return slice_value(*(_convert(item, inner) for item in value))

    if _is_plain_object(value):
        return string_value(_format_record(value))

    return _unhandled(value, _safe_repr(value))


def _format_key(key: Any) -> str:
    if isinstance(key, str):
        return str.__str__(key)
    return str(key)


def _is_dataclass_instance(value: Any) -> bool:
    return dataclasses.is_dataclass(value) and not isinstance(value, type)


def _is_namedtuple(value: Any) -> bool:
    return isinstance(value, tuple) and hasattr(type(value), "_fields")


def _is_plain_object(value: Any) -> bool:
    if isinstance(value, type) or inspect.ismodule(value) or inspect.isroutine(value):
        return False
    return hasattr(value, "__dict__")


def _format_record(value: Any) -> str:
    if _is_dataclass_instance(value):
        items = [(field.name, getattr(value, field.name)) for field in dataclasses.fields(value)]
    elif _is_namedtuple(value):
        items = list(value._asdict().items())
    else:
        items = list(vars(value).items())
    body = ", ".join(f"{name}={item!r}" for name, item in items)
    return f"{type(value).__name__}({body})"


def _type_name(value: Any) -> str:
    cls = type(value)
    if cls.__module__ == "builtins":
        return cls.__qualname__
    return f"{cls.__module__}.{cls.__qualname__}"


def _safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return object.__repr__(value)


def _unhandled(value: Any, text: str) -> Value:
    return string_value(f"unhandled: ({_type_name(value)}) {text}")


# =============================================================================
# Severity
# =============================================================================

_SEVERITIES: dict[Level, tuple[SeverityNumber, str]] = {
    Level.TRACE: (SeverityNumber.TRACE, "TRACE"),
    Level.DEBUG: (SeverityNumber.DEBUG, "DEBUG"),
    Level.INFO: (SeverityNumber.INFO, "INFO"),
    Level.WARN: (SeverityNumber.WARN, "WARN"),
    Level.ERROR: (SeverityNumber.ERROR, "ERROR"),
    Level.FATAL: (SeverityNumber.FATAL, "FATAL"),
    # panic and fatal are indistinguishable once in telemetry
    Level.PANIC: (SeverityNumber.FATAL, "FATAL"),
}


def severity(level: Any) -> tuple[SeverityNumber, str]:
    """Map a log level onto an OTel severity number and text, INFO when unknown."""
    try:
        return _SEVERITIES[level]
    except (KeyError, TypeError):
        return SeverityNumber.INFO, "INFO"


# =============================================================================
# Trace attributes
# =============================================================================

_TRACE_SCALARS = (Kind.BOOL, Kind.STRING, Kind.INT64, Kind.FLOAT64)


def to_trace_attribute(value: Value) -> AttributeValue:
    """Flatten a :class:`Value` into a span attribute.

    Booleans, strings, integers and floats pass through; bytes, slices, maps
    and empty values become their text form (``[1 2 3]``, ``[a:1 b:2]``, ``""``).
    """
    if value.kind in _TRACE_SCALARS:
        return value.data
    return str(value)
