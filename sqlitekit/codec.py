"""Conversion between Python values and engine column values.

Bind side: ``to_value`` classifies a Python object into one variant of the
closed ``Value`` union and ``bind_value`` dispatches on that variant. Objects
without a native engine type are pickled and stored as BLOBs (the ``Opaque``
variant); a pickling failure raises ``EncoderError`` instead of binding NULL.

Read side: ``read_column`` dispatches on the engine's reported column type.
BLOBs come back as a ``BlobReader`` so callers can either take the raw bytes or
unpickle whatever structure was stored. TEXT that is not valid UTF-8 decodes
with surrogate escapes, and binding such a str writes the original bytes back.

Only call ``BlobReader.decode()`` on data your own application wrote: it runs
``pickle.loads``.
"""
from __future__ import annotations
import io, pickle
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Union

from .base_engine import EngineLike
from .status import EncoderError, UnrecoverableError

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1
INT64_MIN, INT64_MAX = -2**63, 2**63 - 1


class ColumnType(IntEnum):
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


# --- Value variants ---------------------------------------------------------------

@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Int:
    value: int


@dataclass(frozen=True)
class Int64:
    value: int


@dataclass(frozen=True)
class Float:
    value: float


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Blob:
    value: bytes


@dataclass(frozen=True)
class Opaque:
    value: Any

    def encode(self) -> bytes:
        try:
            return pickle.dumps(self.value, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError, RecursionError) as e:
            raise EncoderError(f"cannot serialize {type(self.value).__name__}: {e}") from e


Value = Union[Null, Int, Int64, Float, Text, Blob, Opaque]
_VARIANTS = (Null, Int, Int64, Float, Text, Blob, Opaque)


def to_value(obj: Any) -> Value:
    """Pick the variant for ``obj``; values that already are variants pass through."""
    if isinstance(obj, _VARIANTS):
        return obj
    if obj is None:
        return Null()
    if isinstance(obj, int):  # bool included, stored as 0/1
        n = int(obj)
        if INT32_MIN <= n <= INT32_MAX:
            return Int(n)
        if INT64_MIN <= n <= INT64_MAX:
            return Int64(n)
        raise OverflowError("Python int too large to convert to SQLite INTEGER")
    if isinstance(obj, float):
        return Float(obj)
    if isinstance(obj, str):
        return Text(obj)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return Blob(bytes(obj))
    return Opaque(obj)


def bind_value(engine: EngineLike, stmt: int, index: int, obj: Any) -> int:
    """Bind ``obj`` at 1-based ``index``; returns the engine status.

    Raises ``EncoderError`` (with ``index`` set) when an opaque value cannot be
    serialized, and ``OverflowError`` for a pre-tagged ``Int``/``Int64`` whose
    value is out of range.
    """
    value = to_value(obj)
    if isinstance(value, Null):
        return engine.bind_null(stmt, index)
    if isinstance(value, Int):
        if not INT32_MIN <= value.value <= INT32_MAX:
            raise OverflowError(f"Int value {value.value} does not fit in 32 bits")
        return engine.bind_int(stmt, index, value.value)
    if isinstance(value, Int64):
        if not INT64_MIN <= value.value <= INT64_MAX:
            raise OverflowError(f"Int64 value {value.value} does not fit in 64 bits")
        return engine.bind_int64(stmt, index, value.value)
    if isinstance(value, Float):
        return engine.bind_double(stmt, index, value.value)
    if isinstance(value, Text):
        return engine.bind_text(stmt, index, value.value.encode("utf-8", "surrogateescape"))
    if isinstance(value, Blob):
        return engine.bind_blob(stmt, index, value.value)
    if isinstance(value, Opaque):
        try:
            payload = value.encode()
        except EncoderError as e:
            e.index = index
            raise
        return engine.bind_blob(stmt, index, payload)
    raise UnrecoverableError(f"unhandled value variant {type(value).__name__}")  # pragma: no cover


class BlobReader:
    """Bytes of a BLOB column, decodable back into the stored object."""

    __slots__ = ("data",)

    def __init__(self, data: bytes):
        self.data = bytes(data)

    def stream(self) -> io.BytesIO:
        return io.BytesIO(self.data)

    def decode(self) -> Any:
        """Unpickle the payload written by an ``Opaque`` bind."""
        return pickle.load(self.stream())

    def __bytes__(self) -> bytes:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def __eq__(self, other) -> bool:
        if isinstance(other, BlobReader):
            return self.data == other.data
        if isinstance(other, (bytes, bytearray)):
            return self.data == bytes(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"BlobReader({len(self.data)} bytes)"


def read_column(engine: EngineLike, stmt: int, column: int) -> Any:
    """Decode column ``column`` (0-based) of the current row."""
    typ = engine.column_type(stmt, column)
    if typ == ColumnType.INTEGER:
        return engine.column_int64(stmt, column)
    if typ == ColumnType.FLOAT:
        return engine.column_double(stmt, column)
    if typ == ColumnType.TEXT:
        return engine.column_text(stmt, column).decode("utf-8", "surrogateescape")
    if typ == ColumnType.BLOB:
        return BlobReader(engine.column_blob(stmt, column))
    if typ == ColumnType.NULL:
        return None
    raise UnrecoverableError(f"unknown column type {typ} for column {column}")


__all__ = [
    "ColumnType", "Null", "Int", "Int64", "Float", "Text", "Blob", "Opaque", "Value",
    "to_value", "bind_value", "read_column", "BlobReader",
]
