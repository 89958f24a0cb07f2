"""Core type definitions for dbdump."""

import datetime
import json
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, TypeAlias

TableName: TypeAlias = str
ColumnName: TypeAlias = str
SchemaName: TypeAlias = str

__all__ = [
    "TableName",
    "ColumnName",
    "SchemaName",
    "SemanticType",
    "NullValue",
    "TextValue",
    "BytesValue",
    "NumberValue",
    "RowValue",
    "NULL",
    "to_row_value",
    "RunState",
    "DumpStage",
]


class SemanticType(Enum):
    """Value domain of a column, independent of the server's type spelling."""

    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    STRING = "string"
    BINARY = "binary"
    DATETIME = "datetime"
    DATE = "date"
    TIME = "time"
    JSON = "json"
    UNKNOWN = "unknown"

    @property
    def is_numeric(self) -> bool:
        return self in (
            SemanticType.INTEGER,
            SemanticType.FLOAT,
            SemanticType.DECIMAL,
            SemanticType.BOOLEAN,
        )

    @property
    def is_temporal(self) -> bool:
        return self in (SemanticType.DATETIME, SemanticType.DATE, SemanticType.TIME)


@dataclass(frozen=True)
class NullValue:
    """SQL NULL."""


@dataclass(frozen=True)
class TextValue:
    text: str


@dataclass(frozen=True)
class BytesValue:
    data: bytes


@dataclass(frozen=True)
class NumberValue:
    """A number kept in its source text form; never re-parsed."""

    text: str


RowValue: TypeAlias = NullValue | TextValue | BytesValue | NumberValue

NULL = NullValue()


def _format_timedelta(value: datetime.timedelta) -> str:
    """Render a TIME value delivered as timedelta as [-]HH:MM:SS[.ffffff]."""
    total_us = (value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds
    sign = "-" if total_us < 0 else ""
    hours, rest = divmod(abs(total_us), 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    seconds, micros = divmod(rest, 1_000_000)
    text = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if micros:
        text += f".{micros:06d}"
    return text


def _text_or_number(text: str, semantic: SemanticType) -> RowValue:
    if semantic.is_numeric:
        return NumberValue(text)
    return TextValue(text)


def to_row_value(raw: Any, semantic: SemanticType) -> RowValue:
    """Convert one value delivered by the wire client into a RowValue.

    Raw cursors deliver bytes for every non-NULL value; other cursors deliver
    Python objects. Both are accepted so the serializer never has to inspect
    runtime types.
    """
    if raw is None:
        return NULL

    if isinstance(raw, (bytes, bytearray, memoryview)):
        data = bytes(raw)
        if semantic in (SemanticType.BINARY, SemanticType.UNKNOWN):
            return BytesValue(data)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return BytesValue(data)
        return _text_or_number(text, semantic)

    if isinstance(raw, bool):
        return NumberValue("1" if raw else "0")
    if isinstance(raw, (int, float, Decimal)):
        return NumberValue(str(raw))
    if isinstance(raw, datetime.datetime):
        return TextValue(raw.replace(tzinfo=None).isoformat(sep=" "))
    if isinstance(raw, (datetime.date, datetime.time)):
        return TextValue(raw.isoformat())
    if isinstance(raw, datetime.timedelta):
        return TextValue(_format_timedelta(raw))
    if isinstance(raw, (set, frozenset)):
        return TextValue(",".join(sorted(str(v) for v in raw)))
    if isinstance(raw, (dict, list)):
        return TextValue(json.dumps(raw, ensure_ascii=False))
    if isinstance(raw, str):
        if semantic is SemanticType.BINARY:
            return BytesValue(raw.encode("utf-8"))
        return _text_or_number(raw, semantic)
    return TextValue(str(raw))


class RunState(Enum):
    """States of a dump run."""

    IDLE = "idle"
    CONNECTED = "connected"
    SCHEMA_INTROSPECTED = "schema_introspected"
    EMITTING_DDL = "emitting_ddl"
    EMITTING_DATA = "emitting_data"
    COMPLETE = "complete"
    FAILED = "failed"


class DumpStage(Enum):
    """Stage of a run, used to report where a fatal error happened."""

    CONNECT = "connect"
    INTROSPECT = "introspect"
    DDL = "ddl"
    DATA = "data"
