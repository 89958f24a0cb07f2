"""Render fetched row values as SQL literals."""

import logging
from collections import Counter
from typing import Optional, Sequence

from dbdump.config import DumpOptions
from dbdump.exceptions import InvalidSchemaModelError, UnsupportedDataTypeError
from dbdump.quoting import is_numeric_literal, quote_string
from dbdump.schema.models import Column
from dbdump.types import (
    BytesValue,
    NullValue,
    NumberValue,
    RowValue,
    SemanticType,
    TextValue,
)

logger = logging.getLogger(__name__)

_QUOTED_TYPES = {
    SemanticType.STRING,
    SemanticType.JSON,
    SemanticType.DATETIME,
    SemanticType.DATE,
    SemanticType.TIME,
}


def hex_literal(data: bytes) -> str:
    return f"X'{data.hex().upper()}'"


def render_literal(value: RowValue, semantic: SemanticType) -> str:
    """Render one value of a known semantic type.

    Numbers are passed through in their source text form when it is a valid
    numeric literal; anything else is quoted and escaped.
    """
    if isinstance(value, NullValue):
        return "NULL"
    if isinstance(value, BytesValue):
        return hex_literal(value.data)
    if isinstance(value, (NumberValue, TextValue)):
        text = value.text
        if semantic not in _QUOTED_TYPES and is_numeric_literal(text):
            return text
        return quote_string(text)
    raise TypeError(f"Not a row value: {value!r}")


class RowSerializer:
    """Convert rows into literal fragments, one per column, in column order.

    Columns of UNKNOWN type are written as NULL when unknown types are
    skipped (each substitution is counted per column); otherwise they raise
    UnsupportedDataTypeError.
    """

    def __init__(self, options: DumpOptions):
        self.options = options
        self.substitutions: Counter[str] = Counter()

    @property
    def total_substitutions(self) -> int:
        return sum(self.substitutions.values())

    def serialize(
        self,
        values: Sequence[RowValue],
        columns: Sequence[Column],
        table: Optional[str] = None,
    ) -> list[str]:
        """Serialize one row.

        Raises:
            InvalidSchemaModelError: If the row and the column list differ in length.
            UnsupportedDataTypeError: On an UNKNOWN column when unknown types are not skipped.
        """
        if len(values) != len(columns):
            raise InvalidSchemaModelError(
                f"Row has {len(values)} values but {table or 'table'} has "
                f"{len(columns)} columns"
            )
        return [self.literal(value, col, table) for value, col in zip(values, columns)]

    def literal(self, value: RowValue, column: Column, table: Optional[str] = None) -> str:
        if isinstance(value, NullValue):
            return "NULL"

        semantic = column.semantic_type
        if semantic is SemanticType.UNKNOWN:
            if not self.options.skip_unknown_datatypes:
                raise UnsupportedDataTypeError(table, column.name, column.type.column_type)
            key = f"{table}.{column.name}" if table else column.name
            if key not in self.substitutions:
                logger.warning(
                    "Writing NULL for %s: unsupported type %s",
                    key,
                    column.type.column_type,
                )
            self.substitutions[key] += 1
            return "NULL"

        return render_literal(value, semantic)


def serialize(
    values: Sequence[RowValue], columns: Sequence[Column], options: DumpOptions
) -> list[str]:
    """Serialize one row with a throwaway serializer."""
    return RowSerializer(options).serialize(values, columns)
