"""Group serialized rows into INSERT statements."""

from typing import Sequence

from dbdump.config import DEFAULT_BATCH_SIZE, DEFAULT_MAX_STATEMENT_BYTES
from dbdump.exceptions import InvalidSchemaModelError
from dbdump.quoting import quote_identifier


class InsertBatcher:
    """Build INSERT statements for one table.

    In single-row mode every row becomes its own statement immediately. In
    batched mode rows accumulate into one multi-row statement that is emitted
    when batch_size rows are pending, before a row would push the statement
    past max_statement_bytes, or on flush(). Statements are returned without
    the terminating semicolon.
    """

    def __init__(
        self,
        table_name: str,
        column_names: Sequence[str],
        *,
        single_row_inserts: bool = False,
        batch_size: int = DEFAULT_BATCH_SIZE,
        max_statement_bytes: int = DEFAULT_MAX_STATEMENT_BYTES,
    ) -> None:
        if not column_names:
            raise InvalidSchemaModelError(f"No insertable columns for {table_name}")
        self.table_name = table_name
        self.column_names = list(column_names)
        self.single_row_inserts = single_row_inserts
        self.batch_size = 1 if single_row_inserts else max(batch_size, 1)
        self.max_statement_bytes = max_statement_bytes
        self.header = (
            f"INSERT INTO {table_name} "
            f"({','.join(quote_identifier(c) for c in self.column_names)}) VALUES"
        )
        self._pending: list[str] = []
        self._pending_bytes = 0
        self.rows_emitted = 0
        self.statements_emitted = 0

    @property
    def pending_rows(self) -> int:
        return len(self._pending)

    def accumulate(self, fragments: Sequence[str]) -> list[str]:
        """Add one serialized row; return any statements that are now complete."""
        if len(fragments) != len(self.column_names):
            raise InvalidSchemaModelError(
                f"Row for {self.table_name} has {len(fragments)} values, "
                f"expected {len(self.column_names)}"
            )
        row = "(" + ",".join(fragments) + ")"
        row_bytes = len(row.encode("utf-8")) + 2

        statements = []
        if (
            self._pending
            and len(self.header) + self._pending_bytes + row_bytes > self.max_statement_bytes
        ):
            statements.extend(self.flush())

        self._pending.append(row)
        self._pending_bytes += row_bytes

        if len(self._pending) >= self.batch_size:
            statements.extend(self.flush())
        return statements

    def flush(self) -> list[str]:
        """Return the pending rows as one statement (or nothing if none are pending)."""
        if not self._pending:
            return []
        if self.single_row_inserts:
            statement = f"{self.header} {self._pending[0]}"
        else:
            statement = self.header + "\n" + ",\n".join(self._pending)
        self.rows_emitted += len(self._pending)
        self.statements_emitted += 1
        self._pending = []
        self._pending_bytes = 0
        return [statement]

    def discard(self) -> int:
        """Drop pending rows without emitting them. Returns how many were dropped."""
        dropped = len(self._pending)
        self._pending = []
        self._pending_bytes = 0
        return dropped
