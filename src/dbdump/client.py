"""Database client protocol consumed by the dump engine."""

from contextlib import AbstractContextManager
from typing import Any, Iterator, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class DumpClient(Protocol):
    """What the engine needs from a database connection.

    fetchall runs a read-only metadata query and returns every row as a dict
    keyed by upper-case column label. open_cursor streams the rows of a data
    query as tuples, in select-list order; the iterator is finite and cannot
    be rewound, and the cursor is released when the context exits.
    """

    def fetchall(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> list[dict[str, Any]]: ...

    def open_cursor(self, sql: str) -> AbstractContextManager[Iterator[tuple]]: ...
