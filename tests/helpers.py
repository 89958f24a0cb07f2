"""Shared test helpers for dbdump tests."""

import io
import re
from contextlib import nullcontext
from datetime import datetime
from typing import Any
from unittest.mock import MagicMock

from dbdump.config import DumpOptions
from dbdump.sink import OutputSink

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5)

_FROM_RE = re.compile(r"FROM `(?:[^`]|``)+`\.`((?:[^`]|``)+)`")


def make_options(schema: str = "shop", **overrides: Any) -> DumpOptions:
    """Create DumpOptions for tests with sensible defaults."""
    overrides.setdefault("dump_date", False)
    return DumpOptions(schema=schema, **overrides)


def make_sink() -> tuple[OutputSink, io.BytesIO]:
    """Create an in-memory sink; returns the sink and its buffer."""
    buffer = io.BytesIO()
    return OutputSink(buffer), buffer


def table_row(name: str, engine: str = "InnoDB", collation: str = "utf8mb4_general_ci", comment: str = "") -> dict:
    return {
        "TABLE_NAME": name,
        "ENGINE": engine,
        "TABLE_COLLATION": collation,
        "TABLE_COMMENT": comment,
    }


def column_row(
    table: str,
    name: str,
    column_type: str,
    position: int,
    nullable: bool = True,
    default: str | None = None,
    extra: str = "",
    generation_expression: str = "",
    charset: str | None = None,
    collation: str | None = None,
    comment: str = "",
) -> dict:
    return {
        "TABLE_NAME": table,
        "COLUMN_NAME": name,
        "ORDINAL_POSITION": position,
        "COLUMN_DEFAULT": default,
        "IS_NULLABLE": "YES" if nullable else "NO",
        "DATA_TYPE": column_type.split("(")[0].split()[0],
        "COLUMN_TYPE": column_type,
        "CHARACTER_SET_NAME": charset,
        "COLLATION_NAME": collation,
        "EXTRA": extra,
        "COLUMN_COMMENT": comment,
        "GENERATION_EXPRESSION": generation_expression,
    }


def index_row(
    table: str,
    index: str,
    column: str | None,
    seq: int = 1,
    non_unique: int = 1,
    index_type: str = "BTREE",
    sub_part: int | None = None,
) -> dict:
    return {
        "TABLE_NAME": table,
        "INDEX_NAME": index,
        "NON_UNIQUE": non_unique,
        "SEQ_IN_INDEX": seq,
        "COLUMN_NAME": column,
        "SUB_PART": sub_part,
        "INDEX_TYPE": index_type,
        "INDEX_COMMENT": "",
    }


def fk_row(
    table: str,
    name: str,
    column: str,
    referenced_table: str,
    referenced_column: str,
    schema: str = "shop",
    position: int = 1,
    on_delete: str = "RESTRICT",
    on_update: str = "RESTRICT",
) -> dict:
    return {
        "TABLE_NAME": table,
        "CONSTRAINT_NAME": name,
        "COLUMN_NAME": column,
        "ORDINAL_POSITION": position,
        "REFERENCED_TABLE_SCHEMA": schema,
        "REFERENCED_TABLE_NAME": referenced_table,
        "REFERENCED_COLUMN_NAME": referenced_column,
        "UPDATE_RULE": on_update,
        "DELETE_RULE": on_delete,
    }


def make_mock_client(
    schema: str = "shop",
    schema_exists: bool = True,
    tables: list[dict] | None = None,
    columns: list[dict] | None = None,
    statistics: list[dict] | None = None,
    foreign_keys: list[dict] | None = None,
    views: dict[str, str] | None = None,
    routines: list[dict] | None = None,
    triggers: list[dict] | None = None,
    show_create: dict[str, dict] | None = None,
    table_rows: dict[str, list[tuple]] | None = None,
) -> MagicMock:
    """Create a mock DumpClient with test data.

    Args:
        schema: Name of the schema the fake server knows about
        schema_exists: Whether the SCHEMATA query finds it
        tables: Rows for information_schema.TABLES
        columns: Rows for information_schema.COLUMNS
        statistics: Rows for information_schema.STATISTICS
        foreign_keys: Rows for the KEY_COLUMN_USAGE join
        views: Dict mapping view name -> CREATE VIEW text
        routines: Rows for information_schema.ROUTINES
        triggers: Rows for information_schema.TRIGGERS
        show_create: Dict mapping "KIND name" (e.g. "PROCEDURE p") -> SHOW CREATE row
        table_rows: Dict mapping table name -> list of raw row tuples
    """
    client = MagicMock()
    views = views or {}
    show_create = show_create or {}
    table_rows = table_rows or {}

    def fetchall_side_effect(sql: str, params=None):
        sql_lower = sql.lower()

        if "information_schema.schemata" in sql_lower:
            if not schema_exists:
                return []
            return [
                {
                    "SCHEMA_NAME": schema,
                    "DEFAULT_CHARACTER_SET_NAME": "utf8mb4",
                    "DEFAULT_COLLATION_NAME": "utf8mb4_general_ci",
                }
            ]
        if "information_schema.tables" in sql_lower:
            return list(tables or [])
        if "information_schema.columns" in sql_lower:
            return list(columns or [])
        if "information_schema.statistics" in sql_lower:
            return list(statistics or [])
        if "information_schema.key_column_usage" in sql_lower:
            return list(foreign_keys or [])
        if "information_schema.views" in sql_lower:
            return [{"TABLE_NAME": name} for name in views]
        if "information_schema.routines" in sql_lower:
            return list(routines or [])
        if "information_schema.triggers" in sql_lower:
            return list(triggers or [])

        if sql_lower.startswith("show create view"):
            for name, definition in views.items():
                if sql.endswith(f".`{name}`"):
                    return [{"VIEW": name, "CREATE VIEW": definition}]
            return []
        if sql_lower.startswith("show create"):
            for key, row in show_create.items():
                kind, name = key.split(" ", 1)
                if sql.upper().startswith(f"SHOW CREATE {kind}") and sql.endswith(f".`{name}`"):
                    return [row]
            return []

        return []

    def open_cursor_side_effect(sql: str):
        match = _FROM_RE.search(sql)
        name = match.group(1).replace("``", "`") if match else None
        return nullcontext(iter(table_rows.get(name, [])))

    client.fetchall.side_effect = fetchall_side_effect
    client.open_cursor.side_effect = open_cursor_side_effect
    return client


def make_client_factory(client: Any):
    """Client factory that hands out client as an already-open connection."""
    return lambda: nullcontext(client)


def shop_client(**overrides: Any) -> MagicMock:
    """The `shop` schema with a `users(id INT, name VARCHAR(50), bio JSON NULL)` table."""
    data: dict[str, Any] = {
        "tables": [table_row("users")],
        "columns": [
            column_row("users", "id", "int(11)", 1, nullable=False),
            column_row("users", "name", "varchar(50)", 2, charset="utf8mb4", collation="utf8mb4_general_ci"),
            column_row("users", "bio", "json", 3),
        ],
        "statistics": [index_row("users", "PRIMARY", "id", non_unique=0)],
        "table_rows": {
            "users": [
                (b"1", b"alice", b'{"likes": "tea"}'),
                (b"2", b"bob", None),
                (b"3", b"O'Brien", b"{}"),
            ]
        },
    }
    data.update(overrides)
    return make_mock_client(**data)


def strip_comment_lines(sql: str) -> list[str]:
    """Drop '--' comment lines for comparison."""
    return [line.rstrip() for line in sql.splitlines() if not line.startswith("--")]
