"""Schema introspection from information_schema using a DumpClient."""

import logging
import re
from typing import Any, Optional

from dbdump.client import DumpClient
from dbdump.exceptions import SchemaNotFoundError
from dbdump.quoting import qualified_name
from dbdump.schema.models import (
    Column,
    ForeignKey,
    Index,
    IndexColumn,
    PrimaryKey,
    Routine,
    Schema,
    Table,
    Trigger,
    View,
)
from dbdump.schema.typemap import TypeDescriptor

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
    SELECT SCHEMA_NAME, DEFAULT_CHARACTER_SET_NAME, DEFAULT_COLLATION_NAME
    FROM information_schema.SCHEMATA
    WHERE SCHEMA_NAME = %s
"""

TABLES_SQL = """
    SELECT TABLE_NAME, ENGINE, TABLE_COLLATION, TABLE_COMMENT
    FROM information_schema.TABLES
    WHERE TABLE_SCHEMA = %s
      AND TABLE_TYPE IN ('BASE TABLE', 'SYSTEM VERSIONED')
    ORDER BY TABLE_NAME
"""

COLUMNS_SQL = """
    SELECT TABLE_NAME, COLUMN_NAME, ORDINAL_POSITION, COLUMN_DEFAULT, IS_NULLABLE,
           DATA_TYPE, COLUMN_TYPE, CHARACTER_SET_NAME, COLLATION_NAME, EXTRA,
           COLUMN_COMMENT, GENERATION_EXPRESSION
    FROM information_schema.COLUMNS
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME, ORDINAL_POSITION
"""

STATISTICS_SQL = """
    SELECT TABLE_NAME, INDEX_NAME, NON_UNIQUE, SEQ_IN_INDEX, COLUMN_NAME,
           SUB_PART, INDEX_TYPE, INDEX_COMMENT
    FROM information_schema.STATISTICS
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME, INDEX_NAME, SEQ_IN_INDEX
"""

FOREIGN_KEYS_SQL = """
    SELECT k.TABLE_NAME, k.CONSTRAINT_NAME, k.COLUMN_NAME, k.ORDINAL_POSITION,
           k.REFERENCED_TABLE_SCHEMA, k.REFERENCED_TABLE_NAME, k.REFERENCED_COLUMN_NAME,
           r.UPDATE_RULE, r.DELETE_RULE
    FROM information_schema.KEY_COLUMN_USAGE k
    JOIN information_schema.REFERENTIAL_CONSTRAINTS r
      ON r.CONSTRAINT_SCHEMA = k.CONSTRAINT_SCHEMA
     AND r.CONSTRAINT_NAME = k.CONSTRAINT_NAME
     AND r.TABLE_NAME = k.TABLE_NAME
    WHERE k.TABLE_SCHEMA = %s
      AND k.REFERENCED_TABLE_NAME IS NOT NULL
    ORDER BY k.TABLE_NAME, k.CONSTRAINT_NAME, k.ORDINAL_POSITION
"""

VIEWS_SQL = """
    SELECT TABLE_NAME
    FROM information_schema.VIEWS
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME
"""

ROUTINES_SQL = """
    SELECT ROUTINE_NAME, ROUTINE_TYPE
    FROM information_schema.ROUTINES
    WHERE ROUTINE_SCHEMA = %s
      AND ROUTINE_BODY = 'SQL'
    ORDER BY ROUTINE_TYPE DESC, ROUTINE_NAME
"""

TRIGGERS_SQL = """
    SELECT TRIGGER_NAME, EVENT_OBJECT_TABLE
    FROM information_schema.TRIGGERS
    WHERE TRIGGER_SCHEMA = %s
    ORDER BY EVENT_OBJECT_TABLE, ACTION_TIMING, EVENT_MANIPULATION, ACTION_ORDER
"""


def _row_get(row: Any, key: str, default: Any = None) -> Any:
    """Get a value from a row regardless of the label case the server used."""
    for candidate in (key, key.lower()):
        if candidate in row:
            value = row[candidate]
            return default if value is None else value
    return default


def _charset_of(collation: Optional[str]) -> Optional[str]:
    """Character set a collation belongs to (collation names are prefixed by it)."""
    if not collation:
        return None
    return collation.split("_", 1)[0]


def order_by_dependencies(names: list[str], depends_on: dict[str, set[str]]) -> list[str]:
    """Order names lexically, moving each dependency ahead of its dependents.

    Dependencies outside names are ignored. Members of a cycle keep their
    lexical order relative to each other.
    """
    known = set(names)
    ordered: list[str] = []
    done: set[str] = set()
    visiting: set[str] = set()

    def visit(name: str) -> None:
        if name in done or name in visiting:
            return
        visiting.add(name)
        for dep in sorted(depends_on.get(name, ())):
            if dep in known and dep != name:
                visit(dep)
        visiting.discard(name)
        done.add(name)
        ordered.append(name)

    for name in sorted(names):
        visit(name)
    return ordered


class SchemaIntrospector:
    """Build a Schema model for one MySQL/MariaDB schema.

    Issues read-only catalog queries in a fixed order: schema, tables,
    columns, keys, foreign keys, then views, routines and triggers when
    requested.
    """

    def __init__(
        self,
        client: DumpClient,
        schema: str,
        *,
        include_views: bool = True,
        include_routines: bool = False,
        include_triggers: bool = True,
    ) -> None:
        self._client = client
        self._schema = schema
        self._include_views = include_views
        self._include_routines = include_routines
        self._include_triggers = include_triggers

    def introspect_schema(self) -> Schema:
        """Introspect the schema. Raises SchemaNotFoundError if it does not exist."""
        schema_row = self._fetch_schema_row()

        tables = self._fetch_tables()
        logger.debug("Found %d tables in %s", len(tables), self._schema)
        self._attach_columns(tables)
        self._attach_indexes(tables)
        self._attach_foreign_keys(tables)

        ordered_names = order_by_dependencies(
            list(tables), {name: t.referenced_tables() for name, t in tables.items()}
        )

        schema = Schema(
            name=self._schema,
            tables=[tables[name] for name in ordered_names],
            charset=_row_get(schema_row, "DEFAULT_CHARACTER_SET_NAME"),
            collation=_row_get(schema_row, "DEFAULT_COLLATION_NAME"),
        )

        if self._include_views:
            schema.views = self._fetch_views()
        if self._include_routines:
            schema.routines = self._fetch_routines()
        if self._include_triggers:
            schema.triggers = self._fetch_triggers()

        return schema

    def _fetch_schema_row(self) -> dict:
        rows = self._client.fetchall(SCHEMA_SQL, (self._schema,))
        for row in rows:
            if str(_row_get(row, "SCHEMA_NAME") or "").lower() == self._schema.lower():
                return row
        raise SchemaNotFoundError(self._schema)

    def _fetch_tables(self) -> dict[str, Table]:
        """Fetch base tables keyed by name, in lexical order."""
        rows = self._client.fetchall(TABLES_SQL, (self._schema,))
        tables: dict[str, Table] = {}
        for row in sorted(rows, key=lambda r: _row_get(r, "TABLE_NAME")):
            name = _row_get(row, "TABLE_NAME")
            collation = _row_get(row, "TABLE_COLLATION")
            tables[name] = Table(
                name=name,
                columns=[],
                engine=_row_get(row, "ENGINE"),
                charset=_charset_of(collation),
                collation=collation,
                comment=_row_get(row, "TABLE_COMMENT") or None,
            )
        return tables

    def _attach_columns(self, tables: dict[str, Table]) -> None:
        rows = self._client.fetchall(COLUMNS_SQL, (self._schema,))
        for row in rows:
            table = tables.get(_row_get(row, "TABLE_NAME"))
            if table is None:
                continue
            charset = _row_get(row, "CHARACTER_SET_NAME")
            column_type = _row_get(row, "COLUMN_TYPE") or _row_get(row, "DATA_TYPE")
            table.columns.append(
                Column(
                    name=_row_get(row, "COLUMN_NAME"),
                    type=TypeDescriptor.parse(column_type, charset=charset),
                    nullable=_row_get(row, "IS_NULLABLE", "YES") != "NO",
                    default=_row_get(row, "COLUMN_DEFAULT"),
                    ordinal_position=int(_row_get(row, "ORDINAL_POSITION", 0)),
                    extra=_row_get(row, "EXTRA", ""),
                    generation_expression=_row_get(row, "GENERATION_EXPRESSION") or None,
                    charset=charset,
                    collation=_row_get(row, "COLLATION_NAME"),
                    comment=_row_get(row, "COLUMN_COMMENT") or None,
                )
            )

        for table in tables.values():
            table.columns.sort(key=lambda c: c.ordinal_position)

    def _attach_indexes(self, tables: dict[str, Table]) -> None:
        rows = self._client.fetchall(STATISTICS_SQL, (self._schema,))
        grouped: dict[tuple[str, str], list[dict]] = {}
        for row in rows:
            key = (_row_get(row, "TABLE_NAME"), _row_get(row, "INDEX_NAME"))
            grouped.setdefault(key, []).append(row)

        for (table_name, index_name), index_rows in grouped.items():
            table = tables.get(table_name)
            if table is None:
                continue
            index_rows.sort(key=lambda r: int(_row_get(r, "SEQ_IN_INDEX", 0)))
            if any(_row_get(r, "COLUMN_NAME") is None for r in index_rows):
                logger.warning(
                    "Skipping functional index %s on %s: expression keys are not supported",
                    index_name,
                    table_name,
                )
                continue

            columns = [
                IndexColumn(
                    name=_row_get(r, "COLUMN_NAME"),
                    sub_part=int(_row_get(r, "SUB_PART")) if _row_get(r, "SUB_PART") else None,
                )
                for r in index_rows
            ]
            first = index_rows[0]
            if index_name == "PRIMARY":
                table.primary_key = PrimaryKey(columns=columns)
                continue

            index_type = (_row_get(first, "INDEX_TYPE") or "").upper()
            if index_type in ("FULLTEXT", "SPATIAL"):
                kind = index_type
            elif str(_row_get(first, "NON_UNIQUE", "1")) == "0":
                kind = "UNIQUE"
            else:
                kind = "INDEX"
            table.indexes.append(
                Index(
                    name=index_name,
                    columns=columns,
                    kind=kind,
                    index_type=index_type if index_type in ("BTREE", "HASH") else None,
                    comment=_row_get(first, "INDEX_COMMENT") or None,
                )
            )

        for table in tables.values():
            table.indexes.sort(key=lambda i: (not i.unique, i.name))

    def _attach_foreign_keys(self, tables: dict[str, Table]) -> None:
        rows = self._client.fetchall(FOREIGN_KEYS_SQL, (self._schema,))
        keys: dict[tuple[str, str], ForeignKey] = {}
        for row in rows:
            table_name = _row_get(row, "TABLE_NAME")
            table = tables.get(table_name)
            if table is None:
                continue
            name = _row_get(row, "CONSTRAINT_NAME")
            fk = keys.get((table_name, name))
            if fk is None:
                ref_schema = _row_get(row, "REFERENCED_TABLE_SCHEMA")
                fk = ForeignKey(
                    name=name,
                    columns=[],
                    referenced_table=_row_get(row, "REFERENCED_TABLE_NAME"),
                    referenced_columns=[],
                    referenced_schema=ref_schema if ref_schema != self._schema else None,
                    on_update=_row_get(row, "UPDATE_RULE"),
                    on_delete=_row_get(row, "DELETE_RULE"),
                )
                keys[(table_name, name)] = fk
                table.foreign_keys.append(fk)
            fk.columns.append(_row_get(row, "COLUMN_NAME"))
            fk.referenced_columns.append(_row_get(row, "REFERENCED_COLUMN_NAME"))

        for (table_name, name), fk in keys.items():
            if fk.referenced_schema is None and fk.referenced_table not in tables:
                logger.info(
                    "Foreign key %s on %s references missing table %s",
                    name,
                    table_name,
                    fk.referenced_table,
                )

    def _show_create(self, kind: str, name: str) -> Optional[dict]:
        rows = self._client.fetchall(
            f"SHOW CREATE {kind} {qualified_name(self._schema, name)}"
        )
        return rows[0] if rows else None

    def _fetch_views(self) -> list[View]:
        names = [_row_get(r, "TABLE_NAME") for r in self._client.fetchall(VIEWS_SQL, (self._schema,))]
        views: dict[str, View] = {}
        for name in names:
            row = self._show_create("VIEW", name)
            if row is None:
                continue
            views[name] = View(
                name=name,
                definition=_row_get(row, "CREATE VIEW"),
                charset=_row_get(row, "CHARACTER_SET_CLIENT"),
                collation=_row_get(row, "COLLATION_CONNECTION"),
            )

        depends_on = {
            name: {
                other
                for other in views
                if other != name
                and qualified_name(self._schema, other).lower() in view.definition.lower()
            }
            for name, view in views.items()
        }
        return [views[name] for name in order_by_dependencies(list(views), depends_on)]

    def _fetch_routines(self) -> list[Routine]:
        routines = []
        for row in self._client.fetchall(ROUTINES_SQL, (self._schema,)):
            name = _row_get(row, "ROUTINE_NAME")
            kind = _row_get(row, "ROUTINE_TYPE").upper()
            create = self._show_create(kind, name)
            definition = _row_get(create, f"CREATE {kind}") if create else None
            if not definition:
                logger.warning(
                    "Skipping %s %s: definition not visible to the current user",
                    kind.lower(),
                    name,
                )
                continue
            routines.append(
                Routine(
                    name=name,
                    kind=kind,
                    definition=definition,
                    sql_mode=_row_get(create, "SQL_MODE"),
                    charset=_row_get(create, "CHARACTER_SET_CLIENT"),
                    collation=_row_get(create, "COLLATION_CONNECTION"),
                    database_collation=_row_get(create, "DATABASE COLLATION"),
                )
            )
        return routines

    def _fetch_triggers(self) -> list[Trigger]:
        triggers = []
        for row in self._client.fetchall(TRIGGERS_SQL, (self._schema,)):
            name = _row_get(row, "TRIGGER_NAME")
            create = self._show_create("TRIGGER", name)
            definition = _row_get(create, "SQL ORIGINAL STATEMENT") if create else None
            if not definition:
                logger.warning("Skipping trigger %s: definition not available", name)
                continue
            triggers.append(
                Trigger(
                    name=name,
                    table=_row_get(row, "EVENT_OBJECT_TABLE"),
                    definition=definition,
                    sql_mode=_row_get(create, "SQL_MODE"),
                )
            )
        return triggers


def introspect(
    client: DumpClient,
    schema: str,
    *,
    include_views: bool = True,
    include_routines: bool = False,
    include_triggers: bool = True,
) -> Schema:
    """Introspect schema through client and return its model."""
    introspector = SchemaIntrospector(
        client,
        schema,
        include_views=include_views,
        include_routines=include_routines,
        include_triggers=include_triggers,
    )
    return introspector.introspect_schema()
