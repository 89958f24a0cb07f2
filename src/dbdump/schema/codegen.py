"""Generate DDL statements from an introspected schema model."""

import logging
import re
from datetime import datetime
from typing import Optional

from dbdump.config import DumpOptions
from dbdump.quoting import (
    is_numeric_literal,
    qualified_name,
    quote_identifier,
    quote_string,
)
from dbdump.schema.models import (
    Column,
    ForeignKey,
    Index,
    IndexColumn,
    Routine,
    Schema,
    Table,
    Trigger,
)
from dbdump.schema.validator import SchemaModelValidator
from dbdump.types import SemanticType

logger = logging.getLogger(__name__)

TOOL_NAME = "dbdump"
TOOL_VERSION = "0.4.0"

FALLBACK_TYPE = "LONGTEXT"

_ON_UPDATE_RE = re.compile(r"on update (current_timestamp(\(\d*\))?)", re.IGNORECASE)
_TEMPORAL_FUNCTIONS = ("CURRENT_TIMESTAMP", "NOW(", "LOCALTIME", "LOCALTIMESTAMP")
_DEFAULT_FK_RULES = {"RESTRICT", "NO ACTION"}
# Backquoted identifiers are matched only so that quote characters inside
# them do not open a literal.
_LITERAL_OR_COMMENT_RE = re.compile(
    r"""(?P<ident>`(?:[^`]|``)*`)"""
    r"""|(?P<skip>'(?:[^'\\]|\\.|'')*'|"(?:[^"\\]|\\.|"")*"|/\*.*?\*/|--(?=\s)[^\n]*|\#[^\n]*)""",
    re.DOTALL,
)


class DdlGenerator:
    """Render schema DDL for a dump.

    Column types are written verbatim from the catalog. Every qualified name
    uses the target schema, so a renamed dump never mentions the source.
    """

    def __init__(self, options: DumpOptions):
        self.options = options
        self.source = options.schema
        self.target = options.target_schema
        self._validator = SchemaModelValidator()

    def rename(self, sql: str) -> str:
        """Point schema qualifiers inside server-provided DDL at the target schema.

        String literals and comments are copied through untouched.
        """
        if self.source == self.target:
            return sql
        pieces = []
        pos = 0
        for match in _LITERAL_OR_COMMENT_RE.finditer(sql):
            if match.lastgroup != "skip":
                continue
            pieces.append(self._rename_code(sql[pos : match.start()]))
            pieces.append(match.group())
            pos = match.end()
        pieces.append(self._rename_code(sql[pos:]))
        return "".join(pieces)

    def _rename_code(self, code: str) -> str:
        quoted = quote_identifier(self.source) + "."
        code = code.replace(quoted, quote_identifier(self.target) + ".")
        bare = re.compile(r"(?<![\w`$.])" + re.escape(self.source) + r"(?=\s*\.\s*[\w`])")
        return bare.sub(lambda _: quote_identifier(self.target), code)

    def _fqn(self, name: str) -> str:
        return qualified_name(self.target, name)

    def render_header(self, generated_at: Optional[datetime] = None) -> list[str]:
        """Comment banner opening the dump. The timestamp is left out when dump_date is off."""
        rule = "-- " + "-" * 76
        lines = [
            rule,
            f"-- {TOOL_NAME} {TOOL_VERSION}",
            f"-- Schema: {self.target}",
        ]
        if self.options.dump_date:
            stamp = (generated_at or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
            lines.append(f"-- Created at {stamp}")
        lines.append(rule)
        return lines

    def render_prologue(self) -> list[str]:
        """Session statements issued before any DDL."""
        statements = ["SET NAMES utf8mb4", "SET TIME_ZONE='+00:00'"]
        if self.options.disable_foreign_key_checks:
            statements.append("SET FOREIGN_KEY_CHECKS=0")
        return statements

    def render_epilogue(self) -> list[str]:
        if self.options.disable_foreign_key_checks:
            return ["SET FOREIGN_KEY_CHECKS=1"]
        return []

    def render_schema(self, schema: Schema) -> list[str]:
        """Render CREATE SCHEMA (unless disabled), USE and one CREATE TABLE per table.

        Raises:
            InvalidSchemaModelError: If the model breaks an invariant, e.g. a
                table without columns.
        """
        self._validator.validate(schema)

        statements = []
        if self.options.create_schema:
            create = f"CREATE SCHEMA IF NOT EXISTS {quote_identifier(self.target)}"
            if schema.charset:
                create += f" DEFAULT CHARACTER SET {schema.charset}"
            if schema.collation:
                create += f" COLLATE {schema.collation}"
            statements.append(create)
        statements.append(f"USE {quote_identifier(self.target)}")

        for table in schema.tables:
            statements.append(self.render_table(table))
        return statements

    def _is_fallback(self, col: Column) -> bool:
        return (
            self.options.skip_unknown_datatypes
            and col.semantic_type is SemanticType.UNKNOWN
        )

    def render_table(self, table: Table) -> str:
        """Generate the CREATE TABLE statement for one table."""
        fallback = {c.name.lower() for c in table.columns if self._is_fallback(c)}

        defs = [f"  {self._render_column(col, table)}" for col in table.columns]

        def usable(names: list[str], what: str) -> bool:
            blocked = [n for n in names if n.lower() in fallback]
            if blocked:
                logger.warning(
                    "Omitting %s on %s: column %s has an unsupported type",
                    what,
                    table.name,
                    ", ".join(blocked),
                )
            return not blocked

        if table.primary_key and usable(table.primary_key.column_names, "primary key"):
            defs.append(f"  PRIMARY KEY ({self._key_columns(table.primary_key.columns)})")

        for index in table.indexes:
            if usable(index.column_names, f"index {index.name}"):
                defs.append(f"  {self._render_index(index)}")

        for fk in table.foreign_keys:
            if usable(fk.columns, f"foreign key {fk.name}"):
                defs.append(f"  {self._render_foreign_key(fk)}")

        sql = f"CREATE TABLE {self._fqn(table.name)} (\n" + ",\n".join(defs) + "\n)"

        options = []
        if table.engine:
            options.append(f"ENGINE={table.engine}")
        if table.charset:
            options.append(f"DEFAULT CHARSET={table.charset}")
        if table.collation:
            options.append(f"COLLATE={table.collation}")
        if table.comment:
            options.append(f"COMMENT={quote_string(table.comment)}")
        if options:
            sql += " " + " ".join(options)

        return f"-- Table structure for {quote_identifier(table.name)}\n{sql}"

    def _render_column(self, col: Column, table: Table) -> str:
        name = quote_identifier(col.name)
        if self._is_fallback(col):
            return (
                f"{name} {FALLBACK_TYPE} NULL "
                f"/* unsupported type: {col.type.column_type.replace('*/', '* /')} */"
            )

        parts = [name, col.type.column_type]
        if col.charset and col.collation and col.collation != table.collation:
            parts.append(f"CHARACTER SET {col.charset} COLLATE {col.collation}")

        if col.is_generated and col.generation_expression:
            extra = col.extra.upper()
            storage = "STORED" if "STORED" in extra or "PERSISTENT" in extra else "VIRTUAL"
            parts.append(f"GENERATED ALWAYS AS ({col.generation_expression}) {storage}")

        if not col.nullable:
            parts.append("NOT NULL")
        elif col.type.name == "timestamp":
            parts.append("NULL")

        default = self._render_default(col)
        if default is not None:
            parts.append(f"DEFAULT {default}")

        extra = col.extra.lower()
        if "auto_increment" in extra:
            parts.append("AUTO_INCREMENT")
        on_update = _ON_UPDATE_RE.search(col.extra)
        if on_update:
            parts.append(f"ON UPDATE {on_update.group(1).upper()}")

        if col.comment:
            parts.append(f"COMMENT {quote_string(col.comment)}")
        return " ".join(parts)

    def _render_default(self, col: Column) -> Optional[str]:
        """Render a catalog COLUMN_DEFAULT as a DEFAULT clause value.

        MySQL reports string defaults unquoted and flags expressions with
        DEFAULT_GENERATED. MariaDB quotes string defaults and does not flag
        expressions. A value wrapped in single quotes is therefore kept as a
        literal, and an unflagged expression such as uuid() is quoted as a
        string. A MySQL string default that itself starts and ends with a
        quote loses those quotes.
        """
        default = col.default
        if default is None or col.is_generated:
            return None

        stripped = default.strip()
        upper = stripped.upper()
        if upper.startswith(_TEMPORAL_FUNCTIONS):
            return stripped
        if "DEFAULT_GENERATED" in col.extra.upper():
            return stripped if stripped.startswith("(") else f"({stripped})"
        if upper == "NULL":
            return "NULL" if col.nullable else None
        if len(stripped) >= 2 and stripped[0] == stripped[-1] == "'":
            return stripped
        if upper.startswith(("B'", "X'", "0X")):
            return stripped
        if col.semantic_type.is_numeric and is_numeric_literal(stripped):
            return stripped
        return quote_string(default)

    def _key_columns(self, columns: list[IndexColumn]) -> str:
        rendered = []
        for c in columns:
            part = quote_identifier(c.name)
            if c.sub_part:
                part += f"({c.sub_part})"
            rendered.append(part)
        return ",".join(rendered)

    def _render_index(self, index: Index) -> str:
        prefix = {
            "UNIQUE": "UNIQUE KEY",
            "FULLTEXT": "FULLTEXT KEY",
            "SPATIAL": "SPATIAL KEY",
        }.get(index.kind, "KEY")
        sql = f"{prefix} {quote_identifier(index.name)} ({self._key_columns(index.columns)})"
        if index.index_type == "HASH":
            sql += " USING HASH"
        if index.comment:
            sql += f" COMMENT {quote_string(index.comment)}"
        return sql

    def _render_foreign_key(self, fk: ForeignKey) -> str:
        cols = ",".join(quote_identifier(c) for c in fk.columns)
        ref_cols = ",".join(quote_identifier(c) for c in fk.referenced_columns)
        if fk.referenced_schema and fk.referenced_schema != self.source:
            ref = qualified_name(fk.referenced_schema, fk.referenced_table)
        else:
            ref = quote_identifier(fk.referenced_table)
        sql = (
            f"CONSTRAINT {quote_identifier(fk.name)} FOREIGN KEY ({cols}) "
            f"REFERENCES {ref} ({ref_cols})"
        )
        if fk.on_delete and fk.on_delete.upper() not in _DEFAULT_FK_RULES:
            sql += f" ON DELETE {fk.on_delete.upper()}"
        if fk.on_update and fk.on_update.upper() not in _DEFAULT_FK_RULES:
            sql += f" ON UPDATE {fk.on_update.upper()}"
        return sql

    def render_views(self, schema: Schema) -> list[str]:
        """CREATE VIEW statements, dependencies first."""
        return [
            f"-- View structure for {quote_identifier(view.name)}\n"
            f"{self.rename(view.definition.rstrip().rstrip(';'))}"
            for view in schema.views
        ]

    def _delimited(self, header: list[str], definition: str) -> str:
        body = self.rename(definition.rstrip().rstrip(";"))
        return "\n".join(header + ["DELIMITER ;;", f"{body};;", "DELIMITER ;"])

    def render_routines(self, schema: Schema) -> list[str]:
        """Stored procedure/function blocks wrapped in DELIMITER commands."""
        blocks = []
        for routine in schema.routines:
            blocks.append(self._delimited(self._routine_header(routine), routine.definition))
        return blocks

    def _routine_header(self, routine: Routine) -> list[str]:
        header = [f"-- {routine.kind.capitalize()} {quote_identifier(routine.name)}"]
        if routine.sql_mode is not None:
            header.append(f"-- SQL Mode {routine.sql_mode}")
        if routine.charset:
            header.append(f"-- Character Set {routine.charset}")
        if routine.collation:
            header.append(f"-- Collation {routine.collation}")
        return header

    def render_triggers(self, schema: Schema) -> list[str]:
        """Trigger blocks; emitted after the data so they do not fire during the load."""
        blocks = []
        for trigger in schema.triggers:
            blocks.append(self._delimited(self._trigger_header(trigger), trigger.definition))
        return blocks

    def _trigger_header(self, trigger: Trigger) -> list[str]:
        header = [
            f"-- Trigger {quote_identifier(trigger.name)} on {quote_identifier(trigger.table)}"
        ]
        if trigger.sql_mode is not None:
            header.append(f"-- SQL Mode {trigger.sql_mode}")
        return header


def render_schema(model: Schema, options: DumpOptions) -> list[str]:
    """Render CREATE SCHEMA/USE/CREATE TABLE statements for model."""
    return DdlGenerator(options).render_schema(model)
