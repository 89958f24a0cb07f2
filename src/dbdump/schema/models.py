"""Schema representation classes."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from dbdump.schema.typemap import TypeDescriptor, resolve
from dbdump.types import SemanticType

IndexKind = Literal["UNIQUE", "INDEX", "FULLTEXT", "SPATIAL"]
RoutineKind = Literal["PROCEDURE", "FUNCTION"]


@dataclass(frozen=True)
class IndexColumn:
    """One column of a key, with an optional prefix length."""

    name: str
    sub_part: Optional[int] = None


@dataclass
class PrimaryKey:
    """Primary key definition. Recorded for DDL fidelity, not enforced."""

    columns: list[IndexColumn]

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


@dataclass
class Index:
    """Unique or secondary index."""

    name: str
    columns: list[IndexColumn]
    kind: IndexKind = "INDEX"
    index_type: Optional[str] = None
    comment: Optional[str] = None

    @property
    def unique(self) -> bool:
        return self.kind == "UNIQUE"

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]


@dataclass
class ForeignKey:
    """Foreign key constraint."""

    name: str
    columns: list[str]
    referenced_table: str
    referenced_columns: list[str]
    referenced_schema: Optional[str] = None
    on_update: Optional[str] = None
    on_delete: Optional[str] = None


@dataclass
class Column:
    """Column definition."""

    name: str
    type: TypeDescriptor
    nullable: bool = True
    default: Optional[str] = None
    ordinal_position: int = 0
    extra: str = ""
    generation_expression: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.type, str):
            self.type = TypeDescriptor.parse(self.type, charset=self.charset)

    @property
    def semantic_type(self) -> SemanticType:
        return resolve(self.type)

    @property
    def is_generated(self) -> bool:
        """True for VIRTUAL/STORED generated columns, which cannot be inserted."""
        extra = self.extra.upper()
        return "VIRTUAL GENERATED" in extra or "STORED GENERATED" in extra or (
            "PERSISTENT" in extra and bool(self.generation_expression)
        )

    @property
    def is_insertable(self) -> bool:
        return not self.is_generated


@dataclass
class Table:
    """Table definition."""

    name: str
    columns: list[Column]
    primary_key: Optional[PrimaryKey] = None
    indexes: list[Index] = field(default_factory=list)
    foreign_keys: list[ForeignKey] = field(default_factory=list)
    engine: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        """Columns built without an ordinal position take their list position."""
        for position, col in enumerate(self.columns, start=1):
            if col.ordinal_position == 0:
                col.ordinal_position = position

    def get_column(self, name: str) -> Optional[Column]:
        """Get a column by name (case-insensitive, as in MySQL)."""
        lowered = name.lower()
        for col in self.columns:
            if col.name.lower() == lowered:
                return col
        return None

    @property
    def insertable_columns(self) -> list[Column]:
        """Columns that take part in INSERT statements, in ordinal order."""
        return [c for c in self.columns if c.is_insertable]

    @property
    def unknown_columns(self) -> list[Column]:
        return [c for c in self.columns if c.semantic_type is SemanticType.UNKNOWN]

    def referenced_tables(self) -> set[str]:
        """Tables in the same schema this table points to through foreign keys."""
        return {
            fk.referenced_table
            for fk in self.foreign_keys
            if fk.referenced_table != self.name
        }


@dataclass
class View:
    """View definition as returned by SHOW CREATE VIEW."""

    name: str
    definition: str
    charset: Optional[str] = None
    collation: Optional[str] = None


@dataclass
class Routine:
    """Stored procedure or function."""

    name: str
    kind: RoutineKind
    definition: str
    sql_mode: Optional[str] = None
    charset: Optional[str] = None
    collation: Optional[str] = None
    database_collation: Optional[str] = None


@dataclass
class Trigger:
    """Trigger definition."""

    name: str
    table: str
    definition: str
    sql_mode: Optional[str] = None


@dataclass
class Schema:
    """Complete schema definition. Table order is the dump order."""

    name: str
    tables: list[Table]
    charset: Optional[str] = None
    collation: Optional[str] = None
    views: list[View] = field(default_factory=list)
    routines: list[Routine] = field(default_factory=list)
    triggers: list[Trigger] = field(default_factory=list)

    def get_table(self, name: str) -> Optional[Table]:
        """Get a table by name."""
        for table in self.tables:
            if table.name == name:
                return table
        return None

    def table_names(self) -> list[str]:
        """Table names in dump order."""
        return [t.name for t in self.tables]
