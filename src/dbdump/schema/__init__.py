"""Schema model, introspection and DDL generation."""

from dbdump.schema.codegen import DdlGenerator, render_schema
from dbdump.schema.introspect import SchemaIntrospector, introspect
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
from dbdump.schema.typemap import TypeDescriptor, resolve
from dbdump.schema.validator import (
    SchemaModelValidator,
    ValidationIssue,
    ValidationResult,
)

__all__ = [
    "Column",
    "DdlGenerator",
    "ForeignKey",
    "Index",
    "IndexColumn",
    "PrimaryKey",
    "Routine",
    "Schema",
    "SchemaIntrospector",
    "SchemaModelValidator",
    "Table",
    "Trigger",
    "TypeDescriptor",
    "ValidationIssue",
    "ValidationResult",
    "View",
    "introspect",
    "render_schema",
    "resolve",
]
