"""Exception classes for dbdump."""

__all__ = [
    "DbdumpError",
    "DumpConnectionError",
    "IntrospectionError",
    "SchemaNotFoundError",
    "PermissionDeniedError",
    "QueryError",
    "InvalidSchemaModelError",
    "UnsupportedDataTypeError",
    "SinkWriteError",
    "ConfigError",
]


class DbdumpError(Exception):
    """Base exception for dbdump."""


class DumpConnectionError(DbdumpError):
    """Transport-level failure talking to the database server."""


class IntrospectionError(DbdumpError):
    """Error reading the catalog of the source schema."""


class SchemaNotFoundError(IntrospectionError):
    """The requested schema does not exist (or is not visible to the user)."""

    def __init__(self, schema: str):
        self.schema = schema
        super().__init__(f"Schema '{schema}' does not exist")


class PermissionDeniedError(IntrospectionError):
    """The server rejected a query for lack of privileges."""


class QueryError(DbdumpError):
    """Any other error reported by the server for a query."""


class InvalidSchemaModelError(DbdumpError):
    """The introspected model violates an invariant (e.g. a table without columns)."""


class UnsupportedDataTypeError(DbdumpError):
    """A column type has no literal rendering and unknown types are not skipped."""

    def __init__(self, table: str | None, column: str, type_name: str):
        self.table = table
        self.column = column
        self.type_name = type_name
        where = f"{table}.{column}" if table else column
        super().__init__(
            f"Unsupported data type '{type_name}' for column {where} "
            "(use --skip-unknown-datatypes to dump it as NULL)"
        )


class SinkWriteError(DbdumpError):
    """Writing to the output sink failed."""


class ConfigError(DbdumpError):
    """Error in configuration."""
