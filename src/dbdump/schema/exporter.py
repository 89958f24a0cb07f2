"""Export introspected schema models to YAML."""

from pathlib import Path
from typing import Any

import yaml

from dbdump.schema.models import Column, Index, Schema, Table


def table_to_dict(table: Table) -> dict[str, Any]:
    """Convert a Table model to a dictionary suitable for YAML export."""
    data: dict[str, Any] = {"table": table.name}

    if table.comment:
        data["comment"] = table.comment
    if table.engine:
        data["engine"] = table.engine
    if table.collation:
        data["collation"] = table.collation

    data["columns"] = [_column_to_dict(col) for col in table.columns]

    if table.primary_key:
        data["primary_key"] = {"columns": table.primary_key.column_names}

    if table.indexes:
        data["indexes"] = [_index_to_dict(index) for index in table.indexes]

    if table.foreign_keys:
        data["foreign_keys"] = [
            {
                "name": fk.name,
                "columns": list(fk.columns),
                "references": {
                    "table": fk.referenced_table,
                    "columns": list(fk.referenced_columns),
                },
            }
            for fk in table.foreign_keys
        ]

    return data


def _column_to_dict(col: Column) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": col.name,
        "type": col.type.column_type,
        "semantic_type": col.semantic_type.value,
    }

    if not col.nullable:
        data["nullable"] = False

    if col.default is not None:
        data["default"] = col.default

    if col.generation_expression:
        data["generated"] = col.generation_expression

    if col.collation is not None:
        data["collation"] = col.collation

    if col.comment:
        data["comment"] = col.comment

    return data


def _index_to_dict(index: Index) -> dict[str, Any]:
    data: dict[str, Any] = {"name": index.name, "columns": index.column_names}
    if index.kind != "INDEX":
        data["kind"] = index.kind.lower()
    return data


def schema_to_dict(schema: Schema) -> dict[str, Any]:
    data: dict[str, Any] = {"schema": schema.name}
    if schema.collation:
        data["collation"] = schema.collation
    data["tables"] = [table_to_dict(t) for t in schema.tables]
    if schema.views:
        data["views"] = [v.name for v in schema.views]
    if schema.routines:
        data["routines"] = [{"name": r.name, "kind": r.kind.lower()} for r in schema.routines]
    if schema.triggers:
        data["triggers"] = [{"name": t.name, "table": t.table} for t in schema.triggers]
    return data


def _dump(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)


def export_table_yaml(table: Table) -> str:
    """Export a single table to YAML string."""
    return _dump(table_to_dict(table))


def export_schema_yaml(schema: Schema) -> str:
    """Export the whole schema, tables in dump order, to one YAML document."""
    return _dump(schema_to_dict(schema))


def export_schema_to_directory(schema: Schema, output_dir: Path) -> list[Path]:
    """Export all tables in a schema to individual YAML files.

    Returns list of created file paths.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    created_files = []

    for table in schema.tables:
        file_path = output_dir / f"{table.name}.yaml"
        file_path.write_text(export_table_yaml(table), encoding="utf-8")
        created_files.append(file_path)

    return created_files
