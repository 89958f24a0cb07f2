"""Schema model validation: invariant checks on an introspected model."""

from dataclasses import dataclass
from typing import Literal, Optional

from dbdump.exceptions import InvalidSchemaModelError
from dbdump.schema.models import Schema, Table


@dataclass
class ValidationIssue:
    """A single invariant violation found in a schema model."""

    table: Optional[str]
    column: Optional[str]
    kind: Literal[
        "no_columns",
        "duplicate_column",
        "ordinal_order",
        "missing_key_column",
        "duplicate_table",
    ]
    message: str


@dataclass
class ValidationResult:
    """Result of schema model validation.

    ok is True iff issues is empty.
    """

    ok: bool
    issues: list[ValidationIssue]


class SchemaModelValidator:
    """Check the invariants every introspected model must satisfy.

    A well-formed catalog never produces these violations, so any issue means
    the model cannot be dumped faithfully.
    """

    def check(self, schema: Schema) -> ValidationResult:
        """Collect every invariant violation in the model."""
        issues: list[ValidationIssue] = []
        seen: set[str] = set()

        for table in schema.tables:
            if table.name in seen:
                issues.append(
                    ValidationIssue(
                        table=table.name,
                        column=None,
                        kind="duplicate_table",
                        message=f"Table '{table.name}' appears more than once",
                    )
                )
            seen.add(table.name)
            issues.extend(self._check_table(table))

        return ValidationResult(ok=len(issues) == 0, issues=issues)

    def validate(self, schema: Schema) -> None:
        """Raise InvalidSchemaModelError if the model violates an invariant."""
        result = self.check(schema)
        if not result.ok:
            details = "\n  - ".join(issue.message for issue in result.issues)
            raise InvalidSchemaModelError(
                f"Invalid schema model for '{schema.name}':\n  - {details}"
            )

    def _check_table(self, table: Table) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []

        if not table.columns:
            issues.append(
                ValidationIssue(
                    table=table.name,
                    column=None,
                    kind="no_columns",
                    message=f"Table '{table.name}' has no columns",
                )
            )
            return issues

        names: set[str] = set()
        last_position = 0
        for col in table.columns:
            lowered = col.name.lower()
            if lowered in names:
                issues.append(
                    ValidationIssue(
                        table=table.name,
                        column=col.name,
                        kind="duplicate_column",
                        message=f"Column '{col.name}' appears twice in '{table.name}'",
                    )
                )
            names.add(lowered)

            if col.ordinal_position <= last_position:
                issues.append(
                    ValidationIssue(
                        table=table.name,
                        column=col.name,
                        kind="ordinal_order",
                        message=(
                            f"Column '{col.name}' in '{table.name}' is out of "
                            f"ordinal order (position {col.ordinal_position})"
                        ),
                    )
                )
            last_position = col.ordinal_position

        key_columns: list[str] = []
        if table.primary_key:
            key_columns.extend(table.primary_key.column_names)
        for index in table.indexes:
            key_columns.extend(index.column_names)
        for fk in table.foreign_keys:
            key_columns.extend(fk.columns)

        for name in key_columns:
            if name.lower() not in names:
                issues.append(
                    ValidationIssue(
                        table=table.name,
                        column=name,
                        kind="missing_key_column",
                        message=f"Key column '{name}' does not exist in '{table.name}'",
                    )
                )

        return issues
