"""
Two-Stage Draft Validation

The assistant returns table drafts as loosely structured JSON. Before a
draft is shown to the user it goes through two stages:

STAGE 1 - SCHEMA VALIDATION:
- Draft has a name and at least one column
- Every column has a key; keys are unique
- Column types are one of the five recognized types
Errors here make the whole draft unusable. There is no partial table.

STAGE 2 - SEMANTIC VALIDATION:
- Every row supplies a value for every column
- Cells reference existing columns only
- Numeric cells hold something that reads as a number
Issues here are warnings: the draft is normalized (defaults back-filled,
unknown cells dropped, values coerced) and each fix is reported.

WHY TWO STAGES:
1. Stage 2 can only reason about rows once the columns are known
2. Better reporting: structural failures vs. repaired values
"""

import re
from typing import Any, Optional

from src.models.table import (
    AggregationType,
    Column,
    ColumnType,
    Row,
    TableDraft,
)
from src.models.validation import ValidationIssue, ValidationResult
from src.tables.cells import NUMBER_PREFIX, default_cell_value, to_canonical
from src.tables.identity import IdGenerator, new_id

DEFAULT_THEME_COLOR = "#10b981"

_KEY_CHARS = re.compile(r"[^a-z0-9_]+")


def slugify_key(text: str) -> str:
    """Column key from a label: 'Valor Total' -> 'valor_total'."""
    return _KEY_CHARS.sub("_", text.strip().lower()).strip("_")


class DraftValidator:
    """
    Validates and normalizes raw table drafts.

    Stage 1: Schema validation (columns)
    Stage 2: Semantic validation (rows)
    """

    def __init__(
        self,
        id_generator: IdGenerator = new_id,
        default_theme_color: str = DEFAULT_THEME_COLOR,
    ):
        self._id_generator = id_generator
        self._default_theme_color = default_theme_color

    def _validate_schema(
        self,
        data: Any,
    ) -> tuple[bool, list[ValidationIssue], list[Column]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues, normalized_columns)
        """
        issues = []
        columns: list[Column] = []

        if not isinstance(data, dict):
            issues.append(ValidationIssue(
                field="draft",
                issue_type="invalid_format",
                message="Draft is not a JSON object",
                severity="error",
            ))
            return False, issues, columns

        name = data.get("name")
        if not isinstance(name, str) or not name.strip():
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Table name is required",
                severity="error",
            ))

        raw_columns = data.get("columns")
        if not isinstance(raw_columns, list) or not raw_columns:
            issues.append(ValidationIssue(
                field="columns",
                issue_type="missing",
                message="Draft must define at least one column",
                severity="error",
            ))
            return False, issues, columns

        seen_keys: set[str] = set()
        for index, raw in enumerate(raw_columns):
            where = f"columns[{index}]"
            if not isinstance(raw, dict):
                issues.append(ValidationIssue(
                    field=where,
                    issue_type="invalid_format",
                    message=f"Column {index} is not an object",
                    severity="error",
                ))
                continue

            label = str(raw.get("label") or "").strip()[:200]
            key = (str(raw.get("key") or "").strip() or slugify_key(label))[:100]
            if not key:
                issues.append(ValidationIssue(
                    field=f"{where}.key",
                    issue_type="missing",
                    message=f"Column {index} has neither a key nor a label",
                    severity="error",
                ))
                continue

            if key in seen_keys:
                original = key
                suffix = 2
                while f"{original}_{suffix}" in seen_keys:
                    suffix += 1
                key = f"{original}_{suffix}"
                issues.append(ValidationIssue(
                    field=f"{where}.key",
                    issue_type="duplicate_key",
                    message=f"Column key '{original}' is used twice",
                    severity="warning",
                    suggested_fix=f"Renamed the second column to '{key}'",
                ))
            seen_keys.add(key)

            try:
                column_type = ColumnType.parse(raw.get("type") or "text")
            except ValueError:
                issues.append(ValidationIssue(
                    field=f"{where}.type",
                    issue_type="unknown_type",
                    message=f"Column '{key}' has unknown type '{raw.get('type')}'",
                    severity="warning",
                    suggested_fix="Treated as a text column",
                ))
                column_type = ColumnType.TEXT

            try:
                aggregation = AggregationType(raw["aggregation"])
            except (KeyError, ValueError):
                aggregation = (
                    AggregationType.SUM if column_type.is_numeric
                    else AggregationType.NONE
                )

            columns.append(Column(
                key=key,
                label=label or key,
                type=column_type,
                aggregation=aggregation,
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues, columns

    def _row_values(self, raw: Any) -> Optional[dict[str, Any]]:
        """
        Cell values of one raw row.

        Accepts {"rowValues": [{"columnKey": k, "cellValue": v}, ...]}
        as well as a flat {"key": value} object.
        """
        if not isinstance(raw, dict):
            return None
        if "rowValues" in raw:
            pairs = raw.get("rowValues")
            if not isinstance(pairs, list):
                return None
            values = {}
            for pair in pairs:
                if isinstance(pair, dict) and "columnKey" in pair:
                    values[str(pair["columnKey"])] = pair.get("cellValue")
            return values
        return {str(k): v for k, v in raw.items() if k != "id"}

    def _validate_semantic(
        self,
        raw_rows: Any,
        columns: list[Column],
    ) -> tuple[bool, list[ValidationIssue], list[Row]]:
        """
        Stage 2: Semantic validation.

        Returns: (is_valid, list_of_issues, normalized_rows)
        """
        issues = []
        rows: list[Row] = []

        if raw_rows is None:
            raw_rows = []
        if not isinstance(raw_rows, list):
            issues.append(ValidationIssue(
                field="rows",
                issue_type="invalid_format",
                message="Rows are not a list",
                severity="warning",
                suggested_fix="Draft starts with no rows",
            ))
            return False, issues, rows

        by_key = {column.key: column for column in columns}

        for index, raw in enumerate(raw_rows):
            where = f"rows[{index}]"
            values = self._row_values(raw)
            if values is None:
                issues.append(ValidationIssue(
                    field=where,
                    issue_type="invalid_format",
                    message=f"Row {index} could not be read",
                    severity="warning",
                    suggested_fix="Row skipped",
                ))
                continue

            unknown = sorted(set(values) - set(by_key))
            if unknown:
                issues.append(ValidationIssue(
                    field=where,
                    issue_type="unknown_column",
                    message=f"Row {index} has values for unknown columns: {', '.join(unknown)}",
                    severity="warning",
                    suggested_fix="Values dropped",
                ))

            cells = {}
            for column in columns:
                if column.key not in values:
                    issues.append(ValidationIssue(
                        field=f"{where}.{column.key}",
                        issue_type="missing",
                        message=f"Row {index} has no value for '{column.key}'",
                        severity="warning",
                        suggested_fix="Filled with the column default",
                    ))
                    cells[column.key] = default_cell_value(column.type)
                    continue

                raw_value = values[column.key]
                if column.type.is_numeric and self._is_unreadable_number(raw_value):
                    issues.append(ValidationIssue(
                        field=f"{where}.{column.key}",
                        issue_type="invalid_number",
                        message=f"Row {index} value '{raw_value}' for '{column.key}' is not a number",
                        severity="warning",
                        suggested_fix="Stored as 0",
                    ))
                cells[column.key] = to_canonical(raw_value, column.type)

            rows.append(Row(id=self._id_generator(), cells=cells))

        return not issues, issues, rows

    @staticmethod
    def _is_unreadable_number(value: Any) -> bool:
        if isinstance(value, str):
            return bool(value.strip()) and not NUMBER_PREFIX.match(value)
        return not isinstance(value, (int, float, type(None)))

    def validate(self, data: Any) -> ValidationResult:
        """
        Run the full two-stage validation pipeline.

        Args:
            data: Parsed JSON returned by the assistant

        Returns:
            ValidationResult; `draft` is set only when no errors were found
        """
        schema_valid, issues, columns = self._validate_schema(data)

        # Only run stage 2 if stage 1 passes
        if not schema_valid:
            return ValidationResult(
                schema_valid=False,
                semantic_valid=False,
                issues=issues,
            )

        semantic_valid, row_issues, rows = self._validate_semantic(
            data.get("rows"), columns
        )
        issues.extend(row_issues)

        description = data.get("description")
        draft = TableDraft(
            name=data["name"].strip()[:200],
            description=description.strip()[:1000] if isinstance(description, str) else "",
            columns=columns,
            rows=rows,
            theme_color=self._default_theme_color,
        )

        return ValidationResult(
            schema_valid=True,
            semantic_valid=semantic_valid,
            issues=issues,
            draft=draft,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a short summary of validation results for the chat.
        """
        if result.is_valid and not result.warnings:
            return "The table draft is complete."

        lines = []
        if result.has_errors:
            lines.append("The assistant's table could not be used:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
        if result.warnings:
            lines.append("Some values were adjusted:")
            for issue in result.issues:
                if issue.severity == "warning":
                    fix = f" ({issue.suggested_fix})" if issue.suggested_fix else ""
                    lines.append(f"   • {issue.message}{fix}")
        return "\n".join(lines)
