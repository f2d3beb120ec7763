"""
Validation Results — all-or-nothing validation shared by every schema.

A validation either yields a fully-typed value or a list of
field-path / message issues. Partial objects are never returned.
Callers that cannot proceed on failure raise
:class:`SchemaValidationError` instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found at a dotted field path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass
class ValidationResult(Generic[ModelT]):
    """Outcome of validating an arbitrary object against a model."""

    success: bool
    data: ModelT | None = None
    errors: list[ValidationIssue] = field(default_factory=list)


class SchemaValidationError(Exception):
    """Raised when a persona, rubric or stage artefact fails validation."""

    def __init__(self, schema_name: str, issues: list[ValidationIssue]) -> None:
        self.schema_name = schema_name
        self.issues = list(issues)
        detail = "; ".join(str(issue) for issue in self.issues) or "unknown error"
        super().__init__(f"Invalid {schema_name}: {detail}")


def issues_from_error(error: ValidationError) -> list[ValidationIssue]:
    """Flatten a pydantic ValidationError into dotted-path issues."""
    return [
        ValidationIssue(
            path=".".join(str(part) for part in item["loc"]),
            message=item["msg"],
        )
        for item in error.errors()
    ]


def validate_model(model_cls: type[ModelT], data: Any) -> ValidationResult[ModelT]:
    """
    Validate ``data`` against ``model_cls``.

    Args:
        model_cls: The pydantic model describing the expected shape.
        data: Any parsed structure (usually a dict from JSON or YAML).

    Returns:
        A successful result carrying the typed value, or a failed one
        carrying every issue found.
    """
    try:
        value = model_cls.model_validate(data)
    except ValidationError as e:
        return ValidationResult(success=False, errors=issues_from_error(e))
    return ValidationResult(success=True, data=value)
