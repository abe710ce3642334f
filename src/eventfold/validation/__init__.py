"""Command validation: pydantic-backed validators and form helpers."""

from eventfold.validation.commands import (
    CommandValidator,
    PydanticCommandValidator,
    ValidationResult,
    field_error,
    format_validation_errors,
    issues_from_error,
    validate_payload,
)

__all__ = [
    "CommandValidator",
    "PydanticCommandValidator",
    "ValidationResult",
    "field_error",
    "format_validation_errors",
    "issues_from_error",
    "validate_payload",
]
