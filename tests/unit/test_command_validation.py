"""Tests for ``validation/commands.py``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from pydantic import BaseModel, Field

from eventfold.core.messages import ValidationIssue
from eventfold.examples.counter import Increment, Reset
from eventfold.examples.todo import AddTodo
from eventfold.validation.commands import (
    PydanticCommandValidator,
    ValidationResult,
    field_error,
    format_validation_errors,
    validate_payload,
)


class RenameModel(BaseModel):
    name: Annotated[str, Field(min_length=2)]


@dataclass(frozen=True)
class Nested:
    inner: Annotated[int, Field(ge=0)]


@dataclass(frozen=True)
class Wrapper:
    nested: Nested


class TestPydanticCommandValidator:
    def test_valid_dataclass_command(self):
        result = PydanticCommandValidator().validate(Increment(amount=5))
        assert result.valid
        assert result.value == Increment(amount=5)

    def test_field_constraint_violation(self):
        result = PydanticCommandValidator().validate(Increment(amount=101))
        assert not result.valid
        [issue] = result.issues
        assert issue.path == "amount"
        assert issue.code == "less_than_equal"

    def test_string_constraints(self):
        result = PydanticCommandValidator().validate(AddTodo(id="t1", text=""))
        assert field_error(result.issues, "text") is not None
        assert field_error(result.issues, "id") is None

    def test_nested_field_paths(self):
        result = PydanticCommandValidator().validate(Wrapper(nested=Nested(inner=-1)))
        assert [issue.path for issue in result.issues] == ["nested.inner"]

    def test_allowed_set(self):
        validator = PydanticCommandValidator([Increment])
        assert validator.validate(Increment(amount=1)).valid
        result = validator.validate(Reset())
        assert result.issues[0].code == "unknown_command"
        assert result.issues[0].path == "type"

    def test_pydantic_model_command(self):
        validator = PydanticCommandValidator()
        assert validator.validate(RenameModel(name="ok")).valid
        bad = RenameModel.model_construct(name="x")
        assert not validator.validate(bad).valid

    def test_unsupported_value(self):
        result = PydanticCommandValidator().validate({"type": "Increment"})
        assert result.issues[0].code == "unsupported_command"


class TestHelpers:
    def test_validate_payload_builds_command(self):
        result = validate_payload(Increment, {"amount": 3})
        assert result.valid
        assert result.value == Increment(amount=3)

    def test_validate_payload_reports_missing_field(self):
        result = validate_payload(Increment, {})
        assert not result.valid
        assert result.issues[0].code == "missing"

    def test_format_validation_errors(self):
        issues = (
            ValidationIssue(loc=("amount",), message="too big"),
            ValidationIssue(message="bad command"),
        )
        assert format_validation_errors(issues) == ["amount: too big", "Command: bad command"]

    def test_result_constructors(self):
        assert ValidationResult.ok(1).value == 1
        failed = ValidationResult.failed([ValidationIssue(message="x")])
        assert not failed.valid and len(failed.issues) == 1
