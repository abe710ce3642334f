"""Command validation backed by pydantic.

Commands are plain frozen dataclasses, so an invalid command can be built
and dispatched; the decider's validator catches it before ``decide`` runs.
Field constraints are declared on the command class itself::

    @dataclass(frozen=True)
    class Increment(Command):
        amount: Annotated[int, Field(ge=1, le=100)]

``PydanticCommandValidator`` rebuilds the command through a
``pydantic.TypeAdapter`` for its class and turns any ``ValidationError``
into ``ValidationIssue`` records.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, TypeAdapter, ValidationError

from eventfold.core.messages import ValidationIssue


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a command or a payload."""

    valid: bool
    issues: tuple[ValidationIssue, ...] = ()
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> ValidationResult:
        return cls(valid=True, value=value)

    @classmethod
    def failed(cls, issues: Iterable[ValidationIssue]) -> ValidationResult:
        return cls(valid=False, issues=tuple(issues))


@runtime_checkable
class CommandValidator(Protocol):
    """Anything that can vet a command before it reaches ``decide``."""

    def validate(self, command: Any) -> ValidationResult:
        ...


def issues_from_error(exc: ValidationError) -> tuple[ValidationIssue, ...]:
    """Convert a pydantic error into structured issues."""
    return tuple(
        ValidationIssue(
            loc=tuple(err.get("loc", ())),
            message=err.get("msg", ""),
            code=err.get("type", ""),
        )
        for err in exc.errors(include_url=False)
    )


class PydanticCommandValidator:
    """Validate dataclass (or pydantic model) commands against their types.

    Parameters
    ----------
    commands
        Optional set of accepted command classes.  When given, a command
        of any other class fails validation with ``code="unknown_command"``.
    """

    def __init__(self, commands: Iterable[type] | None = None) -> None:
        self._allowed = frozenset(commands) if commands is not None else None
        self._adapters: dict[type, TypeAdapter[Any]] = {}

    def _adapter(self, cls: type) -> TypeAdapter[Any]:
        adapter = self._adapters.get(cls)
        if adapter is None:
            adapter = TypeAdapter(cls)
            self._adapters[cls] = adapter
        return adapter

    def validate(self, command: Any) -> ValidationResult:
        cls = type(command)
        if self._allowed is not None and cls not in self._allowed:
            return ValidationResult.failed([
                ValidationIssue(
                    loc=("type",),
                    message=f"Unknown command type: {cls.__name__}",
                    code="unknown_command",
                ),
            ])

        try:
            if isinstance(command, BaseModel):
                cls.model_validate(command.model_dump())
            elif dataclasses.is_dataclass(command):
                self._adapter(cls).validate_python(dataclasses.asdict(command))
            else:
                return ValidationResult.failed([
                    ValidationIssue(
                        message=f"Unsupported command value: {cls.__name__}",
                        code="unsupported_command",
                    ),
                ])
        except ValidationError as exc:
            return ValidationResult.failed(issues_from_error(exc))
        return ValidationResult.ok(command)


# ---------------------------------------------------------------------------
# Form-style helpers
# ---------------------------------------------------------------------------

def validate_payload(
    command_cls: type, payload: Mapping[str, Any],
) -> ValidationResult:
    """Validate a raw payload for *command_cls* before building the command.

    On success ``result.value`` holds the constructed command.
    """
    try:
        value = TypeAdapter(command_cls).validate_python(dict(payload))
    except ValidationError as exc:
        return ValidationResult.failed(issues_from_error(exc))
    return ValidationResult.ok(value)


def format_validation_errors(issues: Sequence[ValidationIssue]) -> list[str]:
    """Render issues as ``"<field path>: <message>"`` lines."""
    return [f"{issue.path or 'Command'}: {issue.message}" for issue in issues]


def field_error(issues: Sequence[ValidationIssue], path: str) -> str | None:
    """First message reported for *path* (dotted), if any."""
    for issue in issues:
        if issue.path == path:
            return issue.message
    return None
