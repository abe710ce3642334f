"""Todo domain: keyed entities with a status lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Annotated, Literal

from pydantic import Field

from eventfold.core.clock import IClock, WallClock
from eventfold.core.messages import Command, Event
from eventfold.runtime.decider import DeciderConfig
from eventfold.validation.commands import PydanticCommandValidator

TodoId = Annotated[str, Field(min_length=1)]
TodoText = Annotated[str, Field(min_length=1, max_length=500)]

TodoStatus = Literal["Active", "Completed", "Archived"]


# --- Commands ---------------------------------------------------------------

@dataclass(frozen=True)
class AddTodo(Command):
    id: TodoId
    text: TodoText


@dataclass(frozen=True)
class CompleteTodo(Command):
    id: TodoId


@dataclass(frozen=True)
class ReactivateTodo(Command):
    id: TodoId


@dataclass(frozen=True)
class ArchiveTodo(Command):
    id: TodoId


@dataclass(frozen=True)
class UpdateTodoText(Command):
    id: TodoId
    text: TodoText


TODO_COMMANDS = (AddTodo, CompleteTodo, ReactivateTodo, ArchiveTodo, UpdateTodoText)


# --- Events -----------------------------------------------------------------

@dataclass(frozen=True)
class TodoAdded(Event):
    id: str
    text: str
    created_at: datetime


@dataclass(frozen=True)
class TodoCompleted(Event):
    id: str
    completed_at: datetime


@dataclass(frozen=True)
class TodoReactivated(Event):
    id: str
    reactivated_at: datetime


@dataclass(frozen=True)
class TodoArchived(Event):
    id: str
    archived_at: datetime


@dataclass(frozen=True)
class TodoTextUpdated(Event):
    id: str
    text: str
    updated_at: datetime


@dataclass(frozen=True)
class TodoCommandFailed(Event):
    command: str
    reason: str


# --- State ------------------------------------------------------------------

@dataclass(frozen=True)
class Todo:
    id: str
    text: str
    status: TodoStatus
    changed_at: datetime


@dataclass(frozen=True)
class TodoState:
    todos: dict[str, Todo]


@dataclass(frozen=True)
class TodoContext:
    timestamp: datetime


def decide(cmd: Command, state: TodoState, ctx: TodoContext) -> list[Event]:
    def failed(reason: str) -> list[Event]:
        return [TodoCommandFailed(command=cmd.type, reason=reason)]

    if isinstance(cmd, AddTodo):
        if cmd.id in state.todos:
            return failed("Todo already exists")
        return [TodoAdded(id=cmd.id, text=cmd.text, created_at=ctx.timestamp)]

    todo = state.todos.get(getattr(cmd, "id", ""))
    if todo is None:
        return failed("Todo not found")

    if isinstance(cmd, CompleteTodo):
        if todo.status != "Active":
            return failed("Todo is not active")
        return [TodoCompleted(id=cmd.id, completed_at=ctx.timestamp)]

    if isinstance(cmd, ReactivateTodo):
        if todo.status != "Completed":
            return failed("Todo is not completed")
        return [TodoReactivated(id=cmd.id, reactivated_at=ctx.timestamp)]

    if isinstance(cmd, ArchiveTodo):
        if todo.status == "Archived":
            return failed("Todo already archived")
        return [TodoArchived(id=cmd.id, archived_at=ctx.timestamp)]

    if isinstance(cmd, UpdateTodoText):
        if todo.status == "Archived":
            return failed("Cannot edit archived todo")
        return [TodoTextUpdated(id=cmd.id, text=cmd.text, updated_at=ctx.timestamp)]

    return []


def _put(state: TodoState, todo: Todo) -> TodoState:
    return TodoState(todos={**state.todos, todo.id: todo})


def evolve(state: TodoState, event: Event) -> TodoState:
    if isinstance(event, TodoAdded):
        return _put(state, Todo(
            id=event.id, text=event.text, status="Active", changed_at=event.created_at,
        ))
    if isinstance(event, TodoCompleted):
        return _put(state, replace(
            state.todos[event.id], status="Completed", changed_at=event.completed_at,
        ))
    if isinstance(event, TodoReactivated):
        return _put(state, replace(
            state.todos[event.id], status="Active", changed_at=event.reactivated_at,
        ))
    if isinstance(event, TodoArchived):
        return _put(state, replace(
            state.todos[event.id], status="Archived", changed_at=event.archived_at,
        ))
    if isinstance(event, TodoTextUpdated):
        return _put(state, replace(state.todos[event.id], text=event.text))
    return state


def todo_config(name: str = "Todo", clock: IClock | None = None) -> DeciderConfig:
    clock = clock or WallClock()

    def resolve_context(cmd: Command) -> TodoContext:
        return TodoContext(timestamp=clock.now())

    return DeciderConfig(
        name=name,
        initial_state=TodoState(todos={}),
        decide=decide,
        evolve=evolve,
        resolve_context=resolve_context,
        validator=PydanticCommandValidator(TODO_COMMANDS),
    )


def todos_with_status(state: TodoState, status: TodoStatus) -> list[Todo]:
    return [t for t in state.todos.values() if t.status == status]


def completion_stats(state: TodoState) -> dict[str, int]:
    total = len(state.todos)
    completed = len(todos_with_status(state, "Completed"))
    return {
        "total": total,
        "completed": completed,
        "percentage": 0 if total == 0 else round(completed / total * 100),
    }
