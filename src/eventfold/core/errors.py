"""Custom exception hierarchy for the event-sourcing runtime."""


class EventfoldError(Exception):
    """Base exception for all runtime errors."""


# --- Configuration ---
class ConfigError(EventfoldError):
    """Invalid or missing configuration."""


# --- Wiring ---
class WiringError(EventfoldError):
    """A system topology could not be assembled."""


class DuplicateUnitError(WiringError):
    """A decision unit with the same name is already registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Decider with name {name!r} already exists")


class UnknownUnitError(WiringError):
    """No decision unit is registered under the requested name."""


# --- Dispatch ---
class DispatchError(EventfoldError):
    """A command could not be fully processed.

    Never raised across ``dispatch``; instances are recorded in the trace
    log so observers can tell which phase failed and for which unit.
    """

    phase = "dispatch"

    def __init__(self, unit: str, command_type: str, cause: BaseException):
        self.unit = unit
        self.command_type = command_type
        self.cause = cause
        super().__init__(
            f"[{unit}] {self.phase} failed for {command_type}: {cause!r}"
        )


class ValidatorError(DispatchError):
    """The configured validator raised instead of returning a result."""

    phase = "validate"


class ContextResolutionError(DispatchError):
    """The context resolver raised. Re-dispatch to retry."""

    phase = "context"


class DecisionError(DispatchError):
    """The decide function raised."""

    phase = "decide"


class EvolutionError(DispatchError):
    """An event produced by the unit itself could not be folded."""

    phase = "evolve"


class PublishError(DispatchError):
    """A raw listener on the unit channel raised during publication."""

    phase = "publish"


# --- Cascades ---
class CascadeDepthExceeded(EventfoldError):
    """A reaction cascade nested deeper than the configured limit."""

    def __init__(self, target: str, command_type: str, depth: int, limit: int):
        self.target = target
        self.command_type = command_type
        self.depth = depth
        self.limit = limit
        super().__init__(
            f"Cascade depth {depth} exceeds limit {limit} "
            f"dispatching {command_type} to {target!r}"
        )


# --- Persistence ---
class PersistenceError(EventfoldError):
    """A state store operation failed."""
