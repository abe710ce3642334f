"""eventfold: in-process event-sourcing runtime.

Commands go in, a pure ``decide`` turns them into events, each event is
folded into new state by ``evolve`` and published to projectors and
reaction units, which may dispatch further commands into other deciders.
"""

from eventfold.core.messages import (
    Command,
    CommandValidationFailed,
    Envelope,
    Event,
    StateChange,
    ValidationIssue,
)
from eventfold.runtime import (
    DeciderConfig,
    DecisionUnit,
    DerivedView,
    EventChannel,
    Projector,
    ProjectorConfig,
    ReactionConfig,
    ReactionUnit,
    System,
    select,
)

__version__ = "0.3.0"

__all__ = [
    "Command",
    "CommandValidationFailed",
    "DeciderConfig",
    "DecisionUnit",
    "DerivedView",
    "Envelope",
    "Event",
    "EventChannel",
    "Projector",
    "ProjectorConfig",
    "ReactionConfig",
    "ReactionUnit",
    "StateChange",
    "System",
    "ValidationIssue",
    "select",
]
