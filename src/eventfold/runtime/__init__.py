"""Runtime layer: channels, deciders, projectors, reactions and the system
that wires them into one causal graph.
"""

from eventfold.runtime.channel import EventChannel, Listener, Unsubscribe
from eventfold.runtime.decider import DeciderConfig, DecisionUnit
from eventfold.runtime.projector import Projector, ProjectorConfig
from eventfold.runtime.reaction import ReactionConfig, ReactionUnit
from eventfold.runtime.system import System
from eventfold.runtime.views import DerivedView, select

__all__ = [
    "DeciderConfig",
    "DecisionUnit",
    "DerivedView",
    "EventChannel",
    "Listener",
    "Projector",
    "ProjectorConfig",
    "ReactionConfig",
    "ReactionUnit",
    "System",
    "Unsubscribe",
    "select",
]
