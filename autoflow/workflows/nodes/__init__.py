"""
Workflow Node Builders

One pure builder per trigger and action kind, each producing a node
descriptor in the workflow engine's document format. Importing this package
registers every builder and checks that no kind is left without one.
"""

from .base import ActionKind, Position, TriggerKind, TRIGGER_POSITION
from .registry import BuilderRegistry, NodeBuilder, builders
from . import actions, triggers  # noqa: F401

builders.verify()

__all__ = [
    "ActionKind",
    "BuilderRegistry",
    "NodeBuilder",
    "Position",
    "TRIGGER_POSITION",
    "TriggerKind",
    "builders",
]
