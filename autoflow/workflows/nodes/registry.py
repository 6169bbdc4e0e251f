"""
Builder Registry

Maps every trigger and action kind to the function that turns its arguments
into a node descriptor. Builders register themselves with a decorator; the
registry refuses to be used until each kind has exactly one builder.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Type

from pydantic import BaseModel

from autoflow.workflows.nodes.base import ActionKind, Position, TriggerKind
from autoflow.workflows.schemas import NodeDescriptor

logger = logging.getLogger(__name__)

BuildFn = Callable[[Optional[str], BaseModel, Position], NodeDescriptor]


@dataclass(frozen=True)
class NodeBuilder:
    kind: Enum
    params_model: Type[BaseModel]
    build: BuildFn
    service_id: Optional[str] = None


class BuilderRegistry:
    def __init__(self):
        self._triggers: Dict[TriggerKind, NodeBuilder] = {}
        self._actions: Dict[ActionKind, NodeBuilder] = {}

    def _register(self, table: Dict, kind: Enum, params_model, service_id):
        def decorator(fn: BuildFn) -> BuildFn:
            if kind in table:
                raise ValueError(f"Builder for '{kind.value}' is already registered")
            table[kind] = NodeBuilder(kind=kind, params_model=params_model, build=fn, service_id=service_id)
            return fn
        return decorator

    def trigger(self, kind: TriggerKind, params_model: Type[BaseModel], service_id: Optional[str] = None):
        return self._register(self._triggers, kind, params_model, service_id)

    def action(self, kind: ActionKind, params_model: Type[BaseModel], service_id: Optional[str] = None):
        return self._register(self._actions, kind, params_model, service_id)

    def verify(self) -> None:
        """Fail fast when a declared kind has no builder."""
        missing = [k.value for k in TriggerKind if k not in self._triggers]
        missing += [k.value for k in ActionKind if k not in self._actions]
        if missing:
            raise RuntimeError(f"No node builder registered for: {', '.join(missing)}")
        logger.debug(
            f"Builder registry ready with {len(self._triggers)} triggers and {len(self._actions)} actions"
        )

    def trigger_builder(self, kind: str) -> Optional[NodeBuilder]:
        try:
            return self._triggers.get(TriggerKind(kind))
        except ValueError:
            return None

    def action_builder(self, kind: str) -> Optional[NodeBuilder]:
        try:
            return self._actions.get(ActionKind(kind))
        except ValueError:
            return None


builders = BuilderRegistry()
