"""
Workflow Graph Compiler

Turns an abstract {trigger, ordered actions, required services} spec into a
workflow engine document: one node per step laid out left to right, and a
linear chain of main connections from the trigger to the last action.
"""
import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from autoflow.errors import ValidationError
from autoflow.workflows.nodes import TRIGGER_POSITION, BuilderRegistry, NodeBuilder, TriggerKind, builders
from autoflow.workflows.schemas import (
    ConnectionTarget,
    NodeConnections,
    NodeDescriptor,
    WorkflowDocument,
    WorkflowSpec,
)

logger = logging.getLogger(__name__)

X_STEP = 220


def create_connections(nodes: List[NodeDescriptor]) -> Dict[str, NodeConnections]:
    """Connect node i's first main output to node i+1."""
    connections: Dict[str, NodeConnections] = {}
    for current, following in zip(nodes, nodes[1:]):
        connections[current.name] = NodeConnections(
            main=[[ConnectionTarget(node=following.name, type="main", index=0)]]
        )
    return connections


def assign_unique_names(nodes: List[NodeDescriptor]) -> None:
    """
    The engine keys connections by node name, so repeated names get a numeric
    suffix the way the engine's editor does it: Slack, Slack1, Slack2.
    """
    seen: Counter = Counter()
    taken = set()
    for node in nodes:
        base = node.name
        name = base
        while name in taken:
            seen[base] += 1
            name = f"{base}{seen[base]}"
        taken.add(name)
        node.name = name


def find_unsupported_actions(
    spec: WorkflowSpec, registry: BuilderRegistry = builders
) -> List[Tuple[int, str]]:
    """(index, kind) of every action the compiler would skip."""
    return [
        (index, action.kind)
        for index, action in enumerate(spec.actions)
        if registry.action_builder(action.kind) is None
    ]


class WorkflowCompiler:
    def __init__(self, registry: BuilderRegistry = builders):
        self.registry = registry

    @staticmethod
    def _parse_params(builder: NodeBuilder, arguments: Dict, step: str) -> BaseModel:
        try:
            return builder.params_model.model_validate(arguments)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid arguments for {step}",
                detail={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _plan(self, spec: WorkflowSpec) -> List[Tuple[NodeBuilder, BaseModel]]:
        """
        Resolve a builder and parsed arguments for every step before any node
        is built, so bad input fails the whole compile instead of half of it.
        """
        trigger_builder = self.registry.trigger_builder(spec.trigger.kind)
        if trigger_builder is None:
            logger.warning(
                f"Unknown trigger kind '{spec.trigger.kind}', falling back to manual trigger"
            )
            trigger_builder = self.registry.trigger_builder(TriggerKind.MANUAL.value)
        trigger_args = spec.trigger.model_dump(exclude={"kind"}, exclude_none=True)
        plan = [(trigger_builder, self._parse_params(trigger_builder, trigger_args, "trigger"))]

        for index, action in enumerate(spec.actions):
            builder = self.registry.action_builder(action.kind)
            if builder is None:
                # Unknown kinds are dropped without a node; callers that want
                # a hard failure check find_unsupported_actions() first.
                logger.warning(f"Skipping action {index}: no builder for kind '{action.kind}'")
                continue
            plan.append((builder, self._parse_params(builder, action.arguments(), f"action {index}")))
        return plan

    def compile(
        self, spec: WorkflowSpec, credentials: Optional[Dict[str, str]] = None
    ) -> WorkflowDocument:
        """
        Args:
            spec: The abstract workflow.
            credentials: serviceId -> credentialId for the requesting user.

        Returns:
            A new, inactive WorkflowDocument.
        """
        credentials = credentials or {}
        x, y = TRIGGER_POSITION

        nodes: List[NodeDescriptor] = []
        for builder, params in self._plan(spec):
            credential_id = credentials.get(builder.service_id) if builder.service_id else None
            nodes.append(builder.build(credential_id, params, (x, y)))
            x += X_STEP

        assign_unique_names(nodes)

        document = WorkflowDocument(
            name=spec.name,
            active=False,
            nodes=nodes,
            connections=create_connections(nodes),
        )
        logger.info(
            f"Compiled workflow '{spec.name}' with {len(nodes)} nodes "
            f"({len(spec.actions) + 1 - len(nodes)} skipped)"
        )
        return document


compiler = WorkflowCompiler()


def compile_workflow(spec: WorkflowSpec, credentials: Optional[Dict[str, str]] = None) -> WorkflowDocument:
    return compiler.compile(spec, credentials)
