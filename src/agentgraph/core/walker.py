"""Walker — a transient execution context that traverses the graph."""

import logging
import uuid
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any

from agentgraph.core.abilities import AbilityRegistry
from agentgraph.core.attributes import Attributes
from agentgraph.core.decision import DecisionGateway
from agentgraph.core.errors import RunCancelled, RunFailure
from agentgraph.core.graph import GraphStore
from agentgraph.core.schema import DecisionSchema
from agentgraph.core.tools import ToolHandle

logger = logging.getLogger(__name__)


class WalkerState(Enum):
    QUEUED = "queued"
    VISITING = "visiting"
    DRAINED = "drained"


@dataclass
class ReportRecord:
    utterance: Any
    response: Any
    node_type: str
    node_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"utterance": self.utterance, "response": self.response, "node_type": self.node_type}


@dataclass
class _Visit:
    node_id: str
    context: Mapping[str, Any] | None = None


class Walker:
    """Owns a FIFO queue of node visits and fires abilities on arrival.

    ``visit`` called from inside an ability is reentrant: the nodes are
    visited in a held sub-queue that drains completely before ``visit``
    returns, so the ability's remaining statements see their effects.
    Called anywhere else, ``visit`` (like ``enqueue``) appends to the main
    queue. Any exception out of an ability aborts the whole run as a
    ``RunFailure`` tagged with the node being visited.
    """

    def __init__(
        self,
        type_tag: str,
        *,
        graph: GraphStore,
        registry: AbilityRegistry,
        gateway: DecisionGateway | None = None,
        attrs: Mapping[str, Any] | None = None,
    ) -> None:
        self.walker_id = uuid.uuid4().hex
        self.type_tag = type_tag
        self.graph = graph
        self.registry = registry
        self.gateway = gateway
        self._attrs = Attributes(attrs)
        self._queue: deque[_Visit] = deque()
        self._depth = 0
        self._cancelled = False
        self.state = WalkerState.QUEUED
        self.records: list[ReportRecord] = []

    @property
    def attrs(self) -> Mapping[str, Any]:
        """Read-only snapshot of the walker's attributes."""
        return MappingProxyType(self._attrs.snapshot())

    def get(self, key: str, default: Any = None) -> Any:
        return self._attrs.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._attrs.set(key, value)

    def format_template(self, template: str, extra: Mapping[str, Any] | None = None) -> str:
        return self._attrs.format_template(template, extra)

    # -- queueing -------------------------------------------------------------

    @property
    def pending(self) -> list[str]:
        return [v.node_id for v in self._queue]

    def enqueue(self, *node_ids: str, context: Mapping[str, Any] | None = None) -> None:
        """Append ``node_ids`` to the tail of the queue, in order, without dedupe."""
        for node_id in node_ids:
            self._queue.append(_Visit(node_id, dict(context) if context else None))

    async def visit(self, *node_ids: str, context: Mapping[str, Any] | None = None) -> None:
        if self._depth == 0:
            self.enqueue(*node_ids, context=context)
            return
        held = deque(_Visit(n, dict(context) if context else None) for n in node_ids)
        logger.debug("Nested visit of %d node(s) at depth %d", len(held), self._depth)
        await self._drain(held)

    # -- cancellation ---------------------------------------------------------

    def cancel(self) -> None:
        """Stop before the next visit or reasoning step. Applied mutations stay."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _check_cancelled(self) -> None:
        if self._cancelled:
            raise RunCancelled(f"Walker {self.walker_id} cancelled")

    # -- running --------------------------------------------------------------

    async def run(self) -> list[ReportRecord]:
        """Drain the queue. Returns the report records in visitation order."""
        try:
            await self._drain(self._queue)
        finally:
            self.state = WalkerState.DRAINED
        return self.records

    async def _drain(self, queue: deque[_Visit]) -> None:
        while queue:
            self._check_cancelled()
            await self._visit_one(queue.popleft())

    async def _visit_one(self, visit: _Visit) -> None:
        node = self.graph.get_node(visit.node_id)
        if visit.context:
            self._attrs.update(visit.context)

        record = ReportRecord(self.get("utterance"), None, node.type_tag, node.node_id)
        self.records.append(record)
        logger.info("Visiting %r with %s walker", node, self.type_tag)

        self._depth += 1
        self.state = WalkerState.VISITING
        try:
            record.response = await self.registry.fire_entry(node, self)
            await self.registry.fire_exit(node, self)
        except (RunFailure, RunCancelled):
            raise
        except Exception as e:
            logger.error("Ability failed on %r: %s", node, e)
            raise RunFailure(node.type_tag, node.node_id, e) from e
        finally:
            self._depth -= 1
            if self._depth == 0:
                self.state = WalkerState.QUEUED

    # -- decisions ------------------------------------------------------------

    async def decide(
        self,
        prompt: str,
        schema: DecisionSchema | None = None,
        tools: Sequence[ToolHandle] | None = None,
    ) -> Any:
        """Ask the gateway for a decision, honouring this walker's cancellation."""
        if self.gateway is None:
            raise RuntimeError(f"Walker {self.type_tag!r} has no decision gateway")
        self._check_cancelled()
        return await self.gateway.decide(prompt, schema, tools, should_cancel=lambda: self._cancelled)

    def __repr__(self) -> str:
        return f"Walker({self.type_tag!r}, state={self.state.value}, pending={len(self._queue)})"
