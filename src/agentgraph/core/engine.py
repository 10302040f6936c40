"""Engine — spawns walkers and runs orchestration requests end to end."""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentgraph.core.abilities import AbilityRegistry
from agentgraph.core.decision import DecisionBackend, DecisionGateway
from agentgraph.core.errors import RunCancelled, RunFailure
from agentgraph.core.graph import GraphStore
from agentgraph.core.walker import ReportRecord, Walker

if TYPE_CHECKING:
    from agentgraph.config import EngineConfig

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    records: list[ReportRecord] = field(default_factory=list)
    duration_ms: float = 0.0
    walker_id: str = ""

    def to_list(self) -> list[dict[str, Any]]:
        return [r.to_dict() for r in self.records]

    def summary(self) -> dict[str, Any]:
        by_type: dict[str, int] = {}
        for r in self.records:
            by_type[r.node_type] = by_type.get(r.node_type, 0) + 1
        return {
            "visits": len(self.records),
            "by_node_type": by_type,
            "duration_ms": self.duration_ms,
        }

    def __iter__(self):
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


class Engine:
    """Run orchestration requests over a shared graph.

    Each ``run`` gets its own walker; there is no lock around whole runs, so
    concurrent requests interleave at their await points.
    """

    def __init__(
        self,
        graph: GraphStore,
        registry: AbilityRegistry,
        gateway: DecisionGateway | None = None,
    ) -> None:
        self.graph = graph
        self.registry = registry
        self.gateway = gateway

    @classmethod
    def from_config(
        cls,
        config: "EngineConfig",
        backend: DecisionBackend,
        *,
        graph: GraphStore | None = None,
        registry: AbilityRegistry | None = None,
    ) -> "Engine":
        gateway = DecisionGateway(
            backend,
            retries=config.decision_retries,
            timeout=config.decision_timeout,
            max_steps=config.max_steps,
        )
        return cls(graph or GraphStore(), registry or AbilityRegistry(), gateway)

    def spawn(self, walker_type: str, **attrs: Any) -> Walker:
        return Walker(
            walker_type,
            graph=self.graph,
            registry=self.registry,
            gateway=self.gateway,
            attrs=attrs,
        )

    async def run(self, orchestrator_type: str, utterance: str) -> RunReport:
        """Handle one request. Raises ``RunFailure`` tagged with the failing node."""
        walker = self.spawn(orchestrator_type, utterance=utterance)
        return await self.run_walker(walker)

    async def run_walker(self, walker: Walker) -> RunReport:
        start = time.monotonic()
        root = self.graph.root
        logger.info("Run %s: %s walker spawned at root", walker.walker_id, walker.type_tag)

        try:
            if not await self.registry.fire_start(walker, root):
                walker.enqueue(root.node_id)
            await walker.run()
        except (RunFailure, RunCancelled):
            raise
        except Exception as e:
            logger.error("Run %s failed at root: %s", walker.walker_id, e)
            raise RunFailure(root.type_tag, root.node_id, e) from e

        report = RunReport(
            records=list(walker.records),
            duration_ms=round((time.monotonic() - start) * 1000, 1),
            walker_id=walker.walker_id,
        )
        logger.info("Run %s finished: %d visits", walker.walker_id, len(report))
        return report
