"""Dispatch recipe — decompose an utterance and route subtasks to agent nodes."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from agentgraph.core.abilities import AbilityRegistry
from agentgraph.core.graph import Node
from agentgraph.core.schema import RecordList, record_list
from agentgraph.core.walker import Walker

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

DECOMPOSE_PROMPT = """You are the orchestrator of a team of agents.

## Request
{utterance}

## Agents
{agents}

## Instructions
1. Split the request into independent subtasks, in the order they were asked
2. Copy the user's wording for each subtask into `task`
3. Pick the agent best suited to each subtask as `agent_type`

Return the list of subtasks.
"""


def decomposition_schema(
    labels: list[str],
    hints: Mapping[str, str] | None = None,
) -> RecordList:
    """A list of ``{task, agent_type}`` records with ``agent_type`` from ``labels``."""
    return record_list(
        "Subtask",
        {"task": str, "agent_type": tuple(labels)},
        hints={"agent_type": dict(hints or {})},
    )


def _agents_section(labels: list[str], hints: Mapping[str, str]) -> str:
    return "\n".join(f"- {label}: {hints[label]}" if label in hints else f"- {label}" for label in labels)


def install_dispatcher(
    registry: AbilityRegistry,
    walker_type: str,
    routes: Mapping[str, str],
    *,
    hints: Mapping[str, str] | None = None,
    prompt_template: str = DECOMPOSE_PROMPT,
    edge_type: str | None = None,
    factories: Mapping[str, Callable[[], Mapping[str, Any]]] | None = None,
) -> RecordList:
    """Register a start hook that turns ``walker_type`` into an orchestrator.

    ``routes`` maps each label the backend may choose to the node type that
    handles it. On start the walker decomposes its ``utterance``, makes sure
    the root has one child of each required node type (created with
    ``factories[node_type]`` if given) and enqueues one visit per subtask with
    the subtask text as the walker's ``utterance``.
    """
    labels = list(routes)
    hints = dict(hints or {})
    factories = dict(factories or {})
    schema = decomposition_schema(labels, hints)

    @registry.on_start(walker_type)
    async def dispatch(walker: Walker, root: Node) -> None:
        prompt = walker.format_template(prompt_template, {"agents": _agents_section(labels, hints)})
        subtasks = await walker.decide(prompt, schema)
        logger.info("Decomposed into %d subtask(s)", len(subtasks))

        for sub in subtasks:
            node_type = routes[sub.agent_type]
            child_id = walker.graph.ensure_child(
                root.node_id,
                node_type,
                factories.get(node_type),
                edge_type=edge_type,
            )
            walker.enqueue(child_id, context={"utterance": sub.task, "agent_type": sub.agent_type})

    return schema
