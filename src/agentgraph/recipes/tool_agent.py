"""Tool agent recipe — abilities that answer by calling tools bound to their node."""

from collections.abc import Callable, Sequence
from typing import Any

from agentgraph.core.graph import Node
from agentgraph.core.schema import DecisionSchema
from agentgraph.core.tools import bind_tools
from agentgraph.core.walker import Walker


def tool_ability(
    prompt_template: str,
    tools: Sequence[Callable[..., Any]],
    schema: DecisionSchema | None = None,
) -> Callable[[Node, Walker], Any]:
    """Build an entry ability that runs the tool-calling loop.

    The prompt is formatted from the node's attributes, then the walker's
    (walker values win), so ``{utterance}`` refers to the current subtask.
    Each function in ``tools`` is bound to the visited node.
    """

    async def ability(here: Node, walker: Walker) -> Any:
        prompt = here.attrs.format_template(prompt_template, walker.attrs)
        return await walker.decide(prompt, schema, bind_tools(tools, here))

    return ability


def decision_ability(
    prompt_template: str,
    schema: DecisionSchema | None = None,
) -> Callable[[Node, Walker], Any]:
    """Build an entry ability that answers with a single structured decision."""

    async def ability(here: Node, walker: Walker) -> Any:
        prompt = here.attrs.format_template(prompt_template, walker.attrs)
        return await walker.decide(prompt, schema)

    return ability
