"""ReAct loop — bounded interleaving of reasoning steps and tool calls.

Each iteration asks the backend for one action given the running transcript:
either a ``ToolCall`` naming a bound tool, or a ``FinalAnswer``. Tool-name,
argument and tool-execution errors are appended as error observations so the
model can correct itself; only running out of ``max_steps`` ends the loop
without an answer.
"""

import json
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from agentgraph.core.errors import RunCancelled, StepBudgetExceeded, ToolCallError, UnknownTool
from agentgraph.core.schema import DecisionSchema, SchemaMismatch
from agentgraph.core.tools import ToolHandle

if TYPE_CHECKING:
    from agentgraph.core.decision import DecisionGateway

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 8


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


@dataclass
class ToolCall:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    call_id: str = field(default_factory=_call_id)


@dataclass
class FinalAnswer:
    value: Any
    call_id: str = field(default_factory=_call_id)


@dataclass
class Observation:
    call_id: str
    content: str
    is_error: bool = False


Action = ToolCall | FinalAnswer
Entry = ToolCall | FinalAnswer | Observation


@dataclass
class Transcript:
    """The prompt plus every action and observation so far, in order."""

    prompt: str
    entries: list[Entry] = field(default_factory=list)

    def append(self, entry: Entry) -> None:
        self.entries.append(entry)

    @property
    def steps(self) -> int:
        return sum(1 for e in self.entries if not isinstance(e, Observation))

    def render(self) -> str:
        """Plain-text rendering for backends without native tool calling."""
        lines = [self.prompt]
        for e in self.entries:
            if isinstance(e, ToolCall):
                lines.append(f"Action: {e.name}({json.dumps(e.arguments)})")
            elif isinstance(e, FinalAnswer):
                lines.append(f"Final answer: {e.value}")
            else:
                prefix = "Error" if e.is_error else "Observation"
                lines.append(f"{prefix}: {e.content}")
        return "\n".join(lines)


@dataclass
class ReActResult:
    answer: Any
    steps: int
    transcript: Transcript


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


class ReActLoop:
    """Run Reasoning → ToolCall → ... → Final, at most ``max_steps`` reasoning steps."""

    def __init__(self, gateway: "DecisionGateway", max_steps: int = DEFAULT_MAX_STEPS) -> None:
        if max_steps < 1:
            raise ValueError("max_steps must be at least 1")
        self.gateway = gateway
        self.max_steps = max_steps

    async def run(
        self,
        prompt: str,
        tools: Sequence[ToolHandle],
        schema: DecisionSchema | None = None,
        should_cancel: Callable[[], bool] | None = None,
    ) -> ReActResult:
        by_name = {t.name: t for t in tools}
        transcript = Transcript(prompt)
        partial: Any = None

        for step in range(1, self.max_steps + 1):
            if should_cancel is not None and should_cancel():
                raise RunCancelled(f"Cancelled before reasoning step {step}")

            action = await self.gateway.next_step(transcript, list(tools), schema)
            transcript.append(action)

            if isinstance(action, FinalAnswer):
                if schema is None:
                    return ReActResult(action.value, step, transcript)
                try:
                    answer = schema.validate(action.value)
                except SchemaMismatch as e:
                    logger.warning("Step %d: final answer rejected: %s", step, e)
                    transcript.append(
                        Observation(action.call_id, f"Final answer rejected: {e}", is_error=True)
                    )
                    continue
                return ReActResult(answer, step, transcript)

            handle = by_name.get(action.name)
            try:
                if handle is None:
                    raise UnknownTool(action.name, sorted(by_name))
                result = await handle.invoke(action.arguments)
            except ToolCallError as e:
                logger.warning("Step %d: %s: %s", step, e.kind, e)
                transcript.append(Observation(action.call_id, str(e), is_error=True))
                continue

            content = _to_text(result)
            logger.debug("Step %d: %s -> %s", step, action.name, content)
            transcript.append(Observation(action.call_id, content))
            partial = result

        logger.warning("Step budget of %d exhausted", self.max_steps)
        raise StepBudgetExceeded(self.max_steps, partial=partial)
