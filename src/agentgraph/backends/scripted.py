"""ScriptedBackend — replays a fixed sequence of decisions."""

from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from agentgraph.core.decision import DecisionBackend
from agentgraph.core.react import Action, FinalAnswer, ToolCall, Transcript
from agentgraph.core.schema import DecisionSchema
from agentgraph.core.tools import ToolHandle


def step_from_mapping(data: Mapping[str, Any]) -> Action:
    """``{"tool": name, "arguments": {...}}`` or ``{"final": value}``."""
    if "final" in data:
        return FinalAnswer(data["final"])
    if "tool" in data:
        return ToolCall(data["tool"], dict(data.get("arguments") or {}))
    raise ValueError(f"Scripted step needs 'tool' or 'final': {dict(data)!r}")


class ScriptedBackend(DecisionBackend):
    """Deterministic backend for tests and offline runs.

    ``responses`` feed ``generate`` in order; ``steps`` feed ``next_step``.
    Steps may be ``ToolCall``/``FinalAnswer`` objects or mappings accepted by
    ``step_from_mapping``. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        responses: Iterable[Any] = (),
        steps: Iterable[Action | Mapping[str, Any]] = (),
    ) -> None:
        self.responses: deque[Any] = deque(responses)
        self.steps: deque[Action] = deque(
            s if isinstance(s, (ToolCall, FinalAnswer)) else step_from_mapping(s) for s in steps
        )
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        prompt: str,
        schema: DecisionSchema,
        *,
        feedback: str | None = None,
    ) -> Any:
        self.calls.append({"method": "generate", "prompt": prompt, "feedback": feedback})
        if not self.responses:
            raise LookupError("ScriptedBackend has no responses left")
        return self.responses.popleft()

    async def next_step(
        self,
        transcript: Transcript,
        tools: Sequence[ToolHandle],
        schema: DecisionSchema | None,
    ) -> Action:
        self.calls.append(
            {
                "method": "next_step",
                "prompt": transcript.prompt,
                "tools": [t.name for t in tools],
                "entries": len(transcript.entries),
            }
        )
        if not self.steps:
            raise LookupError("ScriptedBackend has no steps left")
        return self.steps.popleft()
