"""AnthropicBackend — decisions via the Anthropic Messages API and tool use."""

import logging
from collections.abc import Sequence
from typing import Any

import anthropic

from agentgraph.config import DEFAULT_MODEL
from agentgraph.core.decision import DecisionBackend
from agentgraph.core.react import Action, FinalAnswer, Observation, ToolCall, Transcript
from agentgraph.core.schema import DecisionSchema
from agentgraph.core.tools import ToolHandle

logger = logging.getLogger(__name__)

RESPOND_TOOL = "respond"
FINAL_ANSWER_TOOL = "final_answer"


def _value_tool(name: str, description: str, schema: DecisionSchema | None) -> dict[str, Any]:
    value_schema = dict(schema.json_schema()) if schema is not None else {"type": "string"}
    # $ref paths resolve from the top of input_schema
    defs = value_schema.pop("$defs", None)
    if schema is not None:
        value_schema["description"] = schema.describe()
    input_schema: dict[str, Any] = {
        "type": "object",
        "properties": {"value": value_schema},
        "required": ["value"],
    }
    if defs:
        input_schema["$defs"] = defs
    return {"name": name, "description": description, "input_schema": input_schema}


def _tool_spec(handle: ToolHandle) -> dict[str, Any]:
    return {
        "name": handle.name,
        "description": handle.description,
        "input_schema": handle.json_schema(),
    }


def transcript_messages(transcript: Transcript) -> list[dict[str, Any]]:
    """Map a transcript onto alternating ``tool_use``/``tool_result`` messages."""
    messages: list[dict[str, Any]] = [{"role": "user", "content": transcript.prompt}]
    for entry in transcript.entries:
        if isinstance(entry, ToolCall):
            block = {"type": "tool_use", "id": entry.call_id, "name": entry.name, "input": entry.arguments}
            messages.append({"role": "assistant", "content": [block]})
        elif isinstance(entry, FinalAnswer):
            block = {
                "type": "tool_use",
                "id": entry.call_id,
                "name": FINAL_ANSWER_TOOL,
                "input": {"value": entry.value},
            }
            messages.append({"role": "assistant", "content": [block]})
        elif isinstance(entry, Observation):
            block = {
                "type": "tool_result",
                "tool_use_id": entry.call_id,
                "content": entry.content,
                "is_error": entry.is_error,
            }
            messages.append({"role": "user", "content": [block]})
    return messages


class AnthropicBackend(DecisionBackend):
    """Structured decisions from Claude.

    ``generate`` forces a single ``respond`` tool whose input wraps the
    decision schema, so the answer arrives as parsed JSON. ``next_step``
    offers the bound tools plus ``final_answer`` and requires one of them.
    Uses ``AsyncAnthropic`` with lazy client initialization.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        system: str | None = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.system = system
        self._client: anthropic.AsyncAnthropic | None = None

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic()
        return self._client

    async def _create(self, messages: list[dict[str, Any]], tools: list[dict], tool_choice: dict):
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": messages,
            "tools": tools,
            "tool_choice": tool_choice,
        }
        if self.system:
            kwargs["system"] = self.system
        response = await self._get_client().messages.create(**kwargs)
        logger.debug(
            "%s: %d input / %d output tokens",
            response.model,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        return response

    async def generate(
        self,
        prompt: str,
        schema: DecisionSchema,
        *,
        feedback: str | None = None,
    ) -> Any:
        content = prompt if feedback is None else f"{prompt}\n\n{feedback}"
        response = await self._create(
            [{"role": "user", "content": content}],
            [_value_tool(RESPOND_TOOL, "Return the answer.", schema)],
            {"type": "tool", "name": RESPOND_TOOL},
        )
        for block in response.content:
            if block.type == "tool_use":
                return block.input.get("value")
        return "".join(block.text for block in response.content if block.type == "text")

    async def next_step(
        self,
        transcript: Transcript,
        tools: Sequence[ToolHandle],
        schema: DecisionSchema | None,
    ) -> Action:
        specs = [_tool_spec(t) for t in tools]
        specs.append(_value_tool(FINAL_ANSWER_TOOL, "Give the final answer and stop.", schema))
        response = await self._create(transcript_messages(transcript), specs, {"type": "any"})

        for block in response.content:
            if block.type != "tool_use":
                continue
            if block.name == FINAL_ANSWER_TOOL:
                return FinalAnswer(block.input.get("value"), call_id=block.id)
            return ToolCall(block.name, dict(block.input), call_id=block.id)

        text = "".join(block.text for block in response.content if block.type == "text")
        return FinalAnswer(text)
