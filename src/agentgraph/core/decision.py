"""Structured decision gateway — the boundary to the reasoning backend."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from agentgraph.core.errors import DecisionTimeout, SchemaViolation
from agentgraph.core.react import DEFAULT_MAX_STEPS, Action, ReActLoop, Transcript
from agentgraph.core.schema import DecisionSchema, Primitive, SchemaMismatch
from agentgraph.core.tools import ToolHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DecisionBackend(ABC):
    """A reasoning backend able to produce structured output and pick tools."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        schema: DecisionSchema,
        *,
        feedback: str | None = None,
    ) -> Any:
        """Return a raw value meant to fit ``schema``.

        ``feedback`` describes why the previous attempt was rejected.
        """

    @abstractmethod
    async def next_step(
        self,
        transcript: Transcript,
        tools: Sequence[ToolHandle],
        schema: DecisionSchema | None,
    ) -> Action:
        """Return the next ``ToolCall`` or a ``FinalAnswer``."""


class DecisionGateway:
    """Validate backend output against decision schemas.

    ``decide`` without tools generates and validates, retrying up to
    ``retries`` extra times with the validation errors as feedback, then
    raises ``SchemaViolation``. With tools it runs the ReAct loop. Every
    backend call is bounded by ``timeout`` seconds when set.
    """

    def __init__(
        self,
        backend: DecisionBackend,
        *,
        retries: int = 1,
        timeout: float | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> None:
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.backend = backend
        self.retries = retries
        self.timeout = timeout
        self.max_steps = max_steps

    async def decide(
        self,
        prompt: str,
        schema: DecisionSchema | None = None,
        tools: Sequence[ToolHandle] | None = None,
        *,
        should_cancel: Callable[[], bool] | None = None,
    ) -> Any:
        if tools:
            loop = ReActLoop(self, max_steps=self.max_steps)
            result = await loop.run(prompt, tools, schema, should_cancel=should_cancel)
            logger.info("Tool loop finished in %d steps", result.steps)
            return result.answer
        return await self.generate(prompt, schema or Primitive(str))

    async def generate(self, prompt: str, schema: DecisionSchema) -> Any:
        feedback: str | None = None
        raw: Any = None
        attempts = self.retries + 1
        for attempt in range(1, attempts + 1):
            raw = await self._bounded(self.backend.generate(prompt, schema, feedback=feedback))
            try:
                return schema.validate(raw)
            except SchemaMismatch as e:
                logger.warning("Decision attempt %d/%d rejected: %s", attempt, attempts, e)
                feedback = (
                    f"The previous answer was invalid.\n\nAnswer:\n{raw!r}\n\n"
                    f"Issues:\n- " + "\n- ".join(e.errors) + "\n\n"
                    f"Return a corrected answer matching:\n{schema.describe()}"
                )
        raise SchemaViolation(
            f"Output did not match {schema!r} after {attempts} attempts",
            raw=raw,
            attempts=attempts,
        )

    async def next_step(
        self,
        transcript: Transcript,
        tools: Sequence[ToolHandle],
        schema: DecisionSchema | None,
    ) -> Action:
        return await self._bounded(self.backend.next_step(transcript, tools, schema))

    async def _bounded(self, call: Awaitable[T]) -> T:
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except TimeoutError:
            raise DecisionTimeout(f"Decision call timed out after {self.timeout}s") from None
