"""Error taxonomy for graph, decision, tool-call and walker failures."""

from typing import Any


class AgentGraphError(Exception):
    """Base class for all runtime errors."""

    kind = "error"


# ---------------------------------------------------------------------------
# Graph store
# ---------------------------------------------------------------------------


class UnknownNode(AgentGraphError, KeyError):
    """Raised when a node id is not registered in the graph store."""

    kind = "unknown_node"

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Unknown node: {node_id!r}")
        self.node_id = node_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidAttributes(AgentGraphError, ValueError):
    """Raised when node attributes fail the declared attribute model."""

    kind = "invalid_attributes"


# ---------------------------------------------------------------------------
# Decision gateway
# ---------------------------------------------------------------------------


class DecisionError(AgentGraphError):
    """Base class for failures of a single decision call."""

    kind = "decision_error"


class SchemaViolation(DecisionError):
    """Backend output still failed its schema after the retry budget."""

    kind = "schema_violation"

    def __init__(self, message: str, *, raw: Any = None, attempts: int = 0) -> None:
        super().__init__(message)
        self.raw = raw
        self.attempts = attempts


class DecisionTimeout(DecisionError):
    """A backend call did not finish within the configured timeout."""

    kind = "timeout"


class StepBudgetExceeded(DecisionError):
    """The tool-calling loop used up ``max_steps`` without a final answer."""

    kind = "step_budget_exceeded"

    def __init__(self, max_steps: int, *, partial: Any = None) -> None:
        super().__init__(f"No final answer after {max_steps} steps")
        self.max_steps = max_steps
        self.partial = partial


# ---------------------------------------------------------------------------
# Tool calls (recoverable: fed back to the model as observations)
# ---------------------------------------------------------------------------


class ToolCallError(AgentGraphError):
    kind = "tool_call_error"


class UnknownTool(ToolCallError):
    kind = "unknown_tool"

    def __init__(self, name: str, available: list[str]) -> None:
        super().__init__(f"Unknown tool {name!r}. Available tools: {', '.join(available) or '(none)'}")
        self.name = name
        self.available = available


class ArgumentSchemaViolation(ToolCallError):
    kind = "argument_schema_violation"


class ToolExecutionError(ToolCallError):
    kind = "tool_execution_error"


# ---------------------------------------------------------------------------
# Walker runs
# ---------------------------------------------------------------------------


class WalkerError(AgentGraphError):
    kind = "walker_error"


class RunFailure(WalkerError):
    """A walker run aborted because an ability (or start hook) raised.

    Tagged with the type and id of the node being visited and the ``kind``
    of the underlying failure.
    """

    def __init__(self, node_type: str, node_id: str, cause: BaseException) -> None:
        self.node_type = node_type
        self.node_id = node_id
        self.cause = cause
        self.failure_kind = getattr(cause, "kind", type(cause).__name__)
        super().__init__(f"{self.failure_kind} at {node_type}({node_id}): {cause}")

    @property
    def kind(self) -> str:  # type: ignore[override]
        return self.failure_kind


class RunCancelled(WalkerError):
    kind = "cancelled"
