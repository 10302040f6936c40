"""ToolHandle — a schema-described function bound to one node."""

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, get_type_hints

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, create_model

from agentgraph.core.errors import ArgumentSchemaViolation, ToolExecutionError
from agentgraph.core.graph import Node

logger = logging.getLogger(__name__)


class ToolHandle:
    """Expose ``fn`` to the decision backend, bound to ``node``.

    The function's first parameter receives the bound node and is hidden from
    the model. Remaining parameters form the argument schema (their
    annotations and defaults); the return annotation forms the return schema.
    The first paragraph of the docstring becomes the tool description.

        def add_task(here: Node, title: str, due: str | None = None) -> str:
            \"\"\"Record a task on the calendar.\"\"\"
            ...

        handle = ToolHandle(add_task, node)
    """

    def __init__(
        self,
        fn: Callable[..., Any],
        node: Node,
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        self.fn = fn
        self.node = node
        self.name = name or fn.__name__
        doc = inspect.getdoc(fn) or ""
        self.description = description or doc.split("\n\n")[0].strip() or self.name
        self.args_model = self._build_args_model(fn)
        hints = get_type_hints(fn)
        self._returns = TypeAdapter(hints.get("return", Any))

    def _build_args_model(self, fn: Callable[..., Any]) -> type[BaseModel]:
        params = list(inspect.signature(fn).parameters.values())
        if not params:
            raise TypeError(f"Tool {self.name!r} must accept the bound node as its first parameter")
        hints = get_type_hints(fn)
        fields: dict[str, Any] = {}
        for param in params[1:]:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                raise TypeError(f"Tool {self.name!r} cannot take *args/**kwargs")
            annotation = hints.get(param.name, Any)
            default = ... if param.default is param.empty else param.default
            fields[param.name] = (annotation, default)
        return create_model(
            f"{self.name}_arguments",
            __config__=ConfigDict(extra="forbid"),
            **fields,
        )

    def json_schema(self) -> dict[str, Any]:
        """JSON schema of the arguments, as handed to the backend."""
        schema = self.args_model.model_json_schema()
        schema.pop("title", None)
        return schema

    def return_schema(self) -> dict[str, Any]:
        return self._returns.json_schema()

    def validate_arguments(self, arguments: Mapping[str, Any] | None) -> dict[str, Any]:
        try:
            parsed = self.args_model.model_validate(dict(arguments or {}))
        except ValidationError as e:
            raise ArgumentSchemaViolation(f"Invalid arguments for {self.name!r}: {e}") from e
        return {field: getattr(parsed, field) for field in self.args_model.model_fields}

    async def invoke(self, arguments: Mapping[str, Any] | None) -> Any:
        """Validate ``arguments``, run the tool and return its JSON-ready result.

        Raises ``ArgumentSchemaViolation`` for bad arguments and
        ``ToolExecutionError`` if the function itself raises.
        """
        kwargs = self.validate_arguments(arguments)
        logger.debug("Invoking tool %s on %r with %s", self.name, self.node, kwargs)
        try:
            result = self.fn(self.node, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return self._returns.dump_python(result, mode="json")
        except Exception as e:
            raise ToolExecutionError(f"Tool {self.name!r} failed: {e}") from e

    def __repr__(self) -> str:
        return f"ToolHandle({self.name!r}, node={self.node.node_id!r})"


def bind_tools(functions: Iterable[Callable[..., Any]], node: Node) -> list[ToolHandle]:
    """Bind each function to ``node``."""
    return [f if isinstance(f, ToolHandle) else ToolHandle(f, node) for f in functions]
