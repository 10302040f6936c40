"""AbilityRegistry — binds (node type, trigger event, walker type) to behavior."""

import inspect
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from agentgraph.core.graph import Node

if TYPE_CHECKING:
    from agentgraph.core.walker import Walker

logger = logging.getLogger(__name__)

ANY = "*"
ENTRY = "entry"
EXIT = "exit"

Ability = Callable[[Node, "Walker"], Any]
StartHook = Callable[["Walker", Node], Any]


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class AbilityRegistry:
    """Lookup table of abilities, filled in when agents are composed.

    Bindings are keyed by ``(node_type, event, walker_type)``. A binding for
    the ``ANY`` walker type is the fallback when no exact match exists.
    Abilities may be plain functions or coroutines.
    """

    def __init__(self) -> None:
        self._abilities: dict[tuple[str, str, str], Ability] = {}
        self._start_hooks: dict[str, StartHook] = {}

    def register(
        self,
        node_type: str,
        fn: Ability,
        *,
        walker_type: str = ANY,
        event: str = ENTRY,
    ) -> Ability:
        if event not in (ENTRY, EXIT):
            raise ValueError(f"Unknown trigger event: {event!r}")
        key = (node_type, event, walker_type)
        if key in self._abilities:
            logger.warning("Replacing %s ability for %s (walker %s)", event, node_type, walker_type)
        self._abilities[key] = fn
        return fn

    def on_entry(self, node_type: str, walker_type: str = ANY) -> Callable[[Ability], Ability]:
        """Decorator form of ``register(..., event="entry")``."""

        def decorator(fn: Ability) -> Ability:
            return self.register(node_type, fn, walker_type=walker_type, event=ENTRY)

        return decorator

    def on_exit(self, node_type: str, walker_type: str = ANY) -> Callable[[Ability], Ability]:
        def decorator(fn: Ability) -> Ability:
            return self.register(node_type, fn, walker_type=walker_type, event=EXIT)

        return decorator

    def on_start(self, walker_type: str) -> Callable[[StartHook], StartHook]:
        """Register the hook a walker of ``walker_type`` runs at the root when spawned."""

        def decorator(fn: StartHook) -> StartHook:
            self._start_hooks[walker_type] = fn
            return fn

        return decorator

    def lookup(self, node_type: str, event: str, walker_type: str) -> Ability | None:
        return self._abilities.get((node_type, event, walker_type)) or self._abilities.get(
            (node_type, event, ANY)
        )

    def start_hook(self, walker_type: str) -> StartHook | None:
        return self._start_hooks.get(walker_type)

    async def fire_entry(self, node: Node, walker: "Walker") -> Any:
        """Run the entry ability for ``node``; no binding means no-op."""
        ability = self.lookup(node.type_tag, ENTRY, walker.type_tag)
        if ability is None:
            logger.debug("No entry ability for %s with walker %s", node.type_tag, walker.type_tag)
            return None
        return await _call(ability, node, walker)

    async def fire_exit(self, node: Node, walker: "Walker") -> None:
        ability = self.lookup(node.type_tag, EXIT, walker.type_tag)
        if ability is not None:
            await _call(ability, node, walker)

    async def fire_start(self, walker: "Walker", root: Node) -> bool:
        """Run the walker's start hook. Returns False if none is registered."""
        hook = self._start_hooks.get(walker.type_tag)
        if hook is None:
            return False
        await _call(hook, walker, root)
        return True

    def __len__(self) -> int:
        return len(self._abilities)
