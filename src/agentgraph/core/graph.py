"""GraphStore — arena of typed nodes joined by typed, directed edges."""

import logging
import threading
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from agentgraph.core.attributes import Attributes
from agentgraph.core.errors import InvalidAttributes, UnknownNode

logger = logging.getLogger(__name__)

ROOT_ID = "root"
ROOT_TYPE = "root"
DEFAULT_EDGE = "edge"


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    edge_type: str = DEFAULT_EDGE


class Node:
    """A typed unit of graph state.

    The type tag is fixed at creation. Attributes live in an ``Attributes``
    store, so abilities and tools mutate them through ``get``/``set``/``update``.
    """

    __slots__ = ("node_id", "_type_tag", "attrs")

    def __init__(self, node_id: str, type_tag: str, attrs: Mapping[str, Any] | None = None) -> None:
        self.node_id = node_id
        self._type_tag = type_tag
        self.attrs = Attributes(attrs)

    @property
    def type_tag(self) -> str:
        return self._type_tag

    def get(self, key: str, default: Any = None) -> Any:
        return self.attrs.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.attrs.set(key, value)

    def update(self, values: Mapping[str, Any] | None = None, /, **kwargs: Any) -> None:
        self.attrs.update(values, **kwargs)

    def __repr__(self) -> str:
        return f"Node({self._type_tag!r}, {self.node_id!r})"


class GraphStore:
    """Owns every node and edge, plus the root.

    Nodes are keyed by id and edges are adjacency records of ids, so cycles
    and aliasing need no special handling. Structural changes take a single
    re-entrant lock; ``ensure_child`` additionally serializes per parent so
    its read-then-create step is atomic.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._out: dict[str, list[Edge]] = {}
        self._in: dict[str, list[Edge]] = {}
        self._types: dict[str, type[BaseModel]] = {}
        self._lock = threading.RLock()
        self._parent_locks: dict[str, threading.RLock] = {}
        self._register(Node(ROOT_ID, ROOT_TYPE))

    # -- type definitions ----------------------------------------------------

    def define_type(self, type_tag: str, attributes: type[BaseModel]) -> None:
        """Declare a pydantic model that attributes of ``type_tag`` must satisfy."""
        with self._lock:
            self._types[type_tag] = attributes

    def _check_attrs(self, type_tag: str, attrs: Mapping[str, Any]) -> dict[str, Any]:
        model = self._types.get(type_tag)
        if model is None:
            return dict(attrs)
        try:
            return model.model_validate(dict(attrs)).model_dump()
        except ValidationError as e:
            raise InvalidAttributes(f"Invalid attributes for {type_tag!r}: {e}") from e

    # -- nodes ----------------------------------------------------------------

    @property
    def root(self) -> Node:
        return self._nodes[ROOT_ID]

    def _register(self, node: Node) -> None:
        self._nodes[node.node_id] = node
        self._out[node.node_id] = []
        self._in[node.node_id] = []

    def create_node(self, type_tag: str, attrs: Mapping[str, Any] | None = None) -> str:
        """Allocate and register a node. No duplicate detection at this layer."""
        checked = self._check_attrs(type_tag, attrs or {})
        node = Node(uuid.uuid4().hex, type_tag, checked)
        with self._lock:
            self._register(node)
        logger.debug("Created %r", node)
        return node.node_id

    def get_node(self, node_id: str) -> Node:
        with self._lock:
            try:
                return self._nodes[node_id]
            except KeyError:
                raise UnknownNode(node_id) from None

    def has_node(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._nodes

    # -- edges ----------------------------------------------------------------

    def connect(self, source_id: str, target_id: str, edge_type: str = DEFAULT_EDGE) -> Edge:
        """Append a directed edge. Calling twice creates two parallel edges."""
        with self._lock:
            for node_id in (source_id, target_id):
                if node_id not in self._nodes:
                    raise UnknownNode(node_id)
            edge = Edge(source_id, target_id, edge_type)
            self._out[source_id].append(edge)
            self._in[target_id].append(edge)
        logger.debug("Connected %s -[%s]-> %s", source_id, edge_type, target_id)
        return edge

    def edges_from(self, node_id: str) -> list[Edge]:
        with self._lock:
            if node_id not in self._nodes:
                raise UnknownNode(node_id)
            return list(self._out[node_id])

    def edges_to(self, node_id: str) -> list[Edge]:
        with self._lock:
            if node_id not in self._nodes:
                raise UnknownNode(node_id)
            return list(self._in[node_id])

    def children_of_type(
        self,
        node_id: str,
        edge_type: str | None = None,
        node_type: str | None = None,
    ) -> list[str]:
        """Targets of outgoing edges matching both filters, in edge-insertion order."""
        with self._lock:
            return [
                e.target
                for e in self.edges_from(node_id)
                if (edge_type is None or e.edge_type == edge_type)
                and (node_type is None or self._nodes[e.target].type_tag == node_type)
            ]

    def parents_of_type(
        self,
        node_id: str,
        edge_type: str | None = None,
        node_type: str | None = None,
    ) -> list[str]:
        with self._lock:
            return [
                e.source
                for e in self.edges_to(node_id)
                if (edge_type is None or e.edge_type == edge_type)
                and (node_type is None or self._nodes[e.source].type_tag == node_type)
            ]

    def ensure_child(
        self,
        node_id: str,
        node_type: str,
        factory: Callable[[], Mapping[str, Any]] | None = None,
        edge_type: str | None = None,
    ) -> str:
        """Return the first ``node_type`` child of ``node_id``, creating it if absent.

        Any outgoing edge counts unless ``edge_type`` is given; a new child is
        connected with ``edge_type`` or ``DEFAULT_EDGE``. ``factory`` supplies
        the new node's attributes and runs under the parent's lock. Concurrent
        callers with the same parent are serialized, so at most one child is
        created.
        """
        with self._lock:
            if node_id not in self._nodes:
                raise UnknownNode(node_id)
            parent_lock = self._parent_locks.setdefault(node_id, threading.RLock())

        with parent_lock:
            existing = self.children_of_type(node_id, edge_type=edge_type, node_type=node_type)
            if existing:
                return existing[0]
            child_id = self.create_node(node_type, factory() if factory else None)
            self.connect(node_id, child_id, edge_type or DEFAULT_EDGE)
            logger.info("Created %s child %s under %s", node_type, child_id, node_id)
            return child_id

    # -- misc -----------------------------------------------------------------

    @property
    def node_ids(self) -> list[str]:
        with self._lock:
            return list(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self._nodes

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __repr__(self) -> str:
        with self._lock:
            edge_count = sum(len(edges) for edges in self._out.values())
        return f"GraphStore(nodes={len(self)}, edges={edge_count})"
