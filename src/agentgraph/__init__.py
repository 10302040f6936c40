"""Graph-based agent orchestration runtime: typed nodes, walkers and tool-calling decisions."""

from agentgraph.config import EngineConfig, load_config
from agentgraph.core.abilities import ANY, AbilityRegistry
from agentgraph.core.decision import DecisionBackend, DecisionGateway
from agentgraph.core.engine import Engine, RunReport
from agentgraph.core.graph import DEFAULT_EDGE, Edge, GraphStore, Node
from agentgraph.core.schema import Choice, Primitive, RecordList, record_list
from agentgraph.core.tools import ToolHandle
from agentgraph.core.walker import ReportRecord, Walker, WalkerState

__all__ = [
    "ANY",
    "DEFAULT_EDGE",
    "AbilityRegistry",
    "Choice",
    "DecisionBackend",
    "DecisionGateway",
    "Edge",
    "Engine",
    "EngineConfig",
    "GraphStore",
    "Node",
    "Primitive",
    "RecordList",
    "ReportRecord",
    "RunReport",
    "ToolHandle",
    "Walker",
    "WalkerState",
    "load_config",
    "record_list",
]
