"""Decision backends."""

from agentgraph.backends.anthropic import AnthropicBackend
from agentgraph.backends.scripted import ScriptedBackend

__all__ = ["AnthropicBackend", "ScriptedBackend"]
