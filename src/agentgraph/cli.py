"""CLI entry point for agentgraph."""

import argparse
import asyncio
import importlib
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from agentgraph.backends.anthropic import AnthropicBackend
from agentgraph.backends.scripted import ScriptedBackend
from agentgraph.config import EngineConfig, load_config
from agentgraph.core.abilities import AbilityRegistry
from agentgraph.core.decision import DecisionBackend
from agentgraph.core.engine import Engine
from agentgraph.core.errors import RunCancelled, RunFailure
from agentgraph.core.graph import GraphStore


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentgraph",
        description="Graph-based agent orchestration runtime",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run one utterance through an orchestrator walker")
    run.add_argument("utterance", help="The request to orchestrate")
    run.add_argument(
        "--agents",
        required=True,
        help="Agent definitions as 'module:function'; called with (registry, graph)",
    )
    run.add_argument("--orchestrator", default="orchestrator", help="Orchestrator walker type")
    run.add_argument("--config", default=None, help="Path to a YAML engine config")
    run.add_argument("--max-steps", type=int, default=None, help="Tool-calling step limit")
    run.add_argument("--model", default=None, help="Model name for the Anthropic backend")
    run.add_argument(
        "--script",
        default=None,
        help="YAML file with scripted 'responses' and 'steps' instead of a live model",
    )

    return parser


def load_agents(spec: str) -> Callable[[AbilityRegistry, GraphStore], Any]:
    """Resolve ``module:function``."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Expected 'module:function', got {spec!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


def load_script(path: str) -> ScriptedBackend:
    data = yaml.safe_load(Path(path).read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Script file {path} must contain a mapping")
    return ScriptedBackend(data.get("responses") or [], data.get("steps") or [])


def _backend(args: argparse.Namespace, config: EngineConfig) -> DecisionBackend:
    if args.script:
        return load_script(args.script)
    return AnthropicBackend(model=config.model, max_tokens=config.max_tokens, system=config.system)


async def _run(args: argparse.Namespace) -> int:
    config = load_config(args.config).override(max_steps=args.max_steps, model=args.model)
    engine = Engine.from_config(config, _backend(args, config))
    load_agents(args.agents)(engine.registry, engine.graph)

    try:
        report = await engine.run(args.orchestrator, args.utterance)
    except RunFailure as e:
        print(f"Run failed: {e.kind} at {e.node_type} ({e.node_id}): {e.cause}")
        return 1
    except RunCancelled as e:
        print(f"Run cancelled: {e}")
        return 1

    for record in report:
        print(f"[{record.node_type}] {record.utterance}")
        print(f"  -> {record.response}")

    print(f"\nDone in {report.duration_ms:.0f}ms ({len(report)} visits)")
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")

    if args.command == "run":
        code = asyncio.run(_run(args))
        sys.exit(code)
    else:
        parser.print_help()
        sys.exit(1)
