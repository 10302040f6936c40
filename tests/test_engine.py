"""End-to-end tests for Engine runs with the dispatch and tool-agent recipes."""

import asyncio

import pytest

from agentgraph.backends.scripted import ScriptedBackend
from agentgraph.config import EngineConfig
from agentgraph.core.abilities import AbilityRegistry
from agentgraph.core.decision import DecisionBackend, DecisionGateway
from agentgraph.core.engine import Engine
from agentgraph.core.errors import RunCancelled, RunFailure
from agentgraph.core.graph import ROOT_ID, GraphStore, Node
from agentgraph.core.react import FinalAnswer, ToolCall
from agentgraph.recipes.dispatch import install_dispatcher
from agentgraph.recipes.tool_agent import decision_ability, tool_ability

ROUTES = {"TASK": "task_agent", "CHAT": "chat_agent"}
UTTERANCE = "Schedule a meeting tomorrow and also tell me a joke"
SUBTASKS = [
    {"task": "Schedule a meeting tomorrow", "agent_type": "TASK"},
    {"task": "tell me a joke", "agent_type": "CHAT"},
]


def schedule(here: Node, title: str, day: str) -> str:
    """Put an event on the calendar."""
    events = here.get("events", [])
    here.set("events", events + [{"title": title, "day": day}])
    return f"scheduled {title} on {day}"


def build_engine(backend: DecisionBackend, **gateway_kwargs) -> Engine:
    graph = GraphStore()
    registry = AbilityRegistry()
    install_dispatcher(registry, "orchestrator", ROUTES, hints={"CHAT": "jokes and small talk"})
    registry.register("task_agent", tool_ability("Handle: {utterance}", [schedule]))
    registry.register("chat_agent", decision_ability("Reply to: {utterance}"))
    return Engine(graph, registry, DecisionGateway(backend, **gateway_kwargs))


class TestEngineDispatch:
    @pytest.mark.asyncio
    async def test_two_subtasks(self):
        backend = ScriptedBackend(
            responses=[SUBTASKS, "Why did the graph cross the road?"],
            steps=[
                ToolCall("schedule", {"title": "meeting", "day": "tomorrow"}),
                FinalAnswer("Meeting scheduled for tomorrow"),
            ],
        )
        engine = build_engine(backend)
        report = await engine.run("orchestrator", UTTERANCE)

        children = engine.graph.children_of_type(ROOT_ID)
        assert len(children) == 2
        types = [engine.graph.get_node(c).type_tag for c in children]
        assert types == ["task_agent", "chat_agent"]

        assert report.to_list() == [
            {
                "utterance": "Schedule a meeting tomorrow",
                "response": "Meeting scheduled for tomorrow",
                "node_type": "task_agent",
            },
            {
                "utterance": "tell me a joke",
                "response": "Why did the graph cross the road?",
                "node_type": "chat_agent",
            },
        ]
        task_node = engine.graph.get_node(children[0])
        assert task_node.get("events") == [{"title": "meeting", "day": "tomorrow"}]

    @pytest.mark.asyncio
    async def test_decomposition_prompt_carries_hints(self):
        backend = ScriptedBackend(responses=[[]])
        engine = build_engine(backend)
        report = await engine.run("orchestrator", "nothing to do")
        assert len(report) == 0
        prompt = backend.calls[0]["prompt"]
        assert "nothing to do" in prompt
        assert "- CHAT: jokes and small talk" in prompt

    @pytest.mark.asyncio
    async def test_invalid_label_retried_transparently(self):
        bad = [{"task": "tell me a joke", "agent_type": "COMEDY"}]
        good = [{"task": "tell me a joke", "agent_type": "CHAT"}]
        backend = ScriptedBackend(responses=[bad, good, "knock knock"])
        engine = build_engine(backend)
        report = await engine.run("orchestrator", "tell me a joke")
        assert [r.response for r in report] == ["knock knock"]
        assert engine.graph.children_of_type(ROOT_ID, node_type="chat_agent")

    @pytest.mark.asyncio
    async def test_existing_agent_nodes_reused(self):
        backend = ScriptedBackend(
            responses=[
                [{"task": "joke one", "agent_type": "CHAT"}, {"task": "joke two", "agent_type": "CHAT"}],
                "first",
                "second",
            ]
        )
        engine = build_engine(backend)
        report = await engine.run("orchestrator", "two jokes")
        assert len(engine.graph.children_of_type(ROOT_ID)) == 1
        assert [r.node_id for r in report][0] == [r.node_id for r in report][1]
        assert [r.response for r in report] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_agent_connected_under_other_edge_reused(self):
        engine = build_engine(ScriptedBackend(responses=[[SUBTASKS[1]], "ha"]))
        existing = engine.graph.create_node("chat_agent")
        engine.graph.connect(ROOT_ID, existing, "agent")
        report = await engine.run("orchestrator", "tell me a joke")
        assert engine.graph.children_of_type(ROOT_ID, node_type="chat_agent") == [existing]
        assert [r.node_id for r in report] == [existing]

    @pytest.mark.asyncio
    async def test_misspelled_tool_run_completes(self):
        backend = ScriptedBackend(
            responses=[[SUBTASKS[0]]],
            steps=[
                ToolCall("schedul", {"title": "meeting", "day": "tomorrow"}),
                ToolCall("schedule", {"title": "meeting", "day": "tomorrow"}),
                FinalAnswer("done"),
            ],
        )
        engine = build_engine(backend)
        report = await engine.run("orchestrator", "Schedule a meeting tomorrow")
        assert [r.response for r in report] == ["done"]


class TestEngineFailures:
    @pytest.mark.asyncio
    async def test_decomposition_schema_violation_tagged_with_root(self):
        backend = ScriptedBackend(responses=["not a list", "still not"])
        engine = build_engine(backend)
        with pytest.raises(RunFailure) as info:
            await engine.run("orchestrator", "anything")
        assert info.value.node_type == "root"
        assert info.value.node_id == ROOT_ID
        assert info.value.kind == "schema_violation"

    @pytest.mark.asyncio
    async def test_step_budget_tagged_with_agent_node(self):
        backend = ScriptedBackend(
            responses=[[SUBTASKS[0]]],
            steps=[ToolCall("nope")] * 3,
        )
        engine = build_engine(backend, max_steps=3)
        with pytest.raises(RunFailure) as info:
            await engine.run("orchestrator", "Schedule a meeting tomorrow")
        assert info.value.node_type == "task_agent"
        assert info.value.kind == "step_budget_exceeded"
        assert info.value.node_id == engine.graph.children_of_type(ROOT_ID)[0]

    @pytest.mark.asyncio
    async def test_decision_timeout_tagged_with_agent_node(self):
        class StalledReplyBackend(DecisionBackend):
            async def generate(self, prompt, schema, *, feedback=None):
                if prompt.startswith("Reply to:"):
                    await asyncio.sleep(5)
                return [SUBTASKS[1]]

            async def next_step(self, transcript, tools, schema):
                return FinalAnswer("unused")

        engine = build_engine(StalledReplyBackend(), timeout=0.05)
        with pytest.raises(RunFailure) as info:
            await engine.run("orchestrator", "tell me a joke")
        assert info.value.kind == "timeout"
        assert info.value.node_type == "chat_agent"
        assert info.value.node_id == engine.graph.children_of_type(ROOT_ID, node_type="chat_agent")[0]

    @pytest.mark.asyncio
    async def test_cancel_from_tool_stops_before_next_step(self):
        backend = ScriptedBackend(
            responses=[[SUBTASKS[0]]],
            steps=[ToolCall("book", {"title": "meeting"}), FinalAnswer("never reached")],
        )
        graph = GraphStore()
        registry = AbilityRegistry()
        install_dispatcher(registry, "orchestrator", ROUTES)
        engine = Engine(graph, registry, DecisionGateway(backend))
        walker = engine.spawn("orchestrator", utterance="Schedule a meeting tomorrow")

        def book(here: Node, title: str) -> str:
            """Book a meeting, then stop the run."""
            here.set("booked", title)
            walker.cancel()
            return "booked"

        registry.register("task_agent", tool_ability("Handle: {utterance}", [book]))

        with pytest.raises(RunCancelled):
            await engine.run_walker(walker)
        task_node = graph.get_node(graph.children_of_type(ROOT_ID, node_type="task_agent")[0])
        assert task_node.get("booked") == "meeting"
        assert len(backend.steps) == 1


class TestEngineWithoutStartHook:
    @pytest.mark.asyncio
    async def test_walker_starts_at_root(self):
        registry = AbilityRegistry()
        registry.register("root", lambda here, w: f"root saw {w.attrs['utterance']}", walker_type="greeter")
        engine = Engine(GraphStore(), registry)
        report = await engine.run("greeter", "hello")
        assert report.to_list() == [{"utterance": "hello", "response": "root saw hello", "node_type": "root"}]
        assert report.summary()["by_node_type"] == {"root": 1}

    @pytest.mark.asyncio
    async def test_spawned_walker_carries_attrs(self):
        registry = AbilityRegistry()
        registry.register("root", lambda here, w: w.get("greeting"), walker_type="greeter")
        engine = Engine(GraphStore(), registry)
        walker = engine.spawn("greeter", greeting="hi there")
        report = await engine.run_walker(walker)
        assert report.walker_id == walker.walker_id
        assert [r.response for r in report] == ["hi there"]


class SlowChatBackend(DecisionBackend):
    """Each generate call yields to the loop so concurrent runs interleave."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, prompt, schema, *, feedback=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        if prompt.startswith("Reply to:"):
            return "hi"
        return [{"task": "hello", "agent_type": "CHAT"}]

    async def next_step(self, transcript, tools, schema):
        return FinalAnswer("unused")


class TestEngineConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_runs_share_one_agent_node(self):
        backend = SlowChatBackend()
        engine = build_engine(backend)
        reports = await asyncio.gather(*(engine.run("orchestrator", f"msg {i}") for i in range(5)))

        assert all(len(r) == 1 for r in reports)
        assert len(engine.graph.children_of_type(ROOT_ID, node_type="chat_agent")) == 1
        assert backend.max_in_flight > 1
        assert len({r.walker_id for r in reports}) == 5


class TestEngineFromConfig:
    def test_gateway_settings(self):
        config = EngineConfig(max_steps=3, decision_retries=2, decision_timeout=5.0)
        engine = Engine.from_config(config, ScriptedBackend())
        assert engine.gateway.max_steps == 3
        assert engine.gateway.retries == 2
        assert engine.gateway.timeout == 5.0
        assert len(engine.graph) == 1
