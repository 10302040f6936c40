"""Tests for the ReAct tool-calling loop."""

import pytest

from agentgraph.backends.scripted import ScriptedBackend
from agentgraph.core.decision import DecisionGateway
from agentgraph.core.errors import RunCancelled, StepBudgetExceeded
from agentgraph.core.graph import ROOT_ID, GraphStore, Node
from agentgraph.core.react import FinalAnswer, Observation, ReActLoop, ToolCall, Transcript
from agentgraph.core.schema import Primitive
from agentgraph.core.tools import ToolHandle


def create_task(here: Node, title: str) -> str:
    """Create a task node under the bound node."""
    graph: GraphStore = here.get("graph")
    task_id = graph.create_node("task", {"title": title})
    graph.connect(here.node_id, task_id)
    return task_id


def failing(here: Node) -> str:
    raise RuntimeError("backend offline")


def build(steps, max_steps: int = 6):
    graph = GraphStore()
    root = graph.root
    root.set("graph", graph)
    backend = ScriptedBackend(steps=steps)
    loop = ReActLoop(DecisionGateway(backend), max_steps=max_steps)
    tools = [ToolHandle(create_task, root), ToolHandle(failing, root)]
    return graph, backend, loop, tools


def observations(transcript: Transcript) -> list[Observation]:
    return [e for e in transcript.entries if isinstance(e, Observation)]


class TestReActLoop:
    @pytest.mark.asyncio
    async def test_immediate_final_answer(self):
        _, _, loop, tools = build([FinalAnswer("done")])
        result = await loop.run("hi", tools)
        assert result.answer == "done"
        assert result.steps == 1

    @pytest.mark.asyncio
    async def test_tool_call_mutates_graph(self):
        graph, _, loop, tools = build(
            [ToolCall("create_task", {"title": "Schedule meeting"}), FinalAnswer("scheduled")]
        )
        result = await loop.run("schedule", tools)
        assert result.answer == "scheduled"
        children = graph.children_of_type(ROOT_ID, node_type="task")
        assert len(children) == 1
        assert graph.get_node(children[0]).get("title") == "Schedule meeting"
        obs = observations(result.transcript)
        assert obs[0].content == children[0]
        assert obs[0].is_error is False

    @pytest.mark.asyncio
    async def test_misspelled_tool_recovers(self):
        graph, _, loop, tools = build(
            [
                ToolCall("create_tsk", {"title": "x"}),
                ToolCall("create_task", {"title": "x"}),
                FinalAnswer("ok"),
            ]
        )
        result = await loop.run("do it", tools)
        assert result.answer == "ok"
        assert result.steps == 3
        first = observations(result.transcript)[0]
        assert first.is_error
        assert "Unknown tool 'create_tsk'" in first.content
        assert "create_task" in first.content
        assert len(graph.children_of_type(ROOT_ID, node_type="task")) == 1

    @pytest.mark.asyncio
    async def test_bad_arguments_recover(self):
        _, _, loop, tools = build(
            [ToolCall("create_task", {"name": "x"}), ToolCall("create_task", {"title": "x"}), FinalAnswer("ok")]
        )
        result = await loop.run("do it", tools)
        assert result.answer == "ok"
        first = observations(result.transcript)[0]
        assert first.is_error
        assert "Invalid arguments" in first.content

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_observation(self):
        _, _, loop, tools = build([ToolCall("failing"), FinalAnswer("gave up nicely")])
        result = await loop.run("try", tools)
        assert result.answer == "gave up nicely"
        obs = observations(result.transcript)[0]
        assert obs.is_error
        assert "backend offline" in obs.content

    @pytest.mark.asyncio
    async def test_final_answer_validated(self):
        _, _, loop, tools = build([FinalAnswer("many"), FinalAnswer("3")])
        result = await loop.run("how many?", tools, Primitive(int))
        assert result.answer == 3
        assert "rejected" in observations(result.transcript)[0].content

    @pytest.mark.asyncio
    async def test_step_budget_exceeded(self):
        steps = [ToolCall("create_task", {"title": f"t{i}"}) for i in range(10)]
        graph, backend, loop, tools = build(steps, max_steps=3)
        with pytest.raises(StepBudgetExceeded) as info:
            await loop.run("loop forever", tools)
        assert info.value.max_steps == 3
        # exactly max_steps reasoning transitions happened
        assert len(backend.calls) == 3
        assert len(backend.steps) == 7
        # partial answer is the last successful tool result; side effects stay
        children = graph.children_of_type(ROOT_ID, node_type="task")
        assert len(children) == 3
        assert info.value.partial == children[-1]

    @pytest.mark.asyncio
    async def test_budget_exceeded_without_partial(self):
        _, _, loop, tools = build([ToolCall("nope"), ToolCall("nope")], max_steps=2)
        with pytest.raises(StepBudgetExceeded) as info:
            await loop.run("x", tools)
        assert info.value.partial is None

    @pytest.mark.asyncio
    async def test_cancellation_between_steps(self):
        _, backend, loop, tools = build([ToolCall("create_task", {"title": "a"}), FinalAnswer("x")])
        calls = []

        def should_cancel():
            calls.append(1)
            return len(calls) > 1

        with pytest.raises(RunCancelled):
            await loop.run("x", tools, should_cancel=should_cancel)
        assert len(backend.calls) == 1

    def test_max_steps_must_be_positive(self):
        with pytest.raises(ValueError):
            ReActLoop(DecisionGateway(ScriptedBackend()), max_steps=0)


class TestTranscript:
    def test_render(self):
        t = Transcript("Question?")
        call = ToolCall("lookup", {"q": "x"})
        t.append(call)
        t.append(Observation(call.call_id, "found"))
        t.append(FinalAnswer("x is found"))
        assert t.render().splitlines() == [
            "Question?",
            'Action: lookup({"q": "x"})',
            "Observation: found",
            "Final answer: x is found",
        ]
        assert t.steps == 2
