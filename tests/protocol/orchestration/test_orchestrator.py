"""
Batch tool loop: UnifiedAgent.chat against scripted model replies.
"""
from typing import Any, Dict, List

import pytest

from relay_core.core.interfaces import RemoteToolHost
from relay_core.core.types import AgentEventType, AgentFunction, ChatResponse, FunctionCall
from relay_core.protocol.orchestration.orchestrator import UnifiedAgent
from relay_core.protocol.parsers.tagged import wrap_function_calls
from relay_core.providers.dummy.provider import ScriptedModel


def call_text(name: str, **arguments: Any) -> str:
    return wrap_function_calls([FunctionCall(name=name, arguments=arguments)], include_ids=False)


def adder() -> AgentFunction:
    return AgentFunction(name="add", description="Add two numbers", executor=lambda a: a["x"] + a["y"])


class FakeHost(RemoteToolHost):
    def __init__(self):
        self.invocations: List[Any] = []

    async def list_tools(self) -> List[Dict[str, Any]]:
        return [{"name": "remote_echo", "description": "Echo remotely", "parameters": {"type": "object"}}]

    async def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        self.invocations.append((name, arguments))
        return f"echo:{arguments.get('msg')}"


class TestChatTerminal:
    @pytest.mark.asyncio
    async def test_plain_answer(self, settings, recorder):
        model = ScriptedModel(["Hello"])
        response = await UnifiedAgent(model, settings=settings).chat("Hi", callback=recorder)

        assert response.content == "Hello"
        assert response.is_last is True
        assert response.function_calls is None
        assert model.calls == 1
        assert recorder.types == [AgentEventType.RESPONSE_START, AgentEventType.RESPONSE_END]
        assert recorder.of(AgentEventType.RESPONSE_END)[0]["response"] is response

    @pytest.mark.asyncio
    async def test_original_prompt_carried_in_additional_info(self, settings):
        model = ScriptedModel(["Hello"], system_messages=True)
        response = await UnifiedAgent(model, settings=settings).chat("Hi", {"system_message": "Be brief"})
        assert response.additional_info["user_prompt"] == "Hi"
        assert response.additional_info["system_message"] == "Be brief"
        assert model.options[0].system_message == "Be brief"

    @pytest.mark.asyncio
    async def test_json_answer_is_repaired(self, settings):
        model = ScriptedModel(['{"a":1'])
        response = await UnifiedAgent(model, settings=settings).chat("q", {"response_format": "json"})
        assert response.content == {"a": 1}
        assert response.is_json_response is True

    @pytest.mark.asyncio
    async def test_unrepairable_json_answer_stays_text(self, settings):
        model = ScriptedModel(["not json at all"])
        response = await UnifiedAgent(model, settings=settings).chat("q", {"response_format": "json"})
        assert response.content == "not json at all"
        assert response.is_json_response is False


class TestChatRecursion:
    @pytest.mark.asyncio
    async def test_weather_round_trip(self, settings, recorder, weather_fn):
        model = ScriptedModel([call_text("getWeather", city="Paris"), "It is 20°C."])
        agent = UnifiedAgent(model, functions=[weather_fn], settings=settings)

        response = await agent.chat("Weather in Paris?", callback=recorder)

        assert response.content == "It is 20°C."
        assert [(c.name, c.arguments, c.result) for c in response.function_calls] == [
            ("getWeather", {"city": "Paris"}, {"temp": 20})
        ]
        assert model.calls == 2
        followup = model.prompts[1]
        assert 'the user\'s original question was: "Weather in Paris?"' in followup
        assert 'Result: {"temp": 20}' in followup
        previous = followup.split("Your previous response was:")[1].split("Here are the results")[0]
        assert "<==start_tool_calls==>" not in previous
        assert recorder.types == [
            AgentEventType.RESPONSE_START,
            AgentEventType.RECURSION_START,
            AgentEventType.FUNCTION_CALL_START,
            AgentEventType.FUNCTION_CALL_END,
            AgentEventType.RECURSION_END,
            AgentEventType.RESPONSE_END,
        ]
        end = recorder.of(AgentEventType.RECURSION_END)[0]
        assert end["depth"] == 1
        assert end["final_content"] == "It is 20°C."
        assert len(end["completed_function_calls"]) == 1

    @pytest.mark.asyncio
    async def test_tool_error_does_not_abort(self, settings, recorder):
        def boom(args):
            raise RuntimeError("boom")

        model = ScriptedModel([call_text("explode"), "Sorry, that failed."])
        agent = UnifiedAgent(model, functions=[AgentFunction(name="explode", executor=boom)], settings=settings)

        response = await agent.chat("Try it", callback=recorder)

        assert response.content == "Sorry, that failed."
        assert response.function_calls[0].result == {"error": "boom"}
        errors = recorder.of(AgentEventType.ERROR)
        assert len(errors) == 1 and errors[0]["function_call"].name == "explode"
        assert 'Result: {"error": "boom"}' in model.prompts[1]

    @pytest.mark.asyncio
    async def test_calls_accumulate_across_levels(self, settings):
        model = ScriptedModel([call_text("add", x=1, y=2), call_text("add", x=3, y=4), "done"])
        response = await UnifiedAgent(model, functions=[adder()], settings=settings).chat("sum")

        assert [c.result for c in response.function_calls] == [3, 7]
        assert len({c.id for c in response.function_calls}) == 2
        last_prompt = model.prompts[2]
        assert last_prompt.index('"x": 1') < last_prompt.index('"x": 3')

    @pytest.mark.asyncio
    @pytest.mark.parametrize("include_ids", [True, False])
    async def test_repeated_call_runs_every_time(self, settings, include_ids):
        runs: List[int] = []

        def roll(args):
            runs.append(len(runs) + 1)
            return runs[-1]

        calls = [FunctionCall(id="a", name="roll"), FunctionCall(id="b", name="roll")]
        model = ScriptedModel([wrap_function_calls(calls, include_ids=include_ids), "rolled"])
        agent = UnifiedAgent(model, functions=[AgentFunction(name="roll", executor=roll)], settings=settings)

        response = await agent.chat("roll twice")

        assert runs == [1, 2]
        assert [c.result for c in response.function_calls] == [1, 2]
        if include_ids:
            assert [c.id for c in response.function_calls] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_native_function_calls(self, settings):
        native = ChatResponse(content="", function_calls=[FunctionCall(id="n1", name="add", arguments={"x": 1, "y": 2})])
        model = ScriptedModel([native, "3"])
        response = await UnifiedAgent(model, functions=[adder()], settings=settings).chat("1+2?")
        assert response.content == "3"
        assert [(c.id, c.result) for c in response.function_calls] == [("n1", 3)]

    @pytest.mark.asyncio
    async def test_remote_tools_discovered_and_invoked(self, settings):
        host = FakeHost()
        model = ScriptedModel([call_text("remote_echo", msg="hi"), "ok"])
        agent = UnifiedAgent(model, remote_host=host, settings=settings)

        response = await agent.chat("echo")

        assert '"name": "remote_echo"' in model.prompts[0]
        assert host.invocations == [("remote_echo", {"msg": "hi"})]
        assert response.function_calls[0].result == "echo:hi"

    @pytest.mark.asyncio
    async def test_depth_exhaustion(self, settings):
        model = ScriptedModel([call_text("add", x=1, y=1)])
        agent = UnifiedAgent(model, functions=[adder()], max_recursion_depth=1, settings=settings)

        response = await agent.chat("loop forever")

        assert model.calls == 2
        assert response.is_last is True
        assert response.is_json_response is False
        assert response.content.startswith("Maximum recursion depth (1) reached. The result may be incomplete.")
        assert response.additional_info["max_recursion_depth_reached"] is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [2, 3])
    async def test_follow_up_calls_bounded_by_depth(self, settings, depth):
        model = ScriptedModel([call_text("add", x=1, y=1)])
        await UnifiedAgent(model, functions=[adder()], max_recursion_depth=depth, settings=settings).chat("q")
        assert model.calls == depth + 1

    @pytest.mark.asyncio
    async def test_zero_depth_ignores_calls(self, settings):
        model = ScriptedModel(["Sure. " + call_text("add", x=1, y=1)])
        response = await UnifiedAgent(model, functions=[adder()], max_recursion_depth=0, settings=settings).chat("q")
        assert model.calls == 1
        assert response.content == "Sure."
        assert response.function_calls is None


class TestChatFailure:
    @pytest.mark.asyncio
    async def test_model_failure_is_reported_then_raised(self, settings, recorder):
        model = ScriptedModel([RuntimeError("backend down")])
        with pytest.raises(RuntimeError, match="backend down"):
            await UnifiedAgent(model, settings=settings).chat("Hi", {"temperature": 0.1}, callback=recorder)

        assert recorder.types == [AgentEventType.RESPONSE_START, AgentEventType.ERROR]
        error = recorder.of(AgentEventType.ERROR)[0]
        assert error["prompt"] == "Hi"
        assert error["options"].temperature == 0.1
        assert error["error"] == "backend down"

    @pytest.mark.asyncio
    async def test_failure_during_follow_up_reports_follow_up_prompt(self, settings, recorder):
        model = ScriptedModel([call_text("add", x=1, y=1), RuntimeError("down")])
        with pytest.raises(RuntimeError):
            await UnifiedAgent(model, functions=[adder()], settings=settings).chat("q", callback=recorder)
        error = recorder.of(AgentEventType.ERROR)[0]
        assert "original question was" in error["prompt"]


class TestAgentSurface:
    def test_add_function_replaces_same_name(self, settings):
        agent = UnifiedAgent(ScriptedModel(["x"]), functions=[adder()], settings=settings)
        replacement = AgentFunction(name="add", description="v2")
        agent.add_functions([replacement, AgentFunction(name="other")])
        assert [f.name for f in agent.functions] == ["add", "other"]
        assert agent.functions[0].description == "v2"

    def test_max_depth_from_settings(self):
        agent = UnifiedAgent(ScriptedModel(["x"]), settings={"agent": {"max_recursion_depth": 4}})
        assert agent.max_recursion_depth == 4
        assert UnifiedAgent(ScriptedModel(["x"]), settings={}).max_recursion_depth == 25

    def test_model_names(self, settings):
        agent = UnifiedAgent(ScriptedModel(["x"], model_name="m1"), settings=settings)
        assert agent.get_default_model() == "m1"
        assert agent.get_model("m2") == "m2"

    @pytest.mark.asyncio
    async def test_get_all_tools_local_names_win(self, settings):
        agent = UnifiedAgent(ScriptedModel(["x"]), functions=[AgentFunction(name="remote_echo")], settings=settings)
        agent.use_remote_host(FakeHost())
        tools = await agent.get_all_tools()
        assert [t.name for t in tools] == ["remote_echo"]
        assert tools[0].executor is None
