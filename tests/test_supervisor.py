import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from taskmate.agents.base import ReactAgent
from taskmate.models import LLMResponse, LLMToolCall
from taskmate.supervisor import (
    HANDBACK_TOOL_NAME,
    TURN_LIMIT_REPLY,
    ConversationCheckpointer,
    Supervisor,
    build_supervisor,
)
from taskmate.tools.registry import ToolRegistry
from taskmate.tools.weather_tools import GetWeatherTool


def _llm(*responses: LLMResponse) -> MagicMock:
    llm = MagicMock()
    llm.generate = AsyncMock(side_effect=list(responses))
    return llm


def _handoff(agent: str, call_id: str = "h1") -> LLMToolCall:
    return LLMToolCall(name=f"transfer_to_{agent}", arguments={}, call_id=call_id)


def _supervisor(llm: MagicMock, **kwargs) -> Supervisor:  # noqa: ANN003
    agent = ReactAgent("weather_agent", llm, ToolRegistry([GetWeatherTool()]), prompt="weather")
    return Supervisor(llm=llm, agents=[agent], **kwargs)


def _weather_turn() -> list[LLMResponse]:
    return [
        LLMResponse(content="", tool_calls=[_handoff("weather_agent")]),
        LLMResponse(
            content="",
            tool_calls=[LLMToolCall(name="get_weather", arguments={"city": "上海", "date": "2026-03-10"}, call_id="w1")],
        ),
        LLMResponse(content="上海晴"),
        LLMResponse(content="上海明天晴，适合出行。"),
    ]


@pytest.mark.asyncio
async def test_handoff_keeps_full_history(context):
    llm = _llm(*_weather_turn())

    messages = await _supervisor(llm).invoke([{"role": "user", "content": "上海天气"}], context)

    assert messages[0] == {"role": "user", "content": "上海天气"}
    assert messages[-1]["content"] == "上海明天晴，适合出行。"
    tool_results = [m for m in messages if m["role"] == "tool" and m["name"] == "get_weather"]
    assert json.loads(tool_results[0]["content"])["data"]["city"] == "上海"
    assert any(m["role"] == "tool" and m["name"] == HANDBACK_TOOL_NAME for m in messages)

    # The final supervisor call sees the agent's tool result.
    final_call_messages = llm.generate.await_args_list[-1].args[0]
    assert any(m.get("name") == "get_weather" for m in final_call_messages)


@pytest.mark.asyncio
async def test_out_of_scope_request_is_answered_directly(context):
    llm = _llm(LLMResponse(content="抱歉，我只能处理任务和日程相关的需求。"))

    messages = await _supervisor(llm).invoke([{"role": "user", "content": "写首诗"}], context)

    assert len(messages) == 2
    assert llm.generate.await_count == 1
    assert llm.generate.await_args.kwargs["tools"][0]["function"]["name"] == "transfer_to_weather_agent"


@pytest.mark.asyncio
async def test_only_one_handoff_per_response(context):
    llm = _llm(
        LLMResponse(content="", tool_calls=[_handoff("weather_agent", "h1"), _handoff("weather_agent", "h2")]),
        LLMResponse(content="晴"),
        LLMResponse(content="完成"),
    )

    messages = await _supervisor(llm).invoke([{"role": "user", "content": "天气"}], context)

    replies = {m["tool_call_id"]: m["content"] for m in messages if m["role"] == "tool" and m["tool_call_id"] in {"h1", "h2"}}
    assert replies["h1"].startswith("Successfully transferred")
    assert "一次只能" in replies["h2"]
    assert messages[-1]["content"] == "完成"


@pytest.mark.asyncio
async def test_unknown_handoff_target_is_answered_with_error(context):
    llm = _llm(
        LLMResponse(content="", tool_calls=[_handoff("poet_agent")]),
        LLMResponse(content="抱歉"),
    )

    messages = await _supervisor(llm).invoke([{"role": "user", "content": "写诗"}], context)

    assert "未知的转交目标" in messages[2]["content"]
    assert messages[-1]["content"] == "抱歉"


@pytest.mark.asyncio
async def test_turn_ceiling_returns_best_effort_reply(context):
    llm = MagicMock()
    llm.generate = AsyncMock(return_value=LLMResponse(content="", tool_calls=[_handoff("poet_agent")]))

    messages = await _supervisor(llm, max_turns=2).invoke([{"role": "user", "content": "?"}], context)

    assert llm.generate.await_count == 2
    assert messages[-1]["content"] == TURN_LIMIT_REPLY


@pytest.mark.asyncio
async def test_checkpointer_carries_previous_turns_but_invoke_returns_current_turn(context):
    checkpointer = ConversationCheckpointer(max_turns=10)
    llm = _llm(LLMResponse(content="你好"), LLMResponse(content="再见"))
    supervisor = _supervisor(llm, checkpointer=checkpointer)

    await supervisor.invoke([{"role": "user", "content": "hi"}], context)
    second = await supervisor.invoke([{"role": "user", "content": "bye"}], context)

    assert [m["content"] for m in second] == ["bye", "再见"]
    second_call_messages = llm.generate.await_args_list[1].args[0]
    assert [m["content"] for m in second_call_messages[1:]] == ["hi", "你好", "bye"]


def test_checkpointer_keeps_latest_turns_per_thread():
    checkpointer = ConversationCheckpointer(max_turns=2)
    for i in range(3):
        checkpointer.save_turn("user_1", [{"role": "user", "content": f"m{i}"}])
    checkpointer.save_turn("user_2", [{"role": "user", "content": "other"}])

    assert [m["content"] for m in checkpointer.load("user_1")] == ["m1", "m2"]
    checkpointer.clear("user_1")
    assert checkpointer.load("user_1") == []
    assert len(checkpointer.load("user_2")) == 1


def test_build_supervisor_wires_all_agents():
    supervisor = build_supervisor(MagicMock(), 0)

    assert supervisor.agent_names == ["task_agent", "calendar_agent", "weather_agent", "notification_agent"]
    assert {spec["function"]["name"] for spec in supervisor.handoff_tool_specs()} == {
        "transfer_to_task_agent",
        "transfer_to_calendar_agent",
        "transfer_to_weather_agent",
        "transfer_to_notification_agent",
    }
