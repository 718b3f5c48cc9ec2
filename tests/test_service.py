import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from taskmate.config import Settings
from taskmate.models import LLMResponse, LLMToolCall
from taskmate.service import APOLOGY_REPLY, MultiAgentService, extract_payload_from_messages


def _settings(**overrides) -> Settings:  # noqa: ANN003
    return Settings.model_validate({"OPENAI_API_KEY": "test-key", **overrides})


def _llm(*responses: LLMResponse) -> MagicMock:
    llm = MagicMock()
    llm.generate = AsyncMock(side_effect=list(responses))
    return llm


def _tool_message(body: object, name: str = "create_task") -> dict:
    content = body if isinstance(body, str) else json.dumps(body, ensure_ascii=False)
    return {"role": "tool", "tool_call_id": "c", "name": name, "content": content}


def test_payload_comes_from_most_recent_task_result():
    messages = [
        {"role": "user", "content": "建任务"},
        _tool_message({"status": "conflict", "message": "冲突", "conflictingTasks": [{"id": 1}]}),
        _tool_message({"status": "success", "message": "ok", "task": {"id": 2}}),
        _tool_message("Successfully transferred back to supervisor", name="transfer_back_to_supervisor"),
        {"role": "assistant", "content": "已创建"},
    ]

    assert extract_payload_from_messages(messages) == {"task": {"id": 2}}


def test_payload_skips_results_without_task_data():
    messages = [
        _tool_message({"status": "conflict", "message": "冲突", "conflictingTasks": [{"id": 1}]}),
        _tool_message({"status": "success", "message": "晴", "data": {"city": "上海"}}, name="get_weather"),
        _tool_message("not json"),
        _tool_message("[1, 2]"),
        _tool_message({"status": "conflict", "message": "冲突", "conflictingTasks": []}),
    ]

    assert extract_payload_from_messages(messages) == {"conflictingTasks": [{"id": 1}]}
    assert extract_payload_from_messages([{"role": "assistant", "content": "hi"}]) == {}


@pytest.mark.asyncio
async def test_chat_creates_task_and_returns_summary(freeze_utc, db):
    freeze_utc(2026, 3, 10, 8, 0)
    llm = _llm(
        LLMResponse(content="", tool_calls=[LLMToolCall(name="transfer_to_task_agent", arguments={}, call_id="h1")]),
        LLMResponse(
            content="",
            tool_calls=[LLMToolCall(name="create_task", arguments={"title": "交报告", "dueDate": "2026-03-11"}, call_id="c1")],
        ),
        LLMResponse(content="已为你创建任务。"),
        LLMResponse(content="已创建任务：交报告（明天全天）。"),
    )
    service = MultiAgentService(db, _settings(), llm=llm)

    result = await service.chat(1, "明天交报告")

    assert result.type == "task_summary"
    assert result.content == "已创建任务：交报告（明天全天）。"
    assert result.payload["task"]["title"] == "交报告"
    assert result.payload["task"]["timeSegment"] == "all_day"

    history = service.get_history(1)
    assert [(m["role"], m["type"]) for m in history] == [("user", "text"), ("assistant", "task_summary")]
    assert history[1]["payload"]["task"]["dueDate"] == "2026-03-11"


@pytest.mark.asyncio
async def test_chat_conflict_is_a_question(freeze_utc, db):
    freeze_utc(2026, 3, 10, 8, 0)
    llm = _llm(
        LLMResponse(content="", tool_calls=[LLMToolCall(name="transfer_to_task_agent", arguments={}, call_id="h1")]),
        LLMResponse(content="", tool_calls=[LLMToolCall(name="create_task", arguments={"title": "取快递"}, call_id="c1")]),
        LLMResponse(content="", tool_calls=[LLMToolCall(name="create_task", arguments={"title": "拿快递"}, call_id="c2")]),
        LLMResponse(content="已有类似任务"),
        LLMResponse(content="你今天已有类似任务，是否仍要创建？"),
    )
    service = MultiAgentService(db, _settings(), llm=llm)

    result = await service.chat(1, "取快递")

    assert result.type == "question"
    assert result.payload["conflictingTasks"][0]["title"] == "取快递"
    assert "task" not in result.payload


@pytest.mark.asyncio
async def test_chat_plain_text_reply(db):
    service = MultiAgentService(db, _settings(), llm=_llm(LLMResponse(content="我只能处理任务和日程相关的需求。")))

    result = await service.chat(1, "讲个笑话")

    assert result.to_dict() == {"content": "我只能处理任务和日程相关的需求。", "type": "text", "payload": {}}


@pytest.mark.asyncio
async def test_chat_failure_degrades_to_apology_and_is_persisted(db):
    llm = MagicMock()
    llm.generate = AsyncMock(side_effect=httpx.ConnectError("boom"))
    service = MultiAgentService(db, _settings(), llm=llm)

    result = await service.chat(1, "你好")

    assert result.content == APOLOGY_REPLY
    assert result.type == "text"
    assert [m["content"] for m in service.get_history(1)] == ["你好", APOLOGY_REPLY]


@pytest.mark.asyncio
async def test_chat_without_credentials_apologizes(db):
    settings = Settings.model_validate({"OPENAI_API_KEY": None, "AIHUBMIX_API_KEY": None})
    service = MultiAgentService(db, settings)

    with patch("taskmate.service.create_llm", side_effect=RuntimeError("no credentials")):
        result = await service.chat(1, "你好")

    assert result.content == APOLOGY_REPLY


@pytest.mark.asyncio
async def test_threads_are_per_user(db):
    llm = _llm(LLMResponse(content="a"), LLMResponse(content="b"))
    service = MultiAgentService(db, _settings(), llm=llm)

    await service.chat(1, "用户一")
    await service.chat(2, "用户二")

    second_call_messages = llm.generate.await_args_list[1].args[0]
    assert "用户一" not in [m.get("content") for m in second_call_messages]


@pytest.mark.asyncio
async def test_clear_history_drops_memory(db):
    llm = _llm(LLMResponse(content="a"), LLMResponse(content="b"))
    service = MultiAgentService(db, _settings(), llm=llm)

    await service.chat(1, "第一句")
    service.clear_history(1)
    await service.chat(1, "第二句")

    second_call_messages = llm.generate.await_args_list[1].args[0]
    assert "第一句" not in [m.get("content") for m in second_call_messages]
    assert [m["content"] for m in service.get_history(1)] == ["第二句", "b"]


def test_history_limit_is_clamped(db):
    service = MultiAgentService(db, _settings(), llm=_llm())
    for i in range(120):
        db.add_message(1, "user", f"m{i}")

    assert len(service.get_history(1, limit=500)) == 100
    assert [m["content"] for m in service.get_history(1, limit=0)] == ["m119"]


@pytest.mark.asyncio
async def test_passed_segment_today_is_asked_back_without_llm(freeze_utc, db):
    freeze_utc(2026, 3, 10, 20, 0)
    llm = _llm()
    service = MultiAgentService(db, _settings(), timezone_offset_minutes=0, llm=llm)

    result = await service.chat(1, "今天上午开会")

    assert result.type == "question"
    assert "晚上" in result.content
    llm.generate.assert_not_awaited()
    assert [m["type"] for m in service.get_history(1)] == ["text", "question"]


@pytest.mark.asyncio
async def test_user_message_reaches_task_tools(freeze_utc, db):
    freeze_utc(2026, 3, 10, 8, 0)
    llm = _llm(
        LLMResponse(content="", tool_calls=[LLMToolCall(name="transfer_to_task_agent", arguments={}, call_id="h1")]),
        LLMResponse(
            content="",
            tool_calls=[LLMToolCall(name="create_task", arguments={"title": "开会", "dueDate": "2026-03-12"}, call_id="c1")],
        ),
        LLMResponse(content="已创建。"),
        LLMResponse(content="已创建任务：开会（今天下午）。"),
    )
    service = MultiAgentService(db, _settings(), timezone_offset_minutes=0, llm=llm)

    result = await service.chat(1, "下午开会")

    assert result.payload["task"]["dueDate"] == "2026-03-10"
    assert result.payload["task"]["timeSegment"] == "afternoon"
