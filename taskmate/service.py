"""Chat facade: one user message in, one structured reply out."""

from __future__ import annotations

import json
import logging
from typing import Any

from taskmate.config import Settings
from taskmate.db import Database
from taskmate.helpers.time_helpers import (
    build_segment_not_allowed_message,
    get_today_date,
    has_time_segment_hint,
    infer_time_segment_from_text,
    is_segment_allowed_for_today,
)
from taskmate.llm.base import LLMProvider
from taskmate.llm.factory import create_llm
from taskmate.models import AgentConfigurable, ChatResult, ChatResultType
from taskmate.supervisor import ConversationCheckpointer, build_supervisor

LOGGER = logging.getLogger(__name__)

APOLOGY_REPLY = "抱歉，处理您的请求时出现了问题，请稍后再试。"
DEFAULT_HISTORY_LIMIT = 20
MAX_HISTORY_LIMIT = 100


class MultiAgentService:
    """Runs a chat turn through the supervisor and persists both sides of it."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        timezone_offset_minutes: int | None = None,
        llm: LLMProvider | None = None,
        checkpointer: ConversationCheckpointer | None = None,
    ) -> None:
        self._db = db
        self._settings = settings
        self._timezone_offset_minutes = (
            settings.timezone_offset_minutes if timezone_offset_minutes is None else timezone_offset_minutes
        )
        self._llm = llm
        self._checkpointer = checkpointer or ConversationCheckpointer(settings.memory_window_turns)

    async def chat(self, user_id: int, message: str) -> ChatResult:
        LOGGER.info("Chat turn user_id=%s tz_offset=%s", user_id, self._timezone_offset_minutes)
        try:
            result = self._passed_segment_reply(message) or await self._run_turn(user_id, message)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Chat turn failed user_id=%s", user_id)
            result = ChatResult(content=APOLOGY_REPLY)

        self._db.add_message(user_id, "user", message)
        self._db.add_message(user_id, "assistant", result.content, message_type=result.type, payload=result.payload)
        return result

    async def _run_turn(self, user_id: int, message: str) -> ChatResult:
        llm = self._llm or create_llm(self._settings)
        supervisor = build_supervisor(
            llm,
            self._timezone_offset_minutes,
            max_turns=self._settings.supervisor_max_turns,
            agent_max_iterations=self._settings.agent_max_iterations,
            request_timeout_seconds=self._settings.request_timeout_seconds,
            checkpointer=self._checkpointer,
        )
        context = AgentConfigurable(
            db=self._db,
            user_id=user_id,
            timezone_offset_minutes=self._timezone_offset_minutes,
            user_message=message,
        )
        messages = await supervisor.invoke([{"role": "user", "content": message}], context)

        content = str(messages[-1].get("content") or "") if messages else ""
        payload = extract_payload_from_messages(messages)
        return ChatResult(content=content, type=derive_result_type(payload), payload=payload)

    def _passed_segment_reply(self, message: str) -> ChatResult | None:
        """Ask back without an LLM round when "today" names a part of the day already over."""
        if "今天" not in message or not has_time_segment_hint(message):
            return None
        tz_offset = self._timezone_offset_minutes
        segment = infer_time_segment_from_text(message)
        if is_segment_allowed_for_today(get_today_date(tz_offset), segment, tz_offset):
            return None
        return ChatResult(content=build_segment_not_allowed_message(segment, tz_offset), type="question")

    def get_history(self, user_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[dict[str, Any]]:
        bounded = max(1, min(limit, MAX_HISTORY_LIMIT))
        return self._db.get_recent_messages(user_id, bounded)

    def clear_history(self, user_id: int) -> None:
        self._db.clear_history(user_id)
        self._checkpointer.clear(AgentConfigurable(db=None, user_id=user_id).thread_id)
        LOGGER.info("Cleared history user_id=%s", user_id)


def extract_payload_from_messages(messages: list[dict[str, Any]]) -> dict[str, Any]:
    """Structured payload of the most recent tool result carrying task data."""

    for message in reversed(messages):
        if message.get("role") != "tool":
            continue
        try:
            body = json.loads(message.get("content") or "")
        except (TypeError, ValueError):
            continue
        if not isinstance(body, dict):
            continue

        payload: dict[str, Any] = {}
        if body.get("task"):
            payload["task"] = body["task"]
        if body.get("conflictingTasks"):
            payload["conflictingTasks"] = body["conflictingTasks"]
        if payload:
            return payload
    return {}


def derive_result_type(payload: dict[str, Any]) -> ChatResultType:
    if payload.get("task"):
        return "task_summary"
    if payload.get("conflictingTasks"):
        return "question"
    return "text"
