"""Calendar agent: day schedules and free time."""

from __future__ import annotations

from taskmate.agents.base import DEFAULT_MAX_ITERATIONS, ReactAgent
from taskmate.helpers.time_helpers import get_today_date, get_user_now, get_weekday_label
from taskmate.llm.base import LLMProvider
from taskmate.tools.calendar_tools import calendar_tools
from taskmate.tools.registry import ToolRegistry

CALENDAR_AGENT_NAME = "calendar_agent"


def create_calendar_agent(
    llm: LLMProvider,
    tz_offset: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    request_timeout_seconds: float = 30.0,
) -> ReactAgent:
    today = get_today_date(tz_offset)
    weekday = get_weekday_label(get_user_now(tz_offset))
    return ReactAgent(
        name=CALENDAR_AGENT_NAME,
        llm=llm,
        registry=ToolRegistry(calendar_tools()),
        prompt=f"你是日程安排专家。帮助用户查看日程和寻找空闲时间。\n今天：{today}（{weekday}）",
        max_iterations=max_iterations,
        request_timeout_seconds=request_timeout_seconds,
    )
