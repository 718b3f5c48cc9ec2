"""Notification agent: schedules and manages reminders."""

from __future__ import annotations

from taskmate.agents.base import DEFAULT_MAX_ITERATIONS, ReactAgent
from taskmate.helpers.time_helpers import get_today_date
from taskmate.llm.base import LLMProvider
from taskmate.tools.notification_tools import notification_tools
from taskmate.tools.registry import ToolRegistry

NOTIFICATION_AGENT_NAME = "notification_agent"

NOTIFICATION_AGENT_PROMPT = """你是通知提醒专家。帮助用户安排和管理任务提醒。
提醒时间由工具自动计算，你只需提供任务信息即可。
如果有天气信息，请一并传递给工具，以便在提醒中附加天气建议。
今天：{today}"""


def create_notification_agent(
    llm: LLMProvider,
    tz_offset: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    request_timeout_seconds: float = 30.0,
) -> ReactAgent:
    return ReactAgent(
        name=NOTIFICATION_AGENT_NAME,
        llm=llm,
        registry=ToolRegistry(notification_tools()),
        prompt=NOTIFICATION_AGENT_PROMPT.format(today=get_today_date(tz_offset)),
        max_iterations=max_iterations,
        request_timeout_seconds=request_timeout_seconds,
    )
