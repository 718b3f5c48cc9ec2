"""Weather agent."""

from __future__ import annotations

from taskmate.agents.base import DEFAULT_MAX_ITERATIONS, ReactAgent
from taskmate.helpers.time_helpers import get_today_date
from taskmate.llm.base import LLMProvider
from taskmate.tools.registry import ToolRegistry
from taskmate.tools.weather_tools import weather_tools

WEATHER_AGENT_NAME = "weather_agent"


def create_weather_agent(
    llm: LLMProvider,
    tz_offset: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    request_timeout_seconds: float = 30.0,
) -> ReactAgent:
    return ReactAgent(
        name=WEATHER_AGENT_NAME,
        llm=llm,
        registry=ToolRegistry(weather_tools()),
        prompt=(
            "你是天气查询专家。用户询问天气时，调用 get_weather 工具获取天气信息。\n"
            f"今天：{get_today_date(tz_offset)}"
        ),
        max_iterations=max_iterations,
        request_timeout_seconds=request_timeout_seconds,
    )
