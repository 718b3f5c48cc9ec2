"""Weather lookup backed by canned data until a real weather API is wired in."""

from __future__ import annotations

import re
from typing import Any

from taskmate.models import AgentConfigurable, ToolResult
from taskmate.tools.base import Tool

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

MOCK_WEATHER: dict[str, dict[str, Any]] = {
    "default_clear": {"condition": "晴", "tempMin": 5, "tempMax": 15, "suggestion": "天气晴好，适合出行"},
    "default_rain": {"condition": "小雨", "tempMin": 2, "tempMax": 8, "suggestion": "建议携带雨具"},
}


class GetWeatherTool(Tool):
    name = "get_weather"
    description = "查询指定城市和日期的天气信息。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "city": {"type": "string", "description": "城市名称"},
            "date": {"type": "string", "description": "查询日期 YYYY-MM-DD"},
        },
        "required": ["city", "date"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        city = str(kwargs["city"]).strip()
        date = str(kwargs["date"]).strip()
        if not city:
            return ToolResult.error("请提供城市名称")
        if not _DATE_PATTERN.match(date):
            return ToolResult.error("日期格式无效")

        weather = MOCK_WEATHER["default_clear"]
        message = (
            f"{city} {date} 天气{weather['condition']}，"
            f"{weather['tempMin']}~{weather['tempMax']}°C。{weather['suggestion']}"
        )
        return ToolResult.ok(message, data={**weather, "city": city, "date": date})


def weather_tools() -> list[Tool]:
    return [GetWeatherTool()]
