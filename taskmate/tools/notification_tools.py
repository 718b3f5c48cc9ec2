"""Reminder tools.

The LLM only supplies the task's title, date and time; the clock time of the
reminder is derived here:

* task on another day: 20:00 the day before
* task today with a clock time: two hours before it
* task today without a clock time: 08:00 that day
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from taskmate.helpers.time_helpers import (
    get_today_date,
    get_user_now,
    leading_clock_time,
    normalize_date,
    parse_time_to_minutes,
)
from taskmate.models import AgentConfigurable, Reminder, ToolResult
from taskmate.tools.base import MISSING_CONTEXT_MESSAGE, Tool, has_runtime_context

LOGGER = logging.getLogger(__name__)

CROSS_DAY_REMIND_HOUR = 20
SAME_DAY_DEFAULT_REMIND_HOUR = 8
SAME_DAY_LEAD = timedelta(hours=2)
DEFAULT_CHANNEL = "console"


def _parse_date(date_str: str) -> datetime | None:
    normalized = normalize_date(date_str)
    return None if normalized is None else datetime.strptime(normalized, "%Y-%m-%d")


def compute_remind_at(task_date: datetime, task_time: str | None, today: str) -> tuple[datetime, str]:
    """Return (user-local remind time, human description of the rule applied)."""
    if task_date.strftime("%Y-%m-%d") != today:
        remind_at = task_date.replace(hour=CROSS_DAY_REMIND_HOUR, minute=0) - timedelta(days=1)
        return remind_at, "前一天 20:00"
    # Ranges such as "07:00-08:00" are anchored on their start.
    clock = leading_clock_time(task_time)
    minutes = parse_time_to_minutes(clock)
    if minutes is not None:
        return task_date + timedelta(minutes=minutes) - SAME_DAY_LEAD, f"{clock} 前 2 小时"
    return task_date.replace(hour=SAME_DAY_DEFAULT_REMIND_HOUR, minute=0), "当天 08:00"


def local_to_utc(local: datetime, tz_offset: int) -> datetime:
    return (local + timedelta(minutes=tz_offset)).replace(tzinfo=timezone.utc)


def format_reminder_content(title: str, time_text: str, weather_info: str | None = None) -> str:
    base = f"{title}（{time_text}）"
    if weather_info:
        return f"{base}，{weather_info}"
    return base


def _row_to_reminder(row: dict[str, Any]) -> Reminder:
    return Reminder(
        id=row["id"],
        user_id=row["user_id"],
        task_id=row["task_id"],
        remind_at=row["remind_at"],
        content=row["content"],
        status=row["status"],
        channel=row["channel"],
    )


class ScheduleReminderTool(Tool):
    name = "schedule_reminder"
    description = "安排任务提醒。提醒时间由工具根据任务日期和时间自动计算。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "taskId": {"type": "integer", "description": "关联的任务ID"},
            "taskTitle": {"type": "string", "description": "任务标题，用于生成提醒内容"},
            "taskDate": {"type": "string", "description": "任务日期 YYYY-MM-DD"},
            "taskTime": {"type": "string", "description": "任务时间 HH:MM 或时段名称"},
            "weatherInfo": {"type": "string", "description": "天气信息，如有则附加到提醒内容"},
        },
        "required": ["taskTitle", "taskDate"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        tz_offset = context.timezone_offset_minutes

        task_date = _parse_date(kwargs["taskDate"])
        if task_date is None:
            return ToolResult.error("日期格式无效，请使用 YYYY-MM-DD")

        remind_at, time_text = compute_remind_at(task_date, kwargs.get("taskTime"), get_today_date(tz_offset))
        if remind_at <= get_user_now(tz_offset):
            return ToolResult.error("任务时间已过，无法安排提醒")

        content = format_reminder_content(kwargs["taskTitle"], time_text, kwargs.get("weatherInfo"))
        remind_at_utc = local_to_utc(remind_at, tz_offset)
        reminder_id = context.db.create_reminder(
            user_id=context.user_id,
            task_id=kwargs.get("taskId"),
            remind_at=remind_at_utc,
            content=content,
            channel=DEFAULT_CHANNEL,
        )
        LOGGER.info("Scheduled reminder id=%s user_id=%s remind_at=%s", reminder_id, context.user_id, remind_at_utc.isoformat())

        return ToolResult.ok(
            f"提醒已安排：{content}",
            data={"reminderId": reminder_id, "remindAt": remind_at_utc.isoformat()},
        )


class ListRemindersTool(Tool):
    name = "list_reminders"
    description = "查询提醒列表。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "date": {"type": "string", "description": "查询日期 YYYY-MM-DD"},
        },
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)

        start = end = None
        if date_str := kwargs.get("date"):
            day = _parse_date(date_str)
            if day is None:
                return ToolResult.error("日期格式无效，请使用 YYYY-MM-DD")
            start = local_to_utc(day, context.timezone_offset_minutes)
            end = start + timedelta(days=1)

        reminders = [_row_to_reminder(r) for r in context.db.list_reminders(context.user_id, start=start, end=end)]
        if not reminders:
            return ToolResult.ok("没有找到提醒")
        return ToolResult.ok(
            "\n".join(f"[ID:{r.id}] {r.content} | {r.status}" for r in reminders),
            data={"reminders": [r.to_dict() for r in reminders]},
        )


class CancelReminderTool(Tool):
    name = "cancel_reminder"
    description = "取消提醒。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "reminderId": {"type": "integer", "description": "提醒ID"},
        },
        "required": ["reminderId"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        row = context.db.get_reminder(kwargs["reminderId"])
        if row is None or row["user_id"] != context.user_id:
            return ToolResult.error("未找到该提醒")
        context.db.mark_reminder_status(row["id"], "cancelled")
        return ToolResult.ok("提醒已取消")


def notification_tools() -> list[Tool]:
    return [ScheduleReminderTool(), ListRemindersTool(), CancelReminderTool()]
