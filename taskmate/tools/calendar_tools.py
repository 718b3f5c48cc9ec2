"""Read-only calendar views over the task store."""

from __future__ import annotations

from typing import Any

from taskmate.helpers.time_helpers import format_minutes, format_time_segment_label, parse_time_to_minutes
from taskmate.models import AgentConfigurable, Task, ToolResult
from taskmate.task_service import TaskService, TaskServiceError
from taskmate.tools.base import MISSING_CONTEXT_MESSAGE, Tool, has_runtime_context

DEFAULT_START_HOUR = 9
DEFAULT_END_HOUR = 18


def _active_tasks_on(context: AgentConfigurable, date: str) -> list[Task]:
    tasks = TaskService(context.db).get_tasks(context.user_id, due_date=date).tasks
    return [t for t in tasks if t.status != "cancelled"]


def _schedule_key(task: Task) -> tuple[int, int]:
    minutes = parse_time_to_minutes(task.start_time) if task.has_time_range() else None
    if minutes is None:
        return (1, 0)
    return (0, minutes)


def format_task_line(task: Task) -> str:
    if task.has_time_range():
        return f"{task.start_time}-{task.end_time} {task.title}"
    return f"{format_time_segment_label(task.time_segment)} {task.title}"


def compute_free_slots(tasks: list[Task], start_hour: int, end_hour: int) -> list[dict[str, str]]:
    """Gaps between timed tasks inside ``[start_hour, end_hour)``.

    Walks tasks by start time keeping a cursor at the latest covered minute.
    """
    timed = []
    for task in tasks:
        start = parse_time_to_minutes(task.start_time)
        end = parse_time_to_minutes(task.end_time)
        if start is not None and end is not None:
            timed.append((start, end))
    timed.sort()

    cursor = start_hour * 60
    boundary = end_hour * 60
    slots = []
    for start, end in timed:
        if cursor >= boundary:
            break
        if start > cursor:
            slots.append({"start": format_minutes(cursor), "end": format_minutes(min(start, boundary))})
        cursor = max(cursor, end)
    if cursor < boundary:
        slots.append({"start": format_minutes(cursor), "end": format_minutes(boundary)})
    return slots


class GetDayScheduleTool(Tool):
    name = "get_day_schedule"
    description = "查看指定日期的日程安排。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "date": {"type": "string", "description": "查看日期 YYYY-MM-DD"},
        },
        "required": ["date"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        try:
            tasks = _active_tasks_on(context, kwargs["date"])
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))
        if not tasks:
            return ToolResult.ok("当天没有安排")

        ordered = sorted(tasks, key=_schedule_key)
        return ToolResult.ok(
            "\n".join(format_task_line(t) for t in ordered),
            data={"tasks": [t.to_dict() for t in ordered]},
        )


class FindFreeSlotsTool(Tool):
    name = "find_free_slots"
    description = "查找指定日期的空闲时间段。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "date": {"type": "string", "description": "查找日期 YYYY-MM-DD"},
            "startHour": {"type": "integer", "description": "搜索起始小时，默认 9"},
            "endHour": {"type": "integer", "description": "搜索结束小时，默认 18"},
        },
        "required": ["date"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        start_hour = kwargs.get("startHour", DEFAULT_START_HOUR)
        end_hour = kwargs.get("endHour", DEFAULT_END_HOUR)
        if not 0 <= start_hour < end_hour <= 24:
            return ToolResult.error("搜索时间范围无效，需满足 0 <= startHour < endHour <= 24")

        try:
            tasks = _active_tasks_on(context, kwargs["date"])
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))

        slots = compute_free_slots(tasks, start_hour, end_hour)
        window = f"{format_minutes(start_hour * 60)}-{format_minutes(end_hour * 60)}"
        if not tasks:
            return ToolResult.ok(f"当天没有安排，{window} 全部空闲", data={"freeSlots": slots})
        if not any(t.has_time_range() for t in tasks):
            return ToolResult.ok(
                f"当天的任务都没有具体时间，{window} 均可安排",
                data={"freeSlots": slots},
            )
        if not slots:
            return ToolResult.ok("当天没有空闲时间", data={"freeSlots": []})
        return ToolResult.ok(
            "\n".join(f"{slot['start']}-{slot['end']}" for slot in slots),
            data={"freeSlots": slots},
        )


def calendar_tools() -> list[Tool]:
    return [GetDayScheduleTool(), FindFreeSlotsTool()]
