"""Task tools: create, query, modify, finish and remove tasks.

Time plausibility and conflict checks happen here rather than in the agent
prompt, so the outcome is deterministic and can be tested without an LLM.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

from taskmate.helpers.conflict_helpers import (
    filter_time_conflicts,
    find_semantic_conflicts,
    merge_conflicting_tasks,
)
from taskmate.helpers.time_helpers import (
    SEGMENT_CHOICES,
    build_segment_not_allowed_message,
    format_time_segment_label,
    get_default_time_segment_for_date,
    get_today_date,
    is_segment_allowed_for_today,
    is_time_range_passed_for_today,
    has_date_hint,
    has_explicit_time_point,
    has_explicit_time_range,
    has_time_segment_hint,
    infer_time_segment_from_text,
    normalize_date,
    normalize_time,
)
from taskmate.models import AgentConfigurable, Task, ToolResult
from taskmate.task_service import TaskService, TaskServiceError
from taskmate.tools.base import MISSING_CONTEXT_MESSAGE, Tool, has_runtime_context

LOGGER = logging.getLogger(__name__)

PRIORITIES = ["high", "medium", "low"]
STATUSES = ["pending", "completed", "cancelled"]

_INCOMPLETE_RANGE_MESSAGE = "请补充完整的开始/结束时间。"
_INVALID_TIME_MESSAGE = "时间格式无效，请使用 HH:MM（如 09:30）。"
_INVALID_DATE_MESSAGE = "日期格式无效，请使用 YYYY-MM-DD（如 2026-03-10）。"

_TARGET_PROPERTIES: dict[str, Any] = {
    "title": {"type": "string", "description": "任务标题（模糊匹配）"},
    "taskId": {"type": "integer", "description": "任务ID（精确匹配，优先于 title）"},
}


def format_task_time(task: Task) -> str:
    if task.has_time_range():
        return f"{task.start_time}-{task.end_time}"
    return format_time_segment_label(task.time_segment)


def _summary_time(task: Task) -> str:
    if task.has_time_range():
        return f"，时间{task.start_time}-{task.end_time}"
    return f"（{format_time_segment_label(task.time_segment)}）"


def _normalize_range(start_time: str | None, end_time: str | None) -> tuple[str | None, str | None] | ToolResult:
    if bool(start_time) != bool(end_time):
        return ToolResult.need_confirmation(_INCOMPLETE_RANGE_MESSAGE)
    if not start_time:
        return None, None
    start, end = normalize_time(start_time), normalize_time(end_time)
    if start is None or end is None:
        return ToolResult.need_confirmation(_INVALID_TIME_MESSAGE)
    return start, end


def _normalize_due_date(due_date: str | None) -> str | None | ToolResult:
    if not due_date:
        return None
    return normalize_date(due_date) or ToolResult.need_confirmation(_INVALID_DATE_MESSAGE)


def _has_time_clue(text: str) -> bool:
    return has_time_segment_hint(text) or has_explicit_time_range(text) or has_explicit_time_point(text)


@dataclass(slots=True)
class TaskLookup:
    kind: Literal["found", "multiple", "not_found"]
    task: Task | None = None
    candidates: list[Task] = field(default_factory=list)
    message: str = ""


def find_task_by_title_or_id(
    service: TaskService,
    user_id: int,
    tz_offset: int,
    title: str | None = None,
    task_id: int | None = None,
) -> TaskLookup:
    """Resolve the task a mutation targets.

    An explicit id is authoritative. Otherwise the title is fuzzy-matched
    against the user's pending tasks due today.
    """
    if task_id is not None:
        return TaskLookup(kind="found", task=service.get_task_by_id(task_id, user_id))
    if title:
        result = service.get_tasks(user_id, status="pending", due_date=get_today_date(tz_offset))
        matches = find_semantic_conflicts(result.tasks, title)
        if len(matches) == 1:
            return TaskLookup(kind="found", task=matches[0])
        if len(matches) > 1:
            return TaskLookup(kind="multiple", candidates=matches)
        return TaskLookup(kind="not_found", message="未找到匹配任务")
    return TaskLookup(kind="not_found", message="请提供任务名称或ID")


def build_candidates_message(candidates: list[Task]) -> str:
    lines = "\n".join(f"- [ID:{t.id}] {t.title}" for t in candidates)
    return f"找到多个匹配任务，请指定 ID：\n{lines}"


def _lookup_failure(lookup: TaskLookup) -> ToolResult | None:
    if lookup.kind == "multiple":
        return ToolResult.need_confirmation(build_candidates_message(lookup.candidates))
    if lookup.kind == "not_found":
        return ToolResult.error(lookup.message)
    return None


class CreateTaskTool(Tool):
    name = "create_task"
    description = "创建任务，工具内部会处理时间合理性与冲突检测。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "任务标题，简洁的动作短语"},
            "description": {"type": "string", "description": "任务描述，补充信息"},
            "dueDate": {"type": "string", "description": "执行日期 YYYY-MM-DD。未提供则默认今天"},
            "startTime": {"type": "string", "description": "开始时间 HH:MM，需与 endTime 同时提供"},
            "endTime": {"type": "string", "description": "结束时间 HH:MM，需与 startTime 同时提供"},
            "timeSegment": {
                "type": "string",
                "enum": list(SEGMENT_CHOICES),
                "description": "模糊时段，与 startTime/endTime 互斥",
            },
            "priority": {"type": "string", "enum": PRIORITIES, "description": "优先级，默认 medium"},
            "groupId": {"type": "integer", "description": "群组ID，个人任务不传"},
            "confirmed": {
                "type": "boolean",
                "description": "用户已明确确认要创建与已有任务相似的任务时才传 true",
            },
        },
        "required": ["title"],
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        tz_offset = context.timezone_offset_minutes
        title: str = kwargs["title"]

        time_range = _normalize_range(kwargs.get("startTime"), kwargs.get("endTime"))
        if isinstance(time_range, ToolResult):
            return time_range
        start_time, end_time = time_range

        requested_date = _normalize_due_date(kwargs.get("dueDate"))
        if isinstance(requested_date, ToolResult):
            return requested_date
        # The user's own words override dates and segments the model made up.
        user_message = context.user_message
        if user_message and not has_date_hint(user_message):
            requested_date = None
        due_date = requested_date or get_today_date(tz_offset)

        time_segment: str | None = None
        if start_time is None:
            time_segment = kwargs.get("timeSegment")
            if not time_segment and user_message and _has_time_clue(user_message):
                time_segment = infer_time_segment_from_text(user_message)
            time_segment = time_segment or get_default_time_segment_for_date(due_date, tz_offset)

        if time_segment and not is_segment_allowed_for_today(due_date, time_segment, tz_offset):
            return ToolResult.need_confirmation(build_segment_not_allowed_message(time_segment, tz_offset))

        if start_time and is_time_range_passed_for_today(due_date, start_time, end_time, tz_offset):
            return ToolResult.need_confirmation(f"今天已过你提到的时间段（{start_time}-{end_time}）。请确认是否调整。")

        service = TaskService(context.db)
        try:
            same_day = service.get_tasks(context.user_id, status="pending", due_date=due_date).tasks
            time_conflicts = filter_time_conflicts(same_day, start_time, end_time) if start_time else []
            semantic_conflicts = find_semantic_conflicts(same_day, title)
            if kwargs.get("confirmed") and not time_conflicts:
                semantic_conflicts = []

            if time_conflicts or semantic_conflicts:
                LOGGER.info(
                    "create_task blocked: time_conflicts=%d semantic_conflicts=%d",
                    len(time_conflicts),
                    len(semantic_conflicts),
                )
                return ToolResult.conflict(
                    _build_conflict_message(time_conflicts, semantic_conflicts),
                    merge_conflicting_tasks(time_conflicts, semantic_conflicts),
                )

            task = service.create_task(
                context.user_id,
                title=title,
                description=kwargs.get("description"),
                due_date=due_date,
                start_time=start_time,
                end_time=end_time,
                time_segment=time_segment,
                priority=kwargs.get("priority") or "medium",
                group_id=kwargs.get("groupId"),
                source="ai",
                assigned_to_ids=[context.user_id],
            )
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))

        return ToolResult.ok(
            f'任务创建成功！标题"{task.title}"，日期{task.due_date}{_summary_time(task)}',
            task=task,
            action_performed="create",
        )


def _build_conflict_message(time_conflicts: list[Task], semantic_conflicts: list[Task]) -> str:
    time_info = "\n".join(f"- {t.title}（{format_task_time(t)}）" for t in time_conflicts)
    semantic_info = "\n".join(f"- {t.title}（{format_task_time(t)}）" for t in semantic_conflicts)
    if time_conflicts and not semantic_conflicts:
        return f"时间冲突！以下任务与请求时间段重叠：\n{time_info}\n请调整时间后再创建。"
    if semantic_conflicts and not time_conflicts:
        return f'你当天已有类似任务：\n{semantic_info}\n是否仍要创建？回复"确认"继续创建。'
    return f"时间冲突：\n{time_info}\n同时你当天已有类似任务：\n{semantic_info}\n请先调整时间后再创建。"


class QueryTasksTool(Tool):
    name = "query_tasks"
    description = "查询任务列表。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            "status": {"type": "string", "enum": STATUSES},
            "dueDate": {"type": "string", "description": "查询日期 YYYY-MM-DD"},
            "priority": {"type": "string", "enum": PRIORITIES},
        },
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        due_date = _normalize_due_date(kwargs.get("dueDate"))
        if isinstance(due_date, ToolResult):
            return due_date
        try:
            result = TaskService(context.db).get_tasks(
                context.user_id,
                status=kwargs.get("status"),
                due_date=due_date,
                priority=kwargs.get("priority"),
            )
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))

        if not result.tasks:
            return ToolResult.ok("没有找到符合条件的任务。")

        lines = []
        for t in result.tasks:
            when = f"时间:{t.start_time}-{t.end_time}" if t.has_time_range() else format_time_segment_label(t.time_segment)
            lines.append(f"[ID:{t.id}] {t.title} | 日期:{t.due_date} | {when} | 状态:{t.status} | 优先级:{t.priority}")
        return ToolResult.ok("\n".join(lines))


class ModifyTaskTool(Tool):
    name = "modify_task"
    description = "修改任务。支持按标题模糊匹配或 ID 精确匹配。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": {
            **_TARGET_PROPERTIES,
            "newTitle": {"type": "string"},
            "description": {"type": "string"},
            "dueDate": {"type": "string"},
            "startTime": {"type": "string"},
            "endTime": {"type": "string"},
            "timeSegment": {"type": "string", "enum": list(SEGMENT_CHOICES)},
            "priority": {"type": "string", "enum": PRIORITIES},
        },
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)

        time_range = _normalize_range(kwargs.get("startTime"), kwargs.get("endTime"))
        if isinstance(time_range, ToolResult):
            return time_range
        start_time, end_time = time_range
        due_date = _normalize_due_date(kwargs.get("dueDate"))
        if isinstance(due_date, ToolResult):
            return due_date

        service = TaskService(context.db)
        try:
            lookup = find_task_by_title_or_id(
                service, context.user_id, context.timezone_offset_minutes, kwargs.get("title"), kwargs.get("taskId")
            )
            if failure := _lookup_failure(lookup):
                return failure
            updated = service.update_task(
                lookup.task.id,
                context.user_id,
                {
                    "title": kwargs.get("newTitle"),
                    "description": kwargs.get("description"),
                    "due_date": due_date,
                    "start_time": start_time,
                    "end_time": end_time,
                    "time_segment": kwargs.get("timeSegment"),
                    "priority": kwargs.get("priority"),
                },
            )
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))

        return ToolResult.ok(
            f'任务更新成功！标题"{updated.title}"，日期{updated.due_date}{_summary_time(updated)}',
            task=updated,
            action_performed="update",
        )


class FinishTaskTool(Tool):
    name = "finish_task"
    description = "完成任务。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": dict(_TARGET_PROPERTIES),
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        service = TaskService(context.db)
        try:
            lookup = find_task_by_title_or_id(
                service, context.user_id, context.timezone_offset_minutes, kwargs.get("title"), kwargs.get("taskId")
            )
            if failure := _lookup_failure(lookup):
                return failure
            task = service.update_task_status(lookup.task.id, context.user_id, "completed")
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))
        return ToolResult.ok(f'任务 "{task.title}" 已标记为完成。', task=task, action_performed="complete")


class RemoveTaskTool(Tool):
    name = "remove_task"
    description = "删除任务。"
    parameters_schema: dict[str, Any] = {
        "type": "object",
        "properties": dict(_TARGET_PROPERTIES),
        "additionalProperties": False,
    }

    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        if not has_runtime_context(context):
            return ToolResult.error(MISSING_CONTEXT_MESSAGE)
        if not kwargs.get("title") and kwargs.get("taskId") is None:
            return ToolResult.error("请提供任务名称或ID")
        service = TaskService(context.db)
        try:
            lookup = find_task_by_title_or_id(
                service, context.user_id, context.timezone_offset_minutes, kwargs.get("title"), kwargs.get("taskId")
            )
            if failure := _lookup_failure(lookup):
                return failure
            service.delete_task(lookup.task.id, context.user_id)
        except TaskServiceError as exc:
            return ToolResult.error(str(exc))
        return ToolResult.ok("任务已删除。", action_performed="delete")


def task_tools() -> list[Tool]:
    return [CreateTaskTool(), QueryTasksTool(), ModifyTaskTool(), FinishTaskTool(), RemoveTaskTool()]
