"""Task store used by the task and calendar tools."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from taskmate.db import Database
from taskmate.helpers.time_helpers import ALL_DAY
from taskmate.models import Task

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 100

# Patch keys accepted by update_task, mapped to their columns.
_PATCHABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "due_date": "due_date",
    "start_time": "start_time",
    "end_time": "end_time",
    "time_segment": "time_segment",
    "priority": "priority",
    "group_id": "group_id",
}


class TaskServiceError(Exception):
    """Domain error raised by the task store; messages are safe to show users."""


class TaskNotFoundError(TaskServiceError):
    pass


class TaskPermissionError(TaskServiceError):
    pass


class TaskValidationError(TaskServiceError):
    pass


@dataclass(slots=True)
class TaskListResult:
    tasks: list[Task]
    pagination: dict[str, int] = field(default_factory=dict)


class TaskService:
    """CRUD over tasks visible to a user (created by or assigned to them)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_task(
        self,
        user_id: int,
        title: str,
        description: str | None = None,
        due_date: str | None = None,
        start_time: str | None = None,
        end_time: str | None = None,
        time_segment: str | None = None,
        priority: str = "medium",
        group_id: int | None = None,
        source: str = "human",
        assigned_to_ids: list[int] | None = None,
    ) -> Task:
        if not title or not title.strip():
            raise TaskValidationError("任务标题不能为空")
        start_time, end_time, time_segment = _resolve_time_fields(start_time, end_time, time_segment)
        task_id = self._db.insert_task(
            {
                "title": title.strip(),
                "description": description,
                "status": "pending",
                "priority": priority or "medium",
                "group_id": group_id,
                "created_by": user_id,
                "assigned_to_json": json.dumps(assigned_to_ids or [user_id]),
                "due_date": due_date,
                "start_time": start_time,
                "end_time": end_time,
                "time_segment": time_segment,
                "source": source,
            }
        )
        LOGGER.info("Created task id=%s user_id=%s source=%s", task_id, user_id, source)
        return self.get_task_by_id(task_id, user_id)

    def get_tasks(
        self,
        user_id: int,
        status: str | None = None,
        due_date: str | None = None,
        priority: str | None = None,
        group_id: int | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> TaskListResult:
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        rows, total = self._db.list_tasks(
            user_id,
            status=status,
            due_date=due_date,
            priority=priority,
            group_id=group_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return TaskListResult(
            tasks=[_row_to_task(row) for row in rows],
            pagination={
                "page": page,
                "limit": limit,
                "total": total,
                "totalPages": (total + limit - 1) // limit,
            },
        )

    def get_task_by_id(self, task_id: int, user_id: int) -> Task:
        row = self._db.get_task(task_id)
        if row is None:
            raise TaskNotFoundError("任务不存在")
        task = _row_to_task(row)
        if task.created_by != user_id and user_id not in task.assigned_to_ids:
            raise TaskPermissionError("您无权查看此任务")
        return task

    def update_task(self, task_id: int, user_id: int, patch: dict[str, Any]) -> Task:
        """Apply the non-None entries of ``patch`` to the task."""

        current = self.get_task_by_id(task_id, user_id)
        values = {
            _PATCHABLE_FIELDS[key]: value
            for key, value in patch.items()
            if key in _PATCHABLE_FIELDS and value is not None
        }
        if "start_time" in values or "end_time" in values:
            start_time, end_time, segment = _resolve_time_fields(
                values.get("start_time", current.start_time),
                values.get("end_time", current.end_time),
                None,
            )
            values.update(start_time=start_time, end_time=end_time, time_segment=segment)
        elif "time_segment" in values:
            values.update(start_time=None, end_time=None)
        if values:
            self._db.update_task(task_id, values)
        return self.get_task_by_id(task_id, user_id)

    def update_task_status(self, task_id: int, user_id: int, status: str) -> Task:
        self.get_task_by_id(task_id, user_id)
        values: dict[str, Any] = {"status": status}
        if status == "completed":
            values["completed_by"] = user_id
            values["completed_at"] = datetime.now(timezone.utc).isoformat()
        else:
            values["completed_by"] = None
            values["completed_at"] = None
        self._db.update_task(task_id, values)
        return self.get_task_by_id(task_id, user_id)

    def delete_task(self, task_id: int, user_id: int) -> None:
        task = self.get_task_by_id(task_id, user_id)
        if task.created_by != user_id:
            raise TaskPermissionError("只有任务创建者可以删除任务")
        self._db.delete_task(task_id)
        LOGGER.info("Deleted task id=%s user_id=%s", task_id, user_id)


def _resolve_time_fields(
    start_time: str | None,
    end_time: str | None,
    time_segment: str | None,
) -> tuple[str | None, str | None, str | None]:
    if bool(start_time) != bool(end_time):
        raise TaskValidationError("开始时间和结束时间必须同时提供")
    if start_time and end_time:
        return start_time, end_time, None
    return None, None, time_segment or ALL_DAY


def _row_to_task(row: dict[str, Any]) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        group_id=row["group_id"],
        created_by=row["created_by"],
        assigned_to_ids=[int(v) for v in json.loads(row["assigned_to_json"] or "[]")],
        due_date=row["due_date"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        time_segment=row["time_segment"],
        source=row["source"],
        is_recurring=bool(row["is_recurring"]),
        recurring_rule=json.loads(row["recurring_rule_json"]) if row["recurring_rule_json"] else None,
        recurring_parent_id=row["recurring_parent_id"],
        completed_by=row["completed_by"],
        completed_at=row["completed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
