"""Core domain models used across layers."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

if TYPE_CHECKING:
    from taskmate.db import Database

ToolResultStatus = Literal["success", "conflict", "need_confirmation", "error"]
ToolActionType = Literal["create", "update", "complete", "delete"]
ChatResultType = Literal["text", "task_summary", "question"]


@dataclass(slots=True)
class LLMToolCall:
    """Tool invocation returned by an LLM provider."""

    name: str
    arguments: dict[str, Any]
    call_id: str | None = None


@dataclass(slots=True)
class LLMResponse:
    """Result from an LLM generation request."""

    content: str
    tool_calls: list[LLMToolCall] = field(default_factory=list)
    raw: dict[str, Any] | None = None


@dataclass(slots=True)
class Task:
    """A task as returned by the task store.

    A task carries either an explicit ``start_time``/``end_time`` pair or a
    ``time_segment``, never both.
    """

    id: int
    title: str
    description: str | None = None
    status: str = "pending"
    priority: str = "medium"
    group_id: int | None = None
    created_by: int = 0
    assigned_to_ids: list[int] = field(default_factory=list)
    due_date: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    time_segment: str | None = "all_day"
    source: str = "human"
    is_recurring: bool = False
    recurring_rule: dict[str, Any] | None = None
    recurring_parent_id: int | None = None
    completed_by: int | None = None
    completed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    def has_time_range(self) -> bool:
        return bool(self.start_time and self.end_time)

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the camelCase keys of the tool result wire format."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "groupId": self.group_id,
            "createdBy": self.created_by,
            "assignedToIds": list(self.assigned_to_ids),
            "dueDate": self.due_date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "timeSegment": self.time_segment,
            "source": self.source,
            "isRecurring": self.is_recurring,
            "recurringRule": self.recurring_rule,
            "recurringParentId": self.recurring_parent_id,
            "completedBy": self.completed_by,
            "completedAt": self.completed_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class Reminder:
    """Represents a persisted reminder."""

    id: int
    user_id: int
    task_id: int | None
    remind_at: str
    content: str
    status: str
    channel: str = "console"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "taskId": self.task_id,
            "remindAt": self.remind_at,
            "content": self.content,
            "status": self.status,
            "channel": self.channel,
        }


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Uniform outcome returned by every tool.

    ``message`` is read by the LLM; ``task`` and ``conflicting_tasks`` are
    extracted structurally by the chat service.
    """

    status: ToolResultStatus
    message: str
    task: Task | None = None
    conflicting_tasks: tuple[Task, ...] | None = None
    action_performed: ToolActionType | None = None
    data: dict[str, Any] | None = None

    @classmethod
    def ok(
        cls,
        message: str,
        task: Task | None = None,
        action_performed: ToolActionType | None = None,
        data: dict[str, Any] | None = None,
    ) -> ToolResult:
        return cls(status="success", message=message, task=task, action_performed=action_performed, data=data)

    @classmethod
    def error(cls, message: str) -> ToolResult:
        return cls(status="error", message=message)

    @classmethod
    def need_confirmation(cls, message: str) -> ToolResult:
        return cls(status="need_confirmation", message=message)

    @classmethod
    def conflict(cls, message: str, conflicting_tasks: list[Task]) -> ToolResult:
        return cls(status="conflict", message=message, conflicting_tasks=tuple(conflicting_tasks))

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status, "message": self.message}
        if self.task is not None:
            payload["task"] = self.task.to_dict()
        if self.conflicting_tasks is not None:
            payload["conflictingTasks"] = [t.to_dict() for t in self.conflicting_tasks]
        if self.action_performed is not None:
            payload["actionPerformed"] = self.action_performed
        if self.data is not None:
            payload["data"] = self.data
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, default=_json_default)


@dataclass(slots=True)
class AgentConfigurable:
    """Per-invocation runtime context threaded through every tool call."""

    db: Database | None
    user_id: int
    timezone_offset_minutes: int = 0
    thread_id: str = ""
    user_message: str = ""

    def __post_init__(self) -> None:
        if not self.thread_id:
            self.thread_id = f"user_{self.user_id}"


@dataclass(slots=True)
class ChatResult:
    """Reply of one chat turn as exposed to callers."""

    content: str
    type: ChatResultType = "text"
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "type": self.type, "payload": self.payload}


def _json_default(value: Any) -> Any:
    if isinstance(value, Task | Reminder):
        return value.to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
