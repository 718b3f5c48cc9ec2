"""Tool contracts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from taskmate.models import AgentConfigurable, ToolResult

MISSING_CONTEXT_MESSAGE = "缺少运行时上下文"


class Tool(ABC):
    """Base class for all agent tools."""

    name: str
    description: str
    parameters_schema: dict[str, Any]

    @abstractmethod
    async def run(self, context: AgentConfigurable | None, **kwargs: Any) -> ToolResult:
        """Execute tool with validated arguments."""


def has_runtime_context(context: AgentConfigurable | None) -> bool:
    return context is not None and context.db is not None and bool(context.user_id)
