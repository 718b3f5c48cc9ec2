"""Registry for safe tool registration and execution."""

from __future__ import annotations

import logging
from typing import Any, Literal

from pydantic import ValidationError, create_model

from taskmate.models import AgentConfigurable, ToolResult
from taskmate.tools.base import Tool

LOGGER = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "工具执行出错，请稍后再试。"


class ToolRegistry:
    """Explicit name -> tool dispatch table."""

    def __init__(self, tools: list[Tool] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        self._tools[tool.name] = tool

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def list_tool_specs(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters_schema,
                },
            }
            for tool in self._tools.values()
        ]

    async def execute(
        self,
        tool_name: str,
        arguments: dict[str, Any],
        context: AgentConfigurable | None,
    ) -> ToolResult:
        """Validate arguments and run the tool.

        Raises KeyError for unknown tools and ValueError for invalid arguments.
        Any other failure inside the tool becomes an ``error`` result.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            raise KeyError(f"Unknown tool: {tool_name}")

        validated = _validate_json_schema(tool.parameters_schema, arguments)
        try:
            result = await tool.run(context, **validated)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Tool %s failed", tool_name)
            result = ToolResult.error(INTERNAL_ERROR_MESSAGE)
            _audit(context, tool_name, validated, result, succeeded=False)
            return result

        LOGGER.info("Tool %s -> %s", tool_name, result.status)
        _audit(context, tool_name, validated, result, succeeded=result.status != "error")
        return result


def _audit(
    context: AgentConfigurable | None,
    tool_name: str,
    arguments: dict[str, Any],
    result: ToolResult,
    succeeded: bool,
) -> None:
    if context is None or context.db is None:
        return
    try:
        context.db.log_tool_execution(context.user_id, tool_name, arguments, result.to_dict(), succeeded=succeeded)
    except Exception:  # noqa: BLE001
        LOGGER.exception("Failed to record execution of %s", tool_name)


def _validate_json_schema(schema: dict[str, Any], payload: dict[str, Any]) -> dict[str, Any]:
    props = schema.get("properties", {})
    required = set(schema.get("required", []))
    fields: dict[str, tuple[Any, Any]] = {}
    for name, config in props.items():
        typ = _python_type(config)
        if name in required:
            fields[name] = (typ, ...)
        else:
            fields[name] = (typ | None, None)

    model = create_model("ToolInputModel", **fields)
    try:
        value = model(**payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid input for tool: {exc}") from exc
    return value.model_dump(exclude_none=True)


def _python_type(config: dict[str, Any]) -> Any:
    if "enum" in config:
        return Literal[tuple(config["enum"])]
    mapping: dict[str, type[Any]] = {
        "string": str,
        "integer": int,
        "number": float,
        "boolean": bool,
        "object": dict,
        "array": list,
    }
    return mapping.get(config.get("type", "string"), str)
