"""Bounded tool-calling loop shared by every specialist agent."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
import uuid
from typing import Any

from taskmate.llm.base import LLMProvider
from taskmate.models import AgentConfigurable, LLMResponse, LLMToolCall, ToolResult
from taskmate.tools.registry import ToolRegistry

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 8
ITERATION_LIMIT_REPLY = "抱歉，这个请求处理步骤过多，我暂时无法完成。请换个说法或拆分后再试。"


class AgentState(enum.Enum):
    AWAITING_LLM = "awaiting_llm"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class ReactAgent:
    """One LLM bound to a fixed tool subset and a system prompt.

    ``run`` alternates LLM calls and tool executions until the model answers
    without tool calls or ``max_iterations`` LLM calls have been made. Tool
    calls from one response run sequentially, in order, before the next LLM
    call.
    """

    def __init__(
        self,
        name: str,
        llm: LLMProvider,
        registry: ToolRegistry,
        prompt: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        request_timeout_seconds: float = 30.0,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.name = name
        self.prompt = prompt
        self._llm = llm
        self._registry = registry
        self._max_iterations = max_iterations
        self._request_timeout_seconds = request_timeout_seconds

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def run(self, messages: list[dict[str, Any]], context: AgentConfigurable | None) -> list[dict[str, Any]]:
        """Run the loop over ``messages`` and return only the messages it produced."""

        produced: list[dict[str, Any]] = []
        state = AgentState.AWAITING_LLM
        iterations = 0
        response: LLMResponse | None = None

        while state is not AgentState.DONE:
            if state is AgentState.AWAITING_LLM:
                if iterations >= self._max_iterations:
                    LOGGER.warning("Agent %s hit its iteration ceiling (%d)", self.name, self._max_iterations)
                    produced.append({"role": "assistant", "name": self.name, "content": ITERATION_LIMIT_REPLY})
                    state = AgentState.DONE
                    continue
                iterations += 1
                response = await asyncio.wait_for(
                    self._llm.generate(
                        [{"role": "system", "content": self.prompt}, *messages, *produced],
                        tools=self._registry.list_tool_specs(),
                    ),
                    timeout=self._request_timeout_seconds,
                )
                if response.tool_calls:
                    assign_call_ids(response.tool_calls)
                    produced.append(assistant_tool_call_message(self.name, response.content, response.tool_calls))
                    state = AgentState.EXECUTING_TOOLS
                else:
                    produced.append({"role": "assistant", "name": self.name, "content": response.content})
                    state = AgentState.DONE
            else:
                for tool_call in response.tool_calls:
                    result = await self._execute(tool_call, context)
                    produced.append(tool_message(tool_call, result.to_json()))
                state = AgentState.AWAITING_LLM

        return produced

    async def _execute(self, tool_call: LLMToolCall, context: AgentConfigurable | None) -> ToolResult:
        LOGGER.info("Agent %s calling %s args=%s", self.name, tool_call.name, tool_call.arguments)
        try:
            return await self._registry.execute(tool_call.name, tool_call.arguments, context)
        except KeyError:
            return ToolResult.error(f"未知工具：{tool_call.name}")
        except ValueError as exc:
            return ToolResult.error(f"参数无效：{exc}")


def assign_call_ids(tool_calls: list[LLMToolCall]) -> None:
    for tool_call in tool_calls:
        if not tool_call.call_id:
            tool_call.call_id = f"call_{uuid.uuid4().hex[:12]}"


def assistant_tool_call_message(name: str, content: str, tool_calls: list[LLMToolCall]) -> dict[str, Any]:
    return {
        "role": "assistant",
        "name": name,
        "content": content,
        "tool_calls": [
            {
                "id": tc.call_id,
                "type": "function",
                "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
            }
            for tc in tool_calls
        ],
    }


def tool_message(tool_call: LLMToolCall, content: str) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": tool_call.call_id, "name": tool_call.name, "content": content}
