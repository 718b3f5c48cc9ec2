"""Supervisor that routes a user turn between the specialist agents."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any

from taskmate.agents.base import ReactAgent, assign_call_ids, assistant_tool_call_message, tool_message
from taskmate.agents.calendar_agent import create_calendar_agent
from taskmate.agents.notification_agent import create_notification_agent
from taskmate.agents.task_agent import create_task_agent
from taskmate.agents.weather_agent import create_weather_agent
from taskmate.llm.base import LLMProvider
from taskmate.models import AgentConfigurable, LLMToolCall

LOGGER = logging.getLogger(__name__)

SUPERVISOR_NAME = "supervisor"
HANDOFF_PREFIX = "transfer_to_"
HANDBACK_TOOL_NAME = "transfer_back_to_supervisor"
DEFAULT_MAX_TURNS = 6
TURN_LIMIT_REPLY = "抱歉，这个请求处理步骤过多，我暂时无法完成。请换个说法或拆分后再试。"

SUPERVISOR_PROMPT = """你是一个智能助手的调度中心，负责将用户请求分发给合适的专家。

可用专家（通过 transfer_to_<专家名> 工具转交）：
- task_agent：处理任务的创建、查询、修改、完成、删除
- calendar_agent：查看日程安排、查找空闲时间
- weather_agent：查询天气信息
- notification_agent：安排、查询、取消任务提醒

分发规则：
- 涉及任务操作（创建/完成/修改/删除/查询任务）→ task_agent
- 询问日程/时间安排/是否有空 → calendar_agent
- 询问天气 → weather_agent
- 涉及提醒/通知 → notification_agent
- 复合请求（如"周末早上去机场接人"）→ 先转交 task_agent，如涉及提醒再转交 notification_agent，一次只转交一个专家
- 非以上范围 → 不要转交，直接礼貌告知只能处理任务和日程相关需求

专家完成后会把控制权交还给你，请根据专家结果用一两句话给出最终回复。
回复规范：使用中文，简洁友好；专家给出的确认、冲突或"已过"提示必须保留原意。"""


class ConversationCheckpointer:
    """Per-thread memory of completed turns.

    Whole turns are kept so tool calls and their results are never split;
    only the latest ``max_turns`` turns survive.
    """

    def __init__(self, max_turns: int = 10) -> None:
        self._max_turns = max_turns
        self._threads: dict[str, deque[list[dict[str, Any]]]] = {}

    def load(self, thread_id: str) -> list[dict[str, Any]]:
        turns = self._threads.get(thread_id)
        if not turns:
            return []
        return [message for turn in turns for message in turn]

    def save_turn(self, thread_id: str, messages: list[dict[str, Any]]) -> None:
        turns = self._threads.setdefault(thread_id, deque(maxlen=self._max_turns))
        turns.append(list(messages))

    def clear(self, thread_id: str) -> None:
        self._threads.pop(thread_id, None)


class Supervisor:
    """Routing graph: the supervisor LLM hands control to one agent at a time.

    Full message history is preserved across handoffs so structured tool
    results stay visible to the caller after the agents have summarized them.
    """

    def __init__(
        self,
        llm: LLMProvider,
        agents: list[ReactAgent],
        prompt: str = SUPERVISOR_PROMPT,
        max_turns: int = DEFAULT_MAX_TURNS,
        request_timeout_seconds: float = 30.0,
        checkpointer: ConversationCheckpointer | None = None,
    ) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._llm = llm
        self._agents = {agent.name: agent for agent in agents}
        self._prompt = prompt
        self._max_turns = max_turns
        self._request_timeout_seconds = request_timeout_seconds
        self._checkpointer = checkpointer

    @property
    def agent_names(self) -> list[str]:
        return list(self._agents)

    def handoff_tool_specs(self) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": f"{HANDOFF_PREFIX}{name}",
                    "description": f"将当前请求转交给 {name} 处理",
                    "parameters": {"type": "object", "properties": {}, "additionalProperties": False},
                },
            }
            for name in self._agents
        ]

    async def invoke(self, new_messages: list[dict[str, Any]], context: AgentConfigurable) -> list[dict[str, Any]]:
        """Run one turn and return the messages of this turn, inputs first."""

        history = self._checkpointer.load(context.thread_id) if self._checkpointer else []
        turn: list[dict[str, Any]] = list(new_messages)
        supervisor_calls = 0

        while True:
            if supervisor_calls >= self._max_turns:
                LOGGER.warning("Supervisor hit its turn ceiling (%d) thread=%s", self._max_turns, context.thread_id)
                turn.append({"role": "assistant", "name": SUPERVISOR_NAME, "content": TURN_LIMIT_REPLY})
                break
            supervisor_calls += 1

            response = await asyncio.wait_for(
                self._llm.generate(
                    [{"role": "system", "content": self._prompt}, *history, *turn],
                    tools=self.handoff_tool_specs(),
                ),
                timeout=self._request_timeout_seconds,
            )
            if not response.tool_calls:
                turn.append({"role": "assistant", "name": SUPERVISOR_NAME, "content": response.content})
                break

            assign_call_ids(response.tool_calls)
            turn.append(assistant_tool_call_message(SUPERVISOR_NAME, response.content, response.tool_calls))
            agent = self._answer_handoff_calls(response.tool_calls, turn)
            if agent is None:
                continue

            LOGGER.info("Handoff to %s thread=%s", agent.name, context.thread_id)
            turn.extend(await agent.run([*history, *turn], context))
            turn.extend(_handback_messages(agent.name))

        if self._checkpointer:
            self._checkpointer.save_turn(context.thread_id, turn)
        return turn

    def _answer_handoff_calls(self, tool_calls: list[LLMToolCall], turn: list[dict[str, Any]]) -> ReactAgent | None:
        """Reply to every handoff call; return the single agent that takes control."""

        target: ReactAgent | None = None
        for tool_call in tool_calls:
            agent = self._agents.get(tool_call.name.removeprefix(HANDOFF_PREFIX))
            if not tool_call.name.startswith(HANDOFF_PREFIX) or agent is None:
                turn.append(tool_message(tool_call, f"未知的转交目标：{tool_call.name}"))
            elif target is not None:
                turn.append(tool_message(tool_call, "一次只能转交给一个专家，请在当前专家完成后再转交。"))
            else:
                target = agent
                turn.append(tool_message(tool_call, f"Successfully transferred to {agent.name}"))
        return target


def _handback_messages(agent_name: str) -> list[dict[str, Any]]:
    call = LLMToolCall(name=HANDBACK_TOOL_NAME, arguments={})
    assign_call_ids([call])
    return [
        assistant_tool_call_message(agent_name, "", [call]),
        tool_message(call, "Successfully transferred back to supervisor"),
    ]


def build_supervisor(
    llm: LLMProvider,
    tz_offset: int,
    max_turns: int = DEFAULT_MAX_TURNS,
    agent_max_iterations: int = 8,
    request_timeout_seconds: float = 30.0,
    checkpointer: ConversationCheckpointer | None = None,
) -> Supervisor:
    agent_options = {"max_iterations": agent_max_iterations, "request_timeout_seconds": request_timeout_seconds}
    agents = [
        create_task_agent(llm, tz_offset, **agent_options),
        create_calendar_agent(llm, tz_offset, **agent_options),
        create_weather_agent(llm, tz_offset, **agent_options),
        create_notification_agent(llm, tz_offset, **agent_options),
    ]
    return Supervisor(
        llm=llm,
        agents=agents,
        max_turns=max_turns,
        request_timeout_seconds=request_timeout_seconds,
        checkpointer=checkpointer,
    )
