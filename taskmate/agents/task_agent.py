"""Task management agent."""

from __future__ import annotations

from taskmate.agents.base import DEFAULT_MAX_ITERATIONS, ReactAgent
from taskmate.helpers.time_helpers import (
    format_time_segment_label,
    get_current_time_segment,
    get_today_date,
    get_user_now,
    get_weekday_label,
)
from taskmate.llm.base import LLMProvider
from taskmate.tools.registry import ToolRegistry
from taskmate.tools.task_tools import task_tools

TASK_AGENT_NAME = "task_agent"

TASK_AGENT_PROMPT = """你是任务管理专家，帮助用户管理日常任务。

## 当前上下文
- 今天：{today}（{weekday}）
- 当前时段：{current_segment}

## 参数提取指导
- title：简洁的动作短语（如"去4S店取车"、"开家长会"）
- dueDate：YYYY-MM-DD 格式，用户未指定时不传（工具默认今天）
- startTime/endTime：必须成对提供（HH:MM），用户只说一个时间点时仅提取 startTime
- timeSegment：模糊时段（全天/凌晨/早上/上午/中午/下午/晚上），与 startTime/endTime 互斥
- priority：high/medium/low，用户未提及时不传

## 重要规则
- 时间合理性校验、冲突检测由工具自动完成，你不需要判断
- 如果工具返回 need_confirmation 或 conflict，将工具的提示信息原样转达给用户，不要删改"已过"或"冲突"等关键信息
- 只有当用户针对"已有类似任务"的提示明确回复"确认"后，才用相同参数并加上 confirmed=true 重新调用 create_task
- 匹配到多个任务时，请用户提供任务 ID，绝不自行猜测
- 用户说"完成XXX" → 调用 finish_task
- 用户说"删除XXX"/"取消XXX" → 调用 remove_task
- 用户说"修改XXX"/"把XXX改成..." → 调用 modify_task
"""


def build_task_agent_prompt(tz_offset: int) -> str:
    return TASK_AGENT_PROMPT.format(
        today=get_today_date(tz_offset),
        weekday=get_weekday_label(get_user_now(tz_offset)),
        current_segment=format_time_segment_label(get_current_time_segment(tz_offset)),
    )


def create_task_agent(
    llm: LLMProvider,
    tz_offset: int,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    request_timeout_seconds: float = 30.0,
) -> ReactAgent:
    # Prompt is rendered per build so "today" is never stale.
    return ReactAgent(
        name=TASK_AGENT_NAME,
        llm=llm,
        registry=ToolRegistry(task_tools()),
        prompt=build_task_agent_prompt(tz_offset),
        max_iterations=max_iterations,
        request_timeout_seconds=request_timeout_seconds,
    )
