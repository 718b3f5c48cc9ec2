"""Duplicate and overlap detection over task records."""

from __future__ import annotations

import re
from collections.abc import Iterable

from taskmate.helpers.time_helpers import parse_time_to_minutes
from taskmate.models import Task

SEMANTIC_DUPLICATE_THRESHOLD = 0.75

# Applied in order. Filler words go first, then near-synonyms collapse to one form.
_TITLE_REPLACEMENTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"提醒我|帮我|麻烦|请|一下|记得|我要|我想|需要|安排|计划"), ""),
    (re.compile(r"拿|取|领取|取回|带回"), "取"),
    (re.compile(r"快递|包裹|快件|邮件"), "快递"),
    (re.compile(r"衣物|衣服"), "衣服"),
    (re.compile(r"车子|车里|车内|车上"), "车"),
    (re.compile(r"回到家|带回家"), "回家"),
    (re.compile(r"购买|采购"), "买"),
)
_PUNCTUATION = re.compile(r"[\s~`!@#$%^&*()_\-+=\[\]{}|;:'\",.<>/?，。！？、；：“”‘’（）【】《》]+")


def _normalize_once(text: str) -> str:
    for pattern, replacement in _TITLE_REPLACEMENTS:
        text = pattern.sub(replacement, text)
    return _PUNCTUATION.sub("", text)


def normalize_task_title(title: str) -> str:
    """Collapse paraphrases of the same errand to a comparable canonical string.

    Removing a filler word can glue two fragments into a new filler word, so the
    rewrite is repeated until it reaches a fixed point.
    """
    text = title.lower()
    while True:
        normalized = _normalize_once(text)
        if normalized == text:
            return normalized
        text = normalized


def build_bigrams(text: str) -> set[str]:
    return {text[i : i + 2] for i in range(len(text) - 1)}


def dice_coefficient(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if len(a) < 2 or len(b) < 2:
        return 1.0 if a == b else 0.0
    a_bigrams = build_bigrams(a)
    b_bigrams = build_bigrams(b)
    intersection = len(a_bigrams & b_bigrams)
    return 2 * intersection / (len(a_bigrams) + len(b_bigrams))


def is_semantic_duplicate(new_title: str, existing_title: str) -> bool:
    """Compare two already-normalized titles."""
    if not new_title or not existing_title:
        return False
    if new_title == existing_title:
        return True
    if new_title in existing_title or existing_title in new_title:
        return True
    return dice_coefficient(new_title, existing_title) >= SEMANTIC_DUPLICATE_THRESHOLD


def find_semantic_conflicts(tasks: Iterable[Task], title: str) -> list[Task]:
    normalized_new = normalize_task_title(title)
    if not normalized_new:
        return []
    return [task for task in tasks if is_semantic_duplicate(normalized_new, normalize_task_title(task.title))]


def filter_time_conflicts(tasks: Iterable[Task], start_time: str, end_time: str) -> list[Task]:
    """Tasks whose explicit range overlaps ``[start_time, end_time)``.

    Tasks without both times never take part in time conflicts.
    """
    new_start = parse_time_to_minutes(start_time)
    new_end = parse_time_to_minutes(end_time)
    if new_start is None or new_end is None:
        return []
    conflicts = []
    for task in tasks:
        task_start = parse_time_to_minutes(task.start_time)
        task_end = parse_time_to_minutes(task.end_time)
        if task_start is None or task_end is None:
            continue
        if task_start < new_end and task_end > new_start:
            conflicts.append(task)
    return conflicts


def merge_conflicting_tasks(time_conflicts: Iterable[Task], semantic_conflicts: Iterable[Task]) -> list[Task]:
    merged: dict[int, Task] = {}
    for task in time_conflicts:
        merged[task.id] = task
    for task in semantic_conflicts:
        merged.setdefault(task.id, task)
    return list(merged.values())
