"""Pure helpers answering "what is now for this user" and "is this slot still valid".

Timezone offsets follow the JavaScript ``Date.getTimezoneOffset`` convention:
minutes to *subtract* from UTC to reach the user's wall clock. UTC+8 is
therefore ``-480``, UTC-5 is ``300``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

ALL_DAY = "all_day"
# Ordered; index is used for "earlier than" comparisons.
TIME_SEGMENTS: tuple[str, ...] = ("early_morning", "morning", "forenoon", "noon", "afternoon", "evening")
SEGMENT_CHOICES: tuple[str, ...] = (ALL_DAY, *TIME_SEGMENTS)

_SEGMENT_LABELS = {
    "early_morning": "凌晨",
    "morning": "早上",
    "forenoon": "上午",
    "noon": "中午",
    "afternoon": "下午",
    "evening": "晚上",
    ALL_DAY: "全天",
}

# (start hour inclusive, end hour exclusive, segment)
_SEGMENT_HOURS = (
    (0, 6, "early_morning"),
    (6, 9, "morning"),
    (9, 12, "forenoon"),
    (12, 14, "noon"),
    (14, 18, "afternoon"),
    (18, 24, "evening"),
)

_SEGMENT_HINTS = (
    ("全天", ALL_DAY),
    ("凌晨", "early_morning"),
    ("清晨", "early_morning"),
    ("早上", "morning"),
    ("早晨", "morning"),
    ("上午", "forenoon"),
    ("中午", "noon"),
    ("下午", "afternoon"),
    ("午后", "afternoon"),
    ("晚上", "evening"),
    ("夜晚", "evening"),
    ("夜里", "evening"),
    ("傍晚", "evening"),
)

_DATE_KEYWORDS = (
    "今天", "明天", "后天", "昨天", "今晚", "今早",
    "本周", "这周", "下周", "下星期", "本月", "这个月", "下个月",
    "周一", "周二", "周三", "周四", "周五", "周六", "周日",
    "星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日",
    "周末",
)

_WEEKDAY_LABELS = ("星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日")

_TIME_TOKEN = re.compile(r"\d{1,2}(?:[:点时]\d{1,2})?")
_TIME_RANGE = re.compile(r"(\d{1,2}(?:[:点时]\d{1,2})?)\s*[-到至~]\s*(\d{1,2}(?:[:点时]\d{1,2})?)")
_TIME_POINT = re.compile(r"\d{1,2}[:点时]\d{1,2}")
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_LEADING_CLOCK = re.compile(r"\s*(\d{1,2}:\d{2})")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def get_user_now(tz_offset: int) -> datetime:
    """Return the user's current wall-clock time as a naive datetime."""
    return (_utc_now() - timedelta(minutes=tz_offset)).replace(tzinfo=None)


def get_today_date(tz_offset: int) -> str:
    return get_user_now(tz_offset).strftime("%Y-%m-%d")


def is_today_date(date_str: str | None, tz_offset: int) -> bool:
    if not date_str:
        return False
    return date_str == get_today_date(tz_offset)


def segment_for_hour(hour: int) -> str:
    for start, end, segment in _SEGMENT_HOURS:
        if start <= hour < end:
            return segment
    return "morning"


def get_current_time_segment(tz_offset: int) -> str:
    return segment_for_hour(get_user_now(tz_offset).hour)


def get_time_segment_order(segment: str | None) -> int:
    """Position of ``segment`` in the day; ``all_day`` and unknown values sort as -1."""
    try:
        return TIME_SEGMENTS.index(segment)  # type: ignore[arg-type]
    except ValueError:
        return -1


def format_time_segment_label(segment: str | None) -> str:
    return _SEGMENT_LABELS.get(segment or ALL_DAY, _SEGMENT_LABELS[ALL_DAY])


def get_weekday_label(day: datetime) -> str:
    return _WEEKDAY_LABELS[day.weekday()]


def parse_time_to_minutes(time: str | None) -> int | None:
    """Parse ``H:MM``/``HH:MM[:SS]`` into minutes since midnight, or None."""
    if not time:
        return None
    match = _HHMM.match(time.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def format_minutes(total_minutes: int) -> str:
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def normalize_time(time: str | None) -> str | None:
    """Return ``time`` as zero-padded ``HH:MM``, or None if it does not parse."""
    minutes = parse_time_to_minutes(time)
    return None if minutes is None else format_minutes(minutes)


def normalize_date(date_str: str | None) -> str | None:
    """Return ``date_str`` as zero-padded ``YYYY-MM-DD``, or None if it is not a date."""
    if not date_str:
        return None
    try:
        return datetime.strptime(date_str.strip(), "%Y-%m-%d").strftime("%Y-%m-%d")
    except ValueError:
        return None


def leading_clock_time(text: str | None) -> str | None:
    """First ``H:MM`` at the start of ``text`` as ``HH:MM``; ``"07:00-08:00"`` gives ``"07:00"``."""
    if not text:
        return None
    match = _LEADING_CLOCK.match(text)
    return normalize_time(match.group(1)) if match else None


def get_default_time_segment_for_date(date_str: str, tz_offset: int) -> str:
    if not is_today_date(date_str, tz_offset):
        return ALL_DAY
    if get_current_time_segment(tz_offset) == "evening":
        return "evening"
    return ALL_DAY


def is_segment_allowed_for_today(date_str: str, segment: str, tz_offset: int) -> bool:
    """Whether ``segment`` can still be scheduled on ``date_str``.

    Other dates are always allowed. For today, ``all_day`` is refused once it
    is evening and any other segment must not be earlier than the current one.
    """
    if not is_today_date(date_str, tz_offset):
        return True
    current = get_current_time_segment(tz_offset)
    if segment == ALL_DAY:
        return current != "evening"
    return get_time_segment_order(segment) >= get_time_segment_order(current)


def is_time_range_passed_for_today(
    date_str: str,
    start_time: str | None,
    end_time: str | None,
    tz_offset: int,
) -> bool:
    if not is_today_date(date_str, tz_offset):
        return False
    start_minutes = parse_time_to_minutes(start_time)
    end_minutes = parse_time_to_minutes(end_time)
    if start_minutes is None or end_minutes is None:
        return False
    # Inverted ranges may be overnight; never report them as passed.
    if end_minutes < start_minutes:
        return False
    now = get_user_now(tz_offset)
    return end_minutes <= now.hour * 60 + now.minute


def build_segment_not_allowed_message(target: str, tz_offset: int) -> str:
    now_label = format_time_segment_label(get_current_time_segment(tz_offset))
    if target == ALL_DAY:
        return "现在已是晚上，无法设置为全天。请确认要改成晚上，或提供具体时间段。"
    target_label = format_time_segment_label(target)
    return (
        f"现在已经是{now_label}了，无法选择{target_label}时间段。"
        f"请确认要改成{now_label}或更晚的时间段，或提供具体时间段。"
    )


def has_time_segment_hint(text: str) -> bool:
    return any(keyword in text for keyword, _ in _SEGMENT_HINTS)


def infer_time_segment_from_text(text: str) -> str:
    # Checked in day order so "全天" wins over any part-of-day word.
    for keyword, segment in _SEGMENT_HINTS:
        if keyword in text:
            return segment
    return ALL_DAY


def has_explicit_time_range(text: str) -> bool:
    if len(_TIME_TOKEN.findall(text)) >= 2:
        return True
    return _TIME_RANGE.search(text) is not None


def has_explicit_time_point(text: str) -> bool:
    return _TIME_POINT.search(text) is not None


def has_date_hint(text: str) -> bool:
    if _ISO_DATE.search(text):
        return True
    return any(keyword in text for keyword in _DATE_KEYWORDS)
