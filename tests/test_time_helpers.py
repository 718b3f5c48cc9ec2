from taskmate.helpers.time_helpers import (
    ALL_DAY,
    TIME_SEGMENTS,
    format_time_segment_label,
    get_current_time_segment,
    get_default_time_segment_for_date,
    get_time_segment_order,
    get_today_date,
    get_user_now,
    has_date_hint,
    has_explicit_time_point,
    has_explicit_time_range,
    has_time_segment_hint,
    infer_time_segment_from_text,
    is_segment_allowed_for_today,
    is_time_range_passed_for_today,
    is_today_date,
    leading_clock_time,
    normalize_date,
    normalize_time,
    parse_time_to_minutes,
)


def test_user_now_subtracts_offset_from_utc(freeze_utc):
    freeze_utc(2026, 3, 10, 20, 30)

    assert get_user_now(-480).strftime("%Y-%m-%d %H:%M") == "2026-03-11 04:30"
    assert get_user_now(300).strftime("%Y-%m-%d %H:%M") == "2026-03-10 15:30"
    assert get_user_now(0).tzinfo is None


def test_today_follows_user_date_not_utc_date(freeze_utc):
    freeze_utc(2026, 3, 10, 20, 0)

    assert get_today_date(-480) == "2026-03-11"
    assert is_today_date("2026-03-11", -480)
    assert not is_today_date("2026-03-10", -480)
    assert not is_today_date(None, -480)


def test_current_segment_boundaries(freeze_utc):
    expectations = {
        0: "early_morning",
        5: "early_morning",
        6: "morning",
        9: "forenoon",
        12: "noon",
        14: "afternoon",
        18: "evening",
        23: "evening",
    }
    for hour, segment in expectations.items():
        freeze_utc(2026, 3, 10, hour, 0)
        assert get_current_time_segment(0) == segment


def test_segment_order_puts_all_day_first():
    assert get_time_segment_order(ALL_DAY) == -1
    assert get_time_segment_order("unknown") == -1
    assert get_time_segment_order("early_morning") < get_time_segment_order("evening")


def test_segment_label_falls_back_to_all_day():
    assert format_time_segment_label("afternoon") == "下午"
    assert format_time_segment_label(None) == "全天"
    assert format_time_segment_label("bogus") == "全天"


def test_default_segment_is_evening_only_for_today_in_the_evening(freeze_utc):
    freeze_utc(2026, 3, 10, 19, 0)
    assert get_default_time_segment_for_date("2026-03-10", 0) == "evening"
    assert get_default_time_segment_for_date("2026-03-11", 0) == ALL_DAY

    freeze_utc(2026, 3, 10, 10, 0)
    assert get_default_time_segment_for_date("2026-03-10", 0) == ALL_DAY


def test_segment_allowed_for_today(freeze_utc):
    freeze_utc(2026, 3, 10, 15, 0)

    assert is_segment_allowed_for_today("2026-03-10", "afternoon", 0)
    assert is_segment_allowed_for_today("2026-03-10", "evening", 0)
    assert not is_segment_allowed_for_today("2026-03-10", "morning", 0)
    assert is_segment_allowed_for_today("2026-03-10", ALL_DAY, 0)
    assert is_segment_allowed_for_today("2026-03-11", "morning", 0)


def test_all_day_refused_in_the_evening(freeze_utc):
    freeze_utc(2026, 3, 10, 20, 0)

    assert not is_segment_allowed_for_today("2026-03-10", ALL_DAY, 0)
    assert is_segment_allowed_for_today("2026-03-11", ALL_DAY, 0)


def test_time_range_passed(freeze_utc):
    freeze_utc(2026, 3, 10, 15, 0)

    assert is_time_range_passed_for_today("2026-03-10", "13:00", "14:00", 0)
    assert is_time_range_passed_for_today("2026-03-10", "14:00", "15:00", 0)
    assert not is_time_range_passed_for_today("2026-03-10", "14:00", "16:00", 0)
    assert not is_time_range_passed_for_today("2026-03-09", "13:00", "14:00", 0)
    assert not is_time_range_passed_for_today("2026-03-10", "bad", "14:00", 0)


def test_inverted_range_is_never_reported_as_passed(freeze_utc):
    freeze_utc(2026, 3, 10, 23, 30)

    assert not is_time_range_passed_for_today("2026-03-10", "23:00", "01:00", 0)


def test_parse_and_normalize_time():
    assert parse_time_to_minutes("09:30") == 570
    assert parse_time_to_minutes("9:05") == 545
    assert parse_time_to_minutes("14:00:00") == 840
    assert parse_time_to_minutes("24:00") is None
    assert parse_time_to_minutes("noon") is None
    assert parse_time_to_minutes(None) is None
    assert normalize_time("9:05") == "09:05"
    assert normalize_time("25:00") is None


def test_text_hints():
    assert has_time_segment_hint("明天下午开会")
    assert not has_time_segment_hint("开会")
    assert infer_time_segment_from_text("明天下午开会") == "afternoon"
    assert infer_time_segment_from_text("全天下午都在") == ALL_DAY
    assert infer_time_segment_from_text("开会") == ALL_DAY

    assert has_explicit_time_range("3点到5点开会")
    assert has_explicit_time_range("14:00-15:30 会议")
    assert not has_explicit_time_range("下午开会")
    assert has_explicit_time_point("14:30 开会")
    assert not has_explicit_time_point("下午开会")

    assert has_date_hint("明天交报告")
    assert has_date_hint("2026-03-12 交报告")
    assert not has_date_hint("交报告")


def test_disallowed_segment_implies_earlier_segments_disallowed(freeze_utc):
    for hour in range(24):
        freeze_utc(2026, 3, 10, hour, 0)
        allowed = [is_segment_allowed_for_today("2026-03-10", segment, 0) for segment in TIME_SEGMENTS]
        # Once a segment is allowed every later one is too.
        assert allowed == sorted(allowed)


def test_normalize_date_pads_and_rejects():
    assert normalize_date("2026-3-9") == "2026-03-09"
    assert normalize_date(" 2026-03-10 ") == "2026-03-10"
    assert normalize_date("2026-02-30") is None
    assert normalize_date("明天") is None
    assert normalize_date(None) is None


def test_leading_clock_time_takes_range_start():
    assert leading_clock_time("07:00-08:00") == "07:00"
    assert leading_clock_time("9:30") == "09:30"
    assert leading_clock_time("afternoon") is None
    assert leading_clock_time(None) is None
