import sqlite3
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from taskmate.scheduler import ReminderScheduler

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_due_reminders_are_delivered_and_marked_sent(db):
    due = db.create_reminder(1, None, NOW - timedelta(minutes=5), "交报告（前一天 20:00）")
    later = db.create_reminder(1, None, NOW + timedelta(hours=1), "later")
    handler = AsyncMock()

    sent = await ReminderScheduler(db, handler=handler).dispatch_due(NOW)

    assert sent == 1
    delivered = handler.await_args.args[0]
    assert delivered.id == due
    assert delivered.content == "交报告（前一天 20:00）"
    assert db.get_reminder(due)["status"] == "sent"
    assert db.get_reminder(later)["status"] == "pending"


@pytest.mark.asyncio
async def test_failed_delivery_is_marked_failed(db):
    reminder_id = db.create_reminder(1, None, NOW - timedelta(minutes=5), "x")
    handler = AsyncMock(side_effect=RuntimeError("channel down"))

    sent = await ReminderScheduler(db, handler=handler).dispatch_due(NOW)

    assert sent == 0
    assert db.get_reminder(reminder_id)["status"] == "failed"


@pytest.mark.asyncio
async def test_cancelled_reminders_are_not_delivered(db):
    reminder_id = db.create_reminder(1, None, NOW - timedelta(minutes=5), "x")
    db.mark_reminder_status(reminder_id, "cancelled")
    handler = AsyncMock()

    await ReminderScheduler(db, handler=handler).dispatch_due(NOW)

    handler.assert_not_awaited()


@pytest.mark.asyncio
async def test_default_handler_logs_delivery(db, caplog):
    db.create_reminder(7, None, NOW - timedelta(minutes=5), "开会提醒")

    with caplog.at_level("INFO", logger="taskmate.scheduler"):
        await ReminderScheduler(db).dispatch_due(NOW)

    assert "开会提醒" in caplog.text


@pytest.mark.asyncio
async def test_run_forever_stops(db):
    scheduler = ReminderScheduler(db, handler=AsyncMock(), poll_interval_seconds=0.01)
    scheduler.stop()

    await scheduler.run_forever()


@pytest.mark.asyncio
async def test_run_forever_survives_a_failed_poll(db, caplog):
    scheduler = ReminderScheduler(db, handler=AsyncMock(), poll_interval_seconds=0.01)
    calls = 0

    async def flaky_dispatch(now=None):  # noqa: ANN001, ANN202
        nonlocal calls
        calls += 1
        if calls == 1:
            raise sqlite3.OperationalError("database is locked")
        scheduler.stop()
        return 0

    with patch.object(scheduler, "dispatch_due", side_effect=flaky_dispatch), caplog.at_level("ERROR"):
        await scheduler.run_forever()

    assert calls == 2
    assert "Reminder poll failed" in caplog.text
