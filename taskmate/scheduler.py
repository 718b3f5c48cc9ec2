"""Async dispatcher for due reminders."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from taskmate.db import Database
from taskmate.models import Reminder

LOGGER = logging.getLogger(__name__)

ReminderHandler = Callable[[Reminder], Awaitable[None]]


async def log_reminder(reminder: Reminder) -> None:
    """Default delivery: a log line on the console channel."""

    LOGGER.info("Reminder for user_id=%s: %s", reminder.user_id, reminder.content)


class ReminderScheduler:
    """Polls pending reminders that are due and hands them to a delivery callback."""

    def __init__(
        self,
        db: Database,
        handler: ReminderHandler | None = None,
        poll_interval_seconds: float = 30.0,
    ) -> None:
        self._db = db
        self._handler = handler or log_reminder
        self._poll_interval_seconds = poll_interval_seconds
        self._stop_event = asyncio.Event()

    async def dispatch_due(self, now: datetime | None = None) -> int:
        """Deliver every reminder due at ``now``; return how many were sent."""

        sent = 0
        for row in self._db.get_due_reminders(now or datetime.now(timezone.utc)):
            reminder = Reminder(
                id=row["id"],
                user_id=row["user_id"],
                task_id=row["task_id"],
                remind_at=row["remind_at"],
                content=row["content"],
                status=row["status"],
                channel=row["channel"],
            )
            try:
                await self._handler(reminder)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Reminder delivery failed id=%s", reminder.id)
                self._db.mark_reminder_status(reminder.id, "failed")
                continue
            self._db.mark_reminder_status(reminder.id, "sent")
            sent += 1
        return sent

    async def run_forever(self) -> None:
        """Run scheduler loop until stop() is called."""

        while not self._stop_event.is_set():
            try:
                await self.dispatch_due()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Reminder poll failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._poll_interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Signal the loop to stop."""

        self._stop_event.set()
