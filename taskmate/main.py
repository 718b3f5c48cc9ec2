"""Application entrypoint: a console chat session for one user."""

from __future__ import annotations

import asyncio
import logging

from taskmate.config import load_settings
from taskmate.db import Database
from taskmate.scheduler import ReminderScheduler
from taskmate.service import MultiAgentService

LOGGER = logging.getLogger(__name__)

CLEAR_COMMAND = "@clear"
HISTORY_COMMAND = "@history"
EXIT_COMMANDS = {"exit", "quit"}


async def run() -> None:
    """Initialize app layers and start the input loop."""

    settings = load_settings()

    db = Database(settings.database_path)
    db.initialize()

    service = MultiAgentService(db=db, settings=settings)
    scheduler = ReminderScheduler(db=db, poll_interval_seconds=settings.reminder_poll_interval_seconds)
    scheduler_task = asyncio.create_task(scheduler.run_forever(), name="reminder-scheduler")

    user_id = settings.cli_user_id
    LOGGER.info("Chat session started user_id=%s database=%s", user_id, settings.database_path)
    try:
        while True:
            try:
                text = (await asyncio.to_thread(input, "> ")).strip()
            except EOFError:
                break
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            if text == CLEAR_COMMAND:
                service.clear_history(user_id)
                print("历史记录已清空")
                continue
            if text == HISTORY_COMMAND:
                for entry in service.get_history(user_id):
                    print(f"[{entry['role']}] {entry['content']}")
                continue

            result = await service.chat(user_id, text)
            print(result.content)
    except asyncio.CancelledError:
        raise
    finally:
        scheduler.stop()
        scheduler_task.cancel()
        LOGGER.info("Assistant shutdown complete")


def main() -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
