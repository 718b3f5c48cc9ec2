from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from taskmate.db import Database
from taskmate.models import AgentConfigurable


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "taskmate.db")
    database.initialize()
    return database


@pytest.fixture
def freeze_utc():
    """Freeze the user clock: ``freeze_utc(2026, 3, 10, 12)`` pins UTC to that instant."""

    patchers = []

    def _freeze(*args: int) -> datetime:
        moment = datetime(*args, tzinfo=timezone.utc)
        patcher = patch("taskmate.helpers.time_helpers._utc_now", return_value=moment)
        patcher.start()
        patchers.append(patcher)
        return moment

    yield _freeze
    for patcher in reversed(patchers):
        patcher.stop()


@pytest.fixture
def context(db):
    return AgentConfigurable(db=db, user_id=1, timezone_offset_minutes=0)
