import itertools
from unittest.mock import AsyncMock, Mock

import pytest

from bot.messenger import Messenger, SendResult
from bot.reaction_notify import CleanupScheduler, ReactionNotifier


@pytest.fixture
def messenger():
    """Messenger that delivers everything, new messages get IDs 100, 101, ..."""
    ids = itertools.count(100)
    m = Mock(spec=Messenger)
    m.send_message = AsyncMock(side_effect=lambda user_id, text: SendResult(True, next(ids)))
    m.edit_message_text = AsyncMock(
        side_effect=lambda user_id, message_id, text: SendResult(True, message_id)
    )
    m.delete_message = AsyncMock(
        side_effect=lambda user_id, message_id: SendResult(True, message_id)
    )
    return m


@pytest.fixture
def job_queue():
    return Mock()


@pytest.fixture
def clock():
    ticks = itertools.count(1_700_000_000_000, 1000)
    return lambda: next(ticks)


@pytest.fixture
def scheduler(tracker, messenger, job_queue):
    return CleanupScheduler(tracker, messenger, job_queue, grace=30)


@pytest.fixture
def notifier(registry, tracker, messenger, scheduler, clock):
    return ReactionNotifier(registry, tracker, messenger, scheduler, clock=clock)
