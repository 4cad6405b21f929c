from datetime import datetime, timezone
from typing import Callable

import pytest
from _pytest.fixtures import FixtureRequest
from telegram import (
    Chat as TGChat,
    MessageReactionUpdated,
    ReactionTypeEmoji,
    User as TGUser,
)

from .utils import append_to_cls, get_id


def to_reactions(reactions):
    return tuple(ReactionTypeEmoji(r) if isinstance(r, str) else r for r in reactions)


@pytest.fixture(scope='class')
def create_tg_user(request: FixtureRequest) -> Callable:
    def _create_tg_user(**kwargs):
        fields = {
            'id': get_id(),
            'first_name': 'user',
            'is_bot': False,
            **kwargs,
        }
        return TGUser(**fields)

    return append_to_cls(request, _create_tg_user)


@pytest.fixture(scope='class')
def create_tg_chat(request: FixtureRequest) -> Callable:
    def _create_tg_chat(**kwargs):
        fields = {
            'id': -1001234567890,
            'type': TGChat.SUPERGROUP,
            'title': 'test chat',
            **kwargs,
        }
        return TGChat(**fields)

    return append_to_cls(request, _create_tg_chat)


@pytest.fixture(scope='class')
def create_reaction(request: FixtureRequest, create_tg_user, create_tg_chat) -> Callable:
    def _create_reaction(new=(), old=(), chat=None, message_id=1, user=None, actor_chat=None):
        if user is None and actor_chat is None:
            user = create_tg_user(username='reactor')
        return MessageReactionUpdated(
            chat=chat or create_tg_chat(),
            message_id=message_id,
            date=datetime.now(timezone.utc),
            old_reaction=to_reactions(old),
            new_reaction=to_reactions(new),
            user=user,
            actor_chat=actor_chat,
        )

    return append_to_cls(request, _create_reaction)
