import json
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional

from .store import RedisStore

__all__ = ['SpoilerMessage', 'NotificationState', 'MessageRegistry', 'NotificationTracker']

logger = logging.getLogger(__name__)


def _decode(data: Optional[bytes], key: str) -> Optional[dict]:
    if data is None:
        return None
    try:
        payload = json.loads(data)
    except ValueError as e:
        logger.warning(f"corrupt payload under {key!r}: {e}")
        return None
    if not isinstance(payload, dict):
        logger.warning(f"unexpected payload under {key!r}: {payload!r}")
        return None
    return payload


def _encode(obj) -> bytes:
    return json.dumps(asdict(obj), ensure_ascii=False).encode()


@dataclass(frozen=True)
class SpoilerMessage:
    """Spoilered media message sent by the bot on behalf of some user."""
    chat_id: int
    message_id: int
    user_id: int


@dataclass
class NotificationState:
    """
    DM notification shown to the owner of a spoilered message.

    `removed_at` is set (epoch ms) while the notification shows the
    "reacted and removed" text and waits for deletion.
    """
    notification_message_id: int = 0
    removed_at: int = 0
    removed_emojis: List[str] = field(default_factory=list)

    @property
    def is_live(self):
        return self.notification_message_id != 0

    @property
    def is_removed(self):
        return self.removed_at != 0


class MessageRegistry:
    """Who owns which spoiler message."""

    def __init__(self, store: RedisStore):
        self.store = store

    @staticmethod
    def get_key(chat_id, message_id):
        return f'spoiler:{chat_id}:{message_id}'

    async def record(self, chat_id: int, message_id: int, user_id: int) -> bool:
        key = self.get_key(chat_id, message_id)
        record = SpoilerMessage(chat_id=chat_id, message_id=message_id, user_id=user_id)
        saved = await self.store.put(key, _encode(record))
        if not saved:
            logger.warning(f"owner of {key} was not saved, reactions to it will be ignored")
        return saved

    async def lookup(self, chat_id: int, message_id: int) -> Optional[SpoilerMessage]:
        key = self.get_key(chat_id, message_id)
        payload = _decode(await self.store.get(key), key)
        if payload is None:
            return None
        try:
            return SpoilerMessage(**payload)
        except TypeError as e:
            logger.warning(f"bad spoiler record under {key!r}: {e}")
            return None

    async def lookup_owner(self, chat_id: int, message_id: int) -> Optional[int]:
        record = await self.lookup(chat_id, message_id)
        return record and record.user_id


class NotificationTracker:
    """Single mutable notification slot per (owner, chat, message)."""

    def __init__(self, store: RedisStore):
        self.store = store

    @staticmethod
    def get_key(user_id, chat_id, message_id):
        return f'notification:{user_id}:{chat_id}:{message_id}'

    async def get(self, user_id: int, chat_id: int, message_id: int) -> Optional[NotificationState]:
        key = self.get_key(user_id, chat_id, message_id)
        payload = _decode(await self.store.get(key), key)
        if payload is None:
            return None
        try:
            return NotificationState(**payload)
        except TypeError as e:
            logger.warning(f"bad notification state under {key!r}: {e}")
            return None

    async def put(self, user_id: int, chat_id: int, message_id: int, state: NotificationState) -> bool:
        """Replace the whole state stored for the key."""
        key = self.get_key(user_id, chat_id, message_id)
        saved = await self.store.put(key, _encode(state))
        if not saved:
            logger.warning(f"notification state {key} was not updated: {state}")
        return saved

    async def clear(self, user_id: int, chat_id: int, message_id: int) -> bool:
        return await self.put(user_id, chat_id, message_id, NotificationState())
