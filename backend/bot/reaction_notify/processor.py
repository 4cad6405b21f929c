import logging
import time
from enum import Enum, auto
from typing import Callable, Optional

from telegram import Chat, MessageReactionUpdated

from bot.messenger import Messenger
from core.models import MessageRegistry, NotificationState, NotificationTracker
from .cleanup import CleanupScheduler
from .text import make_notification_text, render_reactions

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class Outcome(Enum):
    ignored = auto()
    edited = auto()
    sent = auto()
    removed = auto()
    failed = auto()

    def __str__(self):
        return self._name_


class ReactionNotifier:
    """
    Keep a single DM notification per spoiler message in sync with reactions.

    Every event re-reads state from the store. Concurrent events for the same
    message are not serialized, the last write wins.
    """

    def __init__(
        self,
        registry: MessageRegistry,
        tracker: NotificationTracker,
        messenger: Messenger,
        scheduler: CleanupScheduler,
        clock: Callable[[], int] = now_ms,
    ):
        self.registry = registry
        self.tracker = tracker
        self.messenger = messenger
        self.scheduler = scheduler
        self.clock = clock

    async def process(self, reaction: MessageReactionUpdated) -> Outcome:
        if reaction.chat.type == Chat.PRIVATE:
            return Outcome.ignored

        chat_id = reaction.chat.id
        message_id = reaction.message_id
        owner_id = await self.registry.lookup_owner(chat_id, message_id)
        if owner_id is None:
            logger.debug(f"message {chat_id}:{message_id} is not tracked")
            return Outcome.ignored

        state = await self.tracker.get(owner_id, chat_id, message_id)
        if not reaction.new_reaction:
            return await self.handle_removal(reaction, owner_id, state)
        return await self.handle_reaction(reaction, owner_id, state)

    async def handle_removal(
        self, reaction: MessageReactionUpdated, owner_id: int, state: Optional[NotificationState]
    ) -> Outcome:
        if not state or not state.is_live:
            return Outcome.ignored

        chat_id = reaction.chat.id
        message_id = reaction.message_id
        emojis = render_reactions(reaction.old_reaction)
        if state.is_removed and state.removed_emojis == emojis:
            # redelivered removal, the armed timer keeps its fence
            logger.debug(f"removal of {chat_id}:{message_id} is already handled")
            return Outcome.removed

        text = make_notification_text(reaction, emojis, removed=True)
        result = await self.messenger.edit_message_text(owner_id, state.notification_message_id, text)
        if not result:
            logger.info(f"notification for {chat_id}:{message_id} was not marked as removed")

        removed_state = NotificationState(
            notification_message_id=state.notification_message_id,
            removed_at=self.clock(),
            removed_emojis=emojis,
        )
        await self.tracker.put(owner_id, chat_id, message_id, removed_state)
        self.scheduler.arm(owner_id, chat_id, message_id, fence=removed_state.removed_at)
        return Outcome.removed

    async def handle_reaction(
        self, reaction: MessageReactionUpdated, owner_id: int, state: Optional[NotificationState]
    ) -> Outcome:
        chat_id = reaction.chat.id
        message_id = reaction.message_id
        text = make_notification_text(reaction, render_reactions(reaction.new_reaction))

        outcome = None
        notification_id = 0
        if state and state.is_live:
            result = await self.messenger.edit_message_text(owner_id, state.notification_message_id, text)
            if result:
                outcome = Outcome.edited
                notification_id = state.notification_message_id
            else:
                logger.debug(f"edit failed (not latest message or deleted), sending new one: {result.error}")

        if not notification_id:
            result = await self.messenger.send_message(owner_id, text)
            if not result:
                logger.warning(f"reaction notification for {chat_id}:{message_id} was not delivered")
                return Outcome.failed
            outcome = Outcome.sent
            notification_id = result.message_id

        await self.tracker.put(
            owner_id,
            chat_id,
            message_id,
            NotificationState(notification_message_id=notification_id),
        )
        return outcome
