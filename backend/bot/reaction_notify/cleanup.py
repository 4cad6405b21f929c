import logging
from dataclasses import dataclass

from telegram.ext import CallbackContext, JobQueue

from bot.messenger import Messenger
from core.models import NotificationTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupTicket:
    user_id: int
    chat_id: int
    message_id: int
    fence: int

    @property
    def name(self):
        return f'cleanup:{self.user_id}:{self.chat_id}:{self.message_id}:{self.fence}'


class CleanupScheduler:
    """
    Delete "reacted and removed" notifications once the grace window passes.

    Jobs are never cancelled. When a job fires it compares its fence with
    the `removed_at` currently stored for the key and does nothing if they
    differ: a newer reaction (or a newer removal) took over the notification.
    """

    def __init__(self, tracker: NotificationTracker, messenger: Messenger, job_queue: JobQueue, grace: float):
        self.tracker = tracker
        self.messenger = messenger
        self.job_queue = job_queue
        self.grace = grace

    def arm(self, user_id: int, chat_id: int, message_id: int, fence: int) -> CleanupTicket:
        ticket = CleanupTicket(user_id=user_id, chat_id=chat_id, message_id=message_id, fence=fence)
        self.job_queue.run_once(self._on_expire, when=self.grace, data=ticket, name=ticket.name)
        logger.debug(f"armed {ticket.name} for {self.grace}s")
        return ticket

    async def _on_expire(self, context: CallbackContext):
        await self.expire(context.job.data)

    async def expire(self, ticket: CleanupTicket) -> bool:
        """Delete the notification if the ticket still matches stored state."""
        state = await self.tracker.get(ticket.user_id, ticket.chat_id, ticket.message_id)
        if not state or ticket.fence == 0 or state.removed_at != ticket.fence:
            logger.debug(f"{ticket.name} is stale, skipping")
            return False

        result = await self.messenger.delete_message(ticket.user_id, state.notification_message_id)
        if not result:
            logger.info(f"notification {state.notification_message_id} was not deleted: {result.error}")
        await self.tracker.clear(ticket.user_id, ticket.chat_id, ticket.message_id)
        return True
