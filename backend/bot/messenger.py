import logging
from dataclasses import dataclass
from typing import Optional

from telegram import Bot, LinkPreviewOptions
from telegram.constants import ParseMode
from telegram.error import BadRequest, TelegramError

logger = logging.getLogger(__name__)

NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: Optional[int] = None
    error: Optional[str] = None

    def __bool__(self):
        return self.success


def not_modified(e: BadRequest):
    return 'message is not modified' in str(e).lower()


class Messenger:
    """Direct messages to users. Telegram errors are turned into failed results."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send_message(self, user_id: int, text: str) -> SendResult:
        try:
            msg = await self.bot.send_message(
                chat_id=user_id,
                text=text,
                parse_mode=ParseMode.HTML,
                disable_notification=True,
                link_preview_options=NO_PREVIEW,
            )
        except TelegramError as e:
            logger.warning(f"send message to user {user_id}: {e}")
            return SendResult(False, error=str(e))
        return SendResult(True, message_id=msg.message_id)

    async def edit_message_text(self, user_id: int, message_id: int, text: str) -> SendResult:
        try:
            await self.bot.edit_message_text(
                chat_id=user_id,
                message_id=message_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=NO_PREVIEW,
            )
        except BadRequest as e:
            if not_modified(e):
                logger.debug(f"message {message_id} already shows the same text")
                return SendResult(True, message_id=message_id)
            logger.debug(f"😡 edit message {message_id} of user {user_id}: {e}")
            return SendResult(False, message_id=message_id, error=str(e))
        except TelegramError as e:
            logger.warning(f"edit message {message_id} of user {user_id}: {e}")
            return SendResult(False, message_id=message_id, error=str(e))
        return SendResult(True, message_id=message_id)

    async def delete_message(self, user_id: int, message_id: int) -> SendResult:
        try:
            await self.bot.delete_message(chat_id=user_id, message_id=message_id)
        except TelegramError as e:
            logger.warning(f"delete message {message_id} of user {user_id}: {e}")
            return SendResult(False, message_id=message_id, error=str(e))
        return SendResult(True, message_id=message_id)
