import logging

from telegram import Update
from telegram.ext import CallbackContext

logger = logging.getLogger(__name__)


def normalize_text(text: str):
    lines = text.strip().split('\n')
    return '\n'.join([line.strip() for line in lines])


async def handle_error(update: object, context: CallbackContext):
    if isinstance(update, Update):
        update = update.to_dict()
    logger.warning(f"🔥 Update {update}\n   caused error: {context.error}", exc_info=context.error)
