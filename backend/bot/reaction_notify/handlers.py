import logging

from telegram import Update
from telegram.ext import CallbackContext, MessageReactionHandler

from bot.wrapper import message_reaction_handler
from .processor import ReactionNotifier

logger = logging.getLogger(__name__)


@message_reaction_handler(message_reaction_types=MessageReactionHandler.MESSAGE_REACTION_UPDATED)
async def handle_message_reaction(update: Update, context: CallbackContext):
    notifier: ReactionNotifier = context.bot_data['notifier']
    outcome = await notifier.process(update.message_reaction)
    logger.debug(f"reaction to {update.message_reaction.message_id}: {outcome}")
