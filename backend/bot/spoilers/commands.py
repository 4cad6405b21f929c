import html
import logging
from typing import List

from telegram import InputMediaPhoto, Message, Update, User
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import CallbackContext

from bot.bluesky import DOMAINS, BlueskyClient, BlueskyError, Image, parse_post_url
from bot.utils import normalize_text
from bot.wrapper import command
from core.models import MessageRegistry

logger = logging.getLogger(__name__)

ACK_REACTION = '👌'


def make_caption(user: User, url: str):
    name = user.mention_html(user.first_name)
    if user.username:
        name = f"{name} (@{user.username})"
    return f"{name} sent:\n{html.escape(url)}"


@command('start')
async def command_start(update: Update, _: CallbackContext):
    """Show how to use the bot."""
    domains = ', '.join(DOMAINS)
    text = f"""
    👋 Welcome to Bluesky Spoiler Bot!

    This bot fetches images from Bluesky posts and sends them as spoilered media in Telegram.

    <b>Usage:</b>
    <code>/spoiler &lt;Bluesky post URL&gt;</code>

    <b>Example:</b>
    <code>/spoiler https://bsky.app/profile/username.bsky.social/post/abc123</code>

    <b>Supported domains:</b> {domains}

    <b>Features:</b>
    - works with "private" Bluesky profiles
    - supports multiple images per post
    - deletes command messages (requires delete permission)
    - sends reaction notifications to your DM when someone reacts to your spoilered posts

    <b>Note:</b> you have to start this chat first, otherwise the bot can't message you.
    """
    await update.effective_message.reply_text(normalize_text(text), parse_mode=ParseMode.HTML)


async def send_spoilers(msg: Message, context: CallbackContext, images: List[Image], caption: str):
    if len(images) == 1:
        sent = await context.bot.send_photo(
            chat_id=msg.chat_id,
            photo=images[0].fullsize,
            caption=caption,
            parse_mode=ParseMode.HTML,
            has_spoiler=True,
            show_caption_above_media=True,
        )
        return [sent]

    media = [
        InputMediaPhoto(
            media=image.fullsize,
            caption=caption if i == 0 else None,
            parse_mode=ParseMode.HTML if i == 0 else None,
            has_spoiler=True,
            show_caption_above_media=True,
        )
        for i, image in enumerate(images)
    ]
    return await context.bot.send_media_group(chat_id=msg.chat_id, media=media)


async def try_delete_command(msg: Message):
    try:
        await msg.delete()
    except TelegramError as e:
        logger.info(f"can't delete sender's message: {e}")
        await msg.chat.send_message(
            "Can't delete sender's message, does bot have permission to delete messages?\n"
            f"<pre>{html.escape(str(e))}</pre>",
            parse_mode=ParseMode.HTML,
        )


@command('spoiler')
async def command_spoiler(update: Update, context: CallbackContext):
    """
    Send images of a Bluesky post as spoilered media.
        ex: `/spoiler https://bsky.app/profile/username.bsky.social/post/abc123`
    """
    msg = update.effective_message
    user = update.effective_user
    arg = ' '.join(context.args or []).strip()
    if not arg:
        await msg.reply_markdown_v2("Usage: ```command\n/spoiler <bsky.app post URL>```")
        return

    post = parse_post_url(arg)
    if not post:
        await msg.reply_text(
            f"Please provide a valid Bluesky post URL (supports {', '.join(DOMAINS)})."
        )
        return

    try:
        await msg.set_reaction(ACK_REACTION)
    except TelegramError as e:
        logger.debug(f"can't react to command: {e}")

    bluesky: BlueskyClient = context.bot_data['bluesky']
    try:
        did = await bluesky.resolve_did(post.authority)
    except BlueskyError as e:
        logger.warning(f"resolve DID: {e}")
        await msg.reply_text("Failed to resolve Bluesky profile.")
        return
    try:
        images = await bluesky.fetch_post_images(post.at_uri(did))
    except BlueskyError as e:
        logger.warning(f"fetch images: {e}")
        await msg.reply_text("Failed to fetch post images.")
        return
    if not images:
        await msg.reply_text("No images found in that post.")
        return

    try:
        sent = await send_spoilers(msg, context, images, make_caption(user, post.url))
    except TelegramError as e:
        logger.warning(f"can't send spoilers: {e}")
        await msg.reply_text(
            f"Can't send images:\n<pre>{html.escape(str(e))}</pre>",
            parse_mode=ParseMode.HTML,
        )
        return

    registry: MessageRegistry = context.bot_data['registry']
    for sent_msg in sent:
        await registry.record(msg.chat_id, sent_msg.message_id, user.id)

    await try_delete_command(msg)
