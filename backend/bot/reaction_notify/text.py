import html
from typing import Iterable, List, Optional, Sequence

from django.conf import settings
from telegram import Chat, MessageReactionUpdated, ReactionType, ReactionTypeEmoji, User


def render_reactions(reactions: Iterable[ReactionType]) -> List[str]:
    """Literal glyphs for emoji reactions, placeholder for anything else."""
    res = []
    for reaction in reactions:
        if isinstance(reaction, ReactionTypeEmoji):
            res.append(reaction.emoji)
        else:
            res.append(settings.CUSTOM_REACTION_PLACEHOLDER)
    return res


def get_actor_name(user: Optional[User], actor_chat: Optional[Chat]) -> str:
    if user:
        if user.username:
            return f'@{user.username}'
        if user.first_name:
            return user.first_name
    if actor_chat and actor_chat.title:
        return actor_chat.title
    return 'Anonymous'


def get_message_link(chat: Chat, message_id: int) -> Optional[str]:
    if chat.username:
        return f'https://t.me/{chat.username}/{message_id}'
    chat_id = str(chat.id)
    # basic groups have no message links
    if not chat_id.startswith('-100'):
        return None
    return f'https://t.me/c/{chat_id[4:]}/{message_id}'


def make_notification_text(reaction: MessageReactionUpdated, emojis: Sequence[str], removed=False):
    actor = html.escape(get_actor_name(reaction.user, reaction.actor_chat))
    title = html.escape(reaction.chat.title or 'a chat')
    link = get_message_link(reaction.chat, reaction.message_id)
    reacted = ' '.join(emojis)
    if removed:
        reacted = f'{reacted} and removed'
    lines = [
        f"🎭 <b>{actor}</b> reacted: {reacted}",
        '',
        f"<b>In:</b> {title}",
    ]
    if link:
        lines += ['', f'<a href="{link}">Jump to message</a>']
    return '\n'.join(lines)
