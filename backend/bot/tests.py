from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from telegram import (
    Chat as TGChat,
    ReactionTypeCustomEmoji,
    ReactionTypeEmoji,
    ReactionTypePaid,
    User as TGUser,
)
from telegram.error import BadRequest, Forbidden, TimedOut
from telegram.ext import Application, CommandHandler, MessageReactionHandler

from bot.bluesky import BlueskyClient, BlueskyError, Image, extract_images, parse_post_url
from bot.dispatcher import build_application, setup_bot_data, setup_dispatcher, sort_by_type
from bot.messenger import Messenger, SendResult
from bot.reaction_notify import CleanupTicket, Outcome, ReactionNotifier, handle_message_reaction
from bot.reaction_notify.text import (
    get_actor_name,
    get_message_link,
    make_notification_text,
    render_reactions,
)
from bot.spoilers import command_spoiler, command_start
from bot.spoilers.commands import make_caption
from bot.utils import normalize_text
from bot.wrapper import HandlerWrapper
from core.models import NotificationState

CHAT_ID = -1001234567890
MESSAGE_ID = 1
OWNER_ID = 42


def test_normalize_text():
    assert normalize_text('\n   a\n    b  \n\n   c\n') == 'a\nb\n\nc'


class TestText:
    def test_render_reactions(self):
        reactions = [
            ReactionTypeEmoji('👍'),
            ReactionTypeCustomEmoji('5368324170671202286'),
            ReactionTypeEmoji('👍'),
            ReactionTypePaid(),
        ]
        assert render_reactions(reactions) == ['👍', '[custom]', '👍', '[custom]']
        assert render_reactions([]) == []

    def test_render_reactions_placeholder(self, settings):
        settings.CUSTOM_REACTION_PLACEHOLDER = '✨'
        assert render_reactions([ReactionTypeCustomEmoji('1')]) == ['✨']

    def test_get_actor_name(self):
        channel = TGChat(id=-1009, type=TGChat.CHANNEL, title='channel')
        user = TGUser(id=1, first_name='Bob', is_bot=False, username='bob')
        assert get_actor_name(user, channel) == '@bob'
        user = TGUser(id=1, first_name='Bob', is_bot=False)
        assert get_actor_name(user, channel) == 'Bob'
        assert get_actor_name(None, channel) == 'channel'
        assert get_actor_name(None, TGChat(id=-1009, type=TGChat.CHANNEL)) == 'Anonymous'
        assert get_actor_name(None, None) == 'Anonymous'

    def test_get_message_link(self):
        chat = TGChat(id=-1001234567890, type=TGChat.SUPERGROUP)
        assert get_message_link(chat, 5) == 'https://t.me/c/1234567890/5'
        chat = TGChat(id=-123456, type=TGChat.GROUP)
        assert get_message_link(chat, 5) is None
        chat = TGChat(id=-1001234567890, type=TGChat.SUPERGROUP, username='public')
        assert get_message_link(chat, 5) == 'https://t.me/public/5'

    def test_make_notification_text(self, create_reaction):
        reaction = create_reaction(new=['👍', '🎉'])
        text = make_notification_text(reaction, ['👍', '🎉'])
        assert '<b>@reactor</b> reacted: 👍 🎉\n' in text
        assert '<b>In:</b> test chat' in text
        assert 'href="https://t.me/c/1234567890/1"' in text
        assert 'removed' not in text

        text = make_notification_text(reaction, ['👍'], removed=True)
        assert 'reacted: 👍 and removed' in text

    def test_make_notification_text_escaping(self, create_reaction, create_tg_chat, create_tg_user):
        reaction = create_reaction(
            new=['👍'],
            chat=create_tg_chat(title=None),
            user=create_tg_user(first_name='<i>x</i> & co'),
        )
        text = make_notification_text(reaction, ['👍'])
        assert '&lt;i&gt;x&lt;/i&gt; &amp; co' in text
        assert '<b>In:</b> a chat' in text

    def test_make_notification_text_basic_group(self, create_reaction, create_tg_chat):
        reaction = create_reaction(new=['👍'], chat=create_tg_chat(id=-123456, type=TGChat.GROUP))
        text = make_notification_text(reaction, ['👍'])
        assert text.endswith('<b>In:</b> test chat')
        assert 'href' not in text


class TestReactionNotifier:
    async def track(self, registry, owner_id=OWNER_ID):
        await registry.record(CHAT_ID, MESSAGE_ID, owner_id)

    def sent_texts(self, messenger):
        return [c.args[1] for c in messenger.send_message.await_args_list]

    def edited_texts(self, messenger):
        return [c.args[2] for c in messenger.edit_message_text.await_args_list]

    @pytest.mark.asyncio
    async def test_private_chat_is_ignored(self, notifier, registry, messenger, create_reaction, create_tg_chat):
        chat = create_tg_chat(id=CHAT_ID, type=TGChat.PRIVATE, title=None)
        await self.track(registry)
        outcome = await notifier.process(create_reaction(new=['👍'], chat=chat))
        assert outcome == Outcome.ignored
        messenger.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_untracked_message(self, notifier, messenger, fake_redis, create_reaction):
        outcome = await notifier.process(create_reaction(new=['👍']))
        assert outcome == Outcome.ignored
        messenger.send_message.assert_not_awaited()
        messenger.edit_message_text.assert_not_awaited()
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_first_reaction_sends_notification(self, notifier, registry, tracker, messenger, create_reaction):
        await self.track(registry)
        outcome = await notifier.process(create_reaction(new=['👍']))
        assert outcome == Outcome.sent
        messenger.send_message.assert_awaited_once()
        assert messenger.send_message.await_args.args[0] == OWNER_ID
        assert '👍' in self.sent_texts(messenger)[0]
        messenger.edit_message_text.assert_not_awaited()
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == NotificationState(100, 0, [])

    @pytest.mark.asyncio
    async def test_change_edits_notification(self, notifier, registry, tracker, messenger, create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        outcome = await notifier.process(create_reaction(old=['👍'], new=['👍', '🎉']))
        assert outcome == Outcome.edited
        messenger.send_message.assert_awaited_once()
        assert messenger.edit_message_text.await_args.args[:2] == (OWNER_ID, 100)
        assert 'reacted: 👍 🎉' in self.edited_texts(messenger)[0]
        state = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)
        assert state.notification_message_id == 100

    @pytest.mark.asyncio
    async def test_edit_failure_sends_new(self, notifier, registry, tracker, messenger, create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        messenger.edit_message_text.side_effect = None
        messenger.edit_message_text.return_value = SendResult(False, 100, 'message to edit not found')

        outcome = await notifier.process(create_reaction(old=['👍'], new=['🔥']))
        assert outcome == Outcome.sent
        assert messenger.send_message.await_count == 2
        assert '🔥' in self.sent_texts(messenger)[1]
        state = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)
        assert state == NotificationState(101, 0, [])

    @pytest.mark.asyncio
    async def test_send_failure_keeps_state(self, notifier, registry, tracker, messenger, create_reaction):
        await self.track(registry)
        messenger.send_message.side_effect = None
        messenger.send_message.return_value = SendResult(False, error='bot was blocked by the user')
        outcome = await notifier.process(create_reaction(new=['👍']))
        assert outcome == Outcome.failed
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) is None

    @pytest.mark.asyncio
    async def test_store_failure_is_not_raised(self, notifier, registry, store, tracker, messenger, mocker,
                                               create_reaction):
        await self.track(registry)
        mocker.patch.object(store, 'put', AsyncMock(return_value=False))
        outcome = await notifier.process(create_reaction(new=['👍']))
        assert outcome == Outcome.sent
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) is None

    @pytest.mark.asyncio
    async def test_removal_without_notification(self, notifier, registry, tracker, messenger, job_queue,
                                                create_reaction):
        await self.track(registry)
        outcome = await notifier.process(create_reaction(old=['👍'], new=[]))
        assert outcome == Outcome.ignored

        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState())
        outcome = await notifier.process(create_reaction(old=['👍'], new=[]))
        assert outcome == Outcome.ignored

        messenger.edit_message_text.assert_not_awaited()
        job_queue.run_once.assert_not_called()

    @pytest.mark.asyncio
    async def test_removal(self, notifier, registry, tracker, messenger, job_queue, scheduler, create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍', '🎉']))
        outcome = await notifier.process(create_reaction(old=['👍', '🎉'], new=[]))
        assert outcome == Outcome.removed
        assert 'reacted: 👍 🎉 and removed' in self.edited_texts(messenger)[0]

        state = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)
        assert state.notification_message_id == 100
        assert state.removed_at != 0
        assert state.removed_emojis == ['👍', '🎉']

        job_queue.run_once.assert_called_once()
        call = job_queue.run_once.call_args
        assert call.args[0] == scheduler._on_expire
        assert call.kwargs['when'] == 30
        assert call.kwargs['data'] == CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, state.removed_at)

    @pytest.mark.asyncio
    async def test_removal_edit_failure_still_arms(self, notifier, registry, tracker, messenger, job_queue,
                                                   create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        messenger.edit_message_text.side_effect = None
        messenger.edit_message_text.return_value = SendResult(False, 100, 'timed out')
        outcome = await notifier.process(create_reaction(old=['👍'], new=[]))
        assert outcome == Outcome.removed
        assert (await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)).is_removed
        job_queue.run_once.assert_called_once()

    @pytest.mark.asyncio
    async def test_reprocessing_is_idempotent(self, notifier, registry, tracker, messenger, create_reaction):
        await self.track(registry)
        event = create_reaction(new=['👍'])
        await notifier.process(event)
        once = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)
        await notifier.process(event)
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == once
        messenger.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reprocessing_removal_is_idempotent(self, notifier, registry, tracker, messenger, job_queue,
                                                      create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        event = create_reaction(old=['👍'], new=[])
        assert await notifier.process(event) == Outcome.removed
        once = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)

        assert await notifier.process(event) == Outcome.removed
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == once
        job_queue.run_once.assert_called_once()
        assert job_queue.run_once.call_args.kwargs['data'].fence == once.removed_at
        messenger.edit_message_text.assert_awaited_once()
        messenger.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_anonymous_actor(self, notifier, registry, messenger, create_reaction):
        await self.track(registry)
        channel = TGChat(id=-1009, type=TGChat.CHANNEL, title='Some Channel')
        await notifier.process(create_reaction(new=['👍'], actor_chat=channel))
        assert '<b>Some Channel</b> reacted: 👍' in self.sent_texts(messenger)[0]

    @pytest.mark.asyncio
    async def test_scenario_change_reaction(self, notifier, registry, messenger, create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        assert '👍' in self.sent_texts(messenger)[0]

        await notifier.process(create_reaction(old=['👍'], new=['👍', '🎉']))
        messenger.send_message.assert_awaited_once()
        text = self.edited_texts(messenger)[-1]
        assert '👍' in text and '🎉' in text

    @pytest.mark.asyncio
    async def test_scenario_react_again_within_grace(self, notifier, registry, tracker, messenger, job_queue,
                                                     scheduler, create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        await notifier.process(create_reaction(old=['👍'], new=[]))
        assert 'and removed' in self.edited_texts(messenger)[-1]
        ticket = job_queue.run_once.call_args.kwargs['data']

        outcome = await notifier.process(create_reaction(new=['🎉']))
        assert outcome == Outcome.edited
        assert 'removed' not in self.edited_texts(messenger)[-1]
        state = await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID)
        assert state == NotificationState(100, 0, [])

        assert await scheduler.expire(ticket) is False
        messenger.delete_message.assert_not_awaited()
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == state

    @pytest.mark.asyncio
    async def test_only_latest_timer_deletes(self, notifier, registry, tracker, messenger, job_queue, scheduler,
                                             create_reaction):
        await self.track(registry)
        await notifier.process(create_reaction(new=['👍']))
        await notifier.process(create_reaction(old=['👍'], new=[]))
        await notifier.process(create_reaction(new=['👍']))
        await notifier.process(create_reaction(old=['👍'], new=[]))
        first, second = [c.kwargs['data'] for c in job_queue.run_once.call_args_list]
        assert first.fence != second.fence

        assert await scheduler.expire(first) is False
        messenger.delete_message.assert_not_awaited()

        assert await scheduler.expire(second) is True
        messenger.delete_message.assert_awaited_once_with(OWNER_ID, 100)
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == NotificationState()

        # next reaction starts from scratch
        outcome = await notifier.process(create_reaction(new=['🎉']))
        assert outcome == Outcome.sent


class TestCleanupScheduler:
    @pytest.mark.asyncio
    async def test_arm(self, scheduler, job_queue):
        ticket = scheduler.arm(OWNER_ID, CHAT_ID, MESSAGE_ID, fence=123)
        assert ticket == CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123)
        job_queue.run_once.assert_called_once_with(
            scheduler._on_expire, when=30, data=ticket, name=ticket.name,
        )

    @pytest.mark.asyncio
    async def test_expire_matching_fence(self, scheduler, tracker, messenger):
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState(7, 123, ['👍']))
        assert await scheduler.expire(CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123))
        messenger.delete_message.assert_awaited_once_with(OWNER_ID, 7)
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == NotificationState()

    @pytest.mark.asyncio
    async def test_expire_stale_fence(self, scheduler, tracker, messenger):
        state = NotificationState(7, 456, ['👍'])
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, state)
        assert not await scheduler.expire(CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123))
        messenger.delete_message.assert_not_awaited()
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == state

    @pytest.mark.asyncio
    async def test_expire_active_or_missing_state(self, scheduler, tracker, messenger):
        ticket = CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123)
        assert not await scheduler.expire(ticket)
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState(7))
        assert not await scheduler.expire(ticket)
        messenger.delete_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expire_zero_fence(self, scheduler, tracker, messenger):
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState(7))
        assert not await scheduler.expire(CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 0))
        messenger.delete_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expire_delete_failure_clears_state(self, scheduler, tracker, messenger):
        messenger.delete_message.side_effect = None
        messenger.delete_message.return_value = SendResult(False, 7, 'message to delete not found')
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState(7, 123, ['👍']))
        assert await scheduler.expire(CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123))
        assert await tracker.get(OWNER_ID, CHAT_ID, MESSAGE_ID) == NotificationState()

    @pytest.mark.asyncio
    async def test_job_callback(self, scheduler, tracker, messenger):
        await tracker.put(OWNER_ID, CHAT_ID, MESSAGE_ID, NotificationState(7, 123, ['👍']))
        context = Mock()
        context.job.data = CleanupTicket(OWNER_ID, CHAT_ID, MESSAGE_ID, 123)
        await scheduler._on_expire(context)
        messenger.delete_message.assert_awaited_once_with(OWNER_ID, 7)


class TestMessenger:
    @pytest.fixture
    def bot(self):
        return Mock()

    @pytest.mark.asyncio
    async def test_send(self, bot):
        bot.send_message = AsyncMock(return_value=Mock(message_id=5))
        result = await Messenger(bot).send_message(1, 'hi')
        assert result == SendResult(True, 5)
        kwargs = bot.send_message.await_args.kwargs
        assert kwargs['chat_id'] == 1
        assert kwargs['disable_notification'] is True
        assert kwargs['parse_mode'] == 'HTML'

    @pytest.mark.asyncio
    async def test_send_failure(self, bot):
        bot.send_message = AsyncMock(side_effect=Forbidden('bot was blocked by the user'))
        result = await Messenger(bot).send_message(1, 'hi')
        assert not result
        assert 'blocked' in result.error

    @pytest.mark.asyncio
    async def test_edit(self, bot):
        bot.edit_message_text = AsyncMock()
        assert await Messenger(bot).edit_message_text(1, 5, 'hi') == SendResult(True, 5)

    @pytest.mark.asyncio
    async def test_edit_not_modified(self, bot):
        bot.edit_message_text = AsyncMock(side_effect=BadRequest(
            'Message is not modified: specified new message content and reply markup '
            'are exactly the same as a current content and reply markup of the message'
        ))
        assert await Messenger(bot).edit_message_text(1, 5, 'hi')

    @pytest.mark.asyncio
    async def test_edit_failure(self, bot):
        bot.edit_message_text = AsyncMock(side_effect=BadRequest('Message to edit not found'))
        assert not await Messenger(bot).edit_message_text(1, 5, 'hi')
        bot.edit_message_text = AsyncMock(side_effect=TimedOut())
        assert not await Messenger(bot).edit_message_text(1, 5, 'hi')

    @pytest.mark.asyncio
    async def test_delete(self, bot):
        bot.delete_message = AsyncMock(return_value=True)
        assert await Messenger(bot).delete_message(1, 5)
        bot.delete_message.assert_awaited_once_with(chat_id=1, message_id=5)
        bot.delete_message = AsyncMock(side_effect=BadRequest('Message to delete not found'))
        assert not await Messenger(bot).delete_message(1, 5)


POST = {
    'uri': 'at://did:plc:alice/app.bsky.feed.post/abc123',
    'embed': {
        '$type': 'app.bsky.embed.images#view',
        'images': [
            {'fullsize': 'https://cdn.test/full/1', 'thumb': 'https://cdn.test/thumb/1', 'alt': 'one'},
            {'fullsize': 'https://cdn.test/full/2', 'thumb': 'https://cdn.test/thumb/2'},
        ],
    },
}


class TestBluesky:
    def test_parse_post_url(self):
        post = parse_post_url('look https://bsky.app/profile/alice.bsky.social/post/abc123 !')
        assert post.authority == 'alice.bsky.social'
        assert post.rkey == 'abc123'
        assert post.url == 'https://bsky.app/profile/alice.bsky.social/post/abc123'
        assert post.at_uri('did:plc:alice') == 'at://did:plc:alice/app.bsky.feed.post/abc123'

    def test_parse_post_url_mirrors(self):
        for domain in ['fxbsky.app', 'vxbsky.app', 'bskye.app', 'bskyx.app', 'bsyy.app']:
            post = parse_post_url(f'https://{domain}/profile/did:plc:alice/post/xyz')
            assert post.authority == 'did:plc:alice'
            assert post.rkey == 'xyz'

    def test_parse_post_url_invalid(self):
        assert parse_post_url('') is None
        assert parse_post_url('https://example.com/profile/a/post/b') is None
        assert parse_post_url('https://bsky.app/profile/alice.bsky.social') is None

    def test_extract_images(self):
        images = extract_images(POST)
        assert images == [
            Image('https://cdn.test/full/1', 'https://cdn.test/thumb/1', 'one'),
            Image('https://cdn.test/full/2', 'https://cdn.test/thumb/2', ''),
        ]

    def test_extract_images_record_with_media(self):
        post = {'embed': {'$type': 'app.bsky.embed.recordWithMedia#view', 'media': POST['embed']}}
        assert len(extract_images(post)) == 2

    def test_extract_images_without_images(self):
        assert extract_images({}) == []
        assert extract_images({'embed': {'$type': 'app.bsky.embed.external#view'}}) == []

    def make_client(self, handler):
        return BlueskyClient(base_url='https://api.test', timeout=1, transport=httpx.MockTransport(handler))

    @pytest.mark.asyncio
    async def test_resolve_did(self):
        def handler(request: httpx.Request):
            assert request.url.path == '/xrpc/com.atproto.identity.resolveHandle'
            assert request.url.params['handle'] == 'alice.bsky.social'
            return httpx.Response(200, json={'did': 'did:plc:alice'})

        client = self.make_client(handler)
        assert await client.resolve_did('alice.bsky.social') == 'did:plc:alice'
        assert await client.resolve_did('did:plc:bob') == 'did:plc:bob'
        await client.close()

    @pytest.mark.asyncio
    async def test_resolve_did_failure(self):
        client = self.make_client(lambda request: httpx.Response(400, json={'error': 'InvalidRequest'}))
        with pytest.raises(BlueskyError):
            await client.resolve_did('nobody.bsky.social')

    @pytest.mark.asyncio
    async def test_fetch_post_images(self):
        def handler(request: httpx.Request):
            assert request.url.path == '/xrpc/app.bsky.feed.getPosts'
            assert request.url.params['uris'] == POST['uri']
            return httpx.Response(200, json={'posts': [POST]})

        client = self.make_client(handler)
        images = await client.fetch_post_images(POST['uri'])
        assert [i.fullsize for i in images] == ['https://cdn.test/full/1', 'https://cdn.test/full/2']

    @pytest.mark.asyncio
    async def test_fetch_missing_post(self):
        client = self.make_client(lambda request: httpx.Response(200, json={'posts': []}))
        with pytest.raises(BlueskyError):
            await client.fetch_post_images(POST['uri'])

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = self.make_client(lambda request: httpx.Response(200, content=b'<html>'))
        with pytest.raises(BlueskyError):
            await client.fetch_post_images(POST['uri'])


URL = 'https://bsky.app/profile/alice.bsky.social/post/abc123'


class TestSpoilerCommands:
    @pytest.fixture
    def msg(self):
        msg = Mock(chat_id=CHAT_ID, message_id=7)
        for method in ['reply_text', 'reply_markdown_v2', 'set_reaction', 'delete']:
            setattr(msg, method, AsyncMock())
        msg.chat.send_message = AsyncMock()
        return msg

    @pytest.fixture
    def bluesky(self):
        bluesky = Mock()
        bluesky.resolve_did = AsyncMock(return_value='did:plc:alice')
        bluesky.fetch_post_images = AsyncMock(return_value=[Image('https://cdn.test/full/1', '')])
        return bluesky

    @pytest.fixture
    def context(self, bluesky, registry):
        context = Mock(args=[URL], bot_data={'bluesky': bluesky, 'registry': registry})
        context.bot.send_photo = AsyncMock(return_value=Mock(message_id=10))
        context.bot.send_media_group = AsyncMock(return_value=[Mock(message_id=10), Mock(message_id=11)])
        return context

    @pytest.fixture
    def update(self, msg):
        user = TGUser(id=OWNER_ID, first_name='Alice', is_bot=False, username='alice')
        return Mock(effective_message=msg, effective_user=user)

    def test_make_caption(self):
        user = TGUser(id=OWNER_ID, first_name='Alice', is_bot=False, username='alice')
        assert make_caption(user, URL) == f'<a href="tg://user?id=42">Alice</a> (@alice) sent:\n{URL}'
        user = TGUser(id=OWNER_ID, first_name='<Al>', is_bot=False)
        assert make_caption(user, URL) == f'<a href="tg://user?id=42">&lt;Al&gt;</a> sent:\n{URL}'

    @pytest.mark.asyncio
    async def test_start(self, update, msg):
        await command_start(update, Mock())
        msg.reply_text.assert_awaited_once()
        text = msg.reply_text.await_args.args[0]
        assert '/spoiler' in text
        assert not text.startswith(' ')

    @pytest.mark.asyncio
    async def test_single_image(self, update, context, msg, bluesky, registry):
        await command_spoiler(update, context)
        msg.set_reaction.assert_awaited_once_with('👌')
        bluesky.resolve_did.assert_awaited_once_with('alice.bsky.social')
        bluesky.fetch_post_images.assert_awaited_once_with('at://did:plc:alice/app.bsky.feed.post/abc123')

        kwargs = context.bot.send_photo.await_args.kwargs
        assert kwargs['chat_id'] == CHAT_ID
        assert kwargs['photo'] == 'https://cdn.test/full/1'
        assert kwargs['has_spoiler'] is True
        assert kwargs['show_caption_above_media'] is True
        assert URL in kwargs['caption']

        assert await registry.lookup_owner(CHAT_ID, 10) == OWNER_ID
        msg.delete.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_album(self, update, context, msg, bluesky, registry):
        bluesky.fetch_post_images.return_value = [Image('https://cdn.test/1', ''), Image('https://cdn.test/2', '')]
        await command_spoiler(update, context)
        media = context.bot.send_media_group.await_args.kwargs['media']
        assert [m.has_spoiler for m in media] == [True, True]
        assert URL in media[0].caption
        assert media[1].caption is None
        assert await registry.lookup_owner(CHAT_ID, 10) == OWNER_ID
        assert await registry.lookup_owner(CHAT_ID, 11) == OWNER_ID

    @pytest.mark.asyncio
    async def test_without_args(self, update, context, msg, bluesky):
        context.args = []
        await command_spoiler(update, context)
        msg.reply_markdown_v2.assert_awaited_once()
        bluesky.resolve_did.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_url(self, update, context, msg, bluesky):
        context.args = ['https://example.com/post/1']
        await command_spoiler(update, context)
        assert 'valid Bluesky post URL' in msg.reply_text.await_args.args[0]
        bluesky.resolve_did.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolve_failure(self, update, context, msg, bluesky):
        bluesky.resolve_did.side_effect = BlueskyError('nope')
        await command_spoiler(update, context)
        msg.reply_text.assert_awaited_once_with("Failed to resolve Bluesky profile.")
        context.bot.send_photo.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_images(self, update, context, msg, bluesky, fake_redis):
        bluesky.fetch_post_images.return_value = []
        await command_spoiler(update, context)
        msg.reply_text.assert_awaited_once_with("No images found in that post.")
        assert fake_redis.data == {}

    @pytest.mark.asyncio
    async def test_send_failure(self, update, context, msg, fake_redis):
        context.bot.send_photo.side_effect = BadRequest('Wrong file identifier/http url specified')
        await command_spoiler(update, context)
        assert "Can't send images" in msg.reply_text.await_args.args[0]
        assert fake_redis.data == {}
        msg.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_failure(self, update, context, msg):
        msg.delete.side_effect = BadRequest("Message can't be deleted")
        await command_spoiler(update, context)
        msg.chat.send_message.assert_awaited_once()
        assert 'permission' in msg.chat.send_message.await_args.args[0]


class TestDispatcher:
    def make_app(self):
        return Application.builder().token('123456:TEST').build()

    def test_sort_by_type(self):
        async def r(update, context):
            pass

        async def c(update, context):
            pass

        handlers = [
            HandlerWrapper(r, MessageReactionHandler),
            HandlerWrapper(c, CommandHandler, False, 'c'),
        ]
        sort_by_type(handlers)
        assert [h.handler_class for h in handlers] == [CommandHandler, MessageReactionHandler]

    def test_setup_dispatcher(self):
        app = self.make_app()
        setup_dispatcher(app, inspect=False)
        handlers = app.handlers[0]
        assert [type(h) for h in handlers] == [CommandHandler, CommandHandler, MessageReactionHandler]
        assert handlers[-1].block is False
        assert handlers[0].block is True

    def test_setup_bot_data(self, store):
        app = self.make_app()
        setup_bot_data(app, store, Mock())
        notifier = app.bot_data['notifier']
        assert isinstance(notifier, ReactionNotifier)
        assert notifier.scheduler.job_queue is app.job_queue
        assert notifier.scheduler.grace == 30
        assert app.bot_data['registry'].store is store

    def test_build_application_requires_token(self, settings):
        settings.TG_BOT_TOKEN = None
        with pytest.raises(RuntimeError):
            build_application()

    @pytest.mark.asyncio
    async def test_handle_message_reaction(self, create_reaction):
        notifier = Mock()
        notifier.process = AsyncMock(return_value=Outcome.sent)
        reaction = create_reaction(new=['👍'])
        update = Mock(message_reaction=reaction)
        await handle_message_reaction(update, Mock(bot_data={'notifier': notifier}))
        notifier.process.assert_awaited_once_with(reaction)
