import json

import pytest

from core.models import MessageRegistry, NotificationState, NotificationTracker, SpoilerMessage
from core.store import RedisStore


class TestRedisStore:
    @pytest.mark.asyncio
    async def test_get_put(self, store, fake_redis):
        assert await store.get('a') is None
        assert await store.put('a', b'1')
        assert await store.get('a') == b'1'
        assert fake_redis.expiry['a'] is None

    @pytest.mark.asyncio
    async def test_expiry(self, fake_redis):
        store = RedisStore(fake_redis, expire=60)
        await store.put('a', b'1')
        assert fake_redis.expiry['a'] == 60

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, store, fake_redis):
        fake_redis.broken = True
        assert await store.put('a', b'1') is False
        assert await store.get('a') is None


class TestMessageRegistry:
    @pytest.mark.asyncio
    async def test_record(self, registry, fake_redis):
        assert await registry.record(-100, 5, 42)
        payload = json.loads(fake_redis.data['spoiler:-100:5'])
        assert payload == {'chat_id': -100, 'message_id': 5, 'user_id': 42}

    @pytest.mark.asyncio
    async def test_lookup(self, registry):
        await registry.record(-100, 5, 42)
        assert await registry.lookup(-100, 5) == SpoilerMessage(chat_id=-100, message_id=5, user_id=42)
        assert await registry.lookup_owner(-100, 5) == 42

    @pytest.mark.asyncio
    async def test_lookup_unknown(self, registry):
        assert await registry.lookup(-100, 5) is None
        assert await registry.lookup_owner(-100, 5) is None
        # same message ID in another chat
        await registry.record(-200, 5, 42)
        assert await registry.lookup_owner(-100, 5) is None

    @pytest.mark.asyncio
    async def test_record_overwrites(self, registry):
        await registry.record(-100, 5, 42)
        await registry.record(-100, 5, 43)
        assert await registry.lookup_owner(-100, 5) == 43

    @pytest.mark.asyncio
    async def test_record_failure(self, registry, fake_redis):
        fake_redis.broken = True
        assert await registry.record(-100, 5, 42) is False

    @pytest.mark.asyncio
    async def test_corrupt_record(self, registry, fake_redis):
        fake_redis.data['spoiler:-100:5'] = b'{not json'
        assert await registry.lookup_owner(-100, 5) is None
        fake_redis.data['spoiler:-100:5'] = b'{"foo": 1}'
        assert await registry.lookup_owner(-100, 5) is None
        fake_redis.data['spoiler:-100:5'] = b'[1, 2]'
        assert await registry.lookup_owner(-100, 5) is None


class TestNotificationTracker:
    @pytest.mark.asyncio
    async def test_get_missing(self, tracker):
        assert await tracker.get(1, -100, 5) is None

    @pytest.mark.asyncio
    async def test_put_get(self, tracker):
        state = NotificationState(notification_message_id=7, removed_at=123, removed_emojis=['👍', '🎉'])
        assert await tracker.put(1, -100, 5, state)
        assert await tracker.get(1, -100, 5) == state

    @pytest.mark.asyncio
    async def test_put_replaces_state(self, tracker):
        await tracker.put(1, -100, 5, NotificationState(7, 123, ['👍']))
        await tracker.put(1, -100, 5, NotificationState(8))
        assert await tracker.get(1, -100, 5) == NotificationState(8, 0, [])

    @pytest.mark.asyncio
    async def test_keys_are_per_owner(self, tracker, fake_redis):
        await tracker.put(1, -100, 5, NotificationState(7))
        assert 'notification:1:-100:5' in fake_redis.data
        assert await tracker.get(2, -100, 5) is None

    @pytest.mark.asyncio
    async def test_clear(self, tracker):
        await tracker.put(1, -100, 5, NotificationState(7, 123, ['👍']))
        await tracker.clear(1, -100, 5)
        state = await tracker.get(1, -100, 5)
        assert state == NotificationState()
        assert not state.is_live
        assert not state.is_removed

    @pytest.mark.asyncio
    async def test_non_ascii_payload(self, tracker, fake_redis):
        await tracker.put(1, -100, 5, NotificationState(7, 1, ['🎉']))
        assert '🎉'.encode() in fake_redis.data['notification:1:-100:5']


def test_notification_state_flags():
    assert not NotificationState().is_live
    assert NotificationState(notification_message_id=1).is_live
    assert NotificationState(notification_message_id=1, removed_at=5).is_removed


def test_registry_keys():
    assert MessageRegistry.get_key(-100, 5) == 'spoiler:-100:5'
    assert NotificationTracker.get_key(1, -100, 5) == 'notification:1:-100:5'


def test_logging_config(settings):
    loggers = settings.LOGGING['loggers']
    assert loggers['core']['level'] == settings.LOGGING_LEVEL
    assert loggers['bot']['level'] == settings.LOGGING_LEVEL
    assert loggers['']['level'] == settings.LOGGING_LEVEL_ROOT
    assert loggers['httpx']['level'] == 'WARNING'
    assert loggers['apscheduler']['level'] == 'WARNING'
    assert all(logger['handlers'] == ['console'] for logger in loggers.values())
