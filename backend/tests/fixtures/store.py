import pytest
from redis.exceptions import ConnectionError

from core.models import MessageRegistry, NotificationTracker
from core.store import RedisStore


class FakeRedis:
    """In-memory stand-in for the two redis commands the store uses."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise ConnectionError('redis is down')

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def aclose(self):
        pass


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def store(fake_redis):
    return RedisStore(fake_redis)


@pytest.fixture
def registry(store):
    return MessageRegistry(store)


@pytest.fixture
def tracker(store):
    return NotificationTracker(store)
