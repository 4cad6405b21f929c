from .mockers import clock, job_queue, messenger, notifier, scheduler
from .store import FakeRedis, fake_redis, registry, store, tracker
from .tg import create_reaction, create_tg_chat, create_tg_user
