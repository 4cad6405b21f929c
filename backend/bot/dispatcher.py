import logging
from typing import List

from django.conf import settings
from telegram import Update
from telegram.ext import Application, CommandHandler, MessageReactionHandler

from core.models import MessageRegistry, NotificationTracker
from core.store import RedisStore
from . import reaction_notify, spoilers
from .bluesky import BlueskyClient
from .messenger import Messenger
from .reaction_notify import CleanupScheduler, ReactionNotifier
from .utils import handle_error
from .wrapper import HandlerWrapper

logger = logging.getLogger(__name__)


def extract_handlers(module):
    res = []
    for key, value in vars(module).items():
        if isinstance(value, HandlerWrapper):
            res.append(value)
    return res


def inspect_handlers(handlers: List[HandlerWrapper]):
    text = 'Handlers:\n'
    text += '\n'.join([
        f"  > {i + 1:2d}. {handler.module:40s} > {handler.name}"
        for i, handler in enumerate(handlers)
    ])
    logger.debug(text)


def sort_by_type(handlers: List[HandlerWrapper]):
    """
    0 commands
    1 message reaction handlers
    """
    priority = {CommandHandler: 0, MessageReactionHandler: 1}
    handlers.sort(key=lambda h: priority[h.handler_class])


def setup_bot_data(app: Application, store: RedisStore, bluesky: BlueskyClient):
    registry = MessageRegistry(store)
    tracker = NotificationTracker(store)
    messenger = Messenger(app.bot)
    scheduler = CleanupScheduler(
        tracker,
        messenger,
        app.job_queue,
        grace=settings.NOTIFICATION_GRACE_SECONDS,
    )
    app.bot_data.update(
        store=store,
        registry=registry,
        bluesky=bluesky,
        notifier=ReactionNotifier(registry, tracker, messenger, scheduler),
    )


def setup_dispatcher(app: Application, inspect=True):
    handlers = []
    for module in [spoilers, reaction_notify]:
        handlers.extend(extract_handlers(module))

    sort_by_type(handlers)
    for wrapper in handlers:
        app.add_handler(wrapper.handler)
    app.add_error_handler(handle_error)
    if inspect:
        inspect_handlers(handlers)


async def shutdown(app: Application):
    await app.bot_data['bluesky'].close()
    await app.bot_data['store'].close()


def build_application() -> Application:
    if not settings.TG_BOT_TOKEN:
        raise RuntimeError("TG_BOT_TOKEN is required")
    app = (
        Application.builder()
        .token(settings.TG_BOT_TOKEN)
        .post_shutdown(shutdown)
        .build()
    )
    if app.job_queue is None:
        raise RuntimeError("job queue is unavailable, install python-telegram-bot[job-queue]")
    setup_bot_data(app, RedisStore.from_settings(), BlueskyClient())
    setup_dispatcher(app)
    return app


def run():
    app = build_application()
    logger.info('start polling...')
    app.run_polling(allowed_updates=[Update.MESSAGE, Update.MESSAGE_REACTION])
    logger.info('bye')
