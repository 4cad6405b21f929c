import functools
import logging

from telegram.ext import CommandHandler, MessageReactionHandler


class HandlerWrapper:
    def __init__(self, func, handler_class, use_async=False, *args, **kwargs):
        @functools.wraps(func)
        async def callback(update, context):
            logger = logging.getLogger(func.__module__)
            logger.debug(f"☎️  CALLING: {func.__name__:30s}")
            logger.debug(f"📑\n{update}")
            return await func(update, context)

        self.callback = callback
        self.handler_class = handler_class
        self.handler = handler_class(*args, callback=callback, block=not use_async, **kwargs)
        self.__doc__ = func.__doc__

    @property
    def name(self):
        return self.callback.__name__

    @property
    def module(self):
        return self.callback.__module__

    async def __call__(self, *args, **kwargs):
        return await self.callback(*args, **kwargs)


def handler_decorator_factory(handler_class, use_async=False):
    def handler_decorator(*args, **kwargs):
        def decorator(func):
            return HandlerWrapper(func, handler_class, use_async, *args, **kwargs)

        return decorator

    return handler_decorator


command = handler_decorator_factory(CommandHandler)
message_reaction_handler = handler_decorator_factory(MessageReactionHandler, use_async=True)
