import os

import django


def setup():
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'spoilerbot.settings')
    django.setup()


def main():
    from bot.dispatcher import run

    run()


def start():
    setup()
    main()


if __name__ == '__main__':
    start()
