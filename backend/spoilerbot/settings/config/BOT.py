from os import getenv

TG_BOT_TOKEN = getenv('TG_BOT_TOKEN')

REDIS_URL = getenv('REDIS_URL', 'redis://localhost:6379/0')
STORE_EXPIRY = int(getenv('STORE_EXPIRY', '0'))  # seconds, 0 - never

# reaction notifications
NOTIFICATION_GRACE_SECONDS = float(getenv('NOTIFICATION_GRACE_SECONDS', '30'))
CUSTOM_REACTION_PLACEHOLDER = getenv('CUSTOM_REACTION_PLACEHOLDER', '[custom]')
