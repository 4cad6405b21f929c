from os import getenv

BSKY_API_URL = getenv('BSKY_API_URL', 'https://public.api.bsky.app')
BSKY_TIMEOUT = float(getenv('BSKY_TIMEOUT', '10'))
