import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)

DOMAINS = ['bsky.app', 'fxbsky.app', 'vxbsky.app', 'bskye.app', 'bskyx.app', 'bsyy.app']
POST_URL_RE = re.compile(
    r'https?://(?:www\.)?(' + '|'.join(re.escape(d) for d in DOMAINS) + r')'
    r'/profile/([a-zA-Z0-9._:%-]+)/post/([a-zA-Z0-9]+)'
)


class BlueskyError(Exception):
    pass


@dataclass(frozen=True)
class PostURL:
    authority: str
    rkey: str
    url: str

    def at_uri(self, did: str):
        return f'at://{did}/app.bsky.feed.post/{self.rkey}'


@dataclass(frozen=True)
class Image:
    fullsize: str
    thumb: str
    alt: str = ''


def parse_post_url(text: str) -> Optional[PostURL]:
    match = POST_URL_RE.search(text)
    if not match:
        return None
    return PostURL(authority=match[2], rkey=match[3], url=match[0])


def extract_images(post: dict) -> List[Image]:
    embed = post.get('embed') or {}
    views = []
    if embed.get('$type') == 'app.bsky.embed.images#view':
        views.append(embed)
    elif embed.get('$type') == 'app.bsky.embed.recordWithMedia#view':
        media = embed.get('media') or {}
        if media.get('$type') == 'app.bsky.embed.images#view':
            views.append(media)
    return [
        Image(fullsize=img['fullsize'], thumb=img.get('thumb', ''), alt=img.get('alt', ''))
        for view in views
        for img in view.get('images', [])
    ]


class BlueskyClient:
    """Read-only client of the public Bluesky AppView."""

    def __init__(self, base_url: str = None, timeout: float = None, transport=None):
        self.http = httpx.AsyncClient(
            base_url=base_url or settings.BSKY_API_URL,
            timeout=timeout or settings.BSKY_TIMEOUT,
            transport=transport,
        )

    async def _get(self, method: str, **params) -> dict:
        try:
            response = await self.http.get(f'/xrpc/{method}', params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise BlueskyError(f"{method}: {e}") from e
        except ValueError as e:
            raise BlueskyError(f"{method}: invalid response: {e}") from e

    async def resolve_did(self, authority: str) -> str:
        if authority.startswith('did:'):
            return authority
        data = await self._get('com.atproto.identity.resolveHandle', handle=authority)
        did = data.get('did')
        if not did:
            raise BlueskyError(f"handle {authority!r} was not resolved")
        return did

    async def fetch_post_images(self, at_uri: str) -> List[Image]:
        data = await self._get('app.bsky.feed.getPosts', uris=at_uri)
        posts = data.get('posts') or []
        if not posts:
            raise BlueskyError(f"post {at_uri} not found")
        return extract_images(posts[0])

    async def close(self):
        await self.http.aclose()
