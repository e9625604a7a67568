"""
image_proxy.py — fetch a third-party product image server-side.

Retailer CDNs often refuse hotlinked or cross-origin requests, so images
are always pulled from here with browser-like headers:

  web_server.py  GET /api/image-proxy?url=…   streams open_image() back
  batch.py       fetch_image()                 buffers bytes into the zip
  bot.py         fetch_image()                 sends bytes as a photo

Stateless: every call opens its own session unless the caller passes one,
so it is safe to call from any number of tasks at once.
Only https:// targets are accepted; the body is not inspected beyond
what the origin reports as Content-Type.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import aiohttp

import config

logger = logging.getLogger(__name__)

PROXY_HEADERS = {
    "Accept":     "image/webp,image/*,*/*;q=0.8",
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
}
DEFAULT_CONTENT_TYPE = "image/webp"
CACHE_CONTROL        = "public, max-age=86400"   # 1 day


class ImageFetchError(RuntimeError):
    """The origin could not be reached or answered with a non-2xx status."""


@dataclass
class FetchedImage:
    body: bytes
    content_type: str

    @property
    def looks_like_image(self) -> bool:
        return self.content_type.startswith("image/")


def validate_target(url: Optional[str]) -> str:
    """Return url if it may be proxied, else raise ValueError with a user-facing message."""
    if not url:
        raise ValueError("Missing image URL parameter")
    if not url.startswith("https://"):
        raise ValueError("Only HTTPS image URLs are supported")
    return url


def content_type_of(resp: aiohttp.ClientResponse) -> str:
    return resp.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE


@asynccontextmanager
async def open_image(
    url: str,
    session: Optional[aiohttp.ClientSession] = None,
) -> AsyncIterator[aiohttp.ClientResponse]:
    """
    Open the upstream response for url and yield it with the body unread.
    Raises ValueError for a target we refuse, ImageFetchError for anything
    that goes wrong opening the origin response. Errors raised inside the
    caller's block (reading the body, writing to a client) pass through
    untouched.
    """
    validate_target(url)
    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=config.FETCH_TIMEOUT),
        )
    logger.info("Proxying request to: %s", url)
    in_caller = False
    try:
        try:
            async with session.get(url, headers=PROXY_HEADERS) as resp:
                if not 200 <= resp.status < 300:
                    raise ImageFetchError(f"Failed to fetch image: {resp.status}")
                in_caller = True
                yield resp
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            if in_caller:
                raise
            raise ImageFetchError(f"Failed to fetch image: {exc}") from exc
    finally:
        if own_session:
            await session.close()


async def fetch_image(url: str, session: Optional[aiohttp.ClientSession] = None) -> FetchedImage:
    """Download the whole image into memory."""
    async with open_image(url, session) as resp:
        try:
            body = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ImageFetchError(f"Failed to read image body: {exc}") from exc
        return FetchedImage(body=body, content_type=content_type_of(resp))
