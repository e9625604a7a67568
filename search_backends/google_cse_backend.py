"""
Google Custom Search JSON API backend.

Docs: https://developers.google.com/custom-search/v1/reference/rest/v1/cse/list

Authentication:
  key → API key from Google Cloud console (Custom Search API enabled)
  cx  → Programmable Search Engine ID (the search scope)

Free tier: 100 queries/day, then $5 per 1,000. The batch runner calls this
once per CSV row, sequentially, so a large file will chew through the daily
quota; plan accordingly.

Response shape we rely on (everything else is ignored):
  {"items": [{"title": …, "link": …,
              "pagemap": {"cse_image": [{"src": "https://…"}, …]}}, …]}
A response with no "items" key is a valid zero-result search.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

import config
from search_backends.base import SearchBackend, SearchError, SearchItem, SearchResultSet

logger = logging.getLogger(__name__)


class GoogleCSEBackend(SearchBackend):

    def __init__(self, api_key: str, cx: str, endpoint: Optional[str] = None) -> None:
        self._key      = api_key
        self._cx       = cx
        self._endpoint = endpoint or config.SEARCH_API_URL

    @property
    def name(self) -> str:
        return "Google Custom Search"

    async def search(self, query: str) -> SearchResultSet:
        params = {
            "key": self._key,
            "cx":  self._cx,
            "q":   query,
        }
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self._endpoint,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=config.SEARCH_TIMEOUT),
                ) as resp:
                    if not 200 <= resp.status < 300:
                        text = await resp.text()
                        raise SearchError(f"Search API error {resp.status}: {text[:200]}")
                    data = await resp.json(content_type=None)
        except SearchError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SearchError(f"Search API request failed: {exc}") from exc
        except ValueError as exc:
            raise SearchError(f"Search API returned invalid JSON: {exc}") from exc

        result = parse_response(data, query)
        logger.info("Google CSE returned %d items for query '%s'", len(result), query)
        return result


# ── Parser ────────────────────────────────────────────────────────────────────

def parse_response(data, query: str) -> SearchResultSet:
    """
    Unpack the CSE payload into a SearchResultSet.
    Raises SearchError only when the payload as a whole is unusable;
    individual odd items just end up with no candidates.
    """
    if not isinstance(data, dict):
        raise SearchError("Search API returned an unexpected payload")

    raw_items = data.get("items") or []
    if not isinstance(raw_items, list):
        raise SearchError("Search API returned an unexpected 'items' field")

    return SearchResultSet(query=query, items=[_parse_item(raw) for raw in raw_items])


def _parse_item(raw) -> SearchItem:
    if not isinstance(raw, dict):
        return SearchItem()

    pagemap = raw.get("pagemap")
    images  = pagemap.get("cse_image") if isinstance(pagemap, dict) else None

    candidates: list[Optional[str]] = []
    if isinstance(images, list):
        for image in images:
            src = image.get("src") if isinstance(image, dict) else None
            candidates.append(src if isinstance(src, str) and src else None)

    return SearchItem(
        title=str(raw.get("title") or ""),
        link=str(raw.get("link") or ""),
        image_candidates=candidates,
    )
