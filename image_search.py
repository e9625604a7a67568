"""
image_search.py — public interface for a single product-photo lookup.

The front-ends import only from here:
  from image_search import find_product_image, SearchOutcome, SearchState

One lookup walks  idle → searching → resolved | not_found | errored:

  resolved   an image URL was chosen; proxy_url is ready for display
  not_found  the search worked but no usable image came back
  errored    the search call itself failed (HTTP status, network, payload)

One attempt per call, no retries; the user can simply search again.
Input validation (blank term, unknown store) raises before any state
change so callers can report it as a bad request.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Optional
from urllib.parse import quote

import config
from image_resolver import resolve
from query_builder import build_query
from retailers import get_retailer
from search_backends.base import SearchBackend, SearchConfigError, SearchError

logger = logging.getLogger(__name__)

__all__ = [
    "SearchOutcome", "SearchState", "find_product_image",
    "get_backend", "backend_name", "proxy_url_for",
]

_backend: Optional[SearchBackend] = None


class SearchState(str, Enum):
    IDLE      = "idle"
    SEARCHING = "searching"
    RESOLVED  = "resolved"
    NOT_FOUND = "not_found"
    ERRORED   = "errored"


@dataclass
class SearchOutcome:
    store: str
    term: str
    query: str = ""
    state: SearchState = SearchState.IDLE
    image_url: Optional[str] = None
    proxy_url: Optional[str] = None
    message: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        return data


# ── Backend ───────────────────────────────────────────────────────────────────

async def get_backend() -> SearchBackend:
    """Return the active backend, initialising it once on first call."""
    global _backend
    if _backend is not None:
        return _backend
    _backend = _build_backend()
    logger.info("Search backend: %s", _backend.name)
    return _backend


async def backend_name() -> str:
    try:
        return (await get_backend()).name
    except SearchConfigError:
        return "not configured"


def _build_backend() -> SearchBackend:
    if not (config.GOOGLE_API_KEY and config.GOOGLE_CX):
        raise SearchConfigError(
            "Image search is not configured. "
            "Set GOOGLE_API_KEY and GOOGLE_CX in the environment or .env file."
        )
    from search_backends.google_cse_backend import GoogleCSEBackend
    return GoogleCSEBackend(api_key=config.GOOGLE_API_KEY, cx=config.GOOGLE_CX)


# ── Lookup ────────────────────────────────────────────────────────────────────

def proxy_url_for(image_url: str) -> str:
    """Same-origin URL that serves image_url through the image proxy."""
    return f"{config.PROXY_PATH}?url={quote(image_url, safe='')}"


async def find_product_image(
    store: str,
    term: str,
    backend: Optional[SearchBackend] = None,
) -> SearchOutcome:
    """
    Search for `term` at `store` and pick the product photo.

    Raises:
        ValueError / UnknownRetailerError  blank term or unsupported store
        SearchConfigError                  no search credentials configured
    """
    profile = get_retailer(store)
    query   = build_query(profile.tag, term)
    outcome = SearchOutcome(store=profile.tag, term=term.strip(), query=query)

    if backend is None:
        backend = await get_backend()

    outcome.state = SearchState.SEARCHING
    try:
        results = await backend.search(query)
    except SearchError as exc:
        logger.warning("[%s] Search failed for '%s': %s", profile.tag, query, exc)
        outcome.state   = SearchState.ERRORED
        outcome.message = f"Error: {exc}"
        return outcome

    image_url = resolve(profile.tag, results)
    if image_url is None:
        logger.info("[%s] No matching image for '%s' (%d results)", profile.tag, query, len(results))
        outcome.state   = SearchState.NOT_FOUND
        outcome.message = "No matching image found"
        return outcome

    outcome.state     = SearchState.RESOLVED
    outcome.image_url = image_url
    outcome.proxy_url = proxy_url_for(image_url)
    logger.info("[%s] '%s' → %s", profile.tag, query, image_url)
    return outcome
