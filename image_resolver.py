"""
image_resolver.py — pick the product photo out of a search result set.

Shared by the interactive lookup (image_search.py) and the CSV batch run
(batch.py) so both paths always agree on which image a store gets.

Selection, per store profile (retailers.py):
  1. Preferred match: walk the items in order, look at each item's FIRST
     candidate only, take the first one under a preferred CDN prefix.
  2. Fallback: if nothing matched and the store allows it, take the first
     item's first candidate, whatever it looks like.
  3. Otherwise: no image.

The chosen URL then gets the store's post-process, but only when it sits
under a preferred prefix. A fallback URL from some other host is returned
as the index gave it.

The result is always an absolute https:// URL or None. A miss is a normal
outcome here, not an error; resolve() never raises for odd result sets.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from retailers import RetailerProfile, get_retailer
from search_backends.base import SearchResultSet

logger = logging.getLogger(__name__)


def resolve(retailer_tag: str, result_set: SearchResultSet) -> Optional[str]:
    """Return the best image URL for this store, or None."""
    profile = get_retailer(retailer_tag)
    candidates = result_set.first_images() if result_set else []

    chosen = _preferred_match(profile, candidates)
    if chosen is None and profile.allow_fallback and candidates:
        chosen = candidates[0]
        if chosen:
            logger.debug("[%s] No preferred image, falling back to %s", profile.tag, chosen)

    if not chosen:
        return None

    if profile.post_process and profile.is_preferred(chosen):
        try:
            chosen = profile.post_process(chosen)
        except ValueError as exc:
            logger.info("[%s] Could not post-process %r: %s", profile.tag, chosen, exc)
            return None

    if not is_absolute_https(chosen):
        logger.info("[%s] Discarding unusable image URL %r", profile.tag, chosen)
        return None
    return chosen


def _preferred_match(profile: RetailerProfile, candidates: list[Optional[str]]) -> Optional[str]:
    if not profile.preferred_url_prefixes:
        return None
    for url in candidates:
        if profile.is_preferred(url):
            return url
    return None


def is_absolute_https(url) -> bool:
    if not isinstance(url, str) or not url.startswith("https://"):
        return False
    try:
        return bool(urlsplit(url).netloc)
    except ValueError:
        return False
