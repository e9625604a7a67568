"""
retailers.py — per-retailer lookup policy.

One RetailerProfile per supported store. Everything that differs between
stores lives in this table; the query builder, the image resolver and the
CSV batch runner all dispatch through get_retailer() instead of branching
on the tag themselves.

  TARGET     only scene7 CDN images, never falls back, adds quality params
  BESTBUY    first image of the first result, as is
  HOMEDEPOT  prefers thdstatic CDN, falls back to the first image
  LOWES      prefers the mobileimages CDN, bumps a trailing size= to full
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode, urlsplit, urlunsplit


class UnknownRetailerError(ValueError):
    """Raised for a store tag that has no profile."""


# ── URL post-processing ───────────────────────────────────────────────────────

TARGET_IMAGE_PARAMS: dict[str, str] = {
    "qlt": "65",
    "fmt": "webp",
    "hei": "1200",
    "wid": "1200",
}

_TRAILING_SIZE = re.compile(r"size=[^&]+$")


def merge_query_params(url: str, params: dict[str, str]) -> str:
    """
    Merge params into the URL's query string.
    Existing pieces whose key is in params are dropped and params appended,
    so running this twice gives the same URL as running it once. Every
    other piece (repeated keys, $preset$ macros, bare flags) is kept as is.
    """
    parts  = urlsplit(url)
    pieces = parts.query.split("&") if parts.query else []
    kept   = [p for p in pieces if p.split("=", 1)[0] not in params]
    query  = "&".join(kept + [urlencode(params)])
    return urlunsplit(parts._replace(query=query))


def full_size(url: str) -> str:
    """Rewrite a trailing size=<value> to size=full. Other URLs pass through."""
    return _TRAILING_SIZE.sub("size=full", url)


def _target_quality(url: str) -> str:
    return merge_query_params(url, TARGET_IMAGE_PARAMS)


# ── Profiles ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RetailerProfile:
    tag: str
    label: str
    query_prefix: str
    id_column: str                              # CSV column holding the product identifier
    preferred_url_prefixes: tuple[str, ...] = ()
    allow_fallback: bool = True
    post_process: Optional[Callable[[str], str]] = None

    def is_preferred(self, url: Optional[str]) -> bool:
        """True when url lives under one of this store's image CDNs."""
        if not isinstance(url, str):
            return False
        return any(url.startswith(p) for p in self.preferred_url_prefixes)


RETAILERS: dict[str, RetailerProfile] = {
    p.tag: p
    for p in (
        RetailerProfile(
            tag="TARGET",
            label="Target",
            query_prefix="Target",
            id_column="TCIN",
            preferred_url_prefixes=("https://target.scene7.com",),
            allow_fallback=False,
            post_process=_target_quality,
        ),
        RetailerProfile(
            tag="BESTBUY",
            label="Best Buy",
            query_prefix="BestBuy",
            id_column="Model",
        ),
        RetailerProfile(
            tag="HOMEDEPOT",
            label="Home Depot",
            query_prefix="Home Depot",
            id_column="Item Description",
            preferred_url_prefixes=("https://images.thdstatic",),
        ),
        RetailerProfile(
            tag="LOWES",
            label="Lowe's",
            query_prefix="Lowes",
            id_column="Model",
            preferred_url_prefixes=("https://mobileimages.lowes.com/productimages/",),
            post_process=full_size,
        ),
    )
}


def normalize_tag(tag: str) -> str:
    """'Best Buy', 'best_buy' and 'BESTBUY' all map to 'BESTBUY'."""
    return re.sub(r"[\s_\-']", "", str(tag or "")).upper()


def get_retailer(tag: str) -> RetailerProfile:
    profile = RETAILERS.get(normalize_tag(tag))
    if profile is None:
        known = ", ".join(RETAILERS)
        raise UnknownRetailerError(f"Unknown store '{tag}'. Choose one of: {known}")
    return profile
