"""
query_builder.py — turn a store + product term into a search-engine query.

  build_query("TARGET", "12345678")  →  "Target 12345678"
"""
from __future__ import annotations

from retailers import get_retailer


def build_query(retailer_tag: str, raw_term: str) -> str:
    """
    Prefix the store's brand phrase to the trimmed term.
    Raises ValueError for a blank term and UnknownRetailerError for an
    unsupported store.
    """
    term = (raw_term or "").strip()
    if not term:
        raise ValueError("Please enter a search term")
    profile = get_retailer(retailer_tag)
    return f"{profile.query_prefix} {term}"
