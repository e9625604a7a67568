"""
Shared pytest fixtures.

Every test gets fake search credentials and a fresh search-backend
singleton so tests are fully isolated from each other and from any
real .env on the machine.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from search_backends.base import SearchItem, SearchResultSet  # noqa: E402


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Fake credentials + reset the lazily-built backend."""
    import config
    import image_search

    monkeypatch.setattr(config, "GOOGLE_API_KEY", "test-key")
    monkeypatch.setattr(config, "GOOGLE_CX", "test-cx")
    monkeypatch.setattr(config, "DEFAULT_STORE", "TARGET")
    monkeypatch.setattr(config, "PROXY_PATH", "/api/image-proxy")
    monkeypatch.setattr(image_search, "_backend", None)
    yield


def result_set(*images, query: str = "q") -> SearchResultSet:
    """
    Build a SearchResultSet, one item per argument:
      "https://…"        → item with that single candidate
      ["a", "b"]         → item with several candidates
      None               → item with no candidates
    """
    items = []
    for entry in images:
        if entry is None:
            items.append(SearchItem())
        elif isinstance(entry, list):
            items.append(SearchItem(image_candidates=list(entry)))
        else:
            items.append(SearchItem(image_candidates=[entry]))
    return SearchResultSet(query=query, items=items)
