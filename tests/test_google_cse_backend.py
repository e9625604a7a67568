"""
Tests for search_backends/google_cse_backend.py.

Covers:
  - parse_response: happy path, missing items, odd items/candidates, bad payloads
  - search(): request params, HTTP success, HTTP error, network error, bad JSON
"""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from search_backends.base import SearchError
from search_backends.google_cse_backend import GoogleCSEBackend, parse_response


@pytest.fixture
def backend():
    return GoogleCSEBackend(api_key="test-key", cx="test-cx", endpoint="https://search.test/v1")


def _raw_item(*srcs, title="Product", link="https://www.target.com/p/-/A-1") -> dict:
    return {
        "title":   title,
        "link":    link,
        "pagemap": {"cse_image": [{"src": s} for s in srcs]},
    }


# ── parse_response ────────────────────────────────────────────────────────────

class TestParseResponse:
    def test_happy_path(self):
        data = {"items": [
            _raw_item("https://target.scene7.com/a.jpg", "https://x/b.jpg"),
            _raw_item("https://y/c.jpg", title="Other"),
        ]}
        rs = parse_response(data, "Target 123")
        assert rs.query == "Target 123"
        assert len(rs) == 2
        assert rs.items[0].title == "Product"
        assert rs.items[0].image_candidates == ["https://target.scene7.com/a.jpg", "https://x/b.jpg"]
        assert rs.first_images() == ["https://target.scene7.com/a.jpg", "https://y/c.jpg"]

    def test_no_items_key_is_empty_result(self):
        rs = parse_response({"searchInformation": {"totalResults": "0"}}, "q")
        assert len(rs) == 0

    def test_item_without_pagemap(self):
        rs = parse_response({"items": [{"title": "t"}]}, "q")
        assert rs.items[0].first_image is None

    def test_non_dict_item_kept_as_empty(self):
        rs = parse_response({"items": ["junk", _raw_item("https://a/b.jpg")]}, "q")
        assert rs.first_images() == [None, "https://a/b.jpg"]

    def test_bad_candidates_become_none(self):
        data = {"items": [{"pagemap": {"cse_image": [{"src": 5}, "nope", {"src": ""}, {"src": "https://a/b"}]}}]}
        rs = parse_response(data, "q")
        assert rs.items[0].image_candidates == [None, None, None, "https://a/b"]
        assert rs.items[0].first_image is None

    def test_non_dict_payload_raises(self):
        with pytest.raises(SearchError):
            parse_response(["not", "a", "dict"], "q")

    def test_non_list_items_raises(self):
        with pytest.raises(SearchError):
            parse_response({"items": "oops"}, "q")


# ── search() HTTP layer ───────────────────────────────────────────────────────

def _mock_session(status: int = 200, payload=None, text: str = "", json_exc=None):
    mock_resp = AsyncMock()
    mock_resp.status = status
    if json_exc is not None:
        mock_resp.json = AsyncMock(side_effect=json_exc)
    else:
        mock_resp.json = AsyncMock(return_value=payload)
    mock_resp.text = AsyncMock(return_value=text)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__  = AsyncMock(return_value=False)

    mock_session = MagicMock()
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__  = AsyncMock(return_value=False)
    mock_session.get        = MagicMock(return_value=mock_resp)
    return mock_session


@pytest.mark.asyncio
class TestSearch:
    async def test_returns_parsed_items(self, backend):
        session = _mock_session(payload={"items": [_raw_item("https://a/1.jpg"), _raw_item("https://a/2.jpg")]})
        with patch("aiohttp.ClientSession", return_value=session):
            rs = await backend.search("Target 123")

        assert rs.first_images() == ["https://a/1.jpg", "https://a/2.jpg"]
        args, kwargs = session.get.call_args
        assert args[0] == "https://search.test/v1"
        assert kwargs["params"] == {"key": "test-key", "cx": "test-cx", "q": "Target 123"}

    async def test_http_error_raises(self, backend):
        session = _mock_session(status=403, text="Daily Limit Exceeded")
        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(SearchError, match="Search API error 403"):
                await backend.search("Target 123")

    async def test_network_error_raises_search_error(self, backend):
        session = MagicMock()
        session.__aenter__ = AsyncMock(return_value=session)
        session.__aexit__  = AsyncMock(return_value=False)
        session.get        = MagicMock(side_effect=aiohttp.ClientConnectionError("boom"))
        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(SearchError, match="request failed"):
                await backend.search("Target 123")

    async def test_invalid_json_raises_search_error(self, backend):
        session = _mock_session(json_exc=json.JSONDecodeError("bad", "doc", 0))
        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(SearchError, match="invalid JSON"):
                await backend.search("Target 123")

    async def test_name(self, backend):
        assert backend.name == "Google Custom Search"
