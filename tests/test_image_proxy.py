"""
Tests for image_proxy.py.

Covers:
  - validate_target(): missing URL, non-https URL
  - fetch_image(): body + content type, default content type, browser headers
  - upstream failures: non-2xx status and network errors → ImageFetchError
  - session handling: own session closed, caller's session left open
  - open_image(): errors raised by the caller are not relabelled as fetch failures
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

import image_proxy
from image_proxy import ImageFetchError, fetch_image, validate_target

IMG = "https://target.scene7.com/is/image/Target/GUEST_1?qlt=65"


def _mock_session(status: int = 200, body: bytes = b"\x89PNG", headers=None, get_exc=None):
    mock_resp = MagicMock()
    mock_resp.status  = status
    mock_resp.headers = headers if headers is not None else {"Content-Type": "image/png"}
    mock_resp.read    = AsyncMock(return_value=body)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__  = AsyncMock(return_value=False)

    session = MagicMock()
    session.close = AsyncMock()
    if get_exc is not None:
        session.get = MagicMock(side_effect=get_exc)
    else:
        session.get = MagicMock(return_value=mock_resp)
    return session


# ── validate_target() ─────────────────────────────────────────────────────────

class TestValidateTarget:
    @pytest.mark.parametrize("url", [None, ""])
    def test_missing(self, url):
        with pytest.raises(ValueError, match="Missing image URL parameter"):
            validate_target(url)

    @pytest.mark.parametrize("url", ["http://a/b.jpg", "ftp://a/b", "/local.jpg", "file:///etc/passwd"])
    def test_non_https(self, url):
        with pytest.raises(ValueError, match="Only HTTPS"):
            validate_target(url)

    def test_https_ok(self):
        assert validate_target(IMG) == IMG


# ── fetch_image() ─────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFetchImage:
    async def test_returns_body_and_type(self):
        session = _mock_session(body=b"imagebytes", headers={"Content-Type": "image/jpeg"})
        image = await fetch_image(IMG, session=session)
        assert image.body == b"imagebytes"
        assert image.content_type == "image/jpeg"
        assert image.looks_like_image is True

    async def test_default_content_type(self):
        session = _mock_session(headers={})
        image = await fetch_image(IMG, session=session)
        assert image.content_type == "image/webp"

    async def test_non_image_content_type_still_returned(self):
        session = _mock_session(body=b"<html>", headers={"Content-Type": "text/html"})
        image = await fetch_image(IMG, session=session)
        assert image.looks_like_image is False

    async def test_sends_browser_headers(self):
        session = _mock_session()
        await fetch_image(IMG, session=session)
        args, kwargs = session.get.call_args
        assert args[0] == IMG
        assert kwargs["headers"]["Accept"].startswith("image/webp")
        assert "Mozilla/5.0" in kwargs["headers"]["User-Agent"]

    async def test_http_error_raises(self):
        session = _mock_session(status=403)
        with pytest.raises(ImageFetchError, match="403"):
            await fetch_image(IMG, session=session)

    async def test_network_error_raises(self):
        session = _mock_session(get_exc=aiohttp.ClientConnectionError("reset"))
        with pytest.raises(ImageFetchError, match="reset"):
            await fetch_image(IMG, session=session)

    async def test_rejects_http_before_any_request(self):
        session = _mock_session()
        with pytest.raises(ValueError):
            await fetch_image("http://insecure/x.jpg", session=session)
        session.get.assert_not_called()

    async def test_own_session_is_closed(self):
        session = _mock_session()
        with patch.object(image_proxy.aiohttp, "ClientSession", return_value=session):
            await fetch_image(IMG)
        session.close.assert_awaited_once()

    async def test_callers_session_left_open(self):
        session = _mock_session()
        await fetch_image(IMG, session=session)
        session.close.assert_not_called()


# ── open_image() ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestOpenImage:
    async def test_yields_response(self):
        session = _mock_session(headers={"Content-Type": "image/jpeg"})
        async with image_proxy.open_image(IMG, session=session) as resp:
            assert image_proxy.content_type_of(resp) == "image/jpeg"

    async def test_error_in_callers_block_passes_through(self):
        session = _mock_session()
        with pytest.raises(aiohttp.ClientConnectionError) as info:
            async with image_proxy.open_image(IMG, session=session):
                raise aiohttp.ClientConnectionError("client went away")
        assert not isinstance(info.value, ImageFetchError)

    async def test_error_in_callers_block_still_closes_own_session(self):
        session = _mock_session()
        with patch.object(image_proxy.aiohttp, "ClientSession", return_value=session):
            with pytest.raises(ConnectionResetError):
                async with image_proxy.open_image(IMG):
                    raise ConnectionResetError("reset by peer")
        session.close.assert_awaited_once()
