"""
Tests for QR scanning. Decoding itself is stubbed so zbar is not required.
"""
import httpx
import pytest

from lightfriend.core import config
from lightfriend.core.errors import ExternalServiceError
from lightfriend.llm.tools import handlers
from lightfriend.llm.tools.catalog import ScanQrCodeArgs
from lightfriend.llm.tools.context import ToolContext
from lightfriend.services import internet_service, qr_service

MEDIA_URL = "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages/MM1/Media/ME1"


@pytest.mark.parametrize("data, kind", [
    ("https://example.com/menu.PDF", qr_service.CONTENT_PDF),
    ("https://example.com/photo.jpeg", qr_service.CONTENT_IMAGE),
    ("https://example.com/tickets?id=1", qr_service.CONTENT_WEBPAGE),
    ("WIFI:S:home;T:WPA;P:secret;;", qr_service.CONTENT_TEXT),
    ("example.com/not-a-url", qr_service.CONTENT_TEXT),
])
def test_classify(data, kind):
    assert qr_service.classify(data).kind == kind


def test_describe():
    assert qr_service.classify("https://example.com/a.pdf").describe() == (
        "QR code contains a link to a PDF: https://example.com/a.pdf"
    )
    assert qr_service.classify("hello").describe() == "QR code contains text: hello"


async def test_download_uses_twilio_credentials(monkeypatch):
    monkeypatch.setattr(config, "TWILIO_ACCOUNT_SID", "AC1")
    monkeypatch.setattr(config, "TWILIO_AUTH_TOKEN", "token")
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, content=b"\x89PNG")

    data = await qr_service.download_image(MEDIA_URL, transport=httpx.MockTransport(handler))

    assert data == b"\x89PNG"
    assert seen["auth"].startswith("Basic ")


async def test_download_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    with pytest.raises(ExternalServiceError):
        await qr_service.download_image("https://example.com/missing.png", transport=transport)


async def test_scan_returns_classified_content(monkeypatch):
    monkeypatch.setattr(qr_service, "decode_qr", lambda image_bytes: "https://example.com/a.png")
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"img"))

    content = await qr_service.scan_qr_code("https://example.com/upload.png", transport=transport)

    assert content == qr_service.QrContent(qr_service.CONTENT_IMAGE, "https://example.com/a.png")


async def test_scan_without_code(monkeypatch):
    monkeypatch.setattr(qr_service, "decode_qr", lambda image_bytes: None)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"img"))
    assert await qr_service.scan_qr_code("https://example.com/upload.png", transport=transport) is None


async def test_tool_adds_page_content_for_links(db, make_user, app_context, monkeypatch):
    async def fake_scan(url, transport=None):
        return qr_service.QrContent(qr_service.CONTENT_WEBPAGE, "https://example.com/event")

    async def fake_scrape(url, transport=None):
        return "# Concert\nDoors open at 19:00"

    monkeypatch.setattr(qr_service, "scan_qr_code", fake_scan)
    monkeypatch.setattr(internet_service, "scrape_url", fake_scrape)
    ctx = ToolContext(db=db, user=make_user(), app=app_context, media_url=MEDIA_URL)

    answer = await handlers.handle_scan_qr_code(ScanQrCodeArgs(), ctx)

    assert answer.startswith("QR code contains a link to a webpage: https://example.com/event")
    assert answer.endswith("Page content:\n# Concert\nDoors open at 19:00")


async def test_tool_reports_download_failure(db, make_user, app_context, monkeypatch):
    async def failing_scan(url, transport=None):
        raise ExternalServiceError("media", "Failed to download image. Status: 403", 403)

    monkeypatch.setattr(qr_service, "scan_qr_code", failing_scan)
    ctx = ToolContext(db=db, user=make_user(), app=app_context, media_url=MEDIA_URL)

    assert await handlers.handle_scan_qr_code(ScanQrCodeArgs(), ctx) == qr_service.SCAN_FAILED
