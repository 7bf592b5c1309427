"""
QR code scanning for images sent over MMS.
"""
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

import httpx

from lightfriend.core import config
from lightfriend.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

CONTENT_TEXT = "text"
CONTENT_PDF = "pdf"
CONTENT_IMAGE = "image"
CONTENT_WEBPAGE = "webpage"

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

NO_QR_CODE = "No QR code found in the image."
NO_IMAGE = "No image was provided in the message. Please send an image containing a QR code."
SCAN_FAILED = "Failed to scan QR code from the image. Please make sure the QR code is clearly visible."


@dataclass
class QrContent:
    kind: str
    value: str

    def describe(self) -> str:
        if self.kind == CONTENT_PDF:
            return f"QR code contains a link to a PDF: {self.value}"
        if self.kind == CONTENT_IMAGE:
            return f"QR code contains a link to an image: {self.value}"
        if self.kind == CONTENT_WEBPAGE:
            return f"QR code contains a link to a webpage: {self.value}"
        return f"QR code contains text: {self.value}"


def classify(data: str) -> QrContent:
    parsed = urlparse(data)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        path = parsed.path.lower()
        if path.endswith(".pdf"):
            return QrContent(CONTENT_PDF, data)
        if path.endswith(IMAGE_EXTENSIONS):
            return QrContent(CONTENT_IMAGE, data)
        return QrContent(CONTENT_WEBPAGE, data)
    return QrContent(CONTENT_TEXT, data)


def decode_qr(image_bytes: bytes) -> Optional[str]:
    """First decodable QR payload in the image, or None."""
    # zbar is a system library, only needed once an image actually arrives
    from PIL import Image
    from pyzbar.pyzbar import ZBarSymbol, decode

    image = Image.open(io.BytesIO(image_bytes)).convert("L")
    logger.info(f"Scanning image {image.width}x{image.height}")
    for symbol in decode(image, symbols=[ZBarSymbol.QRCODE]):
        try:
            return symbol.data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("QR payload is not valid UTF-8, skipping")
    return None


async def download_image(
    image_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bytes:
    # Twilio media URLs need the account credentials
    auth: Optional[Tuple[str, str]] = None
    if "twilio.com" in image_url and config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN:
        auth = (config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)
    async with httpx.AsyncClient(timeout=30.0, transport=transport, follow_redirects=True) as client:
        response = await client.get(image_url, auth=auth)
    if response.is_error:
        raise ExternalServiceError("media", f"Failed to download image. Status: {response.status_code}", response.status_code)
    logger.info(f"Downloaded {len(response.content)} bytes")
    return response.content


async def scan_qr_code(
    image_url: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[QrContent]:
    image_bytes = await download_image(image_url, transport)
    data = decode_qr(image_bytes)
    if data is None:
        logger.info("No QR code found in image")
        return None
    return classify(data)
