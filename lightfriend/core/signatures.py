import hashlib
import hmac
from typing import Optional

from lightfriend.core.errors import WebhookSignatureError


def digests_match(expected: str, received: str) -> bool:
    """Constant-time comparison that also accepts non-ASCII header values."""
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8", "surrogateescape"))


def verify_hex_hmac_sha256(body: bytes, signature: Optional[str], secret: str) -> None:
    """
    Compare a hex HMAC-SHA256 signature of the raw body in constant time.

    Raises:
        WebhookSignatureError: Missing or mismatching signature
    """
    if not signature:
        raise WebhookSignatureError("Missing signature")
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not digests_match(expected, signature.strip().lower()):
        raise WebhookSignatureError("Invalid signature")
