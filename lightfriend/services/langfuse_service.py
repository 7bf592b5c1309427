"""
Langfuse tracing for SMS responses.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx

from lightfriend.core import config
from lightfriend.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

TRACE_NAME = "incoming_sms_response"


def build_trace_batch(
    trace_id: str,
    user_id: Optional[str],
    input_text: str,
    output_text: str,
    session_id: Optional[str],
    processing_time_ms: int,
    is_error: bool,
) -> dict:
    timestamp = datetime.now(timezone.utc).isoformat()
    return {
        "batch": [
            {
                "id": str(uuid.uuid4()),
                "timestamp": timestamp,
                "type": "trace-create",
                "body": {
                    "id": trace_id,
                    "timestamp": timestamp,
                    "name": TRACE_NAME,
                    "userId": user_id,
                    "input": input_text,
                    "output": output_text,
                    "sessionId": session_id,
                    "metadata": f"processing_time_ms: {processing_time_ms}",
                    "tags": ["error"] if is_error else ["success"],
                },
            }
        ]
    }


async def trace_sms_response(
    user_id: Optional[str],
    input_text: str,
    output_text: str,
    session_id: Optional[str],
    processing_time_ms: int,
    is_error: bool,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """
    Send a single trace-create event to the Langfuse ingestion API.

    Returns:
        False when Langfuse is not configured, True once the trace is accepted

    Raises:
        ExternalServiceError: Langfuse rejected the batch or was unreachable
    """
    if not config.LANGFUSE_PUBLIC_KEY or not config.LANGFUSE_SECRET_KEY:
        logger.debug("Langfuse not configured, skipping trace")
        return False

    payload = build_trace_batch(
        str(uuid.uuid4()), user_id, input_text, output_text, session_id, processing_time_ms, is_error
    )
    url = f"{config.LANGFUSE_HOST.rstrip('/')}/api/public/ingestion"
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(
                url,
                json=payload,
                auth=(config.LANGFUSE_PUBLIC_KEY, config.LANGFUSE_SECRET_KEY),
            )
    except httpx.HTTPError as e:
        raise ExternalServiceError("langfuse", f"Failed to send trace: {e}") from e

    if response.is_error:
        raise ExternalServiceError("langfuse", f"Trace rejected: {response.text[:200]}", response.status_code)
    logger.info("Trace sent to Langfuse")
    return True
