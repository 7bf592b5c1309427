"""
ElevenLabs Conversational AI client used to reconcile finished voice calls.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError

logger = logging.getLogger(__name__)


class ElevenLabsClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or config.ELEVENLABS_API_KEY
        if not self.api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY not configured")
        self.base_url = (base_url or config.ELEVENLABS_API_URL).rstrip("/")
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"xi-api-key": self.api_key},
            timeout=30.0,
            transport=self.transport,
        )

    @staticmethod
    def _check(response: httpx.Response, action: str) -> None:
        if response.is_error:
            raise ExternalServiceError(
                "elevenlabs",
                f"{action} failed with {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

    async def list_conversations(self) -> List[Dict[str, Any]]:
        async with self._client() as client:
            response = await client.get("/v1/convai/conversations")
        self._check(response, "list conversations")
        return response.json().get("conversations", [])

    async def get_conversation(self, conversation_id: str) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.get(f"/v1/convai/conversations/{conversation_id}")
        self._check(response, f"get conversation {conversation_id}")
        return response.json()

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._client() as client:
            response = await client.delete(f"/v1/convai/conversations/{conversation_id}")
        self._check(response, f"delete conversation {conversation_id}")
        logger.info(f"Deleted ElevenLabs conversation {conversation_id}")
