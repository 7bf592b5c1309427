"""
OpenAI-compatible provider, pointed at OpenRouter.
"""
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI, APIError

from lightfriend.core import config
from lightfriend.llm.provider import LLMProvider, LLMResponse, ToolCall

logger = logging.getLogger(__name__)


class OpenRouterProvider(LLMProvider):
    """Chat completions through the official OpenAI SDK with a custom base URL."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key or config.OPENROUTER_API_KEY
        if not self.api_key:
            raise ValueError("OPENROUTER_API_KEY not configured")
        self.model = model or config.LLM_MODEL
        self.client = OpenAI(api_key=self.api_key, base_url=base_url or config.OPENROUTER_BASE_URL)
        logger.info(f"OpenRouter provider initialized with model {self.model}")

    def chat(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> LLMResponse:
        """Generate a chat completion."""
        params: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens or 1000,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        params.update(kwargs)

        try:
            response = self.client.chat.completions.create(**params)
        except APIError as e:
            logger.error(f"OpenRouter API error: {e}", exc_info=True)
            raise

        choice = response.choices[0]
        tool_calls = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (choice.message.tool_calls or [])
        ]
        usage = response.usage
        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason,
            tool_calls=tool_calls,
            tokens_in=usage.prompt_tokens if usage else 0,
            tokens_out=usage.completion_tokens if usage else 0,
            model=params["model"],
        )
