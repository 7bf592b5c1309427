"""
LLM Provider interface for abstracting chat-completion backends.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ToolCall:
    """A function call requested by the model."""
    id: str
    name: str
    arguments: str  # raw JSON text as produced by the model


@dataclass
class LLMResponse:
    """Standardized LLM response."""
    content: Optional[str]
    finish_reason: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    tokens_in: int = 0
    tokens_out: int = 0
    model: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def assistant_message(self) -> Dict[str, Any]:
        """The assistant turn to append before sending tool results back."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def chat(
        self,
        messages: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        **kwargs
    ) -> LLMResponse:
        """
        Generate a chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model identifier, provider default when None
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
            tools: OpenAI-style tool definitions the model may call
            **kwargs: Additional provider-specific parameters

        Returns:
            LLMResponse with content, tool calls and finish reason
        """
        pass
