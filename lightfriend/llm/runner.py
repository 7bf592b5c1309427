"""
Agent loop for SMS: builds messages, lets the model call tools, feeds the
results back and returns the final answer.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lightfriend.core.encryption import EncryptionError, decrypt_token
from lightfriend.llm.prompts import build_system_prompt
from lightfriend.llm.provider import LLMProvider, LLMResponse
from lightfriend.llm.tools.catalog import available_tools, tool_definitions
from lightfriend.llm.tools.context import ToolContext
from lightfriend.llm.tools.dispatch import dispatch_tool_call
from lightfriend.repositories import conversation_repository

logger = logging.getLogger(__name__)

NOT_CHARGED = "(you were not charged for this message)"
TOO_LONG_ANSWER = (
    "I apologize, but my response was too long. Could you please ask your question "
    f"in a more specific way? {NOT_CHARGED}"
)
CONTENT_FILTER_ANSWER = (
    "I apologize, but I cannot provide an answer to that question due to content "
    f"restrictions. {NOT_CHARGED}"
)
GENERIC_FAILURE_ANSWER = (
    "I apologize, but something went wrong while processing your request. "
    f"{NOT_CHARGED}"
)
FALLBACK_EXCERPT_CHARS = 370

MAX_TOOL_ROUNDS = 3
FOLLOW_UP_MAX_TOKENS = 100
HISTORY_LIMIT = 10


@dataclass
class AgentResult:
    answer: str
    success: bool
    tool_answers: List[str] = field(default_factory=list)


def _failure_answer(finish_reason: Optional[str]) -> str:
    if finish_reason == "length":
        return TOO_LONG_ANSWER
    if finish_reason == "content_filter":
        return CONTENT_FILTER_ANSWER
    return GENERIC_FAILURE_ANSWER


class AgentRunner:
    """Orchestrates one SMS turn against an LLM provider."""

    def __init__(self, provider: LLMProvider, max_rounds: int = MAX_TOOL_ROUNDS):
        self.provider = provider
        self.max_rounds = max_rounds

    def _history_messages(self, ctx: ToolContext) -> List[Dict[str, Any]]:
        messages = []
        for entry in conversation_repository.get_recent_history(ctx.db, ctx.user.id, HISTORY_LIMIT):
            try:
                content = decrypt_token(entry.encrypted_content)
            except EncryptionError:
                logger.warning(f"Skipping undecryptable history entry {entry.id}")
                continue
            messages.append({"role": entry.role, "content": content})
        return messages

    def build_messages(self, ctx: ToolContext, message: str) -> List[Dict[str, Any]]:
        user_text = message
        if ctx.media_url:
            user_text = f"{message}\n\n(The user attached an image.)"
        return [
            {"role": "system", "content": build_system_prompt(ctx.user)},
            *self._history_messages(ctx),
            {"role": "user", "content": user_text},
        ]

    async def _chat(self, messages, tools=None, max_tokens=None) -> LLMResponse:
        return await asyncio.to_thread(
            self.provider.chat, messages, tools=tools, max_tokens=max_tokens
        )

    async def run(self, ctx: ToolContext, message: str) -> AgentResult:
        """
        Answer one incoming message.

        Args:
            ctx: Tool context for the sending user
            message: The SMS body

        Returns:
            AgentResult; success is False whenever the user must not be billed
        """
        messages = self.build_messages(ctx, message)
        tools = tool_definitions(available_tools(ctx.user))

        try:
            response = await self._chat(messages, tools=tools)
        except Exception as e:
            logger.error(f"LLM request failed for user {ctx.user.id}: {e}", exc_info=True)
            return AgentResult(answer=GENERIC_FAILURE_ANSWER, success=False)

        tool_answers: List[str] = []
        rounds = 0
        while response.tool_calls and rounds < self.max_rounds:
            rounds += 1
            messages.append(response.assistant_message())
            for call in response.tool_calls:
                answer = await dispatch_tool_call(call.name, call.arguments, ctx)
                tool_answers.append(answer)
                messages.append({"role": "tool", "tool_call_id": call.id, "content": answer})

            # Last round gets no tools so the model has to answer
            follow_up_tools = tools if rounds < self.max_rounds else None
            try:
                response = await self._chat(messages, tools=follow_up_tools, max_tokens=FOLLOW_UP_MAX_TOKENS)
            except Exception as e:
                logger.error(f"Follow-up LLM request failed for user {ctx.user.id}: {e}", exc_info=True)
                excerpt = tool_answers[0][:FALLBACK_EXCERPT_CHARS] if tool_answers else ""
                return AgentResult(
                    answer=f"Based on my research: {excerpt} {NOT_CHARGED}",
                    success=False,
                    tool_answers=tool_answers,
                )

        if response.finish_reason in ("stop", "tool_calls") and response.content:
            return AgentResult(answer=response.content.strip(), success=True, tool_answers=tool_answers)

        logger.warning(f"LLM finished with reason {response.finish_reason} for user {ctx.user.id}")
        return AgentResult(answer=_failure_answer(response.finish_reason), success=False, tool_answers=tool_answers)
