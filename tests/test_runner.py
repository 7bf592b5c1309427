"""
Tests for the agent loop with a scripted provider.
"""
from datetime import datetime, timezone

from lightfriend.core.encryption import encrypt_token
from lightfriend.llm import runner
from lightfriend.llm.prompts import build_system_prompt
from lightfriend.llm.provider import LLMResponse, ToolCall
from lightfriend.llm.runner import AgentRunner
from lightfriend.llm.tools.context import ToolContext
from lightfriend.repositories import conversation_repository


def _tool_round(name="delete_sms_conversation_history", arguments="{}", call_id="call_1"):
    return LLMResponse(content=None, finish_reason="tool_calls", tool_calls=[ToolCall(call_id, name, arguments)])


async def test_plain_answer(db, make_user, app_context, provider):
    provider.responses = [LLMResponse(content="  It is 5 degrees.  ", finish_reason="stop")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider).run(ctx, "weather?")

    assert result.success is True
    assert result.answer == "It is 5 degrees."
    first_call = provider.calls[0]
    assert first_call["messages"][0]["role"] == "system"
    assert first_call["messages"][-1] == {"role": "user", "content": "weather?"}
    assert {tool["function"]["name"] for tool in first_call["tools"]} >= {"get_weather", "ask_perplexity"}


async def test_tool_round_feeds_answer_back(db, make_user, app_context, provider):
    provider.responses = [_tool_round(), LLMResponse(content="History cleared.", finish_reason="stop")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider).run(ctx, "forget everything")

    assert result.success is True
    assert result.answer == "History cleared."
    assert result.tool_answers == ["Your conversation history has been deleted."]
    follow_up = provider.calls[1]
    assert follow_up["max_tokens"] == runner.FOLLOW_UP_MAX_TOKENS
    assert follow_up["messages"][-2]["tool_calls"][0]["id"] == "call_1"
    assert follow_up["messages"][-1] == {
        "role": "tool",
        "tool_call_id": "call_1",
        "content": "Your conversation history has been deleted.",
    }


async def test_follow_up_failure_falls_back_to_tool_answer(db, make_user, app_context, provider):
    provider.responses = [_tool_round(), RuntimeError("provider timeout")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider).run(ctx, "forget everything")

    assert result.success is False
    assert result.answer == (
        "Based on my research: Your conversation history has been deleted. "
        "(you were not charged for this message)"
    )


async def test_initial_failure(db, make_user, app_context, provider):
    provider.responses = [RuntimeError("401 Unauthorized")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider).run(ctx, "hi")

    assert result.success is False
    assert result.answer == runner.GENERIC_FAILURE_ANSWER


async def test_length_finish_is_not_a_success(db, make_user, app_context, provider):
    provider.responses = [LLMResponse(content="a very long answer", finish_reason="length")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider).run(ctx, "tell me everything")

    assert result.success is False
    assert result.answer == runner.TOO_LONG_ANSWER


async def test_last_round_gets_no_tools(db, make_user, app_context, provider):
    provider.responses = [_tool_round(), _tool_round(call_id="call_2"), LLMResponse(content="Done.", finish_reason="stop")]
    ctx = ToolContext(db=db, user=make_user(), app=app_context)

    result = await AgentRunner(provider, max_rounds=2).run(ctx, "forget")

    assert result.answer == "Done."
    assert provider.calls[1]["tools"] is not None
    assert provider.calls[2]["tools"] is None


async def test_history_is_replayed(db, make_user, app_context, provider):
    user = make_user()
    conversation_repository.add_history(db, user.id, "user", encrypt_token("my name is Sam"))
    conversation_repository.add_history(db, user.id, "assistant", encrypt_token("Nice to meet you, Sam."))
    conversation_repository.add_history(db, user.id, "user", "not-encrypted")
    ctx = ToolContext(db=db, user=user, app=app_context)

    await AgentRunner(provider).run(ctx, "what is my name?")

    messages = provider.calls[0]["messages"]
    assert messages[1] == {"role": "user", "content": "my name is Sam"}
    assert messages[2] == {"role": "assistant", "content": "Nice to meet you, Sam."}
    assert messages[3] == {"role": "user", "content": "what is my name?"}


def test_system_prompt_uses_timezone(make_user):
    user = make_user(timezone="Europe/Helsinki", info="Vegetarian, lives in Tampere")
    prompt = build_system_prompt(user, now=datetime(2026, 7, 1, 12, 0, tzinfo=timezone.utc))
    assert "2026-07-01" in prompt
    assert "+03:00" in prompt
    assert "Vegetarian, lives in Tampere" in prompt


def test_system_prompt_defaults_to_utc(make_user):
    prompt = build_system_prompt(make_user(), now=datetime(2026, 1, 1, tzinfo=timezone.utc))
    assert "+00:00" in prompt
