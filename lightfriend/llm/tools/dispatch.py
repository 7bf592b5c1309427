import json
import logging

from pydantic import ValidationError

from lightfriend.llm.tools.catalog import TOOL_SPECS, ToolName, available_tools
from lightfriend.llm.tools.context import ToolContext
from lightfriend.llm.tools.handlers import HANDLERS

logger = logging.getLogger(__name__)


async def dispatch_tool_call(name: str, arguments: str, ctx: ToolContext) -> str:
    """
    Validate and run one tool call from the model.

    Never raises: unknown tools, bad arguments and handler failures all
    become an answer string the model can relay.
    """
    try:
        tool = ToolName(name)
    except ValueError:
        logger.warning(f"Model requested unknown tool '{name}'")
        return f"Unknown tool: {name}"

    if tool not in available_tools(ctx.user):
        return f"The {name} tool is not available on your current plan."

    try:
        raw = json.loads(arguments or "{}")
        args = TOOL_SPECS[tool].args_model.model_validate(raw)
    except json.JSONDecodeError:
        logger.warning(f"Malformed arguments for {name}: {arguments!r}")
        return f"Failed to parse arguments for {name}."
    except ValidationError as e:
        logger.warning(f"Invalid arguments for {name}: {e}")
        return f"Invalid arguments for {name}: {e.errors()[0].get('msg', 'validation failed')}"

    logger.info(f"Running tool {name} for user {ctx.user.id}")
    try:
        return await HANDLERS[tool](args, ctx)
    except Exception as e:
        logger.error(f"Tool {name} failed for user {ctx.user.id}: {e}", exc_info=True)
        return f"Sorry, {name.replace('_', ' ')} failed. Please try again later."
