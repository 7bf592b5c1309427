"""
Tool handlers. Each takes its validated argument model and the ToolContext
and returns the plain-text answer fed back to the model.
"""
import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict

from pydantic import BaseModel

from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.llm.prompts import build_email_selection_prompt
from lightfriend.llm.tools import catalog
from lightfriend.llm.tools.catalog import ToolName
from lightfriend.llm.tools.context import ToolContext
from lightfriend.repositories import conversation_repository, waiting_check_repository
from lightfriend.services import (
    imap_service,
    internet_service,
    maps_service,
    matrix_service,
    qr_service,
    whatsapp_service,
)
from lightfriend.services.imap_service import ImapCredentialsError, ImapError, NoImapConnectionError
from lightfriend.services.whatsapp_service import BridgeError

logger = logging.getLogger(__name__)

EMAIL_FETCH_LIMIT = 20
WHATSAPP_SHOWN = 15
ROOMS_SHOWN = 5


async def handle_ask_perplexity(args: catalog.AskPerplexityArgs, ctx: ToolContext) -> str:
    return await internet_service.ask_perplexity(args.query, transport=ctx.app.http_transport)


async def handle_get_weather(args: catalog.GetWeatherArgs, ctx: ToolContext) -> str:
    try:
        return await internet_service.get_weather(args.location, args.units, transport=ctx.app.http_transport)
    except internet_service.LocationNotFoundError:
        return f"I couldn't find a place called {args.location}."


async def handle_get_directions(args: catalog.GetDirectionsArgs, ctx: ToolContext) -> str:
    try:
        directions = await maps_service.get_directions(
            args.start_address, args.end_address, args.mode, transport=ctx.app.http_transport
        )
    except maps_service.DirectionsError as e:
        return f"Sorry, I couldn't find directions: {e}"
    return directions.to_text()


def _email_error_answer(error: ImapError) -> str:
    if isinstance(error, NoImapConnectionError):
        return "No IMAP connection found. Please check your email settings."
    if isinstance(error, ImapCredentialsError):
        return "Your email credentials need to be updated."
    return "Failed to fetch emails. Please try again later."


async def handle_fetch_emails(args: catalog.FetchEmailsArgs, ctx: ToolContext) -> str:
    try:
        messages = await asyncio.to_thread(imap_service.fetch_emails, ctx.db, ctx.user.id, EMAIL_FETCH_LIMIT)
    except ImapError as e:
        logger.warning(f"fetch_emails failed for user {ctx.user.id}: {e}")
        return _email_error_answer(e)
    return imap_service.format_email_list(messages)


async def handle_fetch_specific_email(args: catalog.FetchSpecificEmailArgs, ctx: ToolContext) -> str:
    try:
        messages = await asyncio.to_thread(imap_service.fetch_emails, ctx.db, ctx.user.id, EMAIL_FETCH_LIMIT)
    except ImapError as e:
        logger.warning(f"fetch_specific_email failed for user {ctx.user.id}: {e}")
        if isinstance(e, (NoImapConnectionError, ImapCredentialsError)):
            return _email_error_answer(e)
        return "Failed to fetch the email. Please try again later."
    if not messages:
        return "Could not find a matching email."

    listing = "".join(
        f"email_id {m.id}:\nFrom: {m.sender or 'Unknown'}\nSubject: {m.subject or 'No subject'}\n"
        f"Date: {m.date_formatted or 'No date'}\n\n{m.body[:1000]}\n\n"
        for m in messages
    )
    provider = ctx.app.provider_factory()
    response = await asyncio.to_thread(
        provider.chat,
        [{"role": "user", "content": build_email_selection_prompt(args.query, listing)}],
        temperature=0.0,
        max_tokens=20,
    )
    chosen = (response.content or "").strip().split()
    by_id = {m.id: m for m in messages}
    match = by_id.get(chosen[0]) if chosen else None
    if match is None:
        return "Could not find a matching email."
    return (
        f"Found email: From: {match.sender or 'Unknown'}, Subject: {match.subject or 'No subject'}, "
        f"Date: {match.date_formatted or 'No date'}\n\n{match.body}"
    )


async def handle_create_waiting_check(args: catalog.CreateWaitingCheckArgs, ctx: ToolContext) -> str:
    waiting_check_repository.create_waiting_check(
        ctx.db,
        user_id=ctx.user.id,
        content=args.content,
        service_type=args.service_type,
        noti_type=args.noti_type,
        due_date=args.due_date,
        remove_when_found=args.remove_when_found,
    )
    return f"I'll let you know by {args.noti_type} when '{args.content}' shows up in your {args.service_type}."


async def handle_list_waiting_checks(args: catalog.ListWaitingChecksArgs, ctx: ToolContext) -> str:
    checks = waiting_check_repository.list_waiting_checks(ctx.db, ctx.user.id, args.service_type)
    if not checks:
        return "You have no active waiting checks."
    return "\n".join(f"{i}. {c.content} ({c.service_type})" for i, c in enumerate(checks, start=1))


async def handle_delete_waiting_check(args: catalog.DeleteWaitingCheckArgs, ctx: ToolContext) -> str:
    deleted = waiting_check_repository.delete_waiting_check(ctx.db, ctx.user.id, args.content)
    if not deleted:
        return f"No waiting check found for '{args.content}'."
    return f"Stopped watching for '{args.content}'."


async def handle_scan_qr_code(args: catalog.ScanQrCodeArgs, ctx: ToolContext) -> str:
    if not ctx.media_url:
        return qr_service.NO_IMAGE
    try:
        content = await qr_service.scan_qr_code(ctx.media_url, transport=ctx.app.http_transport)
    except (ExternalServiceError, OSError) as e:
        logger.warning(f"QR scan failed for user {ctx.user.id}: {e}")
        return qr_service.SCAN_FAILED
    if content is None:
        return qr_service.NO_QR_CODE
    if content.kind == qr_service.CONTENT_WEBPAGE:
        try:
            page = await internet_service.scrape_url(content.value, transport=ctx.app.http_transport)
        except (ConfigurationError, ExternalServiceError) as e:
            logger.info(f"Could not scrape QR link: {e}")
        else:
            if page:
                return f"{content.describe()}\n\nPage content:\n{page[:2000]}"
    return content.describe()


async def _matrix_client(ctx: ToolContext) -> matrix_service.MatrixClient:
    return await matrix_service.get_client_for_user(ctx.db, ctx.user, transport=ctx.app.http_transport)


async def handle_send_whatsapp_message(args: catalog.SendWhatsappMessageArgs, ctx: ToolContext) -> str:
    try:
        client = await _matrix_client(ctx)
        rooms = await whatsapp_service.search_rooms(ctx.db, ctx.user.id, client, args.chat_name)
    except BridgeError as e:
        return str(e)
    if not rooms:
        return f"No WhatsApp contacts found matching '{args.chat_name}'."

    room = rooms[0]
    delay = ctx.app.whatsapp_send_delay
    registry = ctx.app.pending_messages
    handle = registry.register(ctx.user.id, f"whatsapp to {room.chat_name}")

    async def send_when_not_cancelled() -> None:
        try:
            if await handle.wait(delay):
                logger.info(f"WhatsApp send to {room.room_id} cancelled by user {ctx.user.id}")
                return
            await whatsapp_service.send_message(client, room, args.message)
        finally:
            registry.discard(ctx.user.id, handle)

    ctx.after_reply.append(send_when_not_cancelled)
    return (
        f"Sending to {room.chat_name} in {int(delay)} seconds: '{args.message}'. "
        f"Reply C to cancel."
    )


def _parse_rfc3339(value: str) -> int:
    return int(datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp())


async def handle_fetch_whatsapp_messages(args: catalog.FetchWhatsappMessagesArgs, ctx: ToolContext) -> str:
    try:
        start, end = _parse_rfc3339(args.start_time), _parse_rfc3339(args.end_time)
    except ValueError:
        return "Failed to parse time frame for WhatsApp messages."
    try:
        client = await _matrix_client(ctx)
        if args.chat_name:
            messages = await whatsapp_service.fetch_room_messages(ctx.db, ctx.user.id, client, args.chat_name)
            messages = [m for m in messages if start <= m.timestamp <= end]
        else:
            messages = await whatsapp_service.fetch_messages(ctx.db, ctx.user.id, client, start, end)
    except BridgeError as e:
        return str(e)
    if not messages:
        return "No WhatsApp messages found for this time period."

    lines = []
    for i, m in enumerate(messages[:WHATSAPP_SHOWN], start=1):
        content = m.content if len(m.content) <= 100 else f"{m.content[:97]}..."
        lines.append(f"{i}. {m.chat_name} at {m.formatted_time}:\n{content}")
    text = "\n\n".join(lines)
    if len(messages) > WHATSAPP_SHOWN:
        text += f"\n\n(+ {len(messages) - WHATSAPP_SHOWN} more messages)"
    return text


async def handle_search_whatsapp_rooms(args: catalog.SearchWhatsappRoomsArgs, ctx: ToolContext) -> str:
    try:
        client = await _matrix_client(ctx)
        rooms = await whatsapp_service.search_rooms(ctx.db, ctx.user.id, client, args.search_term)
    except BridgeError:
        return "Failed to search WhatsApp contacts. Please make sure you're connected to WhatsApp bridge."
    if not rooms:
        return f"No WhatsApp contacts found matching '{args.search_term}'."
    lines = [f"{i}. {r.chat_name}" for i, r in enumerate(rooms[:ROOMS_SHOWN], start=1)]
    text = "\n".join(lines)
    if len(rooms) > ROOMS_SHOWN:
        text += f"\n\n(+ {len(rooms) - ROOMS_SHOWN} more contacts)"
    return text


async def handle_delete_sms_conversation_history(
    args: catalog.DeleteSmsConversationHistoryArgs, ctx: ToolContext
) -> str:
    deleted = conversation_repository.delete_history(ctx.db, ctx.user.id)
    logger.info(f"Deleted {deleted} history entries for user {ctx.user.id}")
    return "Your conversation history has been deleted."


ToolHandler = Callable[[BaseModel, ToolContext], Awaitable[str]]

HANDLERS: Dict[ToolName, ToolHandler] = {
    ToolName.ASK_PERPLEXITY: handle_ask_perplexity,
    ToolName.GET_WEATHER: handle_get_weather,
    ToolName.GET_DIRECTIONS: handle_get_directions,
    ToolName.FETCH_EMAILS: handle_fetch_emails,
    ToolName.FETCH_SPECIFIC_EMAIL: handle_fetch_specific_email,
    ToolName.CREATE_WAITING_CHECK: handle_create_waiting_check,
    ToolName.LIST_WAITING_CHECKS: handle_list_waiting_checks,
    ToolName.DELETE_WAITING_CHECK: handle_delete_waiting_check,
    ToolName.SCAN_QR_CODE: handle_scan_qr_code,
    ToolName.SEND_WHATSAPP_MESSAGE: handle_send_whatsapp_message,
    ToolName.FETCH_WHATSAPP_MESSAGES: handle_fetch_whatsapp_messages,
    ToolName.SEARCH_WHATSAPP_ROOMS: handle_search_whatsapp_rooms,
    ToolName.DELETE_SMS_CONVERSATION_HISTORY: handle_delete_sms_conversation_history,
}
