"""
The closed set of tools the SMS agent may call.

Every tool has a typed argument model; the JSON schema sent to the model is
rendered from it, and the same model validates what the model sends back.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional, Type

from pydantic import BaseModel, Field

from lightfriend.db.models.user import User


class ToolName(str, Enum):
    ASK_PERPLEXITY = "ask_perplexity"
    GET_WEATHER = "get_weather"
    GET_DIRECTIONS = "get_directions"
    FETCH_EMAILS = "fetch_emails"
    FETCH_SPECIFIC_EMAIL = "fetch_specific_email"
    CREATE_WAITING_CHECK = "create_waiting_check"
    LIST_WAITING_CHECKS = "list_waiting_checks"
    DELETE_WAITING_CHECK = "delete_waiting_check"
    SCAN_QR_CODE = "scan_qr_code"
    SEND_WHATSAPP_MESSAGE = "send_whatsapp_message"
    FETCH_WHATSAPP_MESSAGES = "fetch_whatsapp_messages"
    SEARCH_WHATSAPP_ROOMS = "search_whatsapp_rooms"
    DELETE_SMS_CONVERSATION_HISTORY = "delete_sms_conversation_history"


class AskPerplexityArgs(BaseModel):
    query: str = Field(..., description="The question or topic to get information about")


class GetWeatherArgs(BaseModel):
    location: str = Field(..., description="Place to get the weather for. Use the user's home location from their info if none is given.")
    units: Literal["metric", "imperial"] = Field("metric", description="Units for the answer")


class GetDirectionsArgs(BaseModel):
    start_address: str = Field(..., description="Where the trip starts")
    end_address: str = Field(..., description="Where the trip ends")
    mode: Literal["driving", "walking", "transit", "public transport", "bicycling"] = Field(
        "transit", description="How the user travels"
    )


class FetchEmailsArgs(BaseModel):
    param: Optional[str] = Field(None, description="Can be anything, the last 5 emails are fetched regardless")


class FetchSpecificEmailArgs(BaseModel):
    query: str = Field(..., description="What the email is about or who sent it")


class CreateWaitingCheckArgs(BaseModel):
    content: str = Field(..., description="What to watch for, e.g. 'reply from Anna about the invoice'")
    service_type: Literal["email", "messaging"] = Field(..., description="Where the message is expected to arrive")
    noti_type: Literal["sms", "call"] = Field("sms", description="How to notify the user when it arrives")
    due_date: Optional[int] = Field(None, description="Unix timestamp after which to stop watching")
    remove_when_found: bool = Field(True, description="Stop watching after the first match")


class ListWaitingChecksArgs(BaseModel):
    service_type: Optional[Literal["email", "messaging"]] = Field(None, description="Only list checks for this service")


class DeleteWaitingCheckArgs(BaseModel):
    content: str = Field(..., description="The exact content of the check to remove")


class ScanQrCodeArgs(BaseModel):
    param: Optional[str] = Field(None, description="Put nothing here, the image attached to the message is used")


class SendWhatsappMessageArgs(BaseModel):
    chat_name: str = Field(..., description="Chat or contact to send to. Does not have to be exact, it is fuzzy matched.")
    message: str = Field(..., description="The message text to send")


class FetchWhatsappMessagesArgs(BaseModel):
    start_time: str = Field(..., description="Start time in RFC3339 UTC, e.g. '2024-03-16T00:00:00Z'")
    end_time: str = Field(..., description="End time in RFC3339 UTC, e.g. '2024-03-16T23:59:59Z'")
    chat_name: Optional[str] = Field(None, description="Only fetch messages from this chat")


class SearchWhatsappRoomsArgs(BaseModel):
    search_term: str = Field(..., description="Name of the contact or group to look for")


class DeleteSmsConversationHistoryArgs(BaseModel):
    param: Optional[str] = Field(None, description="Put nothing here")


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    description: str
    args_model: Type[BaseModel]


TOOL_SPECS: Dict[ToolName, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(ToolName.ASK_PERPLEXITY, "Get factual or timely information about any topic.", AskPerplexityArgs),
        ToolSpec(ToolName.GET_WEATHER, "Fetch the current weather for a location.", GetWeatherArgs),
        ToolSpec(ToolName.GET_DIRECTIONS, "Get step-by-step directions between two addresses.", GetDirectionsArgs),
        ToolSpec(
            ToolName.FETCH_EMAILS,
            "Fetch the last 5 emails. Use when the user asks about recent emails or their inbox.",
            FetchEmailsArgs,
        ),
        ToolSpec(
            ToolName.FETCH_SPECIFIC_EMAIL,
            "Find one email matching a query and return its body. Always answer with the message content or a "
            "summary of it, never with the subject line alone.",
            FetchSpecificEmailArgs,
        ),
        ToolSpec(
            ToolName.CREATE_WAITING_CHECK,
            "Watch incoming email or chats for something the user is waiting for and notify them when it arrives.",
            CreateWaitingCheckArgs,
        ),
        ToolSpec(ToolName.LIST_WAITING_CHECKS, "List the things the user asked to be notified about.", ListWaitingChecksArgs),
        ToolSpec(ToolName.DELETE_WAITING_CHECK, "Stop watching for something.", DeleteWaitingCheckArgs),
        ToolSpec(
            ToolName.SCAN_QR_CODE,
            "Read the QR code in the image the user sent. Use when the message has an image with a QR code.",
            ScanQrCodeArgs,
        ),
        ToolSpec(
            ToolName.SEND_WHATSAPP_MESSAGE,
            "Send a WhatsApp message. The user gets a short window to cancel before it goes out.",
            SendWhatsappMessageArgs,
        ),
        ToolSpec(
            ToolName.FETCH_WHATSAPP_MESSAGES,
            "Fetch WhatsApp messages in a time frame, optionally from one chat.",
            FetchWhatsappMessagesArgs,
        ),
        ToolSpec(ToolName.SEARCH_WHATSAPP_ROOMS, "Search WhatsApp chats and contacts by name.", SearchWhatsappRoomsArgs),
        ToolSpec(
            ToolName.DELETE_SMS_CONVERSATION_HISTORY,
            "Forget the earlier messages of this SMS conversation.",
            DeleteSmsConversationHistoryArgs,
        ),
    )
}

BASIC_TOOLS = (
    ToolName.ASK_PERPLEXITY,
    ToolName.GET_WEATHER,
    ToolName.GET_DIRECTIONS,
    ToolName.SCAN_QR_CODE,
    ToolName.DELETE_SMS_CONVERSATION_HISTORY,
)


def available_tools(user: User) -> List[ToolName]:
    """Tier 2 subscribers and discounted users get everything, others the basic set."""
    if user.sub_tier == "tier 2" or user.discount_tier:
        return list(ToolName)
    return list(BASIC_TOOLS)


def _parameters_schema(model: Type[BaseModel]) -> Dict[str, Any]:
    schema = model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
    return schema


def tool_definitions(names: Iterable[ToolName]) -> List[Dict[str, Any]]:
    """Render OpenAI function-tool definitions for the given tools."""
    definitions = []
    for name in names:
        spec = TOOL_SPECS[name]
        definitions.append({
            "type": "function",
            "function": {
                "name": spec.name.value,
                "description": spec.description,
                "parameters": _parameters_schema(spec.args_model),
            },
        })
    return definitions
