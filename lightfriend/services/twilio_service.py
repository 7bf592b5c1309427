"""
Twilio messaging: plain SMS plus Conversations threads per user.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from lightfriend.core import config
from lightfriend.core.errors import ConfigurationError, ExternalServiceError
from lightfriend.core.phone_numbers import PhoneNumberRegistry
from lightfriend.db.models.conversation import Conversation
from lightfriend.db.models.user import User
from lightfriend.repositories import conversation_repository

logger = logging.getLogger(__name__)


class TwilioMessenger:
    """Sends SMS through our Twilio account and tracks Conversations."""

    def __init__(self, phone_numbers: PhoneNumberRegistry, client: Optional[TwilioClient] = None):
        self.phone_numbers = phone_numbers
        self._client = client

    @property
    def client(self) -> TwilioClient:
        if self._client is None:
            if not config.TWILIO_ACCOUNT_SID or not config.TWILIO_AUTH_TOKEN:
                raise ConfigurationError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set")
            self._client = TwilioClient(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN)
        return self._client

    def sender_number_for(self, user: User) -> str:
        """Preferred number, then the registry by country, then the default number."""
        if user.preferred_number:
            return user.preferred_number
        if user.phone_number_country:
            number = self.phone_numbers.get_sender_number(_alpha3(user.phone_number_country))
            if number:
                return number
        if (user.phone_number or "").startswith("+1"):
            number = self.phone_numbers.get_sender_number("usa")
            if number:
                return number
        if config.SHAZAM_PHONE_NUMBER:
            return config.SHAZAM_PHONE_NUMBER
        numbers = self.phone_numbers.all_numbers()
        if not numbers:
            raise ConfigurationError("No sender phone number configured")
        return numbers[0]

    def send_sms(self, to_number: str, body: str, from_number: str) -> str:
        try:
            message = self.client.messages.create(to=to_number, from_=from_number, body=body)
        except TwilioException as e:
            logger.error(f"Twilio SMS send failed: {e}")
            raise ExternalServiceError("twilio", str(e)) from e
        logger.info(f"SMS sent: sid={message.sid}")
        return message.sid

    def ensure_conversation(self, db: Session, user: User, twilio_number: str) -> Conversation:
        """Reuse the user's active conversation for this number or open a new one."""
        existing = conversation_repository.find_active_conversation(db, user.id, twilio_number)
        if existing:
            if self._participant_active(existing.conversation_sid, user.phone_number):
                return existing
            logger.info(f"Conversation {existing.conversation_sid} lost its participant, creating a new one")
            conversation_repository.deactivate_conversation(db, existing.id)

        try:
            conversations = self.client.conversations.v1.conversations
            created = conversations.create(friendly_name=f"lightfriend-{user.id}")
            conversations(created.sid).participants.create(
                messaging_binding_address=user.phone_number,
                messaging_binding_proxy_address=twilio_number,
            )
        except TwilioException as e:
            logger.error(f"Twilio conversation setup failed for user {user.id}: {e}")
            raise ExternalServiceError("twilio", str(e)) from e

        logger.info(f"Conversation created: user_id={user.id}, sid={created.sid}")
        return conversation_repository.create_conversation(
            db,
            user_id=user.id,
            conversation_sid=created.sid,
            service_sid=getattr(created, "chat_service_sid", None),
            twilio_number=twilio_number,
            user_number=user.phone_number,
        )

    def _participant_active(self, conversation_sid: str, phone_number: str) -> bool:
        try:
            participants = self.client.conversations.v1.conversations(conversation_sid).participants.list()
        except TwilioException as e:
            logger.warning(f"Could not list participants of {conversation_sid}: {e}")
            return False
        for participant in participants:
            binding = participant.messaging_binding or {}
            if binding.get("address") == phone_number:
                return True
        return False

    def send_conversation_message(self, conversation_sid: str, author: str, body: str) -> str:
        try:
            message = self.client.conversations.v1.conversations(conversation_sid).messages.create(
                author=author,
                body=body,
            )
        except TwilioException as e:
            logger.error(f"Twilio conversation message failed ({conversation_sid}): {e}")
            raise ExternalServiceError("twilio", str(e)) from e
        return message.sid

    def notify_user(self, db: Session, user: User, body: str) -> str:
        """Send a message to the user over their conversation thread."""
        twilio_number = self.sender_number_for(user)
        conversation = self.ensure_conversation(db, user, twilio_number)
        return self.send_conversation_message(conversation.conversation_sid, twilio_number, body)


_ALPHA2_TO_ALPHA3 = {
    "US": "usa", "CA": "can", "FI": "fin", "SE": "swe", "NO": "nor",
    "NL": "nld", "DE": "deu", "BE": "bel", "FR": "fra", "GB": "gbr", "AU": "aus",
}


def _alpha3(country: str) -> str:
    return _ALPHA2_TO_ALPHA3.get(country.upper(), country.lower())
