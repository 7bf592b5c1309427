from typing import List, Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.conversation import Conversation, MessageHistory


def find_active_conversation(db: Session, user_id: int, twilio_number: str) -> Optional[Conversation]:
    return db.query(Conversation).filter(
        Conversation.user_id == user_id,
        Conversation.twilio_number == twilio_number,
        Conversation.active.is_(True),
    ).order_by(Conversation.id.desc()).first()


def create_conversation(
    db: Session,
    user_id: int,
    conversation_sid: str,
    service_sid: Optional[str],
    twilio_number: str,
    user_number: str,
) -> Conversation:
    conversation = Conversation(
        user_id=user_id,
        conversation_sid=conversation_sid,
        service_sid=service_sid,
        twilio_number=twilio_number,
        user_number=user_number,
        active=True,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation


def deactivate_conversation(db: Session, conversation_id: int) -> None:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if conversation:
        conversation.active = False
        db.commit()


def add_history(
    db: Session,
    user_id: int,
    role: str,
    encrypted_content: str,
    tool_name: Optional[str] = None,
    tool_call_id: Optional[str] = None,
) -> MessageHistory:
    entry = MessageHistory(
        user_id=user_id,
        role=role,
        encrypted_content=encrypted_content,
        tool_name=tool_name,
        tool_call_id=tool_call_id,
    )
    db.add(entry)
    db.commit()
    return entry


def get_recent_history(db: Session, user_id: int, limit: int = 10) -> List[MessageHistory]:
    """Latest entries, returned oldest first."""
    rows = db.query(MessageHistory).filter(
        MessageHistory.user_id == user_id
    ).order_by(MessageHistory.id.desc()).limit(limit).all()
    return list(reversed(rows))


def delete_history(db: Session, user_id: int) -> int:
    deleted = db.query(MessageHistory).filter(MessageHistory.user_id == user_id).delete()
    db.commit()
    return deleted
