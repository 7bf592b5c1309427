import time
from typing import Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.bridge import Bridge


def get_bridge(db: Session, user_id: int, bridge_type: str) -> Optional[Bridge]:
    return db.query(Bridge).filter(
        Bridge.user_id == user_id,
        Bridge.bridge_type == bridge_type,
    ).first()


def create_bridge(db: Session, user_id: int, bridge_type: str, status: str, room_id: Optional[str]) -> Bridge:
    bridge = Bridge(
        user_id=user_id,
        bridge_type=bridge_type,
        status=status,
        room_id=room_id,
        created_at=int(time.time()),
    )
    db.add(bridge)
    db.commit()
    db.refresh(bridge)
    return bridge


def update_bridge_status(db: Session, user_id: int, bridge_type: str, status: str) -> None:
    bridge = get_bridge(db, user_id, bridge_type)
    if bridge:
        bridge.status = status
        bridge.last_seen_online = int(time.time())
        db.commit()


def delete_bridge(db: Session, user_id: int, bridge_type: str) -> bool:
    deleted = db.query(Bridge).filter(
        Bridge.user_id == user_id,
        Bridge.bridge_type == bridge_type,
    ).delete()
    db.commit()
    return deleted > 0
