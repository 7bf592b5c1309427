from typing import List, Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.waiting_check import WaitingCheck


def create_waiting_check(
    db: Session,
    user_id: int,
    content: str,
    service_type: str,
    noti_type: Optional[str] = None,
    due_date: Optional[int] = None,
    remove_when_found: bool = True,
) -> WaitingCheck:
    check = WaitingCheck(
        user_id=user_id,
        content=content,
        service_type=service_type,
        noti_type=noti_type,
        due_date=due_date,
        remove_when_found=remove_when_found,
    )
    db.add(check)
    db.commit()
    db.refresh(check)
    return check


def list_waiting_checks(db: Session, user_id: int, service_type: Optional[str] = None) -> List[WaitingCheck]:
    query = db.query(WaitingCheck).filter(WaitingCheck.user_id == user_id)
    if service_type:
        query = query.filter(WaitingCheck.service_type == service_type)
    return query.order_by(WaitingCheck.id).all()


def delete_waiting_check(db: Session, user_id: int, content: str) -> int:
    deleted = db.query(WaitingCheck).filter(
        WaitingCheck.user_id == user_id,
        WaitingCheck.content == content,
    ).delete()
    db.commit()
    return deleted
