from typing import Optional

from sqlalchemy.orm import Session

from lightfriend.db.models.connection import CalendarConnection, ImapConnection, UnipileConnection


def create_unipile_connection(
    db: Session, user_id: int, account_id: str, status: str, provider: Optional[str] = None
) -> UnipileConnection:
    connection = db.query(UnipileConnection).filter(UnipileConnection.account_id == account_id).first()
    if connection is None:
        connection = UnipileConnection(user_id=user_id, account_id=account_id, status=status, provider=provider)
        db.add(connection)
    else:
        connection.status = status
    db.commit()
    db.refresh(connection)
    return connection


def get_imap_connection(db: Session, user_id: int) -> Optional[ImapConnection]:
    return db.query(ImapConnection).filter(
        ImapConnection.user_id == user_id,
        ImapConnection.status == "active",
    ).first()


def set_imap_connection(
    db: Session,
    user_id: int,
    email: str,
    encrypted_password: str,
    imap_server: Optional[str],
    imap_port: Optional[int],
) -> ImapConnection:
    # One mailbox per user: replace whatever was there
    db.query(ImapConnection).filter(ImapConnection.user_id == user_id).delete()
    connection = ImapConnection(
        user_id=user_id,
        method="gmail" if not imap_server else "imap",
        description=email,
        encrypted_password=encrypted_password,
        status="active",
        imap_server=imap_server,
        imap_port=imap_port,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def delete_imap_connection(db: Session, user_id: int) -> bool:
    deleted = db.query(ImapConnection).filter(ImapConnection.user_id == user_id).delete()
    db.commit()
    return deleted > 0


def get_calendar_connection(db: Session, user_id: int) -> Optional[CalendarConnection]:
    return db.query(CalendarConnection).filter(
        CalendarConnection.user_id == user_id,
        CalendarConnection.status == "active",
    ).first()


def set_calendar_connection(
    db: Session,
    user_id: int,
    encrypted_access_token: str,
    encrypted_refresh_token: str,
    expires_in: Optional[int],
) -> CalendarConnection:
    db.query(CalendarConnection).filter(CalendarConnection.user_id == user_id).delete()
    connection = CalendarConnection(
        user_id=user_id,
        encrypted_access_token=encrypted_access_token,
        encrypted_refresh_token=encrypted_refresh_token,
        status="active",
        description="Google Calendar",
        expires_in=expires_in,
    )
    db.add(connection)
    db.commit()
    db.refresh(connection)
    return connection


def delete_calendar_connection(db: Session, user_id: int) -> bool:
    deleted = db.query(CalendarConnection).filter(CalendarConnection.user_id == user_id).delete()
    db.commit()
    return deleted > 0
