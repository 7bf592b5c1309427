"""
IMAP mailbox access for the email tools and the inbox preview endpoint.

Credentials are stored encrypted on the imap_connection row. Every call opens
a fresh IMAP4_SSL session, reads the INBOX without marking anything as seen,
and logs out.
"""
import email
import imaplib
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from email import policy
from email.utils import parseaddr, parsedate_to_datetime
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from lightfriend.core.encryption import EncryptionError, decrypt_token
from lightfriend.repositories import connection_repository, user_repository

logger = logging.getLogger(__name__)

GMAIL_IMAP_SERVER = "imap.gmail.com"
DEFAULT_IMAP_PORT = 993
SNIPPET_LENGTH = 200


class ImapError(Exception):
    """Base class for mailbox failures."""


class NoImapConnectionError(ImapError):
    def __init__(self):
        super().__init__("No IMAP connection found")


class ImapCredentialsError(ImapError):
    pass


class ImapConnectionError(ImapError):
    pass


class ImapFetchError(ImapError):
    pass


class ImapParseError(ImapError):
    pass


@dataclass
class EmailMessage:
    id: str
    subject: Optional[str]
    sender: Optional[str]
    sender_email: Optional[str]
    date: Optional[datetime]
    date_formatted: Optional[str]
    snippet: str
    body: str
    is_read: bool

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat() if self.date else None
        return data


ImapFactory = Callable[[str, int], imaplib.IMAP4]


def _default_factory(server: str, port: int) -> imaplib.IMAP4:
    return imaplib.IMAP4_SSL(server, port)


def format_timestamp(dt: datetime, tz_name: Optional[str]) -> str:
    """Render a timestamp in the user's timezone, or UTC when unknown."""
    if tz_name:
        try:
            return dt.astimezone(ZoneInfo(tz_name)).strftime("%Y-%m-%d %H:%M:%S")
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Invalid timezone '{tz_name}', falling back to UTC")
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _clean_text(text: str) -> str:
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def parse_message(uid: str, raw: bytes, flags: tuple, tz_name: Optional[str] = None) -> EmailMessage:
    """Turn a raw RFC 822 message into an EmailMessage."""
    try:
        msg = email.message_from_bytes(raw, policy=policy.default)
    except Exception as e:
        raise ImapParseError(f"Failed to parse message {uid}: {e}") from e

    sender_name, sender_email = parseaddr(str(msg.get("From", "")))
    date = None
    if msg.get("Date"):
        try:
            date = parsedate_to_datetime(str(msg["Date"]))
            if date.tzinfo is None:
                date = date.replace(tzinfo=timezone.utc)
        except (TypeError, ValueError):
            logger.debug(f"Unparsable date on message {uid}: {msg['Date']}")

    part = msg.get_body(preferencelist=("plain", "html"))
    if part is None:
        body = "[No readable body found]"
    else:
        try:
            body = _clean_text(part.get_content())
        except (LookupError, UnicodeDecodeError):
            body = "[Failed to parse email body]"

    return EmailMessage(
        id=uid,
        subject=str(msg["Subject"]) if msg.get("Subject") else None,
        sender=sender_name or sender_email or None,
        sender_email=sender_email or None,
        date=date,
        date_formatted=format_timestamp(date, tz_name) if date else None,
        snippet=body[:SNIPPET_LENGTH],
        body=body,
        is_read=b"\\Seen" in flags,
    )


def _credentials(db: Session, user_id: int):
    connection = connection_repository.get_imap_connection(db, user_id)
    if connection is None:
        raise NoImapConnectionError()
    try:
        password = decrypt_token(connection.encrypted_password)
    except EncryptionError as e:
        raise ImapCredentialsError("Stored email password could not be decrypted") from e
    server = connection.imap_server or GMAIL_IMAP_SERVER
    port = connection.imap_port or DEFAULT_IMAP_PORT
    return connection.description, password, server, port


def _open(
    address: str,
    password: str,
    server: str,
    port: int,
    factory: Optional[ImapFactory] = None,
) -> imaplib.IMAP4:
    try:
        session = (factory or _default_factory)(server, port)
    except (OSError, imaplib.IMAP4.error) as e:
        raise ImapConnectionError(f"Failed to connect to IMAP server: {e}") from e
    try:
        session.login(address, password)
    except imaplib.IMAP4.error as e:
        raise ImapCredentialsError(f"Failed to login: {e}") from e
    return session


def _close(session: imaplib.IMAP4) -> None:
    try:
        session.logout()
    except (OSError, imaplib.IMAP4.error) as e:
        logger.warning(f"IMAP logout failed: {e}")


def _fetch_uid(session: imaplib.IMAP4, uid: str, tz_name: Optional[str]) -> Optional[EmailMessage]:
    typ, data = session.uid("fetch", uid, "(FLAGS BODY.PEEK[])")
    if typ != "OK":
        raise ImapFetchError(f"Failed to fetch message {uid}")
    for item in data:
        if isinstance(item, tuple) and len(item) == 2:
            return parse_message(uid, item[1], imaplib.ParseFlags(item[0]), tz_name)
    return None


def verify_credentials(
    address: str,
    password: str,
    server: Optional[str] = None,
    port: Optional[int] = None,
    factory: Optional[ImapFactory] = None,
) -> None:
    """Log in once to make sure the mailbox accepts the credentials."""
    session = _open(address, password, server or GMAIL_IMAP_SERVER, port or DEFAULT_IMAP_PORT, factory)
    _close(session)


def fetch_emails(
    db: Session,
    user_id: int,
    limit: int = 20,
    factory: Optional[ImapFactory] = None,
) -> List[EmailMessage]:
    """
    Fetch the latest INBOX messages, newest first.

    Raises:
        NoImapConnectionError: The user has no active mailbox
        ImapCredentialsError: Login rejected
        ImapConnectionError: Server unreachable
        ImapFetchError: SELECT/SEARCH/FETCH failed
    """
    address, password, server, port = _credentials(db, user_id)
    user = user_repository.find_by_id(db, user_id)
    tz_name = user.timezone if user else None

    session = _open(address, password, server, port, factory)
    try:
        typ, _ = session.select("INBOX", readonly=True)
        if typ != "OK":
            raise ImapFetchError("Failed to select INBOX")
        typ, data = session.uid("search", None, "ALL")
        if typ != "OK":
            raise ImapFetchError("Failed to search INBOX")
        uids = data[0].split() if data and data[0] else []
        messages = []
        for uid in reversed(uids[-limit:]):
            message = _fetch_uid(session, uid.decode(), tz_name)
            if message is not None:
                messages.append(message)
    finally:
        _close(session)

    logger.info(f"Fetched {len(messages)} emails for user {user_id}")
    return messages


def fetch_email(
    db: Session,
    user_id: int,
    uid: str,
    factory: Optional[ImapFactory] = None,
) -> Optional[EmailMessage]:
    address, password, server, port = _credentials(db, user_id)
    user = user_repository.find_by_id(db, user_id)

    session = _open(address, password, server, port, factory)
    try:
        typ, _ = session.select("INBOX", readonly=True)
        if typ != "OK":
            raise ImapFetchError("Failed to select INBOX")
        return _fetch_uid(session, uid, user.timezone if user else None)
    finally:
        _close(session)


def format_email_list(messages: List[EmailMessage], shown: int = 5) -> str:
    """Summarize the newest messages for an SMS answer."""
    if not messages:
        return "No recent emails found."
    lines = [
        f"{i}. {m.subject or 'No subject'} from {m.sender or 'Unknown sender'} ({m.date_formatted or 'Unknown date'}):"
        for i, m in enumerate(messages[:shown], start=1)
    ]
    text = "\n\n".join(lines)
    if len(messages) > shown:
        text += f"\n\n(+ {len(messages) - shown} more emails)"
    return text
