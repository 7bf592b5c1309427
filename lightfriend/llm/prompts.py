"""
Prompt templates for the SMS agent.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from lightfriend.db.models.user import User

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"


def load_prompt_template(name: str, version: str = "v1") -> str:
    """Load a prompt template from the prompts directory."""
    return (PROMPTS_DIR / f"{name}_{version}.md").read_text(encoding="utf-8")


def _utc_offset(tz_name: Optional[str], now: datetime) -> str:
    if not tz_name:
        return "+00:00"
    try:
        offset = now.astimezone(ZoneInfo(tz_name)).strftime("%z")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{tz_name}', using UTC")
        return "+00:00"
    return f"{offset[:3]}:{offset[3:]}"


def build_system_prompt(user: User, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return load_prompt_template("sms_system").format(
        date=now.strftime("%Y-%m-%d"),
        user_info=user.info or "nothing yet",
        timezone=user.timezone or "UTC",
        utc_offset=_utc_offset(user.timezone, now),
    )


def build_email_selection_prompt(query: str, emails: str) -> str:
    return load_prompt_template("email_select").format(query=query, emails=emails)
