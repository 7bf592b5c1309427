import logging
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from jose import jwt
from passlib.context import CryptContext

from lightfriend.core import config

logger = logging.getLogger(__name__)

# Hashes created before the switch to bcrypt-direct still verify through passlib
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    password_bytes = password.encode("utf-8")
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        logger.warning("Password exceeds 72 bytes, truncating before hashing")
        password_bytes = password_bytes[:BCRYPT_MAX_BYTES]
    return password_bytes


def hash_password(password: str) -> str:
    """
    Hash a password with bcrypt.

    Passwords longer than bcrypt's 72-byte limit are truncated first.

    Args:
        password: Plain text password

    Returns:
        bcrypt hash string

    Raises:
        ValueError: If the password cannot be hashed
    """
    try:
        return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")
    except (ValueError, TypeError) as e:
        logger.error(f"Password hashing failed: {e}")
        raise ValueError("Invalid password") from e


def verify_password(password: str, hashed: str) -> bool:
    """Check a plain password against a stored hash."""
    try:
        return bcrypt.checkpw(_password_bytes(password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        pass
    try:
        return pwd_context.verify(password, hashed)
    except ValueError:
        logger.warning("Stored password hash is not in a recognised format")
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.require_env("JWT_SECRET_KEY"), algorithm=config.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on any failure."""
    return jwt.decode(token, config.require_env("JWT_SECRET_KEY"), algorithms=[config.ALGORITHM])
