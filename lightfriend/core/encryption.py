"""
Encryption helpers for credentials stored in the database.

Tokens are sealed with AES-256-GCM. The stored form is
base64(nonce || ciphertext) where the nonce is 12 random bytes.
"""
import base64
import binascii
import hashlib
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from lightfriend.core import config

logger = logging.getLogger(__name__)

NONCE_SIZE = 12


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""


def _load_key(encoded_key: Optional[str] = None) -> bytes:
    encoded_key = encoded_key or config.require_env("ENCRYPTION_KEY")
    try:
        key = base64.b64decode(encoded_key, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError("ENCRYPTION_KEY is not valid base64") from e
    if len(key) != 32:
        raise EncryptionError("ENCRYPTION_KEY must decode to 32 bytes")
    return key


def encrypt_token(plaintext: str, encoded_key: Optional[str] = None) -> str:
    """
    Encrypt a string with AES-256-GCM.

    Args:
        plaintext: Value to protect
        encoded_key: Base64 key, defaults to ENCRYPTION_KEY

    Returns:
        base64 of the 12-byte nonce followed by the ciphertext
    """
    aesgcm = AESGCM(_load_key(encoded_key))
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
    return base64.b64encode(nonce + ciphertext).decode("ascii")


def decrypt_token(encrypted: str, encoded_key: Optional[str] = None) -> str:
    """
    Decrypt a value produced by encrypt_token.

    Raises:
        EncryptionError: On malformed input, a wrong key or tampered data
    """
    try:
        raw = base64.b64decode(encrypted, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError("Invalid encrypted data") from e
    if len(raw) < NONCE_SIZE:
        raise EncryptionError("Invalid encrypted data")

    aesgcm = AESGCM(_load_key(encoded_key))
    try:
        plaintext = aesgcm.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
    except InvalidTag as e:
        raise EncryptionError("Decryption failed") from e
    return plaintext.decode("utf-8")


def decrypt_legacy(encrypted: str, secret: Optional[str] = None) -> str:
    """
    Decrypt a value written by the previous cipher.

    The old scheme was AES-256-CBC keyed with SHA-256 of the raw
    ENCRYPTION_KEY string, an all-zero IV and PKCS7 padding, base64 encoded.
    Only the migration script should need this.
    """
    secret = secret or config.require_env("ENCRYPTION_KEY")
    key = hashlib.sha256(secret.encode("utf-8")).digest()
    try:
        raw = base64.b64decode(encrypted, validate=True)
    except (binascii.Error, ValueError) as e:
        raise EncryptionError("Invalid legacy data") from e
    if not raw or len(raw) % 16 != 0:
        raise EncryptionError("Invalid legacy data")

    decryptor = Cipher(algorithms.AES(key), modes.CBC(bytes(16))).decryptor()
    padded = decryptor.update(raw) + decryptor.finalize()
    unpadder = padding.PKCS7(128).unpadder()
    try:
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except ValueError as e:
        raise EncryptionError("Invalid legacy padding") from e


def encrypt_legacy(plaintext: str, secret: Optional[str] = None) -> str:
    """Inverse of decrypt_legacy, used to build migration fixtures."""
    secret = secret or config.require_env("ENCRYPTION_KEY")
    key = hashlib.sha256(secret.encode("utf-8")).digest()
    padder = padding.PKCS7(128).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(key), modes.CBC(bytes(16))).encryptor()
    return base64.b64encode(encryptor.update(padded) + encryptor.finalize()).decode("ascii")
