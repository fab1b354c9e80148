import base64
import binascii
import os

import structlog
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from socialsync.config import settings
from socialsync.errors import ConfigurationError, DecryptionError

logger = structlog.get_logger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 16
TAG_LENGTH = 16

def _key() -> bytes:
    if not settings.encryption_key:
        raise ConfigurationError("ENCRYPTION_KEY is missing in .env")
    try:
        key = base64.b64decode(settings.encryption_key, validate=True)
    except (binascii.Error, ValueError):
        raise ConfigurationError("ENCRYPTION_KEY must be base64 (use: openssl rand -base64 32)")
    if len(key) != KEY_LENGTH:
        raise ConfigurationError("ENCRYPTION_KEY must be 32 bytes (use: openssl rand -base64 32)")
    return key

def encrypt(plain: str) -> str:
    """AES-256-GCM; returns base64(nonce || ciphertext || tag)."""
    aead = AESGCM(_key())
    nonce = os.urandom(NONCE_LENGTH)
    # cryptography appends the 16-byte tag to the ciphertext
    sealed = aead.encrypt(nonce, plain.encode("utf-8"), None)
    return base64.b64encode(nonce + sealed).decode("ascii")

def decrypt(cipher: str) -> str:
    aead = AESGCM(_key())
    try:
        combined = base64.b64decode(cipher, validate=True)
    except (binascii.Error, ValueError, TypeError):
        raise DecryptionError("Ciphertext is not valid base64")
    if len(combined) < NONCE_LENGTH + TAG_LENGTH:
        raise DecryptionError("Ciphertext is too short")
    nonce, sealed = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
    try:
        plain = aead.decrypt(nonce, sealed, None)
    except InvalidTag:
        logger.warning("decrypt_tag_mismatch")
        raise DecryptionError("Authentication tag mismatch (tampered data or wrong key)")
    return plain.decode("utf-8")

def encrypt_optional(plain: str | None) -> str | None:
    return encrypt(plain) if plain else None

def mask_secret(secret: str) -> str:
    if len(secret) <= 4:
        return "****"
    return "****" + secret[-4:]
