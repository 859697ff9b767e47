import base64
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

from streamcraft.config import SECRET_KEY

logger = logging.getLogger(__name__)


def _get_fernet_key(secret: str) -> bytes:
    """Derive a 32-byte base64 encoded key from the secret string."""
    # SHA-256 hash gives 32 bytes
    key_bytes = hashlib.sha256(secret.encode()).digest()
    # Base64 encode it for Fernet
    return base64.urlsafe_b64encode(key_bytes)


# Initialize Fernet with the derived key
cipher_suite = Fernet(_get_fernet_key(SECRET_KEY))


def encrypt_value(value: str) -> str:
    """Encrypt a string value."""
    if not value:
        return ""
    return cipher_suite.encrypt(value.encode()).decode()


def decrypt_value(encrypted_value: str) -> str:
    """Decrypt an encrypted string value."""
    if not encrypted_value:
        return ""
    try:
        return cipher_suite.decrypt(encrypted_value.encode()).decode()
    except InvalidToken:
        # Stored before encryption was introduced, return as is
        logger.warning("Credential value is not encrypted, using it verbatim")
        return encrypted_value


def mask_secret(value: str) -> str:
    """Mask secret untuk security (show only last 4 chars)"""
    if not value:
        return ""
    if len(value) <= 4:
        return value
    return "****-****-" + value[-4:]
