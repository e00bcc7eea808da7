"""Sender credential encryption.

Provider secrets (SMTP password, webhook token) may be stored encrypted with
Fernet using a key derived from SECRET_KEY. Fernet tokens always start with
"gAAAAA", which is how stored values are told apart from plaintext.
"""

import base64
import hashlib

from cryptography.fernet import Fernet

from ..config import settings

FERNET_PREFIX = "gAAAAA"


def _fernet(secret: str | None = None) -> Fernet:
    digest = hashlib.sha256((secret or settings.secret_key).encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_value(plaintext: str, secret: str | None = None) -> str:
    return _fernet(secret).encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str, secret: str | None = None) -> str:
    return _fernet(secret).decrypt(ciphertext.encode()).decode()


def reveal(value: str, secret: str | None = None) -> str:
    """Return the plaintext of a possibly-encrypted setting."""
    if value.startswith(FERNET_PREFIX):
        return decrypt_value(value, secret)
    return value
