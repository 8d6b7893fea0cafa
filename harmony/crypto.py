"""Symmetric encryption of sensitive operation fields.

Values are encrypted with Fernet (AES-128-CBC + HMAC-SHA256) under a key
derived from the shared secret, so they can be embedded in payloads and URLs
handed to backends and only be read back by this process.
"""

import base64
import hashlib
from collections.abc import Callable

from cryptography.fernet import Fernet, InvalidToken

from harmony.errors import ValidationError

Encrypter = Callable[[str], str]
Decrypter = Callable[[str], str]


def _fernet(shared_secret_key: str | bytes) -> Fernet:
    secret = shared_secret_key.encode("utf-8") if isinstance(shared_secret_key, str) else shared_secret_key
    if not secret:
        raise ValueError("A shared secret key is required for encryption")
    return Fernet(base64.urlsafe_b64encode(hashlib.sha256(secret).digest()))


def create_encrypter(shared_secret_key: str | bytes) -> Encrypter:
    fernet = _fernet(shared_secret_key)

    def encrypt(value: str) -> str:
        return fernet.encrypt(value.encode("utf-8")).decode("ascii")

    return encrypt


def create_decrypter(shared_secret_key: str | bytes) -> Decrypter:
    fernet = _fernet(shared_secret_key)

    def decrypt(value: str) -> str:
        try:
            return fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError) as exc:
            raise ValidationError("Encrypted value could not be decrypted") from exc

    return decrypt
