"""Encryption for secret setting values (SMTP passwords, client secrets)."""

import base64
import hashlib
import json
from functools import lru_cache
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from backoffice.config import settings
from backoffice.core.errors import AppException


class SettingDecryptionError(AppException):
    message = "Stored setting could not be decrypted"
    error_code = "setting_decryption_failed"
    status_code = 500


@lru_cache
def _fernet() -> Fernet:
    # Fernet needs 32 url-safe base64 bytes
    digest = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt_value(value: Any) -> str:
    return _fernet().encrypt(json.dumps(value).encode()).decode()


def decrypt_value(token: str) -> Any:
    """Decrypt a value written by ``encrypt_value``.

    Raises:
        SettingDecryptionError: If the token was written with another key
    """
    try:
        return json.loads(_fernet().decrypt(token.encode()))
    except InvalidToken as e:
        raise SettingDecryptionError() from e
