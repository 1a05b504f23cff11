"""
Token Cipher
Encryption of the OAuth token columns at rest.
"""

import base64
import hashlib
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from app.integrations.xero.exceptions import StorageError


class TokenCipher:
    """
    Fernet wrapper for token columns.

    The Fernet key is the SHA-256 digest of TOKEN_ENCRYPTION_KEY, so any
    non-empty secret works. Nullable columns (id_token) pass through as None.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("TOKEN_ENCRYPTION_KEY must not be empty")
        key = base64.urlsafe_b64encode(hashlib.sha256(secret.encode("utf-8")).digest())
        self._fernet = Fernet(key)

    def encrypt(self, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return self._fernet.encrypt(value.encode("utf-8")).decode("ascii")

    def decrypt(self, value: Optional[str]) -> Optional[str]:
        """
        Decrypt a stored column value.

        Raises:
            StorageError: If the value was not encrypted with this secret,
                e.g. after the key was rotated without re-encrypting rows
        """
        if value is None:
            return None
        try:
            return self._fernet.decrypt(value.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise StorageError("Stored token could not be decrypted", "decrypt_failed") from exc
