"""
Credential Cipher - symmetric encryption for stored connection parameters.

The session cookie is only signed, so anything placed in it is readable by
the client. Connection parameters are therefore encrypted as a whole with
Fernet (AES-128-CBC + HMAC-SHA256) before they are stored there.
"""
import base64
import hashlib
import json
from typing import Dict

from cryptography.fernet import Fernet, InvalidToken

from cloudview.core.exceptions import CredentialDecryptError


def derive_fernet_key(secret_key: str) -> bytes:
    """Derive a 32-byte urlsafe Fernet key from an arbitrary secret string."""
    digest = hashlib.sha256(secret_key.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class CredentialCipher:
    """
    Encrypts and decrypts credential mappings.

    Example:
        >>> cipher = CredentialCipher("secret")
        >>> token = cipher.encrypt({"driver": "sqlite", "database": "app.db"})
        >>> cipher.decrypt(token)["driver"]
        'sqlite'
    """

    def __init__(self, secret_key: str):
        self._fernet = Fernet(derive_fernet_key(secret_key))

    def encrypt(self, values: Dict[str, str]) -> str:
        payload = json.dumps(values, sort_keys=True).encode("utf-8")
        return self._fernet.encrypt(payload).decode("ascii")

    def decrypt(self, token: str) -> Dict[str, str]:
        """
        Decrypt a token produced by encrypt().

        Raises:
            CredentialDecryptError: If the token was tampered with, was made
                with another key, or does not hold a JSON object.
        """
        if not isinstance(token, str):
            raise CredentialDecryptError("Stored credential token is not a string")
        try:
            payload = self._fernet.decrypt(token.encode("ascii"))
        except (InvalidToken, UnicodeEncodeError) as e:
            raise CredentialDecryptError() from e

        try:
            values = json.loads(payload)
        except ValueError as e:
            raise CredentialDecryptError("Stored credential payload is not JSON") from e
        if not isinstance(values, dict):
            raise CredentialDecryptError("Stored credential payload is not an object")
        return values
