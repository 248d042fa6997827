"""
Credential vault interface and default Fernet implementation.

Adapters consume exactly one capability from this module:
decrypt(blob) -> dict of credential fields. Decrypted values live only for
the call that needs them; they are never cached, logged or re-encrypted
by the payment core.

Blob formats accepted by FernetCredentialVault.decrypt:
    str   - Fernet token of a JSON object ({"client_id": ..., ...})
    dict  - Field map whose values are individual Fernet tokens

Configuration (via settings):
- CREDENTIAL_ENCRYPTION_KEY: urlsafe base64 Fernet key. When empty, a key
  is derived from SECRET_KEY (suitable for development only).

Usage:
    from integrations.credentials import FernetCredentialVault, get_credential

    vault = FernetCredentialVault()
    blob = vault.encrypt({"access_token": "EAAA..."})
    fields = vault.decrypt(blob)
    token = get_credential(fields, "access_token")
"""

from __future__ import annotations

import base64
import hashlib
import json
from typing import Any, Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from django.conf import settings

from integrations.exceptions import CredentialError


@runtime_checkable
class CredentialVault(Protocol):
    """
    Protocol for decrypting tenant credentials.

    Implementations must raise CredentialError when a blob cannot be
    decrypted, so adapters can fail before any network call.
    """

    def decrypt(self, blob: str | dict[str, Any]) -> dict[str, str]:
        """
        Decrypt an opaque credential blob.

        Args:
            blob: Encrypted credentials as stored in the integration config

        Returns:
            Mapping of credential field name to plaintext value
        """
        ...


class FernetCredentialVault:
    """
    Credential vault backed by cryptography's Fernet (AES-128-CBC + HMAC).

    Attributes:
        fernet: Fernet instance built from the configured key
    """

    def __init__(self, key: str | bytes | None = None):
        """
        Initialize vault.

        Args:
            key: Fernet key; defaults to settings.CREDENTIAL_ENCRYPTION_KEY
        """
        key = key or getattr(settings, "CREDENTIAL_ENCRYPTION_KEY", "")
        if not key:
            digest = hashlib.sha256(settings.SECRET_KEY.encode()).digest()
            key = base64.urlsafe_b64encode(digest)
        self.fernet = Fernet(key)

    def encrypt(self, credentials: dict[str, str]) -> str:
        """Encrypt a credential map into a single token string."""
        payload = json.dumps(credentials, sort_keys=True).encode()
        return self.fernet.encrypt(payload).decode()

    def decrypt(self, blob: str | dict[str, Any]) -> dict[str, str]:
        if not blob:
            return {}
        try:
            if isinstance(blob, dict):
                return {
                    name: self.fernet.decrypt(str(value).encode()).decode()
                    for name, value in blob.items()
                    if value
                }
            decoded = json.loads(self.fernet.decrypt(blob.encode()).decode())
        except (InvalidToken, ValueError) as e:
            # Never include the blob itself in the error
            raise CredentialError(
                "Stored payment credentials could not be decrypted"
            ) from e
        if not isinstance(decoded, dict):
            raise CredentialError("Stored payment credentials are malformed")
        return {name: str(value) for name, value in decoded.items()}


def _camel_case(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def get_credential(credentials: dict[str, str], name: str) -> str:
    """
    Read a credential field by snake_case name.

    Credentials saved by older configuration tooling use camelCase keys
    (clientId, accessToken); both spellings are accepted. Missing fields
    and whitespace-only values come back as "".
    """
    value = credentials.get(name)
    if value is None:
        value = credentials.get(_camel_case(name))
    return (value or "").strip()


def missing_credentials(credentials: dict[str, str], required: tuple[str, ...]) -> list[str]:
    """Return the required fields that are absent or empty."""
    return [name for name in required if not get_credential(credentials, name)]
