"""
Tests for the credential vault.

Tests cover:
- Fernet encryption round trip for token and per-field blobs
- Decryption failures surfaced as CredentialError
- snake_case / camelCase credential lookup
"""

import pytest
from cryptography.fernet import Fernet

from integrations.credentials import (
    CredentialVault,
    FernetCredentialVault,
    get_credential,
    missing_credentials,
)
from integrations.exceptions import CredentialError


@pytest.fixture
def vault():
    return FernetCredentialVault(Fernet.generate_key())


class TestFernetCredentialVault:
    """Tests for FernetCredentialVault."""

    def test_encrypts_and_decrypts(self, vault):
        """Should restore the credential map from its token."""
        token = vault.encrypt({"access_token": "EAAA-secret", "location_id": "L1"})

        assert "EAAA-secret" not in token
        assert vault.decrypt(token) == {"access_token": "EAAA-secret", "location_id": "L1"}

    def test_decrypts_per_field_blob(self, vault):
        """Should accept a map of individually encrypted fields."""
        blob = {
            "clientId": vault.fernet.encrypt(b"pk_test_123").decode(),
            "clientSecret": vault.fernet.encrypt(b"sk_test_456").decode(),
            "unused": "",
        }

        assert vault.decrypt(blob) == {"clientId": "pk_test_123", "clientSecret": "sk_test_456"}

    @pytest.mark.parametrize("blob", ["", None, {}])
    def test_empty_blob(self, vault, blob):
        assert vault.decrypt(blob) == {}

    def test_wrong_key(self, vault):
        """Should raise CredentialError for tokens from another key."""
        token = FernetCredentialVault(Fernet.generate_key()).encrypt({"access_token": "x"})

        with pytest.raises(CredentialError, match="could not be decrypted"):
            vault.decrypt(token)

    def test_garbage_blob(self, vault):
        with pytest.raises(CredentialError):
            vault.decrypt("not-a-token")

    def test_error_hides_blob(self, vault):
        """Should never echo the encrypted blob in the error."""
        with pytest.raises(CredentialError) as exc_info:
            vault.decrypt("gAAAAAB-leaked-blob")

        assert "leaked" not in str(exc_info.value)
        assert "leaked" not in str(exc_info.value.details)

    def test_non_object_payload(self, vault):
        token = vault.fernet.encrypt(b'["a", "b"]').decode()

        with pytest.raises(CredentialError, match="malformed"):
            vault.decrypt(token)

    def test_derives_key_from_secret_key(self, settings):
        """Should work without an explicit encryption key."""
        settings.CREDENTIAL_ENCRYPTION_KEY = ""
        first = FernetCredentialVault()
        second = FernetCredentialVault()

        assert second.decrypt(first.encrypt({"a": "b"})) == {"a": "b"}

    def test_satisfies_protocol(self, vault):
        assert isinstance(vault, CredentialVault)


class TestCredentialLookup:
    """Tests for get_credential / missing_credentials."""

    def test_snake_case(self):
        assert get_credential({"client_id": "abc"}, "client_id") == "abc"

    def test_camel_case_fallback(self):
        assert get_credential({"clientId": "abc"}, "client_id") == "abc"

    def test_strips_whitespace(self):
        assert get_credential({"access_token": "  tok  "}, "access_token") == "tok"

    def test_missing(self):
        assert get_credential({}, "access_token") == ""

    def test_missing_credentials(self):
        credentials = {"clientId": "abc", "client_secret": "   "}

        assert missing_credentials(credentials, ("client_id", "client_secret")) == [
            "client_secret"
        ]
