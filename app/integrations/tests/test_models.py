"""
Tests for the PaymentIntegration model.

Tests cover:
- Credential encryption on the model
- Conversion to PaymentIntegrationConfig
- Connection test bookkeeping
"""

from datetime import datetime, timezone

import pytest
from django.db import IntegrityError
from freezegun import freeze_time

from integrations.credentials import FernetCredentialVault
from integrations.models import PaymentIntegration
from integrations.tests.factories import PaymentIntegrationFactory
from integrations.types import PaymentProvider


@pytest.mark.django_db
class TestPaymentIntegration:
    """Tests for PaymentIntegration."""

    def test_credentials_stored_encrypted(self):
        """Should never store plaintext credentials."""
        integration = PaymentIntegrationFactory(square=True)

        integration.refresh_from_db()
        assert "EAAAsandbox-token" not in integration.credentials
        assert FernetCredentialVault().decrypt(integration.credentials)["access_token"] == (
            "EAAAsandbox-token"
        )

    def test_set_credentials_does_not_save(self):
        integration = PaymentIntegrationFactory()
        original = integration.credentials

        integration.set_credentials({"client_id": "pk_new_1234567", "client_secret": "sk_new_1234567"})

        integration.refresh_from_db()
        assert integration.credentials == original

    def test_to_config(self):
        """Should carry the encrypted blob and settings through unchanged."""
        integration = PaymentIntegrationFactory(paypal=True, settings={"testMode": True})

        config = integration.to_config()

        assert config.provider == PaymentProvider.WALLET
        assert config.enabled is True
        assert config.credentials == integration.credentials
        assert config.test_mode is True
        assert config.tenant_id == integration.tenant_id

    def test_one_integration_per_tenant(self):
        PaymentIntegrationFactory(tenant_id="tenant-dup")

        with pytest.raises(IntegrityError):
            PaymentIntegrationFactory(tenant_id="tenant-dup")

    @freeze_time("2026-03-01 09:30:00")
    def test_mark_tested_success(self):
        integration = PaymentIntegrationFactory()
        integration.last_error = "old failure"
        integration.save()

        integration.mark_tested(True)

        integration.refresh_from_db()
        assert integration.last_test_succeeded is True
        assert integration.last_tested_at == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        assert integration.last_error is None

    def test_mark_tested_failure(self):
        integration = PaymentIntegrationFactory()

        integration.mark_tested(False, "Invalid Stripe credentials format")

        integration.refresh_from_db()
        assert integration.last_test_succeeded is False
        assert integration.last_error == "Invalid Stripe credentials format"

    def test_str(self):
        integration = PaymentIntegrationFactory(tenant_id="tenant-7", disabled=True)
        integration.refresh_from_db()

        assert str(integration) == "PaymentIntegration(tenant-7, card, disabled)"

    def test_defaults(self):
        integration = PaymentIntegration.objects.create(
            tenant_id="tenant-bare", provider=PaymentProvider.CARD
        )

        assert integration.enabled is False
        assert integration.settings == {}
        assert integration.last_test_succeeded is None
