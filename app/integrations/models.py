"""
Payment integration model for per-tenant provider configuration.

A PaymentIntegration row is the stored form of PaymentIntegrationConfig:
which provider a tenant uses, whether it is switched on, the encrypted
credential blob, and provider-specific settings. Credentials are stored as
a single Fernet token and are never decrypted by the model itself.

Usage:
    from integrations.models import PaymentIntegration

    integration = PaymentIntegration.objects.create(
        tenant_id="tenant_42",
        provider=PaymentProvider.TERMINAL_POS,
        enabled=True,
        settings={"test_mode": True},
    )
    integration.set_credentials({"access_token": "EAAA...", "location_id": "L1"})
    integration.save()

    config = integration.to_config()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from integrations.credentials import FernetCredentialVault
from integrations.types import PaymentIntegrationConfig, PaymentProvider


class PaymentIntegration(BaseModel):
    """
    A tenant's payment provider configuration.

    Fields:
        tenant_id: Owning tenant (one payment integration per tenant)
        provider: Provider enum value (card, wallet, terminal-pos)
        enabled: Whether payments may be routed to the provider
        credentials: Fernet token of the credential map
        settings: Provider settings (test_mode, webhook_url, location_id)
        last_tested_at: When the connection was last tested
        last_test_succeeded: Outcome of the last connection test
        last_error: Error reported by the last failed connection test
    """

    # ==========================================================================
    # Ownership & Provider
    # ==========================================================================

    tenant_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Tenant that owns this payment integration",
    )

    provider = models.CharField(
        max_length=32,
        choices=PaymentProvider.choices,
        help_text="Payment provider this tenant routes payments to",
    )

    enabled = models.BooleanField(
        default=False,
        help_text="Whether payments may be routed to this provider",
    )

    # ==========================================================================
    # Credentials & Settings
    # ==========================================================================

    credentials = models.TextField(
        blank=True,
        default="",
        help_text="Encrypted credential blob (Fernet token)",
    )

    settings = models.JSONField(
        default=dict,
        blank=True,
        help_text="Provider settings such as test_mode and webhook_url",
    )

    # ==========================================================================
    # Connection Test Bookkeeping
    # ==========================================================================

    last_tested_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the connection was last tested",
    )

    last_test_succeeded = models.BooleanField(
        null=True,
        blank=True,
        help_text="Outcome of the last connection test",
    )

    last_error = models.TextField(
        null=True,
        blank=True,
        help_text="Error from the last failed connection test",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Integration"
        verbose_name_plural = "Payment Integrations"

    def __str__(self) -> str:
        """Return string representation with tenant, provider and state."""
        state = "enabled" if self.enabled else "disabled"
        return f"PaymentIntegration({self.tenant_id}, {self.provider}, {state})"

    def set_credentials(
        self,
        credentials: dict[str, str],
        vault: FernetCredentialVault | None = None,
    ) -> None:
        """
        Encrypt and store a credential map. Does not save.

        Args:
            credentials: Plaintext credential fields
            vault: Vault to encrypt with (defaults to FernetCredentialVault)
        """
        vault = vault or FernetCredentialVault()
        self.credentials = vault.encrypt(credentials)

    def to_config(self) -> PaymentIntegrationConfig:
        """Build the read-only config handed to the payment router."""
        return PaymentIntegrationConfig(
            provider=self.provider,
            enabled=self.enabled,
            credentials=self.credentials,
            settings=dict(self.settings or {}),
            tenant_id=self.tenant_id,
        )

    def mark_tested(self, success: bool, error: str | None = None) -> None:
        """
        Record the outcome of a connection test.

        Args:
            success: Whether the test passed
            error: Error message when it did not
        """
        self.last_tested_at = timezone.now()
        self.last_test_succeeded = success
        self.last_error = None if success else error
        self.save(
            update_fields=[
                "last_tested_at",
                "last_test_succeeded",
                "last_error",
                "updated_at",
            ]
        )
