"""
Payment router for tenant payment integrations.

This module provides the PaymentService class which resolves a tenant's
payment configuration and dispatches each operation to the adapter for the
configured provider. The router performs no amount normalization or status
mapping itself; that is contained in the adapters, so adding a provider
only needs a registry entry.

Dispatch discipline for every action method:
1. No configuration for the tenant → ConfigurationError
2. Configuration disabled → DisabledIntegrationError
3. Provider matches no registered adapter → UnsupportedProviderError
4. Terminal operations on a provider without terminal support
   → CapabilityNotSupportedError

Adapter errors are never caught here; they reach the caller unchanged.

Usage:
    from integrations.services import PaymentService

    service = PaymentService()

    if service.is_configured(tenant_id):
        result = service.process_payment(
            tenant_id,
            ProcessPaymentData(
                invoice_id="inv_123",
                amount=Decimal("19.99"),
                currency="USD",
                source_id="pm_card_visa",
            ),
        )

    # Test doubles are injected, never patched in
    service = PaymentService(
        adapters={PaymentProvider.CARD: fake_adapter},
        config_store=fake_store,
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping, Protocol

from integrations.adapters import (
    PaymentAdapter,
    PayPalAdapter,
    SquareAdapter,
    StripeAdapter,
)
from integrations.exceptions import (
    CapabilityNotSupportedError,
    ConfigurationError,
    DisabledIntegrationError,
    UnsupportedProviderError,
)
from integrations.models import PaymentIntegration
from integrations.types import PaymentProvider, ProviderMetadata

if TYPE_CHECKING:
    from integrations.credentials import CredentialVault
    from integrations.types import (
        CreateTerminalCheckoutData,
        PaymentIntegrationConfig,
        ProcessPaymentData,
        ProcessPaymentResult,
        RefundData,
        RefundResult,
        TerminalCheckout,
        TestConnectionResult,
    )

logger = logging.getLogger(__name__)


# =============================================================================
# Provider Metadata
# =============================================================================

PAYMENT_PROVIDERS: dict[str, ProviderMetadata] = {
    PaymentProvider.TERMINAL_POS: ProviderMetadata(
        id=PaymentProvider.TERMINAL_POS,
        display_name="Square",
        description="Square payment processing (2.6% + $0.10 per transaction)",
        documentation_url="https://developer.squareup.com/docs/payments-overview",
    ),
    PaymentProvider.CARD: ProviderMetadata(
        id=PaymentProvider.CARD,
        display_name="Stripe",
        description="Stripe payment processing (2.9% + $0.30 per transaction)",
        documentation_url="https://stripe.com/docs/payments",
    ),
    PaymentProvider.WALLET: ProviderMetadata(
        id=PaymentProvider.WALLET,
        display_name="PayPal",
        description="PayPal payment processing (2.9% + fixed fee per transaction)",
        documentation_url="https://developer.paypal.com/docs/api/overview",
    ),
}


# =============================================================================
# Configuration Store
# =============================================================================


class IntegrationConfigStore(Protocol):
    """
    Protocol for loading tenant payment configuration.

    Implementations return None when the tenant has no payment integration.
    """

    def get_payment_config(self, tenant_id: str) -> PaymentIntegrationConfig | None:
        ...

    def mark_tested(self, tenant_id: str, success: bool, error: str | None = None) -> None:
        ...


class DatabaseConfigStore:
    """Config store backed by the PaymentIntegration model."""

    def get_payment_config(self, tenant_id: str) -> PaymentIntegrationConfig | None:
        integration = PaymentIntegration.objects.filter(tenant_id=tenant_id).first()
        if integration is None:
            return None
        return integration.to_config()

    def mark_tested(self, tenant_id: str, success: bool, error: str | None = None) -> None:
        integration = PaymentIntegration.objects.filter(tenant_id=tenant_id).first()
        if integration is None:
            raise ConfigurationError(
                "Payment integration not configured",
                details={"tenant_id": tenant_id},
            )
        integration.mark_tested(success, error)


def default_adapters(vault: CredentialVault | None = None) -> dict[str, PaymentAdapter]:
    """
    Build the adapter registry keyed by provider enum value.

    Args:
        vault: Credential vault shared by the adapters (defaults to Fernet)
    """
    return {
        PaymentProvider.CARD: StripeAdapter(vault),
        PaymentProvider.WALLET: PayPalAdapter(vault),
        PaymentProvider.TERMINAL_POS: SquareAdapter(vault),
    }


# =============================================================================
# Payment Service
# =============================================================================


class PaymentService:
    """
    Routes payment operations to the tenant's configured provider adapter.

    Attributes:
        adapters: Registry of adapters keyed by provider enum value
        config_store: Source of tenant payment configuration
    """

    def __init__(
        self,
        adapters: Mapping[str, PaymentAdapter] | None = None,
        config_store: IntegrationConfigStore | None = None,
    ):
        """
        Initialize service.

        Args:
            adapters: Adapter registry (defaults to default_adapters())
            config_store: Configuration store (defaults to DatabaseConfigStore)
        """
        self.adapters = dict(adapters) if adapters is not None else default_adapters()
        self.config_store = config_store or DatabaseConfigStore()

    # =========================================================================
    # Configuration
    # =========================================================================

    def is_configured(self, tenant_id: str) -> bool:
        """
        Check whether the tenant has an enabled payment integration.

        Never raises: any lookup failure is logged and reported as not
        configured.
        """
        try:
            config = self.config_store.get_payment_config(tenant_id)
        except Exception:
            logger.exception(
                "Error checking payment configuration",
                extra={"tenant_id": tenant_id},
            )
            return False
        return config is not None and config.enabled is True

    def list_providers(self) -> list[ProviderMetadata]:
        """Return display metadata for every supported provider."""
        return [
            metadata
            for provider, metadata in PAYMENT_PROVIDERS.items()
            if provider in self.adapters
        ]

    def test_connection(self, tenant_id: str) -> TestConnectionResult:
        """
        Test the tenant's provider connection and record the outcome.

        Returns:
            TestConnectionResult from the adapter
        """
        config, adapter = self._resolve(tenant_id)
        result = adapter.test_connection(config)
        self.config_store.mark_tested(tenant_id, result.success, result.error)
        logger.info(
            "Payment integration connection tested",
            extra={
                "tenant_id": tenant_id,
                "provider": config.provider,
                "success": result.success,
            },
        )
        return result

    # =========================================================================
    # Payments
    # =========================================================================

    def process_payment(self, tenant_id: str, data: ProcessPaymentData) -> ProcessPaymentResult:
        config, adapter = self._resolve(tenant_id)
        return adapter.process_payment(config, data)

    def refund_payment(self, tenant_id: str, data: RefundData) -> RefundResult:
        config, adapter = self._resolve(tenant_id)
        return adapter.refund_payment(config, data)

    # =========================================================================
    # Terminal Checkouts
    # =========================================================================

    def create_terminal_checkout(
        self, tenant_id: str, data: CreateTerminalCheckoutData
    ) -> TerminalCheckout:
        """
        Push a checkout to the tenant's terminal device.

        Raises:
            CapabilityNotSupportedError: Configured provider has no terminals
        """
        config, adapter = self._resolve(tenant_id, terminal=True)
        return adapter.create_terminal_checkout(config, data)

    def get_terminal_checkout_status(self, tenant_id: str, checkout_id: str) -> TerminalCheckout:
        config, adapter = self._resolve(tenant_id, terminal=True)
        return adapter.get_terminal_checkout_status(config, checkout_id)

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _resolve(
        self, tenant_id: str, terminal: bool = False
    ) -> tuple[PaymentIntegrationConfig, PaymentAdapter]:
        """
        Load the tenant's config and pick its adapter.

        Raises:
            ConfigurationError: No payment integration for the tenant
            DisabledIntegrationError: Integration is disabled
            UnsupportedProviderError: No adapter for the configured provider
            CapabilityNotSupportedError: terminal=True and the adapter lacks it
        """
        config = self.config_store.get_payment_config(tenant_id)
        if config is None:
            raise ConfigurationError(
                "Payment integration not configured",
                details={"tenant_id": tenant_id},
            )
        if not config.enabled:
            raise DisabledIntegrationError(
                "Payment integration is disabled",
                details={"tenant_id": tenant_id, "provider": config.provider},
            )

        provider = str(config.provider)
        adapter = self.adapters.get(provider)
        if adapter is None:
            raise UnsupportedProviderError(
                f"Unsupported payment provider: {provider}",
                details={"tenant_id": tenant_id, "provider": config.provider},
            )
        if terminal and not adapter.supports_terminal:
            raise CapabilityNotSupportedError(
                f"Terminal checkout is not supported by the {provider} "
                "payment provider",
                details={"tenant_id": tenant_id, "provider": config.provider},
            )
        return config, adapter
