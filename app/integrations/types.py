"""
Data types for payment integration operations.

This module defines the enums and dataclasses exchanged between the
payment router, the provider adapters and their callers. Every DTO is
constructed fresh per call; none are cached or mutated by the core.

Types:
    PaymentProvider: Provider enum (card, wallet, terminal-pos)
    PaymentStatus: Canonical three-value payment/refund status
    TerminalCheckoutStatus: Four-value terminal checkout status
    PaymentMethodType: online or terminal
    PaymentIntegrationConfig: Per-tenant provider configuration
    ProcessPaymentData / ProcessPaymentResult
    RefundData / RefundResult
    TestConnectionResult
    CreateTerminalCheckoutData / TerminalCheckout
    CreateCustomerData / CustomerResult
    CreateSubscriptionData / UpdateSubscriptionData / Subscription
    SavedCard
    ProviderMetadata

Usage:
    from integrations.types import ProcessPaymentData, PaymentMethodType

    data = ProcessPaymentData(
        invoice_id="inv_123",
        amount=Decimal("19.99"),
        currency="USD",
        source_id="cnon:card-nonce-ok",
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from django.db import models

from integrations.exceptions import PaymentValidationError
from integrations.money import require_positive


# =============================================================================
# Enums
# =============================================================================


class PaymentProvider(models.TextChoices):
    """Payment provider families a tenant can configure."""

    CARD = "card", "Card (Stripe)"
    WALLET = "wallet", "Wallet (PayPal)"
    TERMINAL_POS = "terminal-pos", "Terminal POS (Square)"


class PaymentStatus(models.TextChoices):
    """
    Canonical status every provider payment or refund status collapses into.

    This is a closed set; adapters own the mapping tables.
    """

    SUCCEEDED = "succeeded", "Succeeded"
    PENDING = "pending", "Pending"
    FAILED = "failed", "Failed"


class TerminalCheckoutStatus(models.TextChoices):
    """
    Status of an in-person checkout pushed to a terminal device.

    PENDING is the only non-terminal state:
        PENDING → COMPLETED | CANCELED | FAILED
    """

    PENDING = "pending", "Pending"
    COMPLETED = "completed", "Completed"
    CANCELED = "canceled", "Canceled"
    FAILED = "failed", "Failed"


class PaymentMethodType(models.TextChoices):
    """How the payer presents their payment method."""

    ONLINE = "online", "Online"
    TERMINAL = "terminal", "Terminal"


# =============================================================================
# Configuration
# =============================================================================


@dataclass
class PaymentIntegrationConfig:
    """
    Per-tenant payment provider configuration.

    Read-only to the payment core. Credentials stay encrypted here and are
    decrypted by the adapter only for the call that needs them.

    Attributes:
        provider: Provider enum value (card, wallet, terminal-pos)
        enabled: Whether the tenant has switched the integration on
        credentials: Opaque encrypted credential blob
        settings: Provider-specific flags (test_mode, webhook_url, location_id)
        tenant_id: Owning tenant, used only for log correlation
    """

    provider: str
    enabled: bool
    credentials: str | dict[str, Any]
    settings: dict[str, Any] = field(default_factory=dict)
    tenant_id: str | None = None

    def setting(self, name: str, default: Any = None) -> Any:
        """
        Read a setting by snake_case name, accepting the camelCase spelling.

        Settings written by older configuration tooling use camelCase keys
        (testMode, webhookUrl).
        """
        settings = self.settings or {}
        if name in settings:
            return settings[name]
        head, *rest = name.split("_")
        camel = head + "".join(part.capitalize() for part in rest)
        return settings.get(camel, default)

    @property
    def test_mode(self) -> bool:
        """Whether calls should target the provider's sandbox environment."""
        return bool(self.setting("test_mode", False))

    def __repr__(self) -> str:
        return (
            f"PaymentIntegrationConfig(provider={self.provider!r}, "
            f"enabled={self.enabled!r}, tenant_id={self.tenant_id!r})"
        )


# =============================================================================
# Payments
# =============================================================================


@dataclass
class ProcessPaymentData:
    """
    Input for processing a payment.

    Attributes:
        invoice_id: Invoice being paid
        amount: Amount in major units (Decimal; floats/strings are converted)
        currency: ISO 4217 currency code
        description: Optional statement description
        customer_id: Optional customer reference
        payment_method_type: online (tokenized source) or terminal (device)
        source_id: Tokenized payment method, required for online charges
        device_id: Terminal device, required for terminal charges
        idempotency_key: Optional caller key, reused on retries
        metadata: Opaque map echoed back in the result
    """

    invoice_id: str
    amount: Decimal
    currency: str
    description: str | None = None
    customer_id: str | None = None
    payment_method_type: str = PaymentMethodType.ONLINE
    source_id: str | None = None
    device_id: str | None = None
    idempotency_key: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Normalize amount and validate required fields."""
        self.amount = require_positive(self.amount)
        if not self.invoice_id:
            raise PaymentValidationError("invoice_id is required")
        if not self.currency:
            raise PaymentValidationError("currency is required")
        if self.payment_method_type not in PaymentMethodType.values:
            raise PaymentValidationError(
                f"Unknown payment method type: {self.payment_method_type}",
                details={"payment_method_type": self.payment_method_type},
            )


@dataclass
class ProcessPaymentResult:
    """
    Canonical result every adapter produces for a payment.

    Attributes:
        transaction_id: Provider-assigned ID, treated as opaque
        status: One of PaymentStatus
        payment_method: Provider's payment method label (card, paypal, terminal)
        amount: Amount in major units
        currency: ISO 4217 currency code
        fee: Provider processing fee in major units, when reported
        metadata: Caller metadata plus adapter-added identifiers
    """

    transaction_id: str
    status: str
    payment_method: str
    amount: Decimal
    currency: str
    fee: Decimal | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class RefundData:
    """
    Input for refunding a payment.

    Attributes:
        transaction_id: Provider transaction ID returned by process_payment
        amount: Partial refund amount in major units; None refunds in full
        reason: Optional reason passed to the provider
        metadata: Optional metadata passed to the provider
    """

    transaction_id: str
    amount: Decimal | None = None
    reason: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise PaymentValidationError("transaction_id is required")
        if self.amount is not None:
            self.amount = require_positive(self.amount)


@dataclass
class RefundResult:
    """Canonical result of a refund."""

    refund_id: str
    status: str
    amount: Decimal
    currency: str
    transaction_id: str


@dataclass
class TestConnectionResult:
    """Outcome of a provider connection smoke test."""

    __test__ = False  # not a pytest test class

    success: bool
    error: str | None = None


# =============================================================================
# Terminal Checkouts
# =============================================================================


@dataclass
class CreateTerminalCheckoutData:
    """
    Input for pushing an in-person checkout to a terminal device.

    Attributes:
        amount: Amount in major units
        currency: ISO 4217 currency code
        invoice_id: Invoice being paid (sent as the reference ID)
        device_id: Terminal device that should display the checkout
        customer_id: Optional customer reference
        description: Optional note shown on the device
        metadata: Optional metadata
        idempotency_key: Optional caller key (truncated to provider limit)
    """

    amount: Decimal
    currency: str
    invoice_id: str
    device_id: str
    customer_id: str | None = None
    description: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        self.amount = require_positive(self.amount)
        if not self.device_id:
            raise PaymentValidationError(
                "Device ID is required for terminal checkout"
            )


@dataclass
class TerminalCheckout:
    """
    Transient view of a terminal checkout.

    Attributes:
        checkout_id: Provider checkout ID
        status: One of TerminalCheckoutStatus
        device_id: Device the checkout was pushed to
        expires_at: When the device stops accepting the checkout
        payment_ids: Provider payment IDs once the checkout completes
    """

    checkout_id: str
    status: str
    device_id: str | None = None
    expires_at: datetime | None = None
    payment_ids: list[str] = field(default_factory=list)

    @property
    def is_final(self) -> bool:
        """True once the checkout has left the pending state."""
        return self.status != TerminalCheckoutStatus.PENDING


# =============================================================================
# Customers, Subscriptions and Saved Cards
# =============================================================================


@dataclass
class CreateCustomerData:
    """Input for creating a provider-side customer."""

    email: str
    given_name: str | None = None
    family_name: str | None = None
    company_name: str | None = None
    phone_number: str | None = None


@dataclass
class CustomerResult:
    customer_id: str
    email: str


@dataclass
class CreateSubscriptionData:
    """
    Input for creating a recurring subscription.

    Attributes:
        customer_id: Provider customer ID
        card_id: Saved card to charge
        plan_id: Provider subscription plan (variation) ID
        location_id: Provider location; defaults to the credential location
        idempotency_key: Optional caller key; generated when absent
        start_date: Optional first billing date
    """

    customer_id: str
    card_id: str
    plan_id: str
    location_id: str | None = None
    idempotency_key: str | None = None
    start_date: date | None = None


@dataclass
class UpdateSubscriptionData:
    """Fields to change on an existing subscription; None leaves unchanged."""

    subscription_id: str
    plan_id: str | None = None
    card_id: str | None = None


@dataclass
class SubscriptionPhase:
    start_date: str
    end_date: str | None = None


@dataclass
class Subscription:
    """
    Provider subscription snapshot.

    status is the provider's own string (e.g. ACTIVE, CANCELED); callers
    only branch on active vs not, so it is not normalized further.
    """

    subscription_id: str
    status: str
    plan_id: str
    customer_id: str
    current_phase: SubscriptionPhase | None = None

    @property
    def is_active(self) -> bool:
        return self.status.upper() == "ACTIVE"


@dataclass
class SavedCard:
    """A card stored against a provider customer for later charges."""

    card_id: str
    customer_id: str
    last4: str | None = None
    brand: str | None = None


@dataclass
class ProviderMetadata:
    """Display information about a payment provider."""

    id: str
    display_name: str
    description: str
    documentation_url: str | None = None
