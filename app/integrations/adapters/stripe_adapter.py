"""
Stripe adapter for the card payment provider.

This module provides the StripeAdapter class which implements the payment
contract for tenants configured with the "card" provider. All Stripe calls
for tenant payments go through this adapter to ensure consistent error
handling, timeouts, idempotency, and observability.

Features:
- Per-call API key (no process-wide stripe.api_key), so tenants never
  share credentials
- Integer-cent amounts, rounded half-up from Decimal major units
- Idempotency keys bounded to 45 characters; refunds always mint a new key
- Stripe SDK errors translated to ProviderCallError with retry hints

Credentials (decrypted per call):
- client_id: Publishable key (clientId accepted)
- client_secret: Secret key used as the API key (clientSecret accepted)

Configuration (via settings):
- STRIPE_API_VERSION: Pinned API version (optional)
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: API call timeout (default: 10)

Usage:
    from integrations.adapters import StripeAdapter

    adapter = StripeAdapter()
    result = adapter.process_payment(
        config,
        ProcessPaymentData(
            invoice_id="inv_123",
            amount=Decimal("19.99"),
            currency="USD",
            source_id="pm_card_visa",
        ),
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import stripe
from django.conf import settings

from integrations.adapters.base import PaymentAdapter
from integrations.credentials import get_credential
from integrations.exceptions import (
    CredentialError,
    PaymentValidationError,
    ProviderCallError,
)
from integrations.idempotency import IdempotencyKeyGenerator
from integrations.money import from_minor_units, to_minor_units
from integrations.types import (
    PaymentProvider,
    PaymentStatus,
    ProcessPaymentResult,
    RefundResult,
    TestConnectionResult,
)

if TYPE_CHECKING:
    from integrations.types import (
        PaymentIntegrationConfig,
        ProcessPaymentData,
        RefundData,
    )

MIN_KEY_LENGTH = 10

# Reasons Stripe accepts on refunds; anything else goes to metadata
STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})

PAYMENT_INTENT_STATUS_MAP = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "requires_payment_method": PaymentStatus.FAILED,
    "canceled": PaymentStatus.FAILED,
}

REFUND_STATUS_MAP = {
    "succeeded": PaymentStatus.SUCCEEDED,
    "pending": PaymentStatus.PENDING,
}


class StripeAdapter(PaymentAdapter):
    """
    Card provider adapter backed by the Stripe Python SDK.

    Thread-safe: the secret key is passed on every SDK call as api_key
    and never stored on the adapter or the stripe module.
    """

    provider = PaymentProvider.CARD
    display_name = "Stripe"
    required_credentials = ("client_id", "client_secret")

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure the shared HTTP client timeout; retries are handled by _call."""
        timeout = getattr(settings, "PAYMENT_PROVIDER_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 0

    @staticmethod
    def _request_options(secret_key: str, idempotency_key: str | None = None) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": secret_key}
        api_version = getattr(settings, "STRIPE_API_VERSION", "")
        if api_version:
            options["stripe_version"] = api_version
        if idempotency_key:
            options["idempotency_key"] = idempotency_key
        return options

    # =========================================================================
    # Core Operations
    # =========================================================================

    def test_connection(self, config: PaymentIntegrationConfig) -> TestConnectionResult:
        """
        Validate credential shape without a network round-trip.

        Both keys must be at least 10 characters long; a single missing key
        is reported as a format error.
        """
        try:
            credentials = self._credentials(config, required=())
        except CredentialError as e:
            return TestConnectionResult(success=False, error=e.message)

        client_id = get_credential(credentials, "client_id")
        client_secret = get_credential(credentials, "client_secret")

        if not client_id and not client_secret:
            return TestConnectionResult(
                success=False,
                error="Stripe client ID and client secret are required",
            )
        if len(client_id) < MIN_KEY_LENGTH or len(client_secret) < MIN_KEY_LENGTH:
            return TestConnectionResult(
                success=False,
                error="Invalid Stripe credentials format",
            )
        return TestConnectionResult(success=True)

    def process_payment(
        self, config: PaymentIntegrationConfig, data: ProcessPaymentData
    ) -> ProcessPaymentResult:
        """
        Charge a tokenized payment method with a confirmed PaymentIntent.

        Args:
            config: Tenant integration config
            data: Payment data; source_id must be a Stripe PaymentMethod ID

        Returns:
            ProcessPaymentResult with the PaymentIntent ID as transaction_id

        Raises:
            PaymentValidationError: source_id missing (raw card data is never accepted)
            CredentialError: Credentials missing or undecryptable
            ProviderCallError: Stripe rejected or failed the charge
        """
        if not data.source_id:
            raise PaymentValidationError(
                "Stripe payments require a tokenized payment method (source_id). "
                "Collect card details client-side with Stripe Elements and pass "
                "the resulting PaymentMethod ID.",
                details={"invoice_id": data.invoice_id},
            )

        credentials = self._credentials(config)
        secret_key = get_credential(credentials, "client_secret")
        self._configure_stripe()

        amount_cents = to_minor_units(data.amount)
        idempotency_key = IdempotencyKeyGenerator.resolve(
            data.idempotency_key, operation="pay", entity_id=data.invoice_id
        )
        metadata = {"invoice_id": data.invoice_id}
        if data.customer_id:
            metadata["customer_id"] = data.customer_id
        metadata.update(data.metadata)

        def charge() -> Any:
            return stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=data.currency.lower(),
                payment_method=data.source_id,
                confirm=True,
                description=data.description or f"Payment for invoice {data.invoice_id}",
                metadata=metadata,
                **self._request_options(secret_key, idempotency_key),
            )

        intent = self._call(
            "process_payment",
            charge,
            retryable=True,
            log_context={
                "invoice_id": data.invoice_id,
                "amount_cents": amount_cents,
                "idempotency_key": idempotency_key,
                "tenant_id": config.tenant_id,
            },
        )

        fee_cents = getattr(intent, "application_fee_amount", None)
        method_types = getattr(intent, "payment_method_types", None) or ["card"]
        return ProcessPaymentResult(
            transaction_id=intent.id,
            status=PAYMENT_INTENT_STATUS_MAP.get(intent.status, PaymentStatus.PENDING),
            payment_method=method_types[0],
            amount=data.amount,
            currency=data.currency,
            fee=from_minor_units(fee_cents) if fee_cents else None,
            metadata=metadata,
        )

    def refund_payment(
        self, config: PaymentIntegrationConfig, data: RefundData
    ) -> RefundResult:
        """
        Refund a PaymentIntent.

        The original PaymentIntent is always retrieved first. Without a
        caller amount the refund carries the intent's full received amount.

        Args:
            config: Tenant integration config
            data: Refund data; transaction_id is the PaymentIntent ID

        Returns:
            RefundResult with the refund amount in major units

        Raises:
            ProviderCallError: Stripe rejected or failed the refund
        """
        credentials = self._credentials(config)
        secret_key = get_credential(credentials, "client_secret")
        self._configure_stripe()

        # Never reuse the charge's key
        idempotency_key = IdempotencyKeyGenerator.generate("rf", data.transaction_id)
        log_context = {
            "transaction_id": data.transaction_id,
            "idempotency_key": idempotency_key,
            "tenant_id": config.tenant_id,
        }

        intent = self._call(
            "refund_payment",
            lambda: stripe.PaymentIntent.retrieve(
                data.transaction_id, **self._request_options(secret_key)
            ),
            retryable=True,
            log_context=log_context,
        )

        if data.amount is not None:
            amount_cents = to_minor_units(data.amount)
        else:
            amount_cents = getattr(intent, "amount_received", None) or intent.amount

        refund_params: dict[str, Any] = {
            "payment_intent": data.transaction_id,
            "amount": amount_cents,
            "metadata": dict(data.metadata),
        }
        if data.reason in STRIPE_REFUND_REASONS:
            refund_params["reason"] = data.reason
        elif data.reason:
            refund_params["metadata"]["reason"] = data.reason

        refund = self._call(
            "refund_payment",
            lambda: stripe.Refund.create(
                **refund_params,
                **self._request_options(secret_key, idempotency_key),
            ),
            retryable=True,
            log_context={**log_context, "amount_cents": amount_cents},
        )

        return RefundResult(
            refund_id=refund.id,
            status=REFUND_STATUS_MAP.get(refund.status, PaymentStatus.FAILED),
            amount=from_minor_units(refund.amount),
            currency=refund.currency.upper(),
            transaction_id=data.transaction_id,
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _translate_error(self, operation: str, error: Exception) -> ProviderCallError:
        """
        Translate Stripe exceptions to ProviderCallError.

        Rate limits, connection errors and Stripe server errors are marked
        retryable; card declines and invalid requests are permanent.
        """
        if not isinstance(error, stripe.StripeError):
            return super()._translate_error(operation, error)

        status_code = getattr(error, "http_status", None)
        code = getattr(error, "code", None)

        if isinstance(error, stripe.CardError):
            detail = str(error.user_message or error)
            retryable = False
        elif isinstance(error, stripe.RateLimitError):
            detail = "Stripe rate limit exceeded. Please retry."
            retryable = True
        elif isinstance(error, stripe.APIConnectionError):
            detail = "Could not connect to Stripe. Please retry."
            retryable = True
        elif isinstance(error, stripe.AuthenticationError):
            self.get_logger().critical(
                "Stripe authentication failed - check tenant credentials",
                extra={"operation": operation, "provider": self.provider},
            )
            detail = "Stripe authentication failed"
            retryable = False
        elif isinstance(error, stripe.APIError):
            detail = "Stripe service error. Please retry."
            retryable = True
        else:
            detail = str(error.user_message or error)
            retryable = False

        call_error = self.call_error(
            operation,
            detail,
            status_code=status_code,
            is_retryable=retryable,
        )
        if code:
            call_error.details["stripe_code"] = code
        decline_code = getattr(error, "decline_code", None)
        if decline_code:
            call_error.details["decline_code"] = decline_code
        return call_error
