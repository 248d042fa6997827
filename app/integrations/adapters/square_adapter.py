"""
Square adapter for the terminal-pos payment provider.

This module provides the SquareAdapter class which implements the payment
contract for tenants configured with the "terminal-pos" provider, using the
Square REST API over requests. It has the widest capability surface of the
adapters:

- Online card payments from Web Payments SDK nonces
- In-person payments pushed to a Square Terminal device
- Terminal checkout status lookup and cancellation
- Customers, saved cards and subscriptions (direct calls only; these are
  not part of the routed payment contract)

Amounts are integer cents. Python ints are unbounded, so large amounts are
sent without loss.

Credentials (decrypted per call):
- access_token: OAuth or personal access token (accessToken accepted)
- application_id: Application ID (applicationId accepted)
- location_id: Location that takes the payment; may also be a tenant setting

Configuration (via settings):
- SQUARE_API_VERSION: Value of the Square-Version header
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: HTTP timeout (default: 10)
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone
from django.utils.dateparse import parse_datetime, parse_duration

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
    CreateTerminalCheckoutData,
    CustomerResult,
    PaymentMethodType,
    PaymentProvider,
    PaymentStatus,
    ProcessPaymentResult,
    RefundResult,
    SavedCard,
    Subscription,
    SubscriptionPhase,
    TerminalCheckout,
    TerminalCheckoutStatus,
    TestConnectionResult,
)

if TYPE_CHECKING:
    from decimal import Decimal

    import requests

    from integrations.types import (
        CreateCustomerData,
        CreateSubscriptionData,
        PaymentIntegrationConfig,
        ProcessPaymentData,
        RefundData,
        UpdateSubscriptionData,
    )

SANDBOX_BASE_URL = "https://connect.squareupsandbox.com"
PRODUCTION_BASE_URL = "https://connect.squareup.com"

PAYMENT_STATUS_MAP = {
    "COMPLETED": PaymentStatus.SUCCEEDED,
    "APPROVED": PaymentStatus.PENDING,
    "PENDING": PaymentStatus.PENDING,
}

# Anything not listed maps to PENDING, never to COMPLETED
TERMINAL_CHECKOUT_STATUS_MAP = {
    "PENDING": TerminalCheckoutStatus.PENDING,
    "IN_PROGRESS": TerminalCheckoutStatus.PENDING,
    "CANCEL_REQUESTED": TerminalCheckoutStatus.CANCELED,
    "CANCELED": TerminalCheckoutStatus.CANCELED,
    "COMPLETED": TerminalCheckoutStatus.COMPLETED,
    "FAILED": TerminalCheckoutStatus.FAILED,
}

ONLINE_SOURCE_REQUIRED = (
    "Square requires a card nonce (source_id) from the Square Web Payments SDK "
    "for online payments. Tokenize card data on the frontend with the Web "
    "Payments SDK and pass the resulting nonce. In sandbox, Square's test card "
    "nonces can be used. For in-person payments, use payment_method_type "
    '"terminal" with a device_id.'
)

SCOPE_GUIDANCE = (
    " Please ensure your Square access token has the required OAuth scopes: "
    "MERCHANT_PROFILE_READ, PAYMENTS_READ, and PAYMENTS_WRITE. Check your "
    "Square Developer Dashboard to verify token permissions."
)


def map_terminal_checkout_status(status: str | None) -> str:
    """Map a Square checkout status onto the four-value local status."""
    return TERMINAL_CHECKOUT_STATUS_MAP.get(
        (status or "").upper(), TerminalCheckoutStatus.PENDING
    )


class SquareAdapter(PaymentAdapter):
    """
    Terminal-pos provider adapter backed by the Square REST API.

    Every call builds its own authenticated session; the access token is
    never stored on the adapter.
    """

    provider = PaymentProvider.TERMINAL_POS
    display_name = "Square"
    required_credentials = ("access_token",)
    supports_terminal = True

    def base_url(self, config: PaymentIntegrationConfig) -> str:
        return SANDBOX_BASE_URL if config.test_mode else PRODUCTION_BASE_URL

    def _client(
        self, config: PaymentIntegrationConfig, credentials: dict[str, str]
    ) -> requests.Session:
        return self._session(
            {
                "Authorization": f"Bearer {get_credential(credentials, 'access_token')}",
                "Square-Version": getattr(settings, "SQUARE_API_VERSION", ""),
                "Accept": "application/json",
            }
        )

    def _location_id(
        self, config: PaymentIntegrationConfig, credentials: dict[str, str]
    ) -> str:
        location_id = get_credential(credentials, "location_id") or config.setting(
            "location_id", ""
        )
        if not location_id:
            raise CredentialError(
                "Square credentials are incomplete: missing location_id",
                details={"provider": self.provider, "missing": ["location_id"]},
            )
        return location_id

    def _send(
        self,
        config: PaymentIntegrationConfig,
        session: requests.Session,
        operation: str,
        method: str,
        path: str,
        retryable: bool = False,
        log_context: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Run one Square request through the call harness."""
        url = f"{self.base_url(config)}{path}"
        return self._call(
            operation,
            lambda: self._request(session, method, url, operation, **kwargs),
            retryable=retryable,
            log_context={"tenant_id": config.tenant_id, **(log_context or {})},
        )

    def _unwrap(self, payload: dict[str, Any], key: str, operation: str) -> dict[str, Any]:
        """Return payload[key] or fail when Square returned no such object."""
        value = payload.get(key)
        if not value:
            raise self.call_error(operation, f"No {key} returned")
        return value

    # =========================================================================
    # Core Operations
    # =========================================================================

    def test_connection(self, config: PaymentIntegrationConfig) -> TestConnectionResult:
        """
        Probe the merchants endpoint, falling back to the locations endpoint.

        The merchants endpoint needs MERCHANT_PROFILE_READ, which not every
        token has, so a failing or empty merchant listing is retried against
        locations before the test is reported as failed.
        """
        try:
            credentials = self._credentials(config, required=())
        except CredentialError as e:
            return TestConnectionResult(success=False, error=e.message)

        if not get_credential(credentials, "access_token"):
            return TestConnectionResult(success=False, error="Access token is required")

        with self._client(config, credentials) as session:
            operation = "test_connection"
            merchant_error: ProviderCallError | None = None

            try:
                merchants = self._send(config, session, operation, "GET", "/v2/merchants", retryable=True)
                if merchants.get("merchant") or merchants.get("merchants"):
                    return TestConnectionResult(success=True)
            except ProviderCallError as e:
                merchant_error = e
                self.get_logger().warning(
                    "Square merchants API failed, trying locations API",
                    extra={"operation": operation, "tenant_id": config.tenant_id},
                )

            try:
                locations = self._send(config, session, operation, "GET", "/v2/locations", retryable=True)
            except ProviderCallError as e:
                return self._connection_failure(merchant_error or e)
            if locations.get("locations"):
                return TestConnectionResult(success=True)

            if merchant_error is not None:
                return self._connection_failure(merchant_error)
            return TestConnectionResult(
                success=False,
                error=(
                    "Failed to retrieve merchant or location information. Please "
                    "verify your access token has the correct permissions."
                ),
            )

    @staticmethod
    def _connection_failure(error: ProviderCallError) -> TestConnectionResult:
        message = error.message
        if "authorized" in message.lower():
            message += SCOPE_GUIDANCE
        return TestConnectionResult(success=False, error=message)

    def process_payment(
        self, config: PaymentIntegrationConfig, data: ProcessPaymentData
    ) -> ProcessPaymentResult:
        """
        Take an online card payment or push a checkout to a terminal.

        Args:
            config: Tenant integration config
            data: Payment data. online requires source_id (a Web Payments SDK
                nonce); terminal requires device_id.

        Returns:
            ProcessPaymentResult. Terminal payments come back pending with
            the checkout ID as transaction_id; completion arrives out-of-band.

        Raises:
            PaymentValidationError: Required source_id or device_id missing
            CredentialError: Credentials incomplete
            ProviderCallError: Square rejected or failed the request
        """
        if data.payment_method_type == PaymentMethodType.TERMINAL:
            return self._process_terminal_payment(config, data)

        if not data.source_id:
            raise PaymentValidationError(
                ONLINE_SOURCE_REQUIRED, details={"invoice_id": data.invoice_id}
            )

        credentials = self._credentials(config, required=("access_token", "application_id"))
        location_id = self._location_id(config, credentials)
        with self._client(config, credentials) as session:

            amount_cents = to_minor_units(data.amount)
            idempotency_key = IdempotencyKeyGenerator.resolve(
                data.idempotency_key, operation="pay", entity_id=data.invoice_id
            )
            body: dict[str, Any] = {
                "source_id": data.source_id,
                "idempotency_key": idempotency_key,
                "amount_money": {"amount": amount_cents, "currency": data.currency.upper()},
                "location_id": location_id,
                "reference_id": data.invoice_id,
                "note": data.description or f"Payment for invoice {data.invoice_id}",
            }
            if data.customer_id:
                body["customer_id"] = data.customer_id

            operation = "process_payment"
            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/payments",
                retryable=True,
                log_context={
                    "invoice_id": data.invoice_id,
                    "amount_cents": amount_cents,
                    "idempotency_key": idempotency_key,
                },
                json=body,
            )
            payment = self._unwrap(response, "payment", operation)

            return ProcessPaymentResult(
                transaction_id=payment.get("id", ""),
                status=PAYMENT_STATUS_MAP.get(payment.get("status", ""), PaymentStatus.FAILED),
                payment_method=(payment.get("source_type") or "card").lower(),
                amount=data.amount,
                currency=data.currency,
                fee=self._processing_fee(payment),
                metadata={**data.metadata, "invoice_id": data.invoice_id, "location_id": location_id},
            )

    def _process_terminal_payment(
        self, config: PaymentIntegrationConfig, data: ProcessPaymentData
    ) -> ProcessPaymentResult:
        if not data.device_id:
            raise PaymentValidationError(
                "Device ID is required for terminal payments",
                details={"invoice_id": data.invoice_id},
            )

        checkout = self.create_terminal_checkout(
            config,
            CreateTerminalCheckoutData(
                amount=data.amount,
                currency=data.currency,
                invoice_id=data.invoice_id,
                device_id=data.device_id,
                customer_id=data.customer_id,
                description=data.description,
                metadata=data.metadata,
                idempotency_key=data.idempotency_key,
            ),
        )
        status = (
            PaymentStatus.SUCCEEDED
            if checkout.status == TerminalCheckoutStatus.COMPLETED
            else PaymentStatus.PENDING
        )
        return ProcessPaymentResult(
            transaction_id=checkout.checkout_id,
            status=status,
            payment_method="terminal",
            amount=data.amount,
            currency=data.currency,
            metadata={
                **data.metadata,
                "checkout_id": checkout.checkout_id,
                "device_id": checkout.device_id or "",
                "invoice_id": data.invoice_id,
            },
        )

    @staticmethod
    def _processing_fee(payment: dict[str, Any]) -> Decimal | None:
        fees = payment.get("processing_fee") or []
        if not fees:
            return None
        return from_minor_units(
            sum(int((fee.get("amount_money") or {}).get("amount") or 0) for fee in fees)
        )

    def refund_payment(
        self, config: PaymentIntegrationConfig, data: RefundData
    ) -> RefundResult:
        """
        Refund a Square payment.

        The payment is always looked up first; without a caller amount the
        refund carries the payment's total_money amount.

        Raises:
            ProviderNotFoundError: Payment does not exist
            ProviderCallError: Lookup or refund failed
        """
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "refund_payment"
            log_context = {"transaction_id": data.transaction_id}

            response = self._send(
                config,
                session,
                operation,
                "GET",
                f"/v2/payments/{data.transaction_id}",
                retryable=True,
                log_context=log_context,
            )
            payment = self._unwrap(response, "payment", operation)
            total_money = payment.get("total_money") or {}
            currency = total_money.get("currency") or "USD"

            if data.amount is not None:
                amount_cents = to_minor_units(data.amount)
            elif total_money.get("amount"):
                amount_cents = int(total_money["amount"])
            else:
                raise self.call_error(operation, "Payment has no total_money amount")

            idempotency_key = IdempotencyKeyGenerator.generate("rf", data.transaction_id)
            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/refunds",
                retryable=True,
                log_context={**log_context, "amount_cents": amount_cents, "idempotency_key": idempotency_key},
                json={
                    "idempotency_key": idempotency_key,
                    "payment_id": data.transaction_id,
                    "amount_money": {"amount": amount_cents, "currency": currency},
                    "reason": data.reason or "Customer request",
                },
            )
            refund = self._unwrap(response, "refund", operation)
            refunded = refund.get("amount_money") or {}

            return RefundResult(
                refund_id=refund.get("id", ""),
                status=PAYMENT_STATUS_MAP.get(refund.get("status", ""), PaymentStatus.FAILED),
                amount=from_minor_units(refunded.get("amount")),
                currency=refunded.get("currency") or currency,
                transaction_id=data.transaction_id,
            )

    # =========================================================================
    # Terminal Checkouts
    # =========================================================================

    def create_terminal_checkout(
        self, config: PaymentIntegrationConfig, data: CreateTerminalCheckoutData
    ) -> TerminalCheckout:
        """
        Push a checkout to a Square Terminal device.

        Returns:
            TerminalCheckout, normally pending until the buyer taps, inserts
            or swipes on the device
        """
        credentials = self._credentials(config)
        location_id = self._location_id(config, credentials)
        with self._client(config, credentials) as session:
            operation = "create_terminal_checkout"

            amount_cents = to_minor_units(data.amount)
            idempotency_key = IdempotencyKeyGenerator.resolve(
                data.idempotency_key, operation="term", entity_id=data.invoice_id
            )
            checkout_body: dict[str, Any] = {
                "amount_money": {"amount": amount_cents, "currency": data.currency.upper()},
                "reference_id": data.invoice_id,
                "note": data.description or f"Payment for invoice {data.invoice_id}",
                "location_id": location_id,
                "device_options": {
                    "device_id": data.device_id,
                    "skip_receipt_screen": False,
                    "tip_settings": {"allow_tipping": False},
                },
            }
            if data.customer_id:
                checkout_body["customer_id"] = data.customer_id

            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/terminals/checkouts",
                retryable=True,
                log_context={
                    "invoice_id": data.invoice_id,
                    "device_id": data.device_id,
                    "idempotency_key": idempotency_key,
                },
                json={"idempotency_key": idempotency_key, "checkout": checkout_body},
            )
            checkout = self._unwrap(response, "checkout", operation)
            return self._to_terminal_checkout(checkout)

    def get_terminal_checkout_status(
        self, config: PaymentIntegrationConfig, checkout_id: str
    ) -> TerminalCheckout:
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "get_terminal_checkout_status"

            response = self._send(
                config,
                session,
                operation,
                "GET",
                f"/v2/terminals/checkouts/{checkout_id}",
                retryable=True,
                log_context={"checkout_id": checkout_id},
            )
            checkout = self._unwrap(response, "checkout", operation)
            return self._to_terminal_checkout(checkout, checkout_id)

    def cancel_terminal_checkout(
        self, config: PaymentIntegrationConfig, checkout_id: str
    ) -> TerminalCheckout:
        """Ask the device to cancel a pending checkout."""
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "cancel_terminal_checkout"

            response = self._send(
                config,
                session,
                operation,
                "POST",
                f"/v2/terminals/checkouts/{checkout_id}/cancel",
                retryable=True,
                log_context={"checkout_id": checkout_id},
            )
            checkout = self._unwrap(response, "checkout", operation)
            return self._to_terminal_checkout(checkout, checkout_id)

    @staticmethod
    def _to_terminal_checkout(
        checkout: dict[str, Any], checkout_id: str | None = None
    ) -> TerminalCheckout:
        device_options = checkout.get("device_options") or {}
        return TerminalCheckout(
            checkout_id=checkout.get("id") or checkout_id or "",
            status=map_terminal_checkout_status(checkout.get("status")),
            device_id=device_options.get("device_id"),
            expires_at=_expires_at(checkout),
            payment_ids=list(checkout.get("payment_ids") or []),
        )

    # =========================================================================
    # Customers and Saved Cards
    # =========================================================================

    def create_customer(
        self, config: PaymentIntegrationConfig, data: CreateCustomerData
    ) -> CustomerResult:
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "create_customer"

            body = {
                "idempotency_key": IdempotencyKeyGenerator.generate("cust", data.email),
                "email_address": data.email,
                "given_name": data.given_name,
                "family_name": data.family_name,
                "company_name": data.company_name,
                "phone_number": data.phone_number,
            }
            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/customers",
                retryable=True,
                json={key: value for key, value in body.items() if value},
            )
            customer = self._unwrap(response, "customer", operation)
            return CustomerResult(
                customer_id=customer["id"],
                email=customer.get("email_address") or data.email,
            )

    def save_card_for_customer(
        self, config: PaymentIntegrationConfig, customer_id: str, card_token: str
    ) -> SavedCard:
        """
        Store a card on file for autopay.

        Args:
            config: Tenant integration config
            customer_id: Square customer ID
            card_token: Card nonce from the Web Payments SDK

        Returns:
            SavedCard with the card ID used for subscriptions
        """
        credentials = self._credentials(config)
        self._location_id(config, credentials)
        with self._client(config, credentials) as session:
            operation = "save_card_for_customer"

            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/cards",
                retryable=True,
                log_context={"customer_id": customer_id},
                json={
                    "idempotency_key": IdempotencyKeyGenerator.generate("card", customer_id),
                    "source_id": card_token,
                    "card": {"customer_id": customer_id},
                },
            )
            card = self._unwrap(response, "card", operation)
            return SavedCard(
                card_id=card["id"],
                customer_id=card.get("customer_id") or customer_id,
                last4=card.get("last_4"),
                brand=card.get("card_brand"),
            )

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def create_subscription(
        self, config: PaymentIntegrationConfig, data: CreateSubscriptionData
    ) -> Subscription:
        credentials = self._credentials(config)
        location_id = data.location_id or self._location_id(config, credentials)
        with self._client(config, credentials) as session:
            operation = "create_subscription"

            idempotency_key = IdempotencyKeyGenerator.resolve(
                data.idempotency_key, operation="sub", entity_id=data.customer_id
            )
            body: dict[str, Any] = {
                "idempotency_key": idempotency_key,
                "location_id": location_id,
                "plan_variation_id": data.plan_id,
                "customer_id": data.customer_id,
                "card_id": data.card_id,
            }
            if data.start_date:
                body["start_date"] = data.start_date.isoformat()

            response = self._send(
                config,
                session,
                operation,
                "POST",
                "/v2/subscriptions",
                retryable=True,
                log_context={"customer_id": data.customer_id, "idempotency_key": idempotency_key},
                json=body,
            )
            subscription = self._unwrap(response, "subscription", operation)
            return self._to_subscription(
                subscription,
                default_status="PENDING",
                plan_id=data.plan_id,
                customer_id=data.customer_id,
            )

    def update_subscription(
        self, config: PaymentIntegrationConfig, data: UpdateSubscriptionData
    ) -> Subscription:
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "update_subscription"

            changes: dict[str, Any] = {}
            if data.plan_id:
                changes["plan_variation_id"] = data.plan_id
            if data.card_id:
                changes["card_id"] = data.card_id

            response = self._send(
                config,
                session,
                operation,
                "PUT",
                f"/v2/subscriptions/{data.subscription_id}",
                log_context={"subscription_id": data.subscription_id},
                json={"subscription": changes},
            )
            subscription = self._unwrap(response, "subscription", operation)
            return self._to_subscription(subscription, default_status="ACTIVE")

    def cancel_subscription(
        self, config: PaymentIntegrationConfig, subscription_id: str
    ) -> Subscription:
        """Cancel at the end of the current billing period."""
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "cancel_subscription"

            response = self._send(
                config,
                session,
                operation,
                "POST",
                f"/v2/subscriptions/{subscription_id}/cancel",
                log_context={"subscription_id": subscription_id},
            )
            subscription = self._unwrap(response, "subscription", operation)
            return self._to_subscription(subscription, default_status="CANCELED")

    def get_subscription_status(
        self, config: PaymentIntegrationConfig, subscription_id: str
    ) -> Subscription:
        credentials = self._credentials(config)
        with self._client(config, credentials) as session:
            operation = "get_subscription_status"

            response = self._send(
                config,
                session,
                operation,
                "GET",
                f"/v2/subscriptions/{subscription_id}",
                retryable=True,
                log_context={"subscription_id": subscription_id},
            )
            subscription = self._unwrap(response, "subscription", operation)
            return self._to_subscription(subscription, default_status="UNKNOWN")

    @staticmethod
    def _to_subscription(
        subscription: dict[str, Any],
        default_status: str,
        plan_id: str = "",
        customer_id: str = "",
    ) -> Subscription:
        phases = subscription.get("phases") or []
        current_phase = None
        if phases:
            current_phase = SubscriptionPhase(
                start_date=phases[0].get("start_date") or subscription.get("start_date") or "",
                end_date=phases[0].get("end_date") or subscription.get("canceled_date"),
            )
        return Subscription(
            subscription_id=subscription["id"],
            status=subscription.get("status") or default_status,
            plan_id=subscription.get("plan_variation_id") or subscription.get("plan_id") or plan_id,
            customer_id=subscription.get("customer_id") or customer_id,
            current_phase=current_phase,
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    def error_detail(self, payload: dict[str, Any]) -> str:
        """Join Square's errors[] entries, preferring detail over code."""
        errors = payload.get("errors") or []
        return "; ".join(
            str(error.get("detail") or error.get("message") or error.get("code"))
            for error in errors
            if error.get("detail") or error.get("message") or error.get("code")
        )


def _expires_at(checkout: dict[str, Any]) -> datetime | None:
    """
    Convert the checkout's relative deadline (ISO 8601, e.g. "PT5M") to an
    absolute time, counted from created_at when Square reports it.
    """
    deadline = checkout.get("deadline_duration")
    if not deadline:
        return None
    duration = parse_duration(deadline)
    if duration is None:
        return None
    created_at = parse_datetime(checkout.get("created_at") or "")
    return (created_at or timezone.now()) + duration
