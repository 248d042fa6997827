"""
PayPal adapter for the wallet payment provider.

This module provides the PayPalAdapter class which implements the payment
contract for tenants configured with the "wallet" provider, using the
PayPal REST API (Orders v2 and Payments v2) over requests.

Order lifecycle:
    create order (intent=CAPTURE) → capture order

Both calls are made inside process_payment and kept as two separate
provider calls. The buyer-approval redirect between them is not
implemented; see DESIGN.md.

Amounts are sent as decimal strings fixed to two places ("25.00").

Credentials (decrypted per call):
- client_id: REST app client ID (clientId accepted)
- client_secret: REST app secret (clientSecret accepted)

Settings (per tenant):
- test_mode: Use the sandbox environment
- webhook_url: Base URL for the order return/cancel URLs

Configuration (via settings):
- PAYPAL_BRAND_NAME: Brand shown on the PayPal checkout page
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: HTTP timeout (default: 10)
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings

from integrations.adapters.base import PaymentAdapter
from integrations.credentials import get_credential
from integrations.exceptions import CredentialError
from integrations.money import from_decimal_string, to_decimal_string
from integrations.types import (
    PaymentProvider,
    PaymentStatus,
    ProcessPaymentResult,
    RefundResult,
    TestConnectionResult,
)

if TYPE_CHECKING:
    import requests

    from integrations.types import (
        PaymentIntegrationConfig,
        ProcessPaymentData,
        RefundData,
    )

SANDBOX_BASE_URL = "https://api-m.sandbox.paypal.com"
LIVE_BASE_URL = "https://api-m.paypal.com"

MIN_KEY_LENGTH = 10

STATUS_MAP = {
    "COMPLETED": PaymentStatus.SUCCEEDED,
    "PENDING": PaymentStatus.PENDING,
}


class PayPalAdapter(PaymentAdapter):
    """
    Wallet provider adapter backed by the PayPal REST API.

    A fresh OAuth2 access token and HTTP session are obtained for every
    call; nothing is cached between tenants.
    """

    provider = PaymentProvider.WALLET
    display_name = "PayPal"
    required_credentials = ("client_id", "client_secret")

    def base_url(self, config: PaymentIntegrationConfig) -> str:
        return SANDBOX_BASE_URL if config.test_mode else LIVE_BASE_URL

    # =========================================================================
    # Core Operations
    # =========================================================================

    def test_connection(self, config: PaymentIntegrationConfig) -> TestConnectionResult:
        """Validate credential shape without a network round-trip."""
        try:
            credentials = self._credentials(config, required=())
        except CredentialError as e:
            return TestConnectionResult(success=False, error=e.message)

        client_id = get_credential(credentials, "client_id")
        client_secret = get_credential(credentials, "client_secret")

        if not client_id and not client_secret:
            return TestConnectionResult(
                success=False,
                error="PayPal client ID and client secret are required",
            )
        if len(client_id) < MIN_KEY_LENGTH or len(client_secret) < MIN_KEY_LENGTH:
            return TestConnectionResult(
                success=False,
                error="Invalid PayPal credentials format",
            )
        return TestConnectionResult(success=True)

    def process_payment(
        self, config: PaymentIntegrationConfig, data: ProcessPaymentData
    ) -> ProcessPaymentResult:
        """
        Create a PayPal order and capture it immediately.

        Args:
            config: Tenant integration config
            data: Payment data

        Returns:
            ProcessPaymentResult with the capture ID (or the order ID when
            PayPal returns no capture) as transaction_id

        Raises:
            CredentialError: Credentials missing or undecryptable
            ProviderCallError: Order creation or capture failed
        """
        credentials = self._credentials(config)
        base_url = self.base_url(config)
        with self._session() as session:
            operation = "process_payment"
            log_context = {"invoice_id": data.invoice_id, "tenant_id": config.tenant_id}

            self._authorize(session, base_url, credentials, operation)

            webhook_url = (config.setting("webhook_url") or "").rstrip("/")
            order_body = {
                "intent": "CAPTURE",
                "purchase_units": [
                    {
                        "reference_id": data.invoice_id,
                        "custom_id": data.invoice_id,
                        "description": data.description
                        or f"Payment for invoice {data.invoice_id}",
                        "amount": {
                            "currency_code": data.currency.upper(),
                            "value": to_decimal_string(data.amount),
                        },
                    }
                ],
                "application_context": {
                    "brand_name": getattr(settings, "PAYPAL_BRAND_NAME", ""),
                    "landing_page": "NO_PREFERENCE",
                    "user_action": "PAY_NOW",
                    "return_url": f"{webhook_url}/paypal/return",
                    "cancel_url": f"{webhook_url}/paypal/cancel",
                },
            }

            order = self._call(
                operation,
                lambda: self._request(
                    session,
                    "POST",
                    f"{base_url}/v2/checkout/orders",
                    operation,
                    expected=(201,),
                    json=order_body,
                    headers={"Prefer": "return=representation"},
                ),
                log_context={**log_context, "step": "create_order"},
            )
            order_id = order.get("id")
            if not order_id:
                raise self.call_error(operation, "PayPal order ID not returned")

            captured = self._call(
                operation,
                lambda: self._request(
                    session,
                    "POST",
                    f"{base_url}/v2/checkout/orders/{order_id}/capture",
                    operation,
                    expected=(201,),
                    json={},
                    headers={"Prefer": "return=representation"},
                ),
                log_context={**log_context, "step": "capture_order", "order_id": order_id},
            )

            capture = self._first_capture(captured)
            return ProcessPaymentResult(
                transaction_id=capture.get("id") or order_id,
                status=STATUS_MAP.get(captured.get("status", ""), PaymentStatus.FAILED),
                payment_method="paypal",
                amount=data.amount,
                currency=data.currency,
                metadata={**data.metadata, "invoice_id": data.invoice_id, "order_id": order_id},
            )

    def refund_payment(
        self, config: PaymentIntegrationConfig, data: RefundData
    ) -> RefundResult:
        """
        Refund a PayPal capture.

        The capture is looked up first to learn its currency. The refund body
        carries an amount only for partial refunds; omitting it asks PayPal
        to refund the remaining captured total.

        Args:
            config: Tenant integration config
            data: Refund data; transaction_id is the capture ID

        Returns:
            RefundResult

        Raises:
            ProviderNotFoundError: Capture does not exist
            ProviderCallError: Lookup or refund failed
        """
        credentials = self._credentials(config)
        base_url = self.base_url(config)
        with self._session() as session:
            operation = "refund_payment"
            log_context = {"transaction_id": data.transaction_id, "tenant_id": config.tenant_id}

            self._authorize(session, base_url, credentials, operation)

            capture_url = f"{base_url}/v2/payments/captures/{data.transaction_id}"
            capture = self._call(
                operation,
                lambda: self._request(session, "GET", capture_url, operation, expected=(200,)),
                retryable=True,
                log_context={**log_context, "step": "get_capture"},
            )
            captured_amount = capture.get("amount") or {}
            currency = captured_amount.get("currency_code") or "USD"

            refund_body: dict[str, Any] = {"note_to_payer": data.reason or "Refund request"}
            if data.amount is not None:
                refund_body["amount"] = {
                    "value": to_decimal_string(data.amount),
                    "currency_code": currency,
                }

            refund = self._call(
                operation,
                lambda: self._request(
                    session,
                    "POST",
                    f"{capture_url}/refund",
                    operation,
                    expected=(201,),
                    json=refund_body,
                    headers={"Prefer": "return=representation"},
                ),
                log_context={**log_context, "step": "refund_capture"},
            )

            refunded = refund.get("amount") or {}
            amount = (
                from_decimal_string(refunded.get("value"))
                or data.amount
                or from_decimal_string(captured_amount.get("value"))
                or Decimal("0.00")
            )
            return RefundResult(
                refund_id=refund.get("id", ""),
                status=STATUS_MAP.get(refund.get("status", ""), PaymentStatus.FAILED),
                amount=amount,
                currency=(refunded.get("currency_code") or currency).upper(),
                transaction_id=data.transaction_id,
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _authorize(
        self,
        session: requests.Session,
        base_url: str,
        credentials: dict[str, str],
        operation: str,
    ) -> None:
        """Fetch a client-credentials token and attach it to the session."""
        client_id = get_credential(credentials, "client_id")
        client_secret = get_credential(credentials, "client_secret")

        token = self._call(
            operation,
            lambda: self._request(
                session,
                "POST",
                f"{base_url}/v1/oauth2/token",
                operation,
                expected=(200,),
                auth=(client_id, client_secret),
                data={"grant_type": "client_credentials"},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            ),
            retryable=True,
            log_context={"step": "oauth_token"},
        )
        access_token = token.get("access_token")
        if not access_token:
            raise self.call_error(operation, "PayPal access token not returned")
        session.headers["Authorization"] = f"Bearer {access_token}"

    @staticmethod
    def _first_capture(order: dict[str, Any]) -> dict[str, Any]:
        """Unwrap purchase_units[0].payments.captures[0], or {} if absent."""
        units = order.get("purchase_units") or [{}]
        captures = (units[0].get("payments") or {}).get("captures") or [{}]
        return captures[0]

    def error_detail(self, payload: dict[str, Any]) -> str:
        """
        Unwrap PayPal's error payloads.

        REST errors: {"message": ..., "details": [{"issue": ..., "description": ...}]}
        OAuth errors: {"error": ..., "error_description": ...}
        """
        if payload.get("error_description"):
            return str(payload["error_description"])
        message = str(payload.get("message") or "")
        issues = [
            str(item.get("description") or item.get("issue"))
            for item in payload.get("details") or []
            if item.get("description") or item.get("issue")
        ]
        if issues:
            return f"{message}: {'; '.join(issues)}" if message else "; ".join(issues)
        return message
