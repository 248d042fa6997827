"""
End-to-end tests for tenant payment routing.

These tests drive PaymentService with real adapters and mock only the
provider boundary (Stripe SDK resources, HTTP responses).

Tests cover:
- Connection tests for card credentials
- Wallet payment capture through the router
- Rejection of unknown providers and unsupported capabilities
- Amount round-trips and full refunds for every provider
- A tenant stored in the database with encrypted credentials
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from integrations.exceptions import (
    CapabilityNotSupportedError,
    UnsupportedProviderError,
)
from integrations.services import PaymentService, default_adapters
from integrations.tests.factories import PaymentIntegrationFactory
from integrations.types import (
    CreateTerminalCheckoutData,
    PaymentIntegrationConfig,
    PaymentProvider,
    PaymentStatus,
    ProcessPaymentData,
    RefundData,
)


class PlainVault:
    """Vault for configs whose credentials are stored unencrypted."""

    def decrypt(self, blob):
        return dict(blob or {})


class InMemoryConfigStore:
    def __init__(self, **configs):
        self.configs = configs
        self.tested = []

    def get_payment_config(self, tenant_id):
        return self.configs.get(tenant_id)

    def mark_tested(self, tenant_id, success, error=None):
        self.tested.append((tenant_id, success, error))


def http_response(status_code, payload):
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    response.content = json.dumps(payload).encode()
    response.json.return_value = payload
    return response


def router(**configs):
    return PaymentService(
        adapters=default_adapters(PlainVault()),
        config_store=InMemoryConfigStore(**configs),
    )


CARD_CREDENTIALS = {"clientId": "ck_test_abcdefgh", "clientSecret": "cs_test_abcdefgh"}
WALLET_CREDENTIALS = {"clientId": "wallet-client-id", "clientSecret": "wallet-client-secret"}
TERMINAL_CREDENTIALS = {"accessToken": "EAAA-token", "applicationId": "app-1", "locationId": "L1"}


def card_config(credentials=None):
    return PaymentIntegrationConfig(
        provider="card", enabled=True, credentials=credentials or CARD_CREDENTIALS
    )


def wallet_config():
    return PaymentIntegrationConfig(
        provider="wallet",
        enabled=True,
        credentials=WALLET_CREDENTIALS,
        settings={"testMode": True},
    )


def terminal_config():
    return PaymentIntegrationConfig(
        provider="terminal-pos",
        enabled=True,
        credentials=TERMINAL_CREDENTIALS,
        settings={"testMode": True},
    )


# =============================================================================
# Scenarios
# =============================================================================


class TestPaymentScenarios:
    """Router scenarios against real adapters."""

    def test_card_connection_succeeds(self):
        """Should accept well-formed card credentials."""
        service = router(t1=card_config())

        with patch("stripe.PaymentIntent") as mock_intent:
            result = service.test_connection("t1")

        assert result.success is True
        assert result.error is None
        mock_intent.assert_not_called()
        assert service.config_store.tested == [("t1", True, None)]

    def test_card_connection_rejects_short_key(self):
        """Should fail the format check before any network call."""
        service = router(t1=card_config({"clientId": "short"}))

        with patch.object(requests.Session, "request") as mock_request:
            result = service.test_connection("t1")

        assert result.success is False
        assert result.error == "Invalid Stripe credentials format"
        mock_request.assert_not_called()

    def test_wallet_payment_completes(self):
        """Should report a completed capture as succeeded."""
        service = router(t1=wallet_config())
        responses = [
            http_response(200, {"access_token": "A21AA"}),
            http_response(201, {"id": "ORDER-1", "status": "CREATED"}),
            http_response(
                201,
                {
                    "id": "ORDER-1",
                    "status": "COMPLETED",
                    "purchase_units": [
                        {"payments": {"captures": [{"id": "CAP-1", "status": "COMPLETED"}]}}
                    ],
                },
            ),
        ]

        with patch.object(requests.Session, "request", side_effect=responses) as mock_request:
            result = service.process_payment(
                "t1",
                ProcessPaymentData(invoice_id="inv_1", amount=Decimal("25.00"), currency="USD"),
            )

        assert result.status == PaymentStatus.SUCCEEDED
        assert result.transaction_id == "CAP-1"
        order_body = mock_request.call_args_list[1].kwargs["json"]
        assert order_body["purchase_units"][0]["amount"]["value"] == "25.00"

    def test_unknown_provider_never_reaches_adapter(self):
        """Should reject an unrecognized provider string."""
        adapters = {provider: MagicMock() for provider in PaymentProvider.values}
        service = PaymentService(
            adapters=adapters,
            config_store=InMemoryConfigStore(
                t1=PaymentIntegrationConfig(provider="unknown", enabled=True, credentials={})
            ),
        )

        with pytest.raises(UnsupportedProviderError):
            service.process_payment(
                "t1",
                ProcessPaymentData(
                    invoice_id="inv_1", amount=Decimal("1.00"), currency="USD", source_id="x"
                ),
            )

        for adapter in adapters.values():
            assert adapter.mock_calls == []

    def test_card_tenant_cannot_use_terminal(self):
        """Should name the configured provider in the capability error."""
        service = router(t1=card_config())

        with pytest.raises(CapabilityNotSupportedError) as exc_info:
            service.create_terminal_checkout(
                "t1",
                CreateTerminalCheckoutData(
                    amount=Decimal("10.00"), currency="USD", invoice_id="inv_1", device_id="dev_1"
                ),
            )

        assert "card" in exc_info.value.message


# =============================================================================
# Amount Round-Trips
# =============================================================================


class TestAmountRoundTrip:
    """19.99 must survive each provider's native encoding."""

    @pytest.fixture
    def payment_data(self):
        return ProcessPaymentData(
            invoice_id="inv_1", amount=19.99, currency="USD", source_id="tok_1"
        )

    def test_card(self, payment_data):
        service = router(t1=card_config())

        with patch("stripe.PaymentIntent") as mock_intent:
            mock_intent.create.return_value = MagicMock(
                id="pi_1",
                status="succeeded",
                application_fee_amount=None,
                payment_method_types=["card"],
            )
            result = service.process_payment("t1", payment_data)

        sent = mock_intent.create.call_args.kwargs["amount"]
        assert sent == 1999
        assert Decimal(sent) / 100 == Decimal("19.99")
        assert result.amount == Decimal("19.99")

    def test_wallet(self, payment_data):
        service = router(t1=wallet_config())
        responses = [
            http_response(200, {"access_token": "A21AA"}),
            http_response(201, {"id": "ORDER-1"}),
            http_response(201, {"id": "ORDER-1", "status": "COMPLETED"}),
        ]

        with patch.object(requests.Session, "request", side_effect=responses) as mock_request:
            service.process_payment("t1", payment_data)

        value = mock_request.call_args_list[1].kwargs["json"]["purchase_units"][0]["amount"]["value"]
        assert value == "19.99"
        assert Decimal(value) == Decimal("19.99")

    def test_terminal(self, payment_data):
        service = router(t1=terminal_config())
        payment = {"payment": {"id": "pay_1", "status": "COMPLETED", "source_type": "CARD"}}

        with patch.object(
            requests.Session, "request", return_value=http_response(200, payment)
        ) as mock_request:
            service.process_payment("t1", payment_data)

        sent = mock_request.call_args.kwargs["json"]["amount_money"]["amount"]
        assert sent == 1999
        assert Decimal(sent) / 100 == Decimal("19.99")


# =============================================================================
# Full Refunds
# =============================================================================


class TestFullRefund:
    """Refunds without an amount must refund the original captured total."""

    def test_card(self):
        service = router(t1=card_config())

        with patch("stripe.PaymentIntent") as mock_intent, patch("stripe.Refund") as mock_refund:
            mock_intent.retrieve.return_value = MagicMock(amount=4321, amount_received=4321)
            mock_refund.create.return_value = MagicMock(
                id="re_1", status="succeeded", amount=4321, currency="usd"
            )
            result = service.refund_payment("t1", RefundData(transaction_id="pi_1"))

        assert mock_refund.create.call_args.kwargs["amount"] == 4321
        assert result.amount == Decimal("43.21")

    def test_wallet_omits_amount(self):
        service = router(t1=wallet_config())
        responses = [
            http_response(200, {"access_token": "A21AA"}),
            http_response(200, {"id": "CAP-1", "amount": {"currency_code": "USD", "value": "43.21"}}),
            http_response(201, {"id": "RF-1", "status": "COMPLETED"}),
        ]

        with patch.object(requests.Session, "request", side_effect=responses) as mock_request:
            result = service.refund_payment("t1", RefundData(transaction_id="CAP-1"))

        assert "amount" not in mock_request.call_args_list[2].kwargs["json"]
        assert result.amount == Decimal("43.21")

    def test_terminal(self):
        service = router(t1=terminal_config())
        responses = [
            http_response(
                200,
                {"payment": {"id": "pay_1", "total_money": {"amount": 4321, "currency": "USD"}}},
            ),
            http_response(
                200,
                {
                    "refund": {
                        "id": "rf_1",
                        "status": "COMPLETED",
                        "amount_money": {"amount": 4321, "currency": "USD"},
                    }
                },
            ),
        ]

        with patch.object(requests.Session, "request", side_effect=responses) as mock_request:
            result = service.refund_payment("t1", RefundData(transaction_id="pay_1"))

        assert mock_request.call_args_list[1].kwargs["json"]["amount_money"]["amount"] == 4321
        assert result.amount == Decimal("43.21")


# =============================================================================
# Stored Tenant Configuration
# =============================================================================


@pytest.mark.django_db
class TestStoredIntegration:
    """Routing for tenants stored with encrypted credentials."""

    def test_terminal_checkout_for_stored_tenant(self):
        """Should decrypt credentials and push the checkout to the device."""
        integration = PaymentIntegrationFactory(square=True)
        checkout = {
            "checkout": {
                "id": "chk_1",
                "status": "IN_PROGRESS",
                "device_options": {"device_id": "dev_1"},
            }
        }

        with patch.object(
            requests.Session, "request", return_value=http_response(200, checkout)
        ) as mock_request:
            result = PaymentService().create_terminal_checkout(
                integration.tenant_id,
                CreateTerminalCheckoutData(
                    amount=Decimal("42.00"), currency="USD", invoice_id="inv_1", device_id="dev_1"
                ),
            )

        assert result.checkout_id == "chk_1"
        assert result.status == "pending"
        method, url = mock_request.call_args.args
        assert method == "POST"
        assert url == "https://connect.squareupsandbox.com/v2/terminals/checkouts"

    def test_connection_test_is_recorded(self):
        integration = PaymentIntegrationFactory(
            plain_credentials={"client_id": "pk_short", "client_secret": "sk_test_1234567890"}
        )

        result = PaymentService().test_connection(integration.tenant_id)

        integration.refresh_from_db()
        assert result.success is False
        assert integration.last_test_succeeded is False
        assert integration.last_error == "Invalid Stripe credentials format"
