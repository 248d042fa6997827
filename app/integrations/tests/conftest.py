"""
Pytest fixtures for payment integration tests.

Usage:
    def test_routes_to_square(square_integration, payment_service):
        result = payment_service.process_payment(
            square_integration.tenant_id, data
        )
"""

import pytest

from integrations.services import PaymentService
from integrations.tests.factories import PaymentIntegrationFactory


# =============================================================================
# Integration Fixtures
# =============================================================================


@pytest.fixture
def card_integration(db):
    """Create an enabled Stripe integration."""
    return PaymentIntegrationFactory()


@pytest.fixture
def wallet_integration(db):
    """Create an enabled PayPal integration."""
    return PaymentIntegrationFactory(paypal=True)


@pytest.fixture
def square_integration(db):
    """Create an enabled Square integration."""
    return PaymentIntegrationFactory(square=True)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def payment_service():
    """PaymentService wired to the database config store and Fernet vault."""
    return PaymentService()
