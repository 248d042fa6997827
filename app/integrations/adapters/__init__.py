"""
Payment provider adapters.

Each adapter implements the payment contract (test_connection,
process_payment, refund_payment and, where supported, terminal checkouts)
against one external provider. All tenant payment calls should go through
these adapters to ensure consistent credential handling, error
translation, idempotency, and observability.

Usage:
    from integrations.adapters import SquareAdapter

    adapter = SquareAdapter()
    checkout = adapter.create_terminal_checkout(config, checkout_data)
"""

from integrations.adapters.base import PaymentAdapter, backoff_delay, is_retryable
from integrations.adapters.paypal_adapter import PayPalAdapter
from integrations.adapters.square_adapter import (
    SquareAdapter,
    map_terminal_checkout_status,
)
from integrations.adapters.stripe_adapter import StripeAdapter

__all__ = [
    "PaymentAdapter",
    "PayPalAdapter",
    "SquareAdapter",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable",
    "map_terminal_checkout_status",
]
