"""
Payment integration exceptions.

This module provides the error taxonomy shared by the payment router and
the provider adapters.

Exception Hierarchy:
    PaymentError (base for payment integrations)
    ├── ConfigurationError - No payment integration configured for tenant
    ├── DisabledIntegrationError - Integration exists but is turned off
    ├── UnsupportedProviderError - Provider string matches no adapter
    ├── CapabilityNotSupportedError - Operation not offered by provider
    ├── CredentialError - Required credential fields missing or malformed
    ├── PaymentValidationError - Caller data rejected before any call
    └── ProviderCallError - External call failed (always provider-prefixed)
        └── ProviderNotFoundError - Provider reported unknown resource

Propagation:
    Adapters catch every SDK/HTTP exception at their boundary and raise
    ProviderCallError with a human-readable message. The router never
    catches adapter errors; they reach the caller with their kind intact.

Usage:
    from integrations.exceptions import PaymentError, ProviderCallError

    try:
        result = payment_service.process_payment(tenant_id, data)
    except ProviderCallError as e:
        if e.is_retryable:
            schedule_retry(same_idempotency_key=data.idempotency_key)
        else:
            show_error(e.message)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any


class PaymentError(BaseApplicationError):
    """
    Base exception for all payment integration errors.

    Example:
        try:
            payment_service.refund_payment(tenant_id, refund_data)
        except PaymentError as e:
            logger.error(f"Refund failed: {e}")
            return e.to_dict()
    """

    default_error_code: str = "PAYMENT_ERROR"


# =============================================================================
# Router Errors
# =============================================================================


class ConfigurationError(PaymentError):
    """
    No payment integration is configured for the tenant.

    is_configured() treats this as a normal negative result; the action
    methods raise it.
    """

    default_error_code: str = "PAYMENT_NOT_CONFIGURED"


class DisabledIntegrationError(PaymentError):
    """Payment integration exists but has been disabled by the tenant."""

    default_error_code: str = "PAYMENT_INTEGRATION_DISABLED"


class UnsupportedProviderError(PaymentError):
    """The configured provider string matches no registered adapter."""

    default_error_code: str = "PAYMENT_PROVIDER_UNSUPPORTED"


class CapabilityNotSupportedError(PaymentError):
    """
    The configured provider does not offer the requested operation.

    Example:
        Terminal checkouts on a tenant configured with the card provider.
    """

    default_error_code: str = "PAYMENT_CAPABILITY_NOT_SUPPORTED"


class CredentialError(PaymentError):
    """
    Required credential fields are missing or malformed.

    Always raised before any network call is attempted.
    """

    default_error_code: str = "PAYMENT_CREDENTIALS_INVALID"


class PaymentValidationError(PaymentError):
    """
    Caller-supplied payment data was rejected before reaching the provider.

    Use for:
    - Missing tokenized source for online charges
    - Missing device ID for terminal charges
    - Non-positive or unparseable amounts
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderCallError(PaymentError, ExternalServiceError):
    """
    An external provider call failed or returned a non-success status.

    The message is always prefixed with the provider and the operation,
    followed by the best detail extracted from the provider's payload,
    e.g. "Square refund failed: Payment not found".

    Attributes:
        provider: Provider enum value (card, wallet, terminal-pos)
        operation: Adapter operation that failed
        is_retryable: Whether a retry with the same idempotency key may succeed
        status_code: HTTP status returned by the provider, if any
    """

    default_error_code: str = "PAYMENT_PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        operation: str | None = None,
        is_retryable: bool = False,
        status_code: int | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider:
            details["provider"] = provider
        if operation:
            details["operation"] = operation
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider = provider
        self.operation = operation
        self.is_retryable = is_retryable
        self.status_code = status_code


class ProviderNotFoundError(ProviderCallError):
    """
    The provider reported that the referenced resource does not exist.

    Example:
        Refund requested against an unknown transaction ID.
    """

    default_error_code: str = "PAYMENT_PROVIDER_NOT_FOUND"


__all__ = [
    "PaymentError",
    "ConfigurationError",
    "DisabledIntegrationError",
    "UnsupportedProviderError",
    "CapabilityNotSupportedError",
    "CredentialError",
    "PaymentValidationError",
    "ProviderCallError",
    "ProviderNotFoundError",
]
