"""
Shared harness for payment provider adapters.

Every adapter translates the internal payment contract to one provider's
API. This module holds the plumbing they all share so that each adapter
only contains provider-specific request building and response mapping:

- Enabled check, credential decryption and required-field checks (before any network call)
- Structured logging with timing metrics around every provider call
- Retry of transient failures, reusing the same idempotency key
- Translation of SDK/HTTP exceptions into ProviderCallError
- Per-call requests.Session construction for REST providers

Configuration (via settings):
- PAYMENT_PROVIDER_TIMEOUT_SECONDS: HTTP timeout per request (default: 10)
- PAYMENT_PROVIDER_MAX_RETRIES: Retries for transient failures (default: 2)

Usage:
    class ExampleAdapter(PaymentAdapter):
        provider = "example"
        display_name = "Example"
        required_credentials = ("api_key",)

        def process_payment(self, config, data):
            credentials = self._credentials(config)
            return self._call(
                "process_payment",
                lambda: self._charge(credentials, data),
                retryable=True,
            )
"""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import requests
from django.conf import settings

from integrations.credentials import (
    CredentialVault,
    FernetCredentialVault,
    missing_credentials,
)
from integrations.exceptions import (
    CredentialError,
    DisabledIntegrationError,
    PaymentError,
    ProviderCallError,
    ProviderNotFoundError,
)

if TYPE_CHECKING:
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

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})

# Human-readable operation names used in error messages
OPERATION_LABELS = {
    "test_connection": "connection test",
    "process_payment": "payment",
    "refund_payment": "refund",
    "create_terminal_checkout": "terminal checkout",
    "get_terminal_checkout_status": "terminal checkout lookup",
    "cancel_terminal_checkout": "terminal checkout cancellation",
    "create_customer": "customer creation",
    "create_subscription": "subscription creation",
    "update_subscription": "subscription update",
    "cancel_subscription": "subscription cancellation",
    "get_subscription_status": "subscription lookup",
    "save_card_for_customer": "card save",
}


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """
    Check if a payment error is transient.

    Args:
        error: The exception to check

    Returns:
        True if retrying with the same idempotency key may succeed
    """
    if isinstance(error, ProviderCallError):
        return error.is_retryable
    return False


def backoff_delay(attempt: int, base: float = 0.5, max_delay: float = 8.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds
        max_delay: Maximum delay in seconds before jitter

    Returns:
        Delay in seconds with 0-25% jitter

    Example:
        # Attempt 0: 0.5 - 0.625 seconds
        # Attempt 1: 1.0 - 1.25 seconds
        delay = backoff_delay(attempt=1)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


def response_json(response: requests.Response) -> dict[str, Any]:
    """Decode a JSON object body, returning {} for empty or non-JSON bodies."""
    if not response.content:
        return {}
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


# =============================================================================
# Base Adapter
# =============================================================================


class PaymentAdapter:
    """
    Base class for provider adapters.

    Adapters hold no per-tenant state: credentials are decrypted for each
    call and every provider client or HTTP session is built per call, so
    one adapter instance is safe to share between tenants and threads.

    Class attributes:
        provider: Provider enum value this adapter serves
        display_name: Provider name used in log lines and error messages
        required_credentials: Credential fields that must be non-empty
        supports_terminal: Whether terminal checkouts are available
    """

    provider: str = ""
    display_name: str = ""
    required_credentials: tuple[str, ...] = ()
    supports_terminal: bool = False

    def __init__(self, vault: CredentialVault | None = None):
        """
        Initialize adapter.

        Args:
            vault: Credential vault; defaults to FernetCredentialVault
        """
        self._vault = vault

    @property
    def vault(self) -> CredentialVault:
        if self._vault is None:
            self._vault = FernetCredentialVault()
        return self._vault

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Payment Contract
    # =========================================================================

    def test_connection(self, config: PaymentIntegrationConfig) -> TestConnectionResult:
        raise NotImplementedError

    def process_payment(
        self, config: PaymentIntegrationConfig, data: ProcessPaymentData
    ) -> ProcessPaymentResult:
        raise NotImplementedError

    def refund_payment(
        self, config: PaymentIntegrationConfig, data: RefundData
    ) -> RefundResult:
        raise NotImplementedError

    def create_terminal_checkout(
        self, config: PaymentIntegrationConfig, data: CreateTerminalCheckoutData
    ) -> TerminalCheckout:
        raise NotImplementedError

    def get_terminal_checkout_status(
        self, config: PaymentIntegrationConfig, checkout_id: str
    ) -> TerminalCheckout:
        raise NotImplementedError

    # =========================================================================
    # Credentials
    # =========================================================================

    def _credentials(
        self,
        config: PaymentIntegrationConfig,
        required: tuple[str, ...] | None = None,
    ) -> dict[str, str]:
        """
        Decrypt credentials and check required fields.

        Args:
            config: Tenant integration config
            required: Fields to require (defaults to required_credentials)

        Returns:
            Decrypted credential map, valid for this call only

        Raises:
            DisabledIntegrationError: If the integration is disabled
            CredentialError: If decryption fails or fields are missing
        """
        if not config.enabled:
            raise DisabledIntegrationError(
                f"{self.display_name} integration is disabled",
                details={"tenant_id": config.tenant_id, "provider": self.provider},
            )

        credentials = self.vault.decrypt(config.credentials)
        required = self.required_credentials if required is None else required
        missing = missing_credentials(credentials, required)
        if missing:
            raise CredentialError(
                f"{self.display_name} credentials are incomplete: "
                f"missing {', '.join(missing)}",
                details={"provider": self.provider, "missing": missing},
            )
        return credentials

    # =========================================================================
    # Call Harness
    # =========================================================================

    def _call(
        self,
        operation: str,
        func: Callable[[], T],
        retryable: bool = False,
        log_context: dict[str, Any] | None = None,
    ) -> T:
        """
        Run one provider call with logging, retries and error translation.

        Args:
            operation: Adapter operation name (process_payment, refund_payment, ...)
            func: Zero-argument callable performing the provider request.
                Idempotency keys must be resolved before this is called so
                retries reuse them.
            retryable: Whether transient failures may be retried. Only
                reads and idempotency-keyed writes qualify.
            log_context: Extra non-sensitive fields for log lines

        Returns:
            Whatever func returns

        Raises:
            ProviderCallError: When the call fails after any retries
        """
        logger = self.get_logger()
        log_context = {
            "operation": operation,
            "provider": self.provider,
            **(log_context or {}),
        }
        max_retries = (
            getattr(settings, "PAYMENT_PROVIDER_MAX_RETRIES", 2) if retryable else 0
        )

        start_time = time.time()
        logger.info(f"Starting {self.display_name} operation", extra=log_context)

        attempt = 0
        while True:
            try:
                result = func()
            except PaymentError as e:
                error = e
            except Exception as e:
                error = self._translate_error(operation, e)
                error.__cause__ = e
            else:
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"{self.display_name} operation completed",
                    extra={**log_context, "duration_ms": duration_ms, "attempts": attempt + 1},
                )
                return result

            if is_retryable(error) and attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.warning(
                    f"Transient {self.display_name} error, retrying",
                    extra={**log_context, "attempt": attempt + 1, "delay": delay},
                )
                time.sleep(delay)
                attempt += 1
                continue

            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"{self.display_name} operation failed: {error.message}",
                extra={
                    **log_context,
                    "duration_ms": duration_ms,
                    "error_code": error.error_code,
                },
            )
            raise error

    def _translate_error(self, operation: str, error: Exception) -> ProviderCallError:
        """
        Convert an SDK or transport exception into a ProviderCallError.

        Subclasses extend this for SDK-specific exception classes.
        """
        if isinstance(error, (requests.ConnectionError, requests.Timeout)):
            return self.call_error(
                operation,
                f"Could not connect to {self.display_name}",
                is_retryable=True,
            )
        return self.call_error(operation, str(error) or type(error).__name__)

    def call_error(
        self,
        operation: str,
        detail: str,
        status_code: int | None = None,
        is_retryable: bool = False,
        error_code: str | None = None,
    ) -> ProviderCallError:
        """
        Build a provider-prefixed error, e.g. "Square refund failed: Not found".
        """
        label = OPERATION_LABELS.get(operation, operation.replace("_", " "))
        error_class = ProviderNotFoundError if status_code == 404 else ProviderCallError
        return error_class(
            f"{self.display_name} {label} failed: {detail}",
            provider=self.provider,
            operation=operation,
            is_retryable=is_retryable,
            status_code=status_code,
            error_code=error_code,
        )

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    @staticmethod
    def _timeout() -> float:
        return getattr(settings, "PAYMENT_PROVIDER_TIMEOUT_SECONDS", 10)

    def _session(self, headers: dict[str, str] | None = None) -> requests.Session:
        """Build a fresh session for one call; callers close it with a with block."""
        session = requests.Session()
        session.headers.update({"Content-Type": "application/json"})
        if headers:
            session.headers.update(headers)
        return session

    def _request(
        self,
        session: requests.Session,
        method: str,
        url: str,
        operation: str,
        expected: tuple[int, ...] = (200,),
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Send one HTTP request and return its JSON body.

        Raises:
            ProviderCallError: If the status is not in expected. The message
                carries the detail extracted by error_detail().
        """
        response = session.request(method, url, timeout=self._timeout(), **kwargs)
        payload = response_json(response)
        if response.status_code not in expected:
            detail = self.error_detail(payload) or f"HTTP {response.status_code}"
            raise self.call_error(
                operation,
                detail,
                status_code=response.status_code,
                is_retryable=response.status_code in RETRYABLE_STATUS_CODES,
            )
        return payload

    def error_detail(self, payload: dict[str, Any]) -> str:
        """
        Extract the most useful human-readable detail from an error payload.

        Each provider nests error detail differently; adapters override this.
        """
        return str(payload.get("message") or "")
