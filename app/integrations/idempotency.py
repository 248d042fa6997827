"""
Idempotency keys for provider API calls.

Idempotency keys are the only cross-call correctness mechanism in the
payment core: the provider, not local locking, deduplicates retried
requests that share a key. Rules:

- A retried charge must reuse the key of the failed attempt.
- A semantically distinct operation (e.g. a refund following a charge)
  must mint a new key.
- Card and terminal-pos providers cap keys at 45 characters. Caller keys
  longer than that are truncated, never rejected, and truncation is a
  pure prefix cut so the same input always yields the same key.

Configuration (via settings):
- PAYMENT_IDEMPOTENCY_KEY_MAX_LENGTH: Provider key length limit (default: 45)

Usage:
    from integrations.idempotency import IdempotencyKeyGenerator

    key = IdempotencyKeyGenerator.resolve(
        data.idempotency_key,
        operation="pay",
        entity_id=data.invoice_id,
    )
"""

from __future__ import annotations

import uuid

from django.conf import settings

DEFAULT_MAX_LENGTH = 45


class IdempotencyKeyGenerator:
    """
    Generate and bound idempotency keys.

    Generated format: "{operation}-{entity_prefix}-{random}"

    The entity prefix keeps keys traceable to the invoice or transaction
    they belong to; the random component makes every logical operation
    distinct.

    Example:
        IdempotencyKeyGenerator.generate("rf", "pi_3Nabcdefgh")
        # "rf-pi_3Nabc-9f1c2d3e4b5a697887a6b5c4"
    """

    @staticmethod
    def max_length() -> int:
        return getattr(settings, "PAYMENT_IDEMPOTENCY_KEY_MAX_LENGTH", DEFAULT_MAX_LENGTH)

    @classmethod
    def bound(cls, key: str) -> str:
        """
        Truncate a key to the provider limit.

        Args:
            key: Caller-supplied or generated key

        Returns:
            The key itself, or its first max_length characters
        """
        return key[: cls.max_length()]

    @classmethod
    def generate(cls, operation: str, entity_id: str | None = None) -> str:
        """
        Generate a fresh key for a new logical operation.

        Args:
            operation: Short operation prefix (pay, rf, term, sub)
            entity_id: Invoice, transaction or customer ID the key belongs to

        Returns:
            Key no longer than max_length
        """
        token = uuid.uuid4().hex[:24]
        parts = [operation]
        if entity_id:
            parts.append(str(entity_id)[:8])
        parts.append(token)
        return cls.bound("-".join(parts))

    @classmethod
    def resolve(
        cls,
        idempotency_key: str | None,
        operation: str,
        entity_id: str | None = None,
    ) -> str:
        """
        Use the caller's key when given (truncated), otherwise generate one.

        Args:
            idempotency_key: Caller-supplied key, reused across retries
            operation: Operation prefix for a generated key
            entity_id: Entity ID for a generated key

        Returns:
            Key no longer than max_length
        """
        if idempotency_key:
            return cls.bound(idempotency_key)
        return cls.generate(operation, entity_id)
