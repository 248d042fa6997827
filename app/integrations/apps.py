"""
Integrations app configuration.

This app provides the tenant payment integration layer:
- Per-tenant payment provider configuration
- Provider adapters (Stripe, PayPal, Square)
- Payment routing by configured provider
"""

from django.apps import AppConfig


class IntegrationsConfig(AppConfig):
    """Configuration for the integrations application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "integrations"
    verbose_name = "Integrations"
