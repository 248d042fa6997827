"""
Integrations app for tenant payment providers.

This app handles:
- Storing each tenant's payment provider configuration
- Testing provider connections
- Routing payments, refunds and terminal checkouts to the configured provider

Usage:
    from integrations.services import PaymentService

    service = PaymentService()
    if service.is_configured(tenant_id):
        result = service.process_payment(tenant_id, payment_data)
"""
