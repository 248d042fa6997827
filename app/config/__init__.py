# =============================================================================
# Django Project Configuration Package
# =============================================================================
# This package contains the Django settings for the payment integration
# core. There is no URL, ASGI or WSGI surface; callers use the services in
# the integrations app directly.
# =============================================================================
