from __future__ import annotations

from enrollment_api.config import Settings

from .base import PaymentGateway


def get_gateway(settings: Settings) -> PaymentGateway:
    """Return the payment gateway client configured for this deployment."""
    from .asaas import AsaasGateway

    return AsaasGateway(settings)
