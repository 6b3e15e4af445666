from __future__ import annotations

from enum import Enum


class RegistrationStatus(str, Enum):
    """Enrollment eligibility of a registration."""

    PENDING = "pending"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class InscriptionType(str, Enum):
    """Whether a registration covers the whole season or selected stages."""

    SEASON = "por_temporada"
    STAGE = "por_etapa"


class PaymentMethod(str, Enum):
    """Billing instrument chosen at creation, or an administrative marker."""

    PIX = "pix"
    CREDIT_CARD = "cartao_credito"
    ADMIN_EXEMPT = "admin_exempt"
    ADMIN_DIRECT = "admin_direct"


class BillingType(str, Enum):
    """Billing types accepted by the gateway."""

    PIX = "PIX"
    CREDIT_CARD = "CREDIT_CARD"

    @classmethod
    def from_payment_method(cls, method: PaymentMethod | str) -> "BillingType":
        value = method.value if isinstance(method, PaymentMethod) else str(method)
        if value == PaymentMethod.CREDIT_CARD.value:
            return cls.CREDIT_CARD
        return cls.PIX


class AdminPaymentStatus(str, Enum):
    """Payment statuses an administrator may assign directly."""

    EXEMPT = "exempt"
    DIRECT_PAYMENT = "direct_payment"
