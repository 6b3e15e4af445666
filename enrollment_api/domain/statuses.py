from __future__ import annotations

from enum import Enum


class PaymentStatus(str, Enum):
    """Money state of a registration, derived from its payment records."""

    PENDING = "pending"
    PROCESSING = "processing"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXEMPT = "exempt"
    DIRECT_PAYMENT = "direct_payment"

    @property
    def is_administrative(self) -> bool:
        return self in ADMINISTRATIVE_PAYMENT_STATUSES

    @property
    def display_name(self) -> str:
        """Human-friendly label matching business glossary."""

        mapping = {
            PaymentStatus.PENDING: "PENDENTE",
            PaymentStatus.PROCESSING: "PROCESSANDO",
            PaymentStatus.PAID: "PAGO",
            PaymentStatus.FAILED: "FALHOU",
            PaymentStatus.CANCELLED: "CANCELADO",
            PaymentStatus.REFUNDED: "REEMBOLSADO",
            PaymentStatus.EXEMPT: "ISENTO",
            PaymentStatus.DIRECT_PAYMENT: "PAGAMENTO_DIRETO",
        }
        return mapping.get(self, self.value)


ADMINISTRATIVE_PAYMENT_STATUSES = frozenset({PaymentStatus.EXEMPT, PaymentStatus.DIRECT_PAYMENT})


class GatewayPaymentStatus(str, Enum):
    """Known Asaas charge statuses.

    Payment records store the gateway status verbatim as a string; this enum only
    names the values the reconciliation rules look at.
    """

    PENDING = "PENDING"
    RECEIVED = "RECEIVED"
    CONFIRMED = "CONFIRMED"
    OVERDUE = "OVERDUE"
    REFUNDED = "REFUNDED"
    RECEIVED_IN_CASH = "RECEIVED_IN_CASH"
    REFUND_REQUESTED = "REFUND_REQUESTED"
    REFUND_IN_PROGRESS = "REFUND_IN_PROGRESS"
    CHARGEBACK_REQUESTED = "CHARGEBACK_REQUESTED"
    CHARGEBACK_DISPUTE = "CHARGEBACK_DISPUTE"
    AWAITING_CHARGEBACK_REVERSAL = "AWAITING_CHARGEBACK_REVERSAL"
    DUNNING_REQUESTED = "DUNNING_REQUESTED"
    DUNNING_RECEIVED = "DUNNING_RECEIVED"
    AWAITING_RISK_ANALYSIS = "AWAITING_RISK_ANALYSIS"


PAID_STATUSES = frozenset(
    {
        GatewayPaymentStatus.RECEIVED.value,
        GatewayPaymentStatus.CONFIRMED.value,
        GatewayPaymentStatus.RECEIVED_IN_CASH.value,
    }
)
REFUNDED_STATUSES = frozenset({GatewayPaymentStatus.REFUNDED.value})
CANCELLING_STATUSES = frozenset(
    {
        GatewayPaymentStatus.REFUND_REQUESTED.value,
        GatewayPaymentStatus.REFUND_IN_PROGRESS.value,
    }
)
FAILED_STATUSES = frozenset(
    {
        GatewayPaymentStatus.OVERDUE.value,
        GatewayPaymentStatus.AWAITING_RISK_ANALYSIS.value,
    }
)
# Charges that can still be cancelled at the gateway
OPEN_STATUSES = frozenset(
    {
        GatewayPaymentStatus.PENDING.value,
        GatewayPaymentStatus.OVERDUE.value,
    }
)
