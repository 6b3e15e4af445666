from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import uuid4

from .enums import InscriptionType, PaymentMethod, RegistrationStatus
from .statuses import PaymentStatus


def new_id() -> str:
    return str(uuid4())


# Reasons written by reconciliation; any other reason means a manual cancellation
REFUND_REASON = "payment refunded"
CANCEL_REASON = "payment cancelled"
DERIVED_CANCELLATION_REASONS = frozenset({REFUND_REASON, CANCEL_REASON})


@dataclass
class Registration:
    """Enrollment of one user in one season."""

    user_id: str
    season_id: str
    amount: Decimal
    inscription_type: InscriptionType = InscriptionType.SEASON
    payment_method: PaymentMethod | None = None
    status: RegistrationStatus = RegistrationStatus.PAYMENT_PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    id: str = field(default_factory=new_id)
    payment_date: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.amount = Decimal(str(self.amount))
        self.inscription_type = InscriptionType(self.inscription_type)
        self.status = RegistrationStatus(self.status)
        self.payment_status = PaymentStatus(self.payment_status)
        if self.payment_method is not None:
            self.payment_method = PaymentMethod(self.payment_method)

    @property
    def is_administrative(self) -> bool:
        return self.payment_status.is_administrative

    @property
    def is_manually_cancelled(self) -> bool:
        return (
            self.status == RegistrationStatus.CANCELLED
            and self.cancellation_reason not in DERIVED_CANCELLATION_REASONS
        )


@dataclass
class PaymentRecord:
    """One billable gateway instrument: a single charge or one installment of a plan."""

    registration_id: str
    external_payment_id: str
    billing_type: str
    value: Decimal
    due_date: str
    status: str = "PENDING"
    external_installment_plan_id: str | None = None
    external_customer_id: str | None = None
    net_value: Decimal | None = None
    installment_number: int | None = None
    installment_count: int | None = None
    description: str | None = None
    invoice_url: str | None = None
    bank_slip_url: str | None = None
    payment_link: str | None = None
    pix_qr_code: str | None = None
    pix_copy_paste: str | None = None
    payment_date: datetime | None = None
    client_payment_date: datetime | None = None
    raw_response: dict[str, Any] | None = None
    webhook_data: dict[str, Any] | None = None
    id: str = field(default_factory=new_id)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.value = Decimal(str(self.value))
        if self.net_value is not None:
            self.net_value = Decimal(str(self.net_value))


@dataclass
class RegistrationCategory:
    registration_id: str
    category_id: str
    id: str = field(default_factory=new_id)
    created_at: datetime | None = None


@dataclass
class RegistrationStage:
    registration_id: str
    stage_id: str
    id: str = field(default_factory=new_id)
    created_at: datetime | None = None


@dataclass
class User:
    id: str
    name: str
    email: str
    document: str | None = None


@dataclass
class Championship:
    id: str
    name: str
    split_enabled: bool = False
    commission_absorbed_by_championship: bool = False
    platform_commission_percentage: Decimal | None = None
    asaas_wallet_id: str | None = None


@dataclass
class PaymentCondition:
    """Price and billing rules for one inscription type."""

    type: InscriptionType
    value: Decimal
    enabled: bool = True
    payment_methods: list[str] | None = None
    pix_installments: int | None = None
    credit_card_installments: int | None = None

    def __post_init__(self) -> None:
        self.type = InscriptionType(self.type)
        self.value = Decimal(str(self.value))


@dataclass
class Season:
    id: str
    championship_id: str
    name: str
    inscription_value: Decimal = Decimal("0")
    registration_open: bool = False
    payment_methods: list[str] = field(default_factory=lambda: [PaymentMethod.PIX.value])
    pix_installments: int = 1
    credit_card_installments: int = 1
    payment_conditions: list[PaymentCondition] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.inscription_value = Decimal(str(self.inscription_value))
        self.payment_conditions = [
            c if isinstance(c, PaymentCondition) else PaymentCondition(**c)
            for c in (self.payment_conditions or [])
        ]

    def condition_for(self, inscription_type: InscriptionType) -> PaymentCondition | None:
        for condition in self.payment_conditions:
            if condition.enabled and condition.type == inscription_type:
                return condition
        return None

    def unit_price(self, inscription_type: InscriptionType) -> Decimal:
        condition = self.condition_for(inscription_type)
        if condition is not None:
            return condition.value
        return self.inscription_value

    def payment_methods_for(self, inscription_type: InscriptionType) -> list[str]:
        condition = self.condition_for(inscription_type)
        if condition is not None and condition.payment_methods:
            return list(condition.payment_methods)
        return list(self.payment_methods)

    def max_installments(self, method: PaymentMethod, inscription_type: InscriptionType) -> int:
        condition = self.condition_for(inscription_type)
        if method == PaymentMethod.CREDIT_CARD:
            if condition is not None and condition.credit_card_installments:
                return condition.credit_card_installments
            return self.credit_card_installments
        if condition is not None and condition.pix_installments:
            return condition.pix_installments
        return self.pix_installments


@dataclass
class Category:
    id: str
    season_id: str
    name: str


@dataclass
class Stage:
    id: str
    season_id: str
    name: str
