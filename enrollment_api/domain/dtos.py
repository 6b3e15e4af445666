from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import AdminPaymentStatus, InscriptionType, PaymentMethod, RegistrationStatus
from .statuses import PaymentStatus


class CreateRegistrationRequest(BaseModel):
    """Request body for enrolling a user in a season."""

    user_id: str
    season_id: str
    category_ids: list[str] = Field(default_factory=list)
    stage_ids: list[str] = Field(default_factory=list)
    payment_method: PaymentMethod = Field(..., description="Metodo de pagamento: pix|cartao_credito")
    user_document: str = Field("", description="CPF/CNPJ do piloto, com ou sem mascara")
    installments: int = Field(1, ge=1)
    total_amount: Decimal | None = Field(
        default=None,
        description="Valor total ja calculado (inclui taxas dinamicas); usado sem recalculo",
    )
    inscription_type: InscriptionType | None = None


class CreateAdminRegistrationRequest(BaseModel):
    """Request body for an administrative (gateway-free) registration."""

    user_id: str
    season_id: str
    category_ids: list[str] = Field(default_factory=list)
    stage_ids: list[str] = Field(default_factory=list)
    payment_status: AdminPaymentStatus
    amount: Decimal = Field(Decimal("0"), ge=0)
    notes: str | None = None


class UpdateAdminRegistrationRequest(BaseModel):
    """Administrative rewrite of a registration; confirms it as exempt or paid directly."""

    category_ids: list[str] = Field(default_factory=list)
    stage_ids: list[str] = Field(default_factory=list)
    payment_status: AdminPaymentStatus
    amount: Decimal = Field(Decimal("0"), ge=0)
    notes: str | None = None


class AddStagesRequest(BaseModel):
    stage_ids: list[str] = Field(..., min_length=1)
    payment_method: PaymentMethod = PaymentMethod.PIX
    user_document: str = ""
    installments: int = Field(1, ge=1)
    total_amount: Decimal | None = None
    amount: Decimal | None = Field(
        default=None,
        description="Valor adicionado a inscricoes administrativas",
    )


class CancelRegistrationRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class ReactivatePaymentRequest(BaseModel):
    due_date: date


class PaymentView(BaseModel):
    """Charge as presented to the competitor (real or administrative)."""

    id: str
    registration_id: str
    billing_type: str
    value: Decimal
    due_date: str
    status: str
    installment_number: int | None = None
    installment_count: int | None = None
    invoice_url: str | None = None
    bank_slip_url: str | None = None
    payment_link: str | None = None
    pix_qr_code: str | None = None
    pix_copy_paste: str | None = None


class RegistrationSummary(BaseModel):
    id: str
    user_id: str
    season_id: str
    status: RegistrationStatus
    payment_status: PaymentStatus
    amount: Decimal
    inscription_type: InscriptionType
    payment_method: PaymentMethod | None = None
    payment_date: datetime | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None


class RegistrationCreateResponse(BaseModel):
    registration: RegistrationSummary
    payment: PaymentView | None = None


class SyncResult(BaseModel):
    registration_id: str
    payments: list[PaymentView]


class WebhookPaymentData(BaseModel):
    """Payment section of an Asaas webhook delivery."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)
    status: str | None = None
    value: Decimal | None = None
    due_date: str | None = None
    payment_date: str | None = None
    client_payment_date: str | None = None
    installment_number: int | None = None
    installment: str | None = None
    billing_type: str | None = None
    invoice_url: str | None = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    event: str = Field(..., min_length=1)
    payment: WebhookPaymentData


class WebhookResult(BaseModel):
    success: bool = True
    outcome: str
    message: str | None = None


def dump_payload(model: BaseModel) -> dict[str, Any]:
    """Serialize a gateway-shaped model back to its JSON form for audit columns."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)
