from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GatewayModel(BaseModel):
    """Gateway payloads are camelCase and carry more fields than we read."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]):
        return cls.model_validate({**payload, "raw": dict(payload)})


class CustomerProfile(BaseModel):
    """Data sent when creating or updating a gateway customer."""

    name: str
    email: str
    cpf_cnpj: str
    notification_disabled: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "cpfCnpj": self.cpf_cnpj,
            "notificationDisabled": self.notification_disabled,
        }


class CustomerRef(GatewayModel):
    id: str
    name: str | None = None
    email: str | None = None
    cpf_cnpj: str | None = None


class GatewayPayment(GatewayModel):
    """Normalized charge as returned by payment, installment and webhook endpoints."""

    id: str
    status: str | None = None
    customer: str | None = None
    billing_type: str | None = None
    value: Decimal | None = None
    net_value: Decimal | None = None
    due_date: str | None = None
    description: str | None = None
    external_reference: str | None = None
    installment: str | None = None
    installment_number: int | None = None
    invoice_url: str | None = None
    bank_slip_url: str | None = None
    payment_link: str | None = None
    payment_date: str | None = None
    client_payment_date: str | None = None
    deleted: bool = False
    qr_code: dict[str, Any] | None = None


class InstallmentPlan(GatewayModel):
    id: str
    value: Decimal | None = None
    net_value: Decimal | None = None
    payment_value: Decimal | None = None
    installment_count: int | None = None
    billing_type: str | None = None
    description: str | None = None
    external_reference: str | None = None
    customer: str | None = None


class PixQrCode(GatewayModel):
    encoded_image: str
    payload: str
    expiration_date: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway used by the enrollment services."""

    @abstractmethod
    async def upsert_customer(self, profile: CustomerProfile) -> CustomerRef:
        """Find the customer by tax document and update it, or create it."""

    @abstractmethod
    async def create_payment(self, spec: dict[str, Any]) -> GatewayPayment:
        """Create a single charge (or a card charge split in installments)."""

    @abstractmethod
    async def create_installment_plan(self, spec: dict[str, Any]) -> InstallmentPlan:
        """Create a multi-charge installment plan."""

    @abstractmethod
    async def list_installment_payments(self, plan_id: str) -> list[GatewayPayment]:
        """Return the plan's charges ordered by installment number."""

    @abstractmethod
    async def get_payment(self, payment_id: str) -> GatewayPayment:
        """Fetch the current state of a charge."""

    @abstractmethod
    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        """Cancel (delete) a charge at the gateway."""

    @abstractmethod
    async def get_pix_qr_code(self, payment_id: str) -> PixQrCode:
        """Return the PIX QR image and copy-paste payload of a charge."""

    @abstractmethod
    async def update_payment_due_date(self, payment_id: str, due_date: str) -> GatewayPayment:
        """Move the due date of a charge."""

    async def check_connection(self) -> bool:
        """Return True when the gateway answers; implementations may override."""
        return True
