from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from enrollment_api.config import Settings
from enrollment_api.domain.dtos import PaymentView
from enrollment_api.domain.models import PaymentRecord
from enrollment_api.providers.base import GatewayPayment, PixQrCode


def default_due_date(settings: Settings, today: date | None = None) -> str:
    """Charges fall due ``payment_due_days`` after today, as YYYY-MM-DD."""
    base = today or datetime.now(timezone.utc).date()
    return (base + timedelta(days=settings.payment_due_days)).isoformat()


def parse_gateway_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def embedded_qr_code(payment: GatewayPayment) -> PixQrCode | None:
    data = payment.qr_code or {}
    if data.get("encodedImage") and data.get("payload"):
        return PixQrCode.from_payload(data)
    return None


def record_from_gateway(
    payment: GatewayPayment,
    *,
    registration_id: str,
    billing_type: str,
    customer_id: str | None = None,
    plan_id: str | None = None,
    installment_count: int | None = None,
    qr_code: PixQrCode | None = None,
    fallback_due_date: str | None = None,
) -> PaymentRecord:
    return PaymentRecord(
        registration_id=registration_id,
        external_payment_id=payment.id,
        external_installment_plan_id=plan_id or payment.installment,
        external_customer_id=customer_id or payment.customer,
        billing_type=payment.billing_type or billing_type,
        status=payment.status or "PENDING",
        value=payment.value if payment.value is not None else Decimal("0"),
        net_value=payment.net_value,
        due_date=payment.due_date or fallback_due_date or "",
        installment_number=payment.installment_number,
        installment_count=installment_count,
        description=payment.description,
        invoice_url=payment.invoice_url,
        bank_slip_url=payment.bank_slip_url,
        payment_link=payment.payment_link,
        pix_qr_code=qr_code.encoded_image if qr_code else None,
        pix_copy_paste=qr_code.payload if qr_code else None,
        payment_date=parse_gateway_datetime(payment.payment_date),
        client_payment_date=parse_gateway_datetime(payment.client_payment_date),
        raw_response=dict(payment.raw),
    )


def merge_gateway_state(
    record: PaymentRecord,
    *,
    status: str | None,
    payment_date: Any,
    client_payment_date: Any,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Patch that applies a webhook (or a re-fetched charge) to a stored record.

    Dates absent from the incoming payload keep their stored values.
    """
    return {
        "status": status or record.status,
        "payment_date": parse_gateway_datetime(payment_date) or record.payment_date,
        "client_payment_date": parse_gateway_datetime(client_payment_date) or record.client_payment_date,
        "webhook_data": {**(record.webhook_data or {}), **payload},
    }


def payment_view(record: PaymentRecord) -> PaymentView:
    return PaymentView(
        id=record.id,
        registration_id=record.registration_id,
        billing_type=record.billing_type,
        value=record.value,
        due_date=record.due_date,
        status=record.status,
        installment_number=record.installment_number,
        installment_count=record.installment_count,
        invoice_url=record.invoice_url,
        bank_slip_url=record.bank_slip_url,
        payment_link=record.payment_link or record.invoice_url,
        pix_qr_code=record.pix_qr_code,
        pix_copy_paste=record.pix_copy_paste,
    )


def view_sort_key(view: PaymentView) -> tuple[int, int, str]:
    """Numbered installments first, in order, then by due date."""
    if view.installment_number is None:
        return (1, 0, view.due_date)
    return (0, view.installment_number, view.due_date)
