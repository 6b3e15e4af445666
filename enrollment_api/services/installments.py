from __future__ import annotations

import logging

from enrollment_api.config import settings
from enrollment_api.domain.enums import BillingType
from enrollment_api.domain.errors import ConflictError, GatewayError, GatewayTransientError
from enrollment_api.domain.models import PaymentRecord
from enrollment_api.providers.base import GatewayPayment, PaymentGateway, PixQrCode
from enrollment_api.repositories.base import Repositories

from .payment_records import default_due_date, embedded_qr_code, record_from_gateway

logger = logging.getLogger(__name__)


async def fetch_qr_code(gateway: PaymentGateway, payment: GatewayPayment) -> PixQrCode | None:
    """Best-effort PIX QR lookup; a gateway failure leaves the charge without a QR."""
    embedded = embedded_qr_code(payment)
    if embedded is not None:
        return embedded
    try:
        return await gateway.get_pix_qr_code(payment.id)
    except GatewayError as exc:
        logger.warning(
            "pix qr code unavailable",
            extra={"external_payment_id": payment.id, "error_code": exc.code, "error": exc.message},
        )
        return None


async def materialize_installment_plan(
    repos: Repositories,
    gateway: PaymentGateway,
    *,
    registration_id: str,
    plan_id: str,
    customer_id: str | None = None,
    installment_count: int | None = None,
    billing_type: str = BillingType.PIX.value,
    installments: list[GatewayPayment] | None = None,
    fallback_due_date: str | None = None,
) -> list[PaymentRecord]:
    """Create a local record for every plan installment not stored yet.

    Safe to call repeatedly; returns the records created by this call. Pass
    ``installments`` when the plan was already fetched. Installments the gateway
    returns without a due date get ``fallback_due_date`` (default: the usual
    charge due date).
    """
    if installments is None:
        installments = await gateway.list_installment_payments(plan_id)
    if not installments:
        raise GatewayTransientError(
            "The installment plan has no charges yet. Please try again.",
            code="empty_installment_plan",
            description=f"installment plan {plan_id} returned no payments",
        )

    count = installment_count or len(installments)
    due_date = fallback_due_date or default_due_date(settings)
    created: list[PaymentRecord] = []
    for payment in installments:
        if await repos.payments.find_one(external_payment_id=payment.id) is not None:
            continue
        qr_code = None
        if (payment.billing_type or billing_type) == BillingType.PIX.value:
            qr_code = await fetch_qr_code(gateway, payment)
        record = record_from_gateway(
            payment,
            registration_id=registration_id,
            billing_type=billing_type,
            customer_id=customer_id,
            plan_id=plan_id,
            installment_count=count,
            qr_code=qr_code,
            fallback_due_date=due_date,
        )
        try:
            created.append(await repos.payments.create(record))
        except ConflictError:
            logger.info(
                "installment already materialized",
                extra={"external_payment_id": payment.id, "installment_plan_id": plan_id},
            )
    logger.info(
        "installment plan materialized",
        extra={
            "registration_id": registration_id,
            "installment_plan_id": plan_id,
            "outcome": f"{len(created)} created",
        },
    )
    return created
