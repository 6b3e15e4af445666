from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query

from enrollment_api.dependencies import get_registrations_service
from enrollment_api.domain.dtos import (
    AddStagesRequest,
    CancelRegistrationRequest,
    CreateAdminRegistrationRequest,
    CreateRegistrationRequest,
    PaymentView,
    ReactivatePaymentRequest,
    RegistrationCreateResponse,
    RegistrationSummary,
    SyncResult,
    UpdateAdminRegistrationRequest,
)
from enrollment_api.domain.errors import NotFoundError
from enrollment_api.domain.models import Registration
from enrollment_api.services.registrations_service import RegistrationsService
from enrollment_api.utils.security import verify_bearer_token

router = APIRouter(prefix="/api/registrations")
logger = logging.getLogger(__name__)


def _summary(registration: Registration) -> RegistrationSummary:
    return RegistrationSummary.model_validate(registration, from_attributes=True)


@router.post("", response_model=RegistrationCreateResponse, dependencies=[Depends(verify_bearer_token)])
async def create_registration(
    request: CreateRegistrationRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> RegistrationCreateResponse:
    registration, payment = await service.create_registration(request)
    return RegistrationCreateResponse(registration=_summary(registration), payment=payment)


@router.post("/admin", response_model=RegistrationSummary, dependencies=[Depends(verify_bearer_token)])
async def create_admin_registration(
    request: CreateAdminRegistrationRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> RegistrationSummary:
    registration = await service.create_admin_registration(request)
    return _summary(registration)


@router.put(
    "/{registration_id}/admin",
    response_model=RegistrationSummary,
    dependencies=[Depends(verify_bearer_token)],
)
async def update_admin_registration(
    registration_id: str,
    request: UpdateAdminRegistrationRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> RegistrationSummary:
    registration = await service.update_admin_registration(registration_id, request)
    return _summary(registration)


@router.get("/overdue-payments", response_model=list[PaymentView], dependencies=[Depends(verify_bearer_token)])
async def list_overdue_payments(
    registration_id: str | None = Query(default=None),
    service: RegistrationsService = Depends(get_registrations_service),
) -> list[PaymentView]:
    return await service.list_overdue_payments(registration_id)


@router.post(
    "/payments/{payment_id}/reactivate",
    response_model=PaymentView,
    dependencies=[Depends(verify_bearer_token)],
)
async def reactivate_overdue_payment(
    payment_id: str,
    request: ReactivatePaymentRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> PaymentView:
    return await service.reactivate_overdue_payment(payment_id, request.due_date)


@router.post(
    "/{registration_id}/stages",
    response_model=RegistrationCreateResponse,
    dependencies=[Depends(verify_bearer_token)],
)
async def add_stages(
    registration_id: str,
    request: AddStagesRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> RegistrationCreateResponse:
    registration, payment = await service.add_stages_to_registration(registration_id, request)
    return RegistrationCreateResponse(registration=_summary(registration), payment=payment)


@router.post(
    "/{registration_id}/cancel",
    response_model=RegistrationSummary,
    dependencies=[Depends(verify_bearer_token)],
)
async def cancel_registration(
    registration_id: str,
    request: CancelRegistrationRequest,
    service: RegistrationsService = Depends(get_registrations_service),
) -> RegistrationSummary:
    registration = await service.cancel_registration(registration_id, request.reason)
    return _summary(registration)


@router.get(
    "/{registration_id}/payments",
    response_model=list[PaymentView],
    dependencies=[Depends(verify_bearer_token)],
)
async def get_payment_data(
    registration_id: str,
    service: RegistrationsService = Depends(get_registrations_service),
) -> list[PaymentView]:
    return await service.get_payment_data(registration_id)


@router.post(
    "/{registration_id}/sync-payment",
    response_model=SyncResult,
    dependencies=[Depends(verify_bearer_token)],
)
async def sync_payment(
    registration_id: str,
    service: RegistrationsService = Depends(get_registrations_service),
) -> SyncResult:
    payments = await service.sync_payment_status_from_asaas(registration_id)
    return SyncResult(registration_id=registration_id, payments=payments)


# Buyer's browser lands here after a card checkout, so no bearer token
@router.get("/{registration_id}/payment-callback")
async def payment_callback(
    registration_id: str,
    service: RegistrationsService = Depends(get_registrations_service),
) -> dict[str, Any]:
    registration = await service.handle_payment_callback(registration_id)
    if registration is None:
        raise NotFoundError("registration not found")
    logger.info(
        "payment callback received",
        extra={"registration_id": registration_id, "payment_status": registration.payment_status.value},
    )
    return {
        "registration_id": registration.id,
        "status": registration.status.value,
        "payment_status": registration.payment_status.value,
        "payment_status_display": registration.payment_status.display_name,
    }
