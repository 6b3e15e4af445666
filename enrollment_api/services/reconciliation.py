from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Iterable

from enrollment_api.domain.enums import RegistrationStatus
from enrollment_api.domain.models import CANCEL_REASON, REFUND_REASON, PaymentRecord
from enrollment_api.domain.statuses import (
    CANCELLING_STATUSES,
    FAILED_STATUSES,
    PAID_STATUSES,
    REFUNDED_STATUSES,
    PaymentStatus,
)
from enrollment_api.repositories.base import Repositories


class ReconcileOutcome(str, Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class DerivedStatus:
    payment_status: PaymentStatus
    status: RegistrationStatus
    cancellation_reason: str | None = None

    @property
    def is_cancellation(self) -> bool:
        return self.status == RegistrationStatus.CANCELLED


def derive_status(records: Iterable[PaymentRecord]) -> DerivedStatus:
    """Fold a non-empty set of payment records into one (payment, lifecycle) pair.

    Priority: refunded, cancelling, failed, fully paid, partially paid, pending.
    """
    total_owed = Decimal("0")
    total_paid = Decimal("0")
    any_refunded = any_cancelling = any_failed = False
    all_paid = True
    for record in records:
        total_owed += record.value
        if record.status in PAID_STATUSES:
            total_paid += record.value
        else:
            all_paid = False
        any_refunded = any_refunded or record.status in REFUNDED_STATUSES
        any_cancelling = any_cancelling or record.status in CANCELLING_STATUSES
        any_failed = any_failed or record.status in FAILED_STATUSES

    if any_refunded:
        return DerivedStatus(PaymentStatus.REFUNDED, RegistrationStatus.CANCELLED, REFUND_REASON)
    if any_cancelling:
        return DerivedStatus(PaymentStatus.CANCELLED, RegistrationStatus.CANCELLED, CANCEL_REASON)
    if any_failed:
        return DerivedStatus(PaymentStatus.FAILED, RegistrationStatus.PAYMENT_PENDING)
    if all_paid and total_paid >= total_owed:
        return DerivedStatus(PaymentStatus.PAID, RegistrationStatus.CONFIRMED)
    if Decimal("0") < total_paid < total_owed:
        return DerivedStatus(PaymentStatus.PROCESSING, RegistrationStatus.PAYMENT_PENDING)
    return DerivedStatus(PaymentStatus.PENDING, RegistrationStatus.PAYMENT_PENDING)


class RegistrationReconciler:
    """Sole writer of registration status fields after creation."""

    def __init__(self, repos: Repositories):
        self.repos = repos
        self.logger = logging.getLogger(__name__)

    async def reconcile(self, registration_id: str) -> ReconcileOutcome:
        registration = await self.repos.registrations.find(registration_id)
        if registration is None:
            self.logger.info(
                "reconcile skipped: registration missing",
                extra={"registration_id": registration_id, "outcome": ReconcileOutcome.NOT_FOUND.value},
            )
            return ReconcileOutcome.NOT_FOUND

        records = await self.repos.payments.find_many(registration_id=registration_id)
        if not records:
            if registration.is_administrative:
                return ReconcileOutcome.UNCHANGED
            await self.repos.registration_stages.delete_many(registration_id=registration_id)
            await self.repos.registration_categories.delete_many(registration_id=registration_id)
            await self.repos.registrations.delete(registration_id)
            self.logger.info(
                "orphan registration removed",
                extra={"registration_id": registration_id, "outcome": ReconcileOutcome.DELETED.value},
            )
            return ReconcileOutcome.DELETED

        derived = derive_status(records)
        if registration.is_manually_cancelled and not derived.is_cancellation:
            return ReconcileOutcome.TERMINAL
        if (registration.payment_status, registration.status) == (derived.payment_status, derived.status):
            return ReconcileOutcome.UNCHANGED

        now = datetime.now(timezone.utc)
        patch: dict = {"payment_status": derived.payment_status, "status": derived.status}
        if derived.payment_status == PaymentStatus.PAID:
            patch["payment_date"] = registration.payment_date or now
            patch["confirmed_at"] = registration.confirmed_at or now
        if derived.is_cancellation:
            patch["cancelled_at"] = registration.cancelled_at or now
            if not registration.is_manually_cancelled:
                patch["cancellation_reason"] = derived.cancellation_reason
        await self.repos.registrations.write_status(registration_id, patch)
        self.logger.info(
            "registration status reconciled",
            extra={
                "registration_id": registration_id,
                "payment_status": derived.payment_status.value,
                "lifecycle_status": derived.status.value,
                "outcome": ReconcileOutcome.UPDATED.value,
            },
        )
        return ReconcileOutcome.UPDATED

    async def confirm_administrative(self, registration_id: str, payment_status: PaymentStatus):
        """Administrative confirmation: exempt or paid outside the gateway."""
        if not payment_status.is_administrative:
            raise ValueError(f"{payment_status.value} is not an administrative payment status")
        current = await self.repos.registrations.find(registration_id)
        if current is None:
            return None
        registration = await self.repos.registrations.write_status(
            registration_id,
            {
                "status": RegistrationStatus.CONFIRMED,
                "payment_status": payment_status,
                "confirmed_at": current.confirmed_at or datetime.now(timezone.utc),
                "cancelled_at": None,
                "cancellation_reason": None,
            },
        )
        self.logger.info(
            "registration confirmed administratively",
            extra={
                "registration_id": registration_id,
                "payment_status": payment_status.value,
                "lifecycle_status": RegistrationStatus.CONFIRMED.value,
            },
        )
        return registration

    async def cancel(self, registration_id: str, reason: str):
        """Manual cancellation; afterwards only a refund or cancellation may change it."""
        registration = await self.repos.registrations.write_status(
            registration_id,
            {
                "status": RegistrationStatus.CANCELLED,
                "payment_status": PaymentStatus.CANCELLED,
                "cancelled_at": datetime.now(timezone.utc),
                "cancellation_reason": reason,
            },
        )
        self.logger.info(
            "registration cancelled",
            extra={"registration_id": registration_id, "lifecycle_status": RegistrationStatus.CANCELLED.value},
        )
        return registration
