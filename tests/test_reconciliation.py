from __future__ import annotations

import pathlib
import sys
from decimal import Decimal

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from enrollment_api.domain.enums import RegistrationStatus
from enrollment_api.domain.models import (
    REFUND_REASON,
    PaymentRecord,
    Registration,
    RegistrationCategory,
    RegistrationStage,
)
from enrollment_api.domain.statuses import PaymentStatus
from enrollment_api.repositories.base import Repositories
from enrollment_api.services.reconciliation import (
    ReconcileOutcome,
    RegistrationReconciler,
    derive_status,
)


def _record(status: str, value: str = "50", registration_id: str = "reg_1", ext: str | None = None) -> PaymentRecord:
    return PaymentRecord(
        registration_id=registration_id,
        external_payment_id=ext or f"pay_{status}_{value}",
        billing_type="PIX",
        value=Decimal(value),
        due_date="2025-03-01",
        status=status,
    )


async def _registration(repos: Repositories, **kwargs) -> Registration:
    return await repos.registrations.create(
        Registration(user_id="usr_1", season_id="ssn_1", amount=Decimal("100"), **kwargs)
    )


def test_refund_dominates_paid() -> None:
    derived = derive_status([_record("RECEIVED"), _record("REFUNDED")])
    assert derived.payment_status == PaymentStatus.REFUNDED
    assert derived.status == RegistrationStatus.CANCELLED
    assert derived.cancellation_reason == REFUND_REASON


def test_refund_in_progress_cancels() -> None:
    derived = derive_status([_record("CONFIRMED"), _record("REFUND_IN_PROGRESS")])
    assert (derived.payment_status, derived.status) == (PaymentStatus.CANCELLED, RegistrationStatus.CANCELLED)


def test_overdue_installment_marks_failed() -> None:
    derived = derive_status([_record("RECEIVED"), _record("OVERDUE")])
    assert (derived.payment_status, derived.status) == (PaymentStatus.FAILED, RegistrationStatus.PAYMENT_PENDING)


def test_partial_payment_is_processing() -> None:
    derived = derive_status([_record("RECEIVED"), _record("PENDING")])
    assert (derived.payment_status, derived.status) == (
        PaymentStatus.PROCESSING,
        RegistrationStatus.PAYMENT_PENDING,
    )


def test_full_payment_confirms() -> None:
    derived = derive_status([_record("RECEIVED"), _record("RECEIVED_IN_CASH")])
    assert (derived.payment_status, derived.status) == (PaymentStatus.PAID, RegistrationStatus.CONFIRMED)


def test_unpaid_charges_stay_pending() -> None:
    derived = derive_status([_record("PENDING"), _record("PENDING", "30")])
    assert (derived.payment_status, derived.status) == (PaymentStatus.PENDING, RegistrationStatus.PAYMENT_PENDING)


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(repos: Repositories) -> None:
    registration = await _registration(repos)
    await repos.payments.create(_record("RECEIVED", "100", registration.id, "pay_1"))
    reconciler = RegistrationReconciler(repos)

    assert await reconciler.reconcile(registration.id) == ReconcileOutcome.UPDATED
    first = await repos.registrations.find(registration.id)
    assert await reconciler.reconcile(registration.id) == ReconcileOutcome.UNCHANGED
    second = await repos.registrations.find(registration.id)

    assert first.payment_status == PaymentStatus.PAID
    assert first.status == RegistrationStatus.CONFIRMED
    assert first.confirmed_at is not None
    assert second.updated_at == first.updated_at
    assert second.confirmed_at == first.confirmed_at


@pytest.mark.asyncio
async def test_orphan_registration_is_removed(repos: Repositories) -> None:
    registration = await _registration(repos)
    await repos.registration_categories.create(RegistrationCategory(registration_id=registration.id, category_id="cat_a"))
    await repos.registration_stages.create(RegistrationStage(registration_id=registration.id, stage_id="stg_1"))

    outcome = await RegistrationReconciler(repos).reconcile(registration.id)

    assert outcome == ReconcileOutcome.DELETED
    assert await repos.registrations.find(registration.id) is None
    assert await repos.registration_categories.find_many(registration_id=registration.id) == []
    assert await repos.registration_stages.find_many(registration_id=registration.id) == []


@pytest.mark.asyncio
async def test_exempt_registration_without_charges_survives(repos: Repositories) -> None:
    registration = await _registration(
        repos, status=RegistrationStatus.CONFIRMED, payment_status=PaymentStatus.EXEMPT
    )

    outcome = await RegistrationReconciler(repos).reconcile(registration.id)

    assert outcome == ReconcileOutcome.UNCHANGED
    stored = await repos.registrations.find(registration.id)
    assert stored.payment_status == PaymentStatus.EXEMPT


@pytest.mark.asyncio
async def test_missing_registration_is_reported(repos: Repositories) -> None:
    assert await RegistrationReconciler(repos).reconcile("nope") == ReconcileOutcome.NOT_FOUND


@pytest.mark.asyncio
async def test_manual_cancellation_is_terminal(repos: Repositories) -> None:
    registration = await _registration(repos)
    record = await repos.payments.create(_record("PENDING", "100", registration.id, "pay_1"))
    reconciler = RegistrationReconciler(repos)
    await reconciler.cancel(registration.id, "pilot gave up")

    await repos.payments.update(record.id, {"status": "RECEIVED"})
    assert await reconciler.reconcile(registration.id) == ReconcileOutcome.TERMINAL
    stored = await repos.registrations.find(registration.id)
    assert stored.status == RegistrationStatus.CANCELLED

    await repos.payments.update(record.id, {"status": "REFUNDED"})
    assert await reconciler.reconcile(registration.id) == ReconcileOutcome.UPDATED
    stored = await repos.registrations.find(registration.id)
    assert stored.payment_status == PaymentStatus.REFUNDED
    assert stored.cancellation_reason == "pilot gave up"


@pytest.mark.asyncio
async def test_refund_after_payment_cancels_registration(repos: Repositories) -> None:
    registration = await _registration(repos)
    record = await repos.payments.create(_record("CONFIRMED", "100", registration.id, "pay_1"))
    reconciler = RegistrationReconciler(repos)
    await reconciler.reconcile(registration.id)

    await repos.payments.update(record.id, {"status": "REFUNDED"})
    await reconciler.reconcile(registration.id)

    stored = await repos.registrations.find(registration.id)
    assert stored.payment_status == PaymentStatus.REFUNDED
    assert stored.status == RegistrationStatus.CANCELLED
    assert stored.cancelled_at is not None
    assert stored.cancellation_reason == REFUND_REASON


@pytest.mark.asyncio
async def test_generic_update_refuses_status_fields(repos: Repositories) -> None:
    registration = await _registration(repos)
    with pytest.raises(ValueError):
        await repos.registrations.update(registration.id, {"status": RegistrationStatus.CONFIRMED})
