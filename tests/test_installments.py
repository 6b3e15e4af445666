from __future__ import annotations

import pathlib
import sys

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from enrollment_api.config import settings
from enrollment_api.domain.errors import GatewayTransientError
from enrollment_api.providers.base import GatewayPayment
from enrollment_api.services.installments import fetch_qr_code, materialize_installment_plan
from enrollment_api.services.payment_records import default_due_date


async def _plan(gateway, count: int = 3) -> str:
    plan = await gateway.create_installment_plan(
        {
            "customer": "cus_001",
            "billingType": "PIX",
            "totalValue": 90.0,
            "installmentCount": count,
            "dueDate": "2025-04-01",
            "externalReference": "reg_1",
        }
    )
    return plan.id


@pytest.mark.asyncio
async def test_materialize_creates_one_record_per_installment(repos, gateway) -> None:
    plan_id = await _plan(gateway)

    created = await materialize_installment_plan(
        repos, gateway, registration_id="reg_1", plan_id=plan_id, customer_id="cus_001"
    )

    assert [r.installment_number for r in created] == [1, 2, 3]
    assert {r.external_installment_plan_id for r in created} == {plan_id}
    assert all(r.installment_count == 3 for r in created)
    assert all(r.value == 30 for r in created)
    assert all(r.pix_qr_code.startswith("img-") for r in created)


@pytest.mark.asyncio
async def test_materialize_is_idempotent(repos, gateway) -> None:
    plan_id = await _plan(gateway)
    await materialize_installment_plan(repos, gateway, registration_id="reg_1", plan_id=plan_id)

    again = await materialize_installment_plan(repos, gateway, registration_id="reg_1", plan_id=plan_id)

    assert again == []
    assert len(await repos.payments.find_many(registration_id="reg_1")) == 3


@pytest.mark.asyncio
async def test_installment_without_due_date_gets_fallback(repos, gateway) -> None:
    plan_id = await _plan(gateway, count=2)
    for payment_id in gateway.plans[plan_id]:
        gateway.payments[payment_id].pop("dueDate")

    created = await materialize_installment_plan(
        repos, gateway, registration_id="reg_1", plan_id=plan_id, fallback_due_date="2025-05-01"
    )

    assert [r.due_date for r in created] == ["2025-05-01", "2025-05-01"]


@pytest.mark.asyncio
async def test_installment_due_date_defaults_to_charge_due_date(repos, gateway) -> None:
    plan_id = await _plan(gateway, count=1)
    gateway.payments[gateway.plans[plan_id][0]].pop("dueDate")

    created = await materialize_installment_plan(repos, gateway, registration_id="reg_1", plan_id=plan_id)

    assert created[0].due_date == default_due_date(settings)


@pytest.mark.asyncio
async def test_empty_plan_is_a_transient_failure(repos, gateway) -> None:
    gateway.empty_plans = True
    plan_id = await _plan(gateway)

    with pytest.raises(GatewayTransientError) as excinfo:
        await materialize_installment_plan(repos, gateway, registration_id="reg_1", plan_id=plan_id)

    assert excinfo.value.code == "empty_installment_plan"
    assert await repos.payments.find_many() == []


@pytest.mark.asyncio
async def test_embedded_qr_code_skips_gateway_call(gateway) -> None:
    payment = GatewayPayment.from_payload(
        {"id": "pay_9", "status": "PENDING", "qrCode": {"encodedImage": "abc", "payload": "000201"}}
    )

    qr_code = await fetch_qr_code(gateway, payment)

    assert qr_code.payload == "000201"
    assert gateway.calls_to("get_pix_qr_code") == []


@pytest.mark.asyncio
async def test_qr_code_failure_yields_none(gateway) -> None:
    gateway.qr_unavailable = True
    payment = GatewayPayment.from_payload({"id": "pay_9", "status": "PENDING"})

    assert await fetch_qr_code(gateway, payment) is None
