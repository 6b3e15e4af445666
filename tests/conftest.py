from __future__ import annotations

import pathlib
import sys
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from enrollment_api.config import Settings
from enrollment_api.domain.errors import GatewaySemanticError, GatewayTransientError
from enrollment_api.domain.models import Category, Championship, Season, Stage, User
from enrollment_api.providers.base import (
    CustomerProfile,
    CustomerRef,
    GatewayPayment,
    InstallmentPlan,
    PaymentGateway,
    PixQrCode,
)
from enrollment_api.repositories.base import Repositories
from enrollment_api.repositories.memory_store import build_memory_repositories
from enrollment_api.services.registrations_service import RegistrationsService


class FakeGateway(PaymentGateway):
    """In-process stand-in for Asaas that remembers every charge it issued."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.payments: dict[str, dict[str, Any]] = {}
        self.plans: dict[str, list[str]] = {}
        self.fail_on: dict[str, Exception] = {}
        self.qr_unavailable = False
        self.empty_plans = False
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq:03d}"

    def _record(self, name: str, arg: Any) -> None:
        self.calls.append((name, arg))
        exc = self.fail_on.get(name)
        if exc is not None:
            raise exc

    def calls_to(self, name: str) -> list[Any]:
        return [arg for call, arg in self.calls if call == name]

    def set_status(self, payment_id: str, status: str, **extra: Any) -> None:
        self.payments[payment_id].update({"status": status, **extra})

    async def upsert_customer(self, profile: CustomerProfile) -> CustomerRef:
        self._record("upsert_customer", profile)
        return CustomerRef(id="cus_001", name=profile.name, email=profile.email, cpf_cnpj=profile.cpf_cnpj)

    async def create_payment(self, spec: dict[str, Any]) -> GatewayPayment:
        self._record("create_payment", spec)
        payment_id = self._next("pay")
        body = {
            "id": payment_id,
            "status": "PENDING",
            "customer": spec["customer"],
            "billingType": spec["billingType"],
            "value": str(spec.get("value") or spec.get("totalValue")),
            "dueDate": spec["dueDate"],
            "description": spec.get("description"),
            "externalReference": spec.get("externalReference"),
            "invoiceUrl": f"https://sandbox.asaas.test/i/{payment_id}",
        }
        self.payments[payment_id] = body
        return GatewayPayment.from_payload(body)

    async def create_installment_plan(self, spec: dict[str, Any]) -> InstallmentPlan:
        self._record("create_installment_plan", spec)
        plan_id = self._next("ins")
        count = int(spec["installmentCount"])
        share = (Decimal(str(spec["totalValue"])) / count).quantize(Decimal("0.01"))
        ids = []
        for number in range(1, count + 1):
            payment_id = self._next("pay")
            self.payments[payment_id] = {
                "id": payment_id,
                "status": "PENDING",
                "customer": spec["customer"],
                "billingType": spec["billingType"],
                "value": str(share),
                "dueDate": spec["dueDate"],
                "installment": plan_id,
                "installmentNumber": number,
                "externalReference": spec.get("externalReference"),
            }
            ids.append(payment_id)
        self.plans[plan_id] = [] if self.empty_plans else ids
        return InstallmentPlan.from_payload(
            {"id": plan_id, "installmentCount": count, "value": str(spec["totalValue"])}
        )

    async def list_installment_payments(self, plan_id: str) -> list[GatewayPayment]:
        self._record("list_installment_payments", plan_id)
        payments = [
            GatewayPayment.from_payload(self.payments[pid])
            for pid in self.plans.get(plan_id, [])
            if pid in self.payments
        ]
        return sorted(payments, key=lambda p: p.installment_number or 0)

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        self._record("get_payment", payment_id)
        if payment_id not in self.payments:
            raise GatewaySemanticError("The charge was not found.", code="not_found", http_status=404)
        return GatewayPayment.from_payload(self.payments[payment_id])

    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        self._record("cancel_payment", payment_id)
        self.payments[payment_id]["deleted"] = True
        return GatewayPayment.from_payload(self.payments[payment_id])

    async def get_pix_qr_code(self, payment_id: str) -> PixQrCode:
        self._record("get_pix_qr_code", payment_id)
        if self.qr_unavailable:
            raise GatewayTransientError("QR unavailable", code="service_unavailable", http_status=503)
        return PixQrCode(encoded_image=f"img-{payment_id}", payload=f"pix-{payment_id}")

    async def update_payment_due_date(self, payment_id: str, due_date: str) -> GatewayPayment:
        self._record("update_payment_due_date", (payment_id, due_date))
        self.payments[payment_id].update({"dueDate": due_date, "status": "PENDING"})
        return GatewayPayment.from_payload(self.payments[payment_id])


def seed(repo: Any, *entities: Any) -> None:
    for entity in entities:
        repo.by_id[entity.id] = entity


@pytest.fixture
def repos() -> Repositories:
    return build_memory_repositories()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        asaas_api_key="test-key",
        backend_url="http://api.test",
        app_env="development",
        payment_due_days=7,
        default_platform_commission=Decimal("10"),
    )


@pytest.fixture
def catalog(repos: Repositories) -> SimpleNamespace:
    user = User(id="usr_1", name="Ayrton Piloto", email="ayrton@example.com", document="123.456.789-09")
    other_user = User(id="usr_2", name="Rubens Piloto", email="rubens@example.com")
    championship = Championship(id="chp_1", name="Copa Kart")
    season = Season(
        id="ssn_1",
        championship_id=championship.id,
        name="Temporada 2025",
        inscription_value=Decimal("100"),
        registration_open=True,
        payment_methods=["pix", "cartao_credito"],
        pix_installments=3,
        credit_card_installments=6,
        payment_conditions=[
            {"type": "por_temporada", "value": "100", "enabled": True},
            {"type": "por_etapa", "value": "40", "enabled": True},
        ],
    )
    other_season = Season(id="ssn_2", championship_id=championship.id, name="Temporada 2024")
    categories = [
        Category(id="cat_a", season_id=season.id, name="Rookie"),
        Category(id="cat_b", season_id=season.id, name="Senior"),
        Category(id="cat_x", season_id=other_season.id, name="Legacy"),
    ]
    stages = [
        Stage(id="stg_1", season_id=season.id, name="Etapa 1"),
        Stage(id="stg_2", season_id=season.id, name="Etapa 2"),
        Stage(id="stg_3", season_id=season.id, name="Etapa 3"),
    ]
    seed(repos.users, user, other_user)
    seed(repos.championships, championship)
    seed(repos.seasons, season, other_season)
    seed(repos.categories, *categories)
    seed(repos.stages, *stages)
    return SimpleNamespace(
        user=user,
        other_user=other_user,
        championship=championship,
        season=season,
        other_season=other_season,
    )


@pytest.fixture
def service(repos: Repositories, gateway: FakeGateway, test_settings: Settings) -> RegistrationsService:
    return RegistrationsService(repos, gateway, test_settings)
