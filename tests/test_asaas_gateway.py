from __future__ import annotations

import json
import pathlib
import sys
from typing import Any, Callable

import httpx
import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from enrollment_api.config import Settings
from enrollment_api.domain.errors import GatewaySemanticError, GatewayTransientError, ValidationError
from enrollment_api.providers.asaas import AsaasGateway
from enrollment_api.providers.base import CustomerProfile

PROFILE = CustomerProfile(name="Ayrton Piloto", email="ayrton@example.com", cpf_cnpj="123.456.789-09")


class Recorder:
    """Routes requests to a handler and keeps them for assertions."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def routes(self) -> list[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


def _gateway(handler: Callable[[httpx.Request], httpx.Response], **overrides: Any) -> tuple[AsaasGateway, Recorder]:
    values: dict[str, Any] = {
        "asaas_api_key": "test-key",
        "asaas_api_url": "https://sandbox.asaas.com/api/v3",
        "asaas_retry_backoff_seconds": 0,
    }
    values.update(overrides)
    recorder = Recorder(handler)
    return AsaasGateway(Settings(**values), transport=httpx.MockTransport(recorder)), recorder


@pytest.mark.asyncio
async def test_creates_customer_when_document_is_unknown() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"object": "list", "totalCount": 0, "data": []})
        return httpx.Response(200, json={"id": "cus_new", "name": "Ayrton Piloto", "cpfCnpj": "12345678909"})

    gateway, recorder = _gateway(handler)
    customer = await gateway.upsert_customer(PROFILE)

    assert customer.id == "cus_new"
    assert recorder.routes == ["GET /api/v3/customers", "POST /api/v3/customers"]
    assert recorder.requests[0].url.params["cpfCnpj"] == "12345678909"
    sent = json.loads(recorder.requests[1].content)
    assert sent["cpfCnpj"] == "12345678909"
    assert sent["name"] == "Ayrton Piloto"


@pytest.mark.asyncio
async def test_updates_existing_customer() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"object": "list", "data": [{"id": "cus_old"}]})
        return httpx.Response(200, json={"id": "cus_old", "email": "ayrton@example.com"})

    gateway, recorder = _gateway(handler)
    customer = await gateway.upsert_customer(PROFILE)

    assert customer.id == "cus_old"
    assert recorder.routes[-1] == "PUT /api/v3/customers/cus_old"


@pytest.mark.asyncio
async def test_empty_list_where_object_expected() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"data": []})
        return httpx.Response(200, json={"object": "list", "totalCount": 0, "data": []})

    gateway, _ = _gateway(handler)
    with pytest.raises(GatewaySemanticError) as excinfo:
        await gateway.upsert_customer(PROFILE)

    assert excinfo.value.code == "empty_list_response"


@pytest.mark.asyncio
async def test_invalid_document_never_reaches_gateway() -> None:
    gateway, recorder = _gateway(lambda request: httpx.Response(200, json={}))

    with pytest.raises(ValidationError):
        await gateway.upsert_customer(PROFILE.model_copy(update={"cpf_cnpj": "123"}))

    assert recorder.requests == []


@pytest.mark.asyncio
async def test_server_error_is_transient() -> None:
    gateway, _ = _gateway(lambda request: httpx.Response(503, text="upstream down"))

    with pytest.raises(GatewayTransientError) as excinfo:
        await gateway.get_payment("pay_1")

    assert excinfo.value.http_status == 503
    assert excinfo.value.code == "service_unavailable"


@pytest.mark.asyncio
async def test_client_error_is_semantic_with_gateway_code() -> None:
    body = {"errors": [{"code": "invalid_dueDate", "description": "A data de vencimento não pode ser anterior a hoje."}]}
    gateway, _ = _gateway(lambda request: httpx.Response(400, json=body))

    with pytest.raises(GatewaySemanticError) as excinfo:
        await gateway.create_payment({"customer": "cus_1", "billingType": "PIX", "value": 10})

    assert excinfo.value.code == "invalid_dueDate"
    assert excinfo.value.message == "A data de vencimento não pode ser anterior a hoje."
    assert excinfo.value.to_response()["gateway_description"] == excinfo.value.message


@pytest.mark.asyncio
async def test_timeout_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    gateway, _ = _gateway(handler)
    with pytest.raises(GatewayTransientError) as excinfo:
        await gateway.get_payment("pay_1")

    assert excinfo.value.code == "timeout"


@pytest.mark.asyncio
async def test_customer_upsert_retries_in_production() -> None:
    outcomes = [httpx.Response(502), httpx.Response(500)]

    def handler(request: httpx.Request) -> httpx.Response:
        if outcomes:
            return outcomes.pop(0)
        if request.method == "GET":
            return httpx.Response(200, json={"data": []})
        return httpx.Response(200, json={"id": "cus_1"})

    gateway, recorder = _gateway(handler, app_env="production", asaas_customer_max_retries=3)
    customer = await gateway.upsert_customer(PROFILE)

    assert customer.id == "cus_1"
    assert recorder.routes.count("GET /api/v3/customers") == 3


@pytest.mark.asyncio
async def test_customer_upsert_gives_up_after_max_attempts() -> None:
    gateway, recorder = _gateway(
        lambda request: httpx.Response(503), app_env="production", asaas_customer_max_retries=2
    )

    with pytest.raises(GatewayTransientError):
        await gateway.upsert_customer(PROFILE)

    assert len(recorder.requests) == 2


@pytest.mark.asyncio
async def test_customer_upsert_single_attempt_outside_production() -> None:
    gateway, recorder = _gateway(lambda request: httpx.Response(503), app_env="development")

    with pytest.raises(GatewayTransientError):
        await gateway.upsert_customer(PROFILE)

    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_semantic_customer_error_is_not_retried() -> None:
    body = {"errors": [{"code": "invalid_email", "description": "E-mail inválido."}]}
    gateway, recorder = _gateway(lambda request: httpx.Response(400, json=body), app_env="production")

    with pytest.raises(GatewaySemanticError):
        await gateway.upsert_customer(PROFILE)

    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_installment_payments_sorted_by_number() -> None:
    body = {
        "object": "list",
        "data": [
            {"id": "pay_c", "installmentNumber": 3, "status": "PENDING"},
            {"id": "pay_x", "status": "PENDING"},
            {"id": "pay_a", "installmentNumber": 1, "status": "RECEIVED"},
            {"id": "pay_b", "installmentNumber": 2, "status": "PENDING"},
        ],
    }
    gateway, recorder = _gateway(lambda request: httpx.Response(200, json=body))

    payments = await gateway.list_installment_payments("ins_1")

    assert [p.id for p in payments] == ["pay_a", "pay_b", "pay_c", "pay_x"]
    assert recorder.routes == ["GET /api/v3/installments/ins_1/payments"]


@pytest.mark.asyncio
async def test_cancel_and_due_date_update() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(200, json={"deleted": True, "id": "pay_1"})
        return httpx.Response(200, json={"id": "pay_1", "status": "PENDING", "dueDate": "2030-01-15"})

    gateway, recorder = _gateway(handler)
    cancelled = await gateway.cancel_payment("pay_1")
    updated = await gateway.update_payment_due_date("pay_1", "2030-01-15")

    assert cancelled.deleted is True
    assert updated.due_date == "2030-01-15"
    assert json.loads(recorder.requests[1].content) == {"dueDate": "2030-01-15"}
    assert recorder.routes == ["DELETE /api/v3/payments/pay_1", "PUT /api/v3/payments/pay_1"]


@pytest.mark.asyncio
async def test_pix_qr_code() -> None:
    body = {"encodedImage": "iVBOR", "payload": "00020101", "expirationDate": "2030-01-15 23:59:59"}
    gateway, recorder = _gateway(lambda request: httpx.Response(200, json=body))

    qr_code = await gateway.get_pix_qr_code("pay_1")

    assert qr_code.encoded_image == "iVBOR"
    assert qr_code.payload == "00020101"
    assert recorder.routes == ["GET /api/v3/payments/pay_1/pixQrCode"]


@pytest.mark.asyncio
async def test_request_headers() -> None:
    gateway, recorder = _gateway(lambda request: httpx.Response(200, json={"id": "pay_1"}))

    await gateway.get_payment("pay_1")

    headers = recorder.requests[0].headers
    assert headers["access_token"] == "test-key"
    assert headers["content-type"] == "application/json"
    assert headers["user-agent"] == "Enrollment-API/1.0.0"


@pytest.mark.asyncio
async def test_check_connection_reports_failures() -> None:
    healthy, _ = _gateway(lambda request: httpx.Response(200, json={"data": []}))
    broken, _ = _gateway(lambda request: httpx.Response(401, json={}))

    assert await healthy.check_connection() is True
    assert await broken.check_connection() is False


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        AsaasGateway(Settings(asaas_api_key=""))


def test_bare_production_domain_is_rewritten() -> None:
    settings = Settings(asaas_api_key="k", asaas_api_url="https://asaas.com/api/v3/")
    assert settings.asaas_base_url == "https://www.asaas.com/api/v3"
    assert AsaasGateway(settings).base_url == "https://www.asaas.com/api/v3"


def test_production_uses_longer_timeout() -> None:
    assert Settings(app_env="production").asaas_timeout == 120.0
    assert Settings(app_env="development").asaas_timeout == 60.0
