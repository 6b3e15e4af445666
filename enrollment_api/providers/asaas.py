from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from enrollment_api.config import Settings
from enrollment_api.domain.errors import GatewayError, GatewaySemanticError, GatewayTransientError
from enrollment_api.utils.documents import normalize_document

from .asaas_errors import error_from_exception, error_from_response, user_message
from .base import (
    CustomerProfile,
    CustomerRef,
    GatewayPayment,
    InstallmentPlan,
    PaymentGateway,
    PixQrCode,
)

logger = logging.getLogger(__name__)


def _installment_sort_key(payment: GatewayPayment) -> tuple[int, int]:
    if payment.installment_number is None:
        return (1, 0)
    return (0, payment.installment_number)


class AsaasGateway(PaymentGateway):
    """Asaas REST API (v3) client.

    - Every response is normalized into the models in ``providers.base``.
    - Transport failures, 429 and 5xx raise ``GatewayTransientError``; any other
      4xx raises ``GatewaySemanticError``.
    - Only the customer upsert is retried, and only in production-like
      environments. Charge creation is never retried here.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.base_url = settings.asaas_base_url
        self.api_key = settings.asaas_api_key
        if not self.api_key:
            raise ValueError("Asaas API key not configured")
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "access_token": self.api_key,
            "Content-Type": "application/json",
            "User-Agent": self.settings.asaas_user_agent,
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        started = time.monotonic()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self.settings.asaas_timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            latency_ms = int((time.monotonic() - started) * 1000)
            logger.warning(
                "asaas request failed",
                extra={
                    "operation": operation,
                    "method": method,
                    "endpoint": path,
                    "latency_ms": latency_ms,
                    "error": str(exc) or type(exc).__name__,
                },
            )
            raise error_from_exception(exc) from exc

        latency_ms = int((time.monotonic() - started) * 1000)
        if resp.status_code >= 400:
            error = error_from_response(resp)
            logger.info(
                "asaas request rejected",
                extra={
                    "operation": operation,
                    "method": method,
                    "endpoint": path,
                    "response_code": resp.status_code,
                    "error_code": error.code,
                    "latency_ms": latency_ms,
                    "error": error.description,
                },
            )
            raise error
        logger.info(
            "asaas request completed",
            extra={
                "operation": operation,
                "method": method,
                "endpoint": path,
                "response_code": resp.status_code,
                "latency_ms": latency_ms,
            },
        )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise GatewayTransientError(
                "The payment gateway returned an unreadable response.",
                code="invalid_response",
                description=resp.text[:512],
                http_status=resp.status_code,
            ) from exc

    @staticmethod
    def _unwrap_object(body: Any, operation: str) -> dict[str, Any]:
        """Return the single object of a response that may come list-wrapped.

        The API sometimes answers ``[obj]`` or ``{"object": "list", "data": [obj]}``
        where an object was expected, and ``{"object": "list", "totalCount": 0}``
        when the object is missing altogether.
        """
        items: list[Any] | None = None
        if isinstance(body, list):
            items = body
        elif isinstance(body, dict) and (body.get("object") == "list" or isinstance(body.get("data"), list)):
            items = body.get("data") or []
        elif isinstance(body, dict) and body:
            return body

        if items:
            first = items[0]
            if isinstance(first, dict):
                return first
        raise GatewaySemanticError(
            user_message("empty_list_response"),
            code="empty_list_response",
            description=f"{operation} answered with an empty list",
        )

    @staticmethod
    def _list_items(body: Any) -> list[dict[str, Any]]:
        if isinstance(body, list):
            return [item for item in body if isinstance(item, dict)]
        if isinstance(body, dict):
            return [item for item in (body.get("data") or []) if isinstance(item, dict)]
        return []

    async def upsert_customer(self, profile: CustomerProfile) -> CustomerRef:
        document = normalize_document(profile.cpf_cnpj)
        payload = profile.model_copy(update={"cpf_cnpj": document}).to_payload()
        attempts = 1
        if self.settings.is_production_like:
            attempts = max(1, self.settings.asaas_customer_max_retries)

        for attempt in range(1, attempts + 1):
            try:
                customer = await self._upsert_customer_once(document, payload)
            except GatewayTransientError as exc:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "asaas customer upsert retry",
                    extra={"operation": "CUSTOMER_UPSERT", "attempt": attempt, "error_code": exc.code},
                )
                await asyncio.sleep(self.settings.asaas_retry_backoff_seconds)
                continue
            return customer
        raise GatewayTransientError(user_message("service_unavailable"), code="service_unavailable")

    async def _upsert_customer_once(self, document: str, payload: dict[str, Any]) -> CustomerRef:
        found = await self._request(
            "GET", "/customers", params={"cpfCnpj": document}, operation="CUSTOMER_SEARCH"
        )
        existing = self._list_items(found)
        if existing:
            customer_id = str(existing[0]["id"])
            body = await self._request(
                "PUT", f"/customers/{customer_id}", json=payload, operation="CUSTOMER_UPDATE"
            )
            return CustomerRef.from_payload(self._unwrap_object(body, "CUSTOMER_UPDATE"))
        body = await self._request("POST", "/customers", json=payload, operation="CUSTOMER_CREATE")
        return CustomerRef.from_payload(self._unwrap_object(body, "CUSTOMER_CREATE"))

    async def create_payment(self, spec: dict[str, Any]) -> GatewayPayment:
        body = await self._request("POST", "/payments", json=spec, operation="PAYMENT_CREATE")
        payment = GatewayPayment.from_payload(self._unwrap_object(body, "PAYMENT_CREATE"))
        logger.info(
            "asaas payment created",
            extra={"external_payment_id": payment.id, "status": payment.status, "amount": payment.value},
        )
        return payment

    async def create_installment_plan(self, spec: dict[str, Any]) -> InstallmentPlan:
        body = await self._request("POST", "/installments", json=spec, operation="INSTALLMENT_CREATE")
        plan = InstallmentPlan.from_payload(self._unwrap_object(body, "INSTALLMENT_CREATE"))
        logger.info("asaas installment plan created", extra={"installment_plan_id": plan.id})
        return plan

    async def list_installment_payments(self, plan_id: str) -> list[GatewayPayment]:
        body = await self._request(
            "GET", f"/installments/{plan_id}/payments", operation="INSTALLMENT_PAYMENTS"
        )
        payments = [GatewayPayment.from_payload(item) for item in self._list_items(body)]
        return sorted(payments, key=_installment_sort_key)

    async def get_payment(self, payment_id: str) -> GatewayPayment:
        body = await self._request("GET", f"/payments/{payment_id}", operation="PAYMENT_GET")
        return GatewayPayment.from_payload(self._unwrap_object(body, "PAYMENT_GET"))

    async def cancel_payment(self, payment_id: str) -> GatewayPayment:
        body = await self._request("DELETE", f"/payments/{payment_id}", operation="PAYMENT_CANCEL")
        data = body if isinstance(body, dict) else {}
        return GatewayPayment.from_payload({"id": payment_id, "deleted": True, **data})

    async def get_pix_qr_code(self, payment_id: str) -> PixQrCode:
        body = await self._request("GET", f"/payments/{payment_id}/pixQrCode", operation="PIX_QR_CODE")
        return PixQrCode.from_payload(self._unwrap_object(body, "PIX_QR_CODE"))

    async def update_payment_due_date(self, payment_id: str, due_date: str) -> GatewayPayment:
        body = await self._request(
            "PUT", f"/payments/{payment_id}", json={"dueDate": due_date}, operation="PAYMENT_UPDATE"
        )
        return GatewayPayment.from_payload(self._unwrap_object(body, "PAYMENT_UPDATE"))

    async def check_connection(self) -> bool:
        try:
            await self._request("GET", "/customers", params={"limit": 1}, operation="HEALTH_CHECK")
        except GatewayError:
            return False
        return True
