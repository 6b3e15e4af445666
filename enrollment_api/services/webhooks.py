from __future__ import annotations

import logging

from enrollment_api.domain.dtos import WebhookPayload, WebhookResult, dump_payload
from enrollment_api.repositories.base import Repositories

from .payment_records import merge_gateway_state
from .reconciliation import RegistrationReconciler

PAYMENT_DELETED = "PAYMENT_DELETED"


class WebhookIngestor:
    """Applies gateway payment events to local records.

    Events may arrive duplicated or out of order; the last one applied wins and
    the registration is recomputed from scratch each time.
    """

    def __init__(self, repos: Repositories, reconciler: RegistrationReconciler | None = None):
        self.repos = repos
        self.reconciler = reconciler or RegistrationReconciler(repos)
        self.logger = logging.getLogger(__name__)

    async def process_webhook(self, payload: WebhookPayload) -> WebhookResult:
        event = payload.event
        external_id = payload.payment.id
        try:
            record = await self.repos.payments.find_one(external_payment_id=external_id)
            if record is None:
                self.logger.info(
                    "webhook for unknown payment skipped",
                    extra={"event": event, "external_payment_id": external_id, "outcome": "skipped"},
                )
                return WebhookResult(outcome="skipped", message="payment not found")

            if event == PAYMENT_DELETED:
                await self.repos.payments.delete(record.id)
                outcome = "deleted"
            else:
                await self.repos.payments.update(
                    record.id,
                    merge_gateway_state(
                        record,
                        status=payload.payment.status,
                        payment_date=payload.payment.payment_date,
                        client_payment_date=payload.payment.client_payment_date,
                        payload={"event": event, **dump_payload(payload.payment)},
                    ),
                )
                outcome = "applied"
            reconciled = await self.reconciler.reconcile(record.registration_id)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "webhook processing failed",
                extra={"event": event, "external_payment_id": external_id, "error": str(exc)},
                exc_info=True,
            )
            return WebhookResult(success=False, outcome="error", message=str(exc))

        self.logger.info(
            "webhook processed",
            extra={
                "event": event,
                "external_payment_id": external_id,
                "registration_id": record.registration_id,
                "status": payload.payment.status,
                "outcome": f"{outcome}/{reconciled.value}",
            },
        )
        return WebhookResult(outcome=outcome)
