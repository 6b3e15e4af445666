from __future__ import annotations

import logging

import pydantic
from fastapi import APIRouter, Depends, HTTPException, Request, status

from enrollment_api.dependencies import get_webhook_ingestor
from enrollment_api.domain.dtos import WebhookPayload, WebhookResult
from enrollment_api.services.webhooks import WebhookIngestor
from enrollment_api.utils.security import verify_webhook_token

router = APIRouter(prefix="/api/webhooks")
logger = logging.getLogger(__name__)


@router.post("/asaas", response_model=WebhookResult, dependencies=[Depends(verify_webhook_token)])
async def asaas_webhook(
    request: Request,
    ingestor: WebhookIngestor = Depends(get_webhook_ingestor),
) -> WebhookResult:
    """Receive Asaas payment events; answers 200 unless the body is malformed."""
    try:
        body = await request.json()
        payload = WebhookPayload.model_validate(body)
    except (ValueError, pydantic.ValidationError) as exc:
        logger.info("invalid asaas webhook payload", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from exc
    return await ingestor.process_webhook(payload)
