from __future__ import annotations

import os
import platform
from datetime import datetime, timezone
from typing import Any

import logging

from fastapi import APIRouter, Depends

from enrollment_api.config import settings
from enrollment_api.dependencies import get_payment_gateway, get_repositories
from enrollment_api.domain.statuses import PaymentStatus
from enrollment_api.repositories.base import Repositories

router = APIRouter()
logger = logging.getLogger(__name__)

SERVICE_STARTED_AT = datetime.now(timezone.utc)


@router.get("/health")
async def health() -> dict[str, str]:
    """Simple health check endpoint for load balancers."""
    return {"status": "ok"}


async def _collect_registration_metrics(repos: Repositories) -> dict[str, Any]:
    metrics: dict[str, Any] = {
        "connected": False,
        "registration_status_counts": {},
        "payment_status_counts": {},
        "payment_status_counts_display": {},
        "gateway_status_counts": {},
    }
    try:
        metrics["registration_status_counts"] = await repos.registrations.count_by("status")
        payment_counts = await repos.registrations.count_by("payment_status")
        metrics["payment_status_counts"] = payment_counts
        for status_key, count in payment_counts.items():
            try:
                metrics["payment_status_counts_display"][PaymentStatus(status_key).display_name] = count
            except ValueError:
                metrics["payment_status_counts_display"][status_key] = count
        metrics["gateway_status_counts"] = await repos.payments.count_by("status")
        metrics["connected"] = True
    except Exception as exc:  # noqa: BLE001
        logger.info("health metrics collection failed", extra={"error": str(exc)})
    return metrics


async def _gateway_reachable() -> bool:
    try:
        gateway = get_payment_gateway()
    except ValueError as exc:
        logger.info("gateway not configured", extra={"error": str(exc)})
        return False
    return await gateway.check_connection()


@router.get("/health/metrics")
async def health_metrics(repos: Repositories = Depends(get_repositories)) -> dict[str, Any]:
    """Detailed service health endpoint with lightweight operational metrics."""

    captured_at = datetime.now(timezone.utc)
    raw_metrics = await _collect_registration_metrics(repos)
    store_connected = bool(raw_metrics.pop("connected", False))
    gateway_connected = await _gateway_reachable()
    uptime_seconds = int((captured_at - SERVICE_STARTED_AT).total_seconds())
    status = "ok" if store_connected and gateway_connected else "degraded"

    return {
        "status": status,
        "timestamp": captured_at.isoformat(),
        "uptime_seconds": uptime_seconds,
        "service": {
            "environment": settings.app_env,
            "version": settings.app_version,
            "host": platform.node(),
            "pid": os.getpid(),
        },
        "database": {
            "enabled": settings.db_enabled,
            "connected": store_connected,
            "schema": settings.db_schema or None,
        },
        "gateway": {
            "name": "asaas",
            "base_url": settings.asaas_base_url,
            "connected": gateway_connected,
        },
        "registrations": raw_metrics,
    }
