from __future__ import annotations

from functools import lru_cache

from enrollment_api.config import settings
from enrollment_api.providers.base import PaymentGateway
from enrollment_api.providers.factory import get_gateway
from enrollment_api.repositories.base import Repositories
from enrollment_api.services.reconciliation import RegistrationReconciler
from enrollment_api.services.registrations_service import RegistrationsService
from enrollment_api.services.webhooks import WebhookIngestor


@lru_cache
def get_repositories() -> Repositories:
    """PostgreSQL stores when a database is configured, in-memory otherwise."""
    if settings.db_enabled:
        from enrollment_api.repositories.pg_store import build_pg_repositories

        return build_pg_repositories()
    from enrollment_api.repositories.memory_store import build_memory_repositories

    return build_memory_repositories()


@lru_cache
def get_payment_gateway() -> PaymentGateway:
    return get_gateway(settings)


@lru_cache
def get_reconciler() -> RegistrationReconciler:
    return RegistrationReconciler(get_repositories())


@lru_cache
def get_registrations_service() -> RegistrationsService:
    return RegistrationsService(
        get_repositories(), get_payment_gateway(), settings, reconciler=get_reconciler()
    )


@lru_cache
def get_webhook_ingestor() -> WebhookIngestor:
    return WebhookIngestor(get_repositories(), reconciler=get_reconciler())
