from __future__ import annotations

import copy
import dataclasses
from datetime import datetime, timezone
from typing import Any, Dict, Sequence

from enrollment_api.domain.errors import ConflictError

from .base import REGISTRATION_STATUS_FIELDS, Repositories, Repository, T, group_count, is_multi, matches


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository(Repository[T]):
    """Dict-backed repository; entities are copied in and out like real rows."""

    def __init__(
        self,
        name: str,
        unique_keys: Sequence[tuple[str, ...]] = (),
        protected_fields: frozenset[str] = frozenset(),
    ) -> None:
        self.name = name
        self.unique_keys = list(unique_keys)
        self.protected_fields = protected_fields
        self.by_id: Dict[str, T] = {}

    def _check_unique(self, entity: Any) -> None:
        for key in self.unique_keys:
            values = tuple(getattr(entity, field) for field in key)
            for other in self.by_id.values():
                if other.id == entity.id:  # type: ignore[attr-defined]
                    continue
                if tuple(getattr(other, field) for field in key) == values:
                    raise ConflictError(
                        f"{self.name} already has a row with {dict(zip(key, values))}",
                        code="unique_violation",
                    )

    async def find(self, entity_id: str) -> T | None:
        entity = self.by_id.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def find_many(self, **filters: Any) -> list[T]:
        if any(is_multi(value) and not value for value in filters.values()):
            return []
        return [copy.deepcopy(e) for e in self.by_id.values() if matches(e, filters)]

    async def create(self, entity: T) -> T:
        if entity.id in self.by_id:  # type: ignore[attr-defined]
            raise ConflictError(f"{self.name} {entity.id} already exists", code="unique_violation")  # type: ignore[attr-defined]
        self._check_unique(entity)
        stored = copy.deepcopy(entity)
        now = _now()
        if hasattr(stored, "created_at") and stored.created_at is None:  # type: ignore[attr-defined]
            stored.created_at = now  # type: ignore[attr-defined]
        if hasattr(stored, "updated_at"):
            stored.updated_at = now  # type: ignore[attr-defined]
        self.by_id[stored.id] = stored  # type: ignore[attr-defined]
        return copy.deepcopy(stored)

    async def _apply_update(self, entity_id: str, patch: dict[str, Any]) -> T | None:
        current = self.by_id.get(entity_id)
        if current is None:
            return None
        changes = dict(patch)
        if hasattr(current, "updated_at"):
            changes["updated_at"] = _now()
        updated = dataclasses.replace(current, **changes)  # type: ignore[type-var]
        self._check_unique(updated)
        self.by_id[entity_id] = updated
        return copy.deepcopy(updated)

    async def delete(self, entity_id: str) -> bool:
        return self.by_id.pop(entity_id, None) is not None

    async def delete_many(self, **filters: Any) -> int:
        if any(is_multi(value) and not value for value in filters.values()):
            return 0
        doomed = [key for key, entity in self.by_id.items() if matches(entity, filters)]
        for key in doomed:
            del self.by_id[key]
        return len(doomed)

    async def count_by(self, field: str) -> dict[str, int]:
        return group_count(getattr(entity, field) for entity in self.by_id.values())


def build_memory_repositories() -> Repositories:
    return Repositories(
        registrations=InMemoryRepository(
            "registrations",
            unique_keys=[("user_id", "season_id")],
            protected_fields=REGISTRATION_STATUS_FIELDS,
        ),
        payments=InMemoryRepository("payment_records", unique_keys=[("external_payment_id",)]),
        registration_categories=InMemoryRepository(
            "registration_categories", unique_keys=[("registration_id", "category_id")]
        ),
        registration_stages=InMemoryRepository(
            "registration_stages", unique_keys=[("registration_id", "stage_id")]
        ),
        users=InMemoryRepository("users"),
        championships=InMemoryRepository("championships"),
        seasons=InMemoryRepository("seasons"),
        categories=InMemoryRepository("categories"),
        stages=InMemoryRepository("stages"),
    )
