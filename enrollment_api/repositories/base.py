from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Iterable, TypeVar

from enrollment_api.domain.models import (
    Category,
    Championship,
    PaymentRecord,
    Registration,
    RegistrationCategory,
    RegistrationStage,
    Season,
    Stage,
    User,
)

T = TypeVar("T")

# Written only at creation, by the administrative path or by reconciliation
REGISTRATION_STATUS_FIELDS = frozenset({"status", "payment_status"})


class Repository(ABC, Generic[T]):
    """Async persistence contract shared by the in-memory and PostgreSQL stores.

    Filter values that are lists, tuples or sets mean "IN".
    """

    protected_fields: frozenset[str] = frozenset()

    @abstractmethod
    async def find(self, entity_id: str) -> T | None: ...

    @abstractmethod
    async def find_many(self, **filters: Any) -> list[T]: ...

    @abstractmethod
    async def create(self, entity: T) -> T:
        """Insert and return the stored entity; unique violations raise ConflictError."""

    @abstractmethod
    async def _apply_update(self, entity_id: str, patch: dict[str, Any]) -> T | None: ...

    @abstractmethod
    async def delete(self, entity_id: str) -> bool: ...

    @abstractmethod
    async def delete_many(self, **filters: Any) -> int: ...

    @abstractmethod
    async def count_by(self, field: str) -> dict[str, int]:
        """Return row counts grouped by the value of ``field``."""

    async def find_one(self, **filters: Any) -> T | None:
        found = await self.find_many(**filters)
        return found[0] if found else None

    async def update(self, entity_id: str, patch: dict[str, Any]) -> T | None:
        blocked = self.protected_fields.intersection(patch)
        if blocked:
            raise ValueError(f"fields {sorted(blocked)} cannot be written through update()")
        return await self._apply_update(entity_id, patch)

    async def write_status(self, entity_id: str, patch: dict[str, Any]) -> T | None:
        """Write protected status fields (and their companions) in one update."""
        return await self._apply_update(entity_id, patch)


def is_multi(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def matches(entity: Any, filters: dict[str, Any]) -> bool:
    for key, expected in filters.items():
        actual = getattr(entity, key)
        if is_multi(expected):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


def group_count(values: Iterable[Any]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for value in values:
        key = str(getattr(value, "value", value))
        counts[key] = counts.get(key, 0) + 1
    return counts


@dataclass
class Repositories:
    """Every store the enrollment services need."""

    registrations: Repository[Registration]
    payments: Repository[PaymentRecord]
    registration_categories: Repository[RegistrationCategory]
    registration_stages: Repository[RegistrationStage]
    users: Repository[User]
    championships: Repository[Championship]
    seasons: Repository[Season]
    categories: Repository[Category]
    stages: Repository[Stage]
