from __future__ import annotations

import asyncio
import dataclasses
import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from functools import partial
from typing import Any, Callable, Sequence
from uuid import UUID

from psycopg2 import errors as pg_errors
from psycopg2.extras import Json

from enrollment_api.db.client import get_conn
from enrollment_api.domain.errors import ConflictError
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

from .base import REGISTRATION_STATUS_FIELDS, Repositories, Repository, T, is_multi


MONEY_QUANT = Decimal("0.01")

_json_dumps = partial(json.dumps, default=str)


def _normalize_amount(value: Any | None) -> Decimal | None:
    if value is None:
        return None
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValueError("Invalid monetary amount") from exc
    return amount.quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


def _to_plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {k: _to_plain(v) for k, v in dataclasses.asdict(value).items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


class PgRepository(Repository[T]):
    """PostgreSQL-backed store for one dataclass entity using raw psycopg2.

    Columns are the dataclass fields. Blocking calls run in a worker thread.
    """

    def __init__(
        self,
        table: str,
        entity_cls: Callable[..., T],
        *,
        json_columns: Sequence[str] = (),
        money_columns: Sequence[str] = (),
        date_string_columns: Sequence[str] = (),
        uuid_columns: Sequence[str] = ("id",),
        protected_fields: frozenset[str] = frozenset(),
    ) -> None:
        self.table = table
        self.entity_cls = entity_cls
        self.columns = [f.name for f in dataclasses.fields(entity_cls)]  # type: ignore[arg-type]
        self.json_columns = set(json_columns)
        self.money_columns = set(money_columns)
        self.date_string_columns = set(date_string_columns)
        self.uuid_columns = set(uuid_columns)
        self.protected_fields = protected_fields

    def _column(self, name: str) -> str:
        if name not in self.columns:
            raise ValueError(f"unknown column {name} for {self.table}")
        return name

    def _adapt(self, column: str, value: Any) -> Any:
        if value is None:
            return None
        if column in self.json_columns:
            return Json(_to_plain(value), dumps=_json_dumps)
        if column in self.money_columns:
            return _normalize_amount(value)
        if isinstance(value, Enum):
            return value.value
        return value

    def _hydrate(self, row: Sequence[Any]) -> T:
        data: dict[str, Any] = {}
        for column, value in zip(self.columns, row):
            if column in self.date_string_columns and isinstance(value, (date, datetime)):
                value = value.isoformat()[:10]
            data[column] = value
        return self.entity_cls(**data)

    def _where(self, filters: dict[str, Any]) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        for key, value in filters.items():
            column = self._column(key)
            if is_multi(value):
                clauses.append(f"{column} IN %s")
                params.append(tuple(self._adapt(column, v) for v in value))
            elif value is None:
                clauses.append(f"{column} IS NULL")
            else:
                clauses.append(f"{column} = %s")
                params.append(self._adapt(column, value))
        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _narrow(self, filters: dict[str, Any]) -> dict[str, Any] | None:
        """Drop key values PostgreSQL would reject as malformed UUIDs.

        Returns None when no row can match.
        """
        narrowed: dict[str, Any] = {}
        for key, value in filters.items():
            if key in self.uuid_columns and value is not None:
                if is_multi(value):
                    value = [v for v in value if _is_uuid(v)]
                    if not value:
                        return None
                elif not _is_uuid(value):
                    return None
            narrowed[key] = value
        return narrowed

    def _select_sql(self) -> str:
        return f"SELECT {', '.join(self.columns)} FROM {self.table}"

    def _find_many_sync(self, filters: dict[str, Any]) -> list[T]:
        where, params = self._where(filters)
        with get_conn() as conn:
            if conn is None:
                return []
            with conn.cursor() as cur:
                cur.execute(self._select_sql() + where, params)
                return [self._hydrate(row) for row in cur.fetchall() or []]

    def _create_sync(self, entity: T) -> T:
        values = [self._adapt(c, getattr(entity, c)) for c in self.columns]
        placeholders = []
        for column in self.columns:
            if column in ("created_at", "updated_at"):
                placeholders.append("COALESCE(%s, NOW())")
            else:
                placeholders.append("%s")
        sql = (
            f"INSERT INTO {self.table} ({', '.join(self.columns)}) "
            f"VALUES ({', '.join(placeholders)}) RETURNING {', '.join(self.columns)}"
        )
        try:
            with get_conn() as conn:
                if conn is None:
                    raise RuntimeError("database not configured")
                with conn.cursor() as cur:
                    cur.execute(sql, values)
                    row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            raise ConflictError(f"{self.table} unique constraint violated", code="unique_violation") from exc
        return self._hydrate(row)

    def _update_sync(self, entity_id: str, patch: dict[str, Any]) -> T | None:
        assignments = [f"{self._column(key)} = %s" for key in patch]
        params = [self._adapt(key, value) for key, value in patch.items()]
        if "updated_at" in self.columns and "updated_at" not in patch:
            assignments.append("updated_at = NOW()")
        if not assignments:
            found = self._find_many_sync({"id": entity_id})
            return found[0] if found else None
        sql = (
            f"UPDATE {self.table} SET {', '.join(assignments)} "
            f"WHERE id = %s RETURNING {', '.join(self.columns)}"
        )
        try:
            with get_conn() as conn:
                if conn is None:
                    return None
                with conn.cursor() as cur:
                    cur.execute(sql, [*params, entity_id])
                    row = cur.fetchone()
        except pg_errors.UniqueViolation as exc:
            raise ConflictError(f"{self.table} unique constraint violated", code="unique_violation") from exc
        return self._hydrate(row) if row else None

    def _delete_many_sync(self, filters: dict[str, Any]) -> int:
        where, params = self._where(filters)
        with get_conn() as conn:
            if conn is None:
                return 0
            with conn.cursor() as cur:
                cur.execute(f"DELETE FROM {self.table}{where}", params)
                return int(cur.rowcount or 0)

    def _count_by_sync(self, field: str) -> dict[str, int]:
        column = self._column(field)
        with get_conn() as conn:
            if conn is None:
                return {}
            with conn.cursor() as cur:
                cur.execute(f"SELECT {column}, COUNT(*) FROM {self.table} GROUP BY {column}")
                return {str(value): int(count) for value, count in cur.fetchall() or []}

    async def find(self, entity_id: str) -> T | None:
        found = await self.find_many(id=entity_id)
        return found[0] if found else None

    async def find_many(self, **filters: Any) -> list[T]:
        if any(is_multi(value) and not value for value in filters.values()):
            return []
        narrowed = self._narrow(filters)
        if narrowed is None:
            return []
        return await asyncio.to_thread(self._find_many_sync, narrowed)

    async def create(self, entity: T) -> T:
        return await asyncio.to_thread(self._create_sync, entity)

    async def _apply_update(self, entity_id: str, patch: dict[str, Any]) -> T | None:
        if self._narrow({"id": entity_id}) is None:
            return None
        return await asyncio.to_thread(self._update_sync, entity_id, dict(patch))

    async def delete(self, entity_id: str) -> bool:
        return await self.delete_many(id=entity_id) > 0

    async def delete_many(self, **filters: Any) -> int:
        if any(is_multi(value) and not value for value in filters.values()):
            return 0
        narrowed = self._narrow(filters)
        if narrowed is None:
            return 0
        return await asyncio.to_thread(self._delete_many_sync, narrowed)

    async def count_by(self, field: str) -> dict[str, int]:
        return await asyncio.to_thread(self._count_by_sync, field)


def build_pg_repositories() -> Repositories:
    return Repositories(
        registrations=PgRepository(
            "registrations",
            Registration,
            money_columns=("amount",),
            uuid_columns=("id", "user_id", "season_id"),
            protected_fields=REGISTRATION_STATUS_FIELDS,
        ),
        payments=PgRepository(
            "payment_records",
            PaymentRecord,
            json_columns=("raw_response", "webhook_data"),
            money_columns=("value", "net_value"),
            date_string_columns=("due_date",),
            uuid_columns=("id", "registration_id"),
        ),
        registration_categories=PgRepository(
            "registration_categories",
            RegistrationCategory,
            uuid_columns=("id", "registration_id", "category_id"),
        ),
        registration_stages=PgRepository(
            "registration_stages", RegistrationStage, uuid_columns=("id", "registration_id", "stage_id")
        ),
        users=PgRepository("users", User),
        championships=PgRepository("championships", Championship),
        seasons=PgRepository(
            "seasons",
            Season,
            json_columns=("payment_methods", "payment_conditions"),
            money_columns=("inscription_value",),
            uuid_columns=("id", "championship_id"),
        ),
        categories=PgRepository("categories", Category, uuid_columns=("id", "season_id")),
        stages=PgRepository("stages", Stage, uuid_columns=("id", "season_id")),
    )
