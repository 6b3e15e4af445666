from __future__ import annotations

import pathlib
import sys
from contextlib import contextmanager
from typing import Any

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
from enrollment_api.domain.models import new_id
from enrollment_api.repositories import pg_store
from enrollment_api.repositories.pg_store import build_pg_repositories


class RecordingCursor:
    def __init__(self, executed: list[tuple[str, Any]]) -> None:
        self.executed = executed
        self.rowcount = 0

    def __enter__(self) -> "RecordingCursor":
        return self

    def __exit__(self, *exc: Any) -> None:
        return None

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))

    def fetchall(self) -> list:
        return []

    def fetchone(self) -> None:
        return None


class RecordingConnection:
    def __init__(self) -> None:
        self.executed: list[tuple[str, Any]] = []

    def cursor(self) -> RecordingCursor:
        return RecordingCursor(self.executed)


@pytest.fixture
def conn(monkeypatch) -> RecordingConnection:
    connection = RecordingConnection()

    @contextmanager
    def fake_get_conn():
        yield connection

    monkeypatch.setattr(pg_store, "get_conn", fake_get_conn)
    return connection


@pytest.mark.asyncio
async def test_malformed_id_never_reaches_database(conn) -> None:
    repos = build_pg_repositories()

    assert await repos.registrations.find("not-a-uuid") is None
    assert await repos.payments.find_many(registration_id="reg_1") == []
    assert await repos.registrations.update("not-a-uuid", {"notes": "x"}) is None
    assert await repos.registrations.delete("not-a-uuid") is False
    assert await repos.registration_stages.delete_many(registration_id="nope") == 0
    assert conn.executed == []


@pytest.mark.asyncio
async def test_malformed_ids_are_dropped_from_membership_filters(conn) -> None:
    repos = build_pg_repositories()
    valid = new_id()

    await repos.categories.find_many(id=["cat_a", valid], season_id=new_id())

    assert len(conn.executed) == 1
    sql, params = conn.executed[0]
    assert "id IN %s" in sql
    assert params[0] == (valid,)


@pytest.mark.asyncio
async def test_text_columns_are_not_checked(conn) -> None:
    repos = build_pg_repositories()

    assert await repos.payments.find_many(external_payment_id="pay_123") == []
    assert await repos.registrations.find_many(notes="guest driver") == []

    assert len(conn.executed) == 2
