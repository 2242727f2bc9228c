"""Shared fixtures: an in-memory stand-in for the Database and a TestClient."""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from cityapi.config import Settings
from cityapi.errors import DatabaseError
from cityapi.main import create_app

_INSERT_RE = re.compile(r"\s*INSERT\s+INTO\s+cities\s*\(([^)]*)\)", re.IGNORECASE)
_ORDER_BY_ID_DESC_RE = re.compile(r"ORDER\s+BY\s+id\s+DESC", re.IGNORECASE)


class FakeDatabase:
    """Mimics the SQL the routes issue against the cities table."""

    def __init__(self) -> None:
        self.rows: List[Dict[str, Any]] = []
        self.statements: List[str] = []
        self._next_id = 1
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def execute(self, query: str, params: Optional[Sequence[Any]] = None) -> int:
        self.statements.append(" ".join(query.split()))
        insert = _INSERT_RE.match(query)
        if insert:
            columns = [c.strip() for c in insert.group(1).split(",")]
            row = dict(zip(columns, params))
            self.rows.append(
                {
                    "id": self._next_id,
                    "name": row.get("name"),
                    "country": row.get("country"),
                    "created_at": self._clock + timedelta(seconds=self._next_id),
                }
            )
            self._next_id += 1
            return 1
        return 0

    def fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Rows come back in insertion order unless the query asks for id DESC."""
        self.statements.append(" ".join(query.split()))
        rows = [dict(r) for r in self.rows]
        if _ORDER_BY_ID_DESC_RE.search(query):
            rows.sort(key=lambda r: r["id"], reverse=True)
        return rows


class FailingDatabase:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def execute(self, query, params=None):
        raise self.exc

    def fetch_all(self, query, params=None):
        raise self.exc


@pytest.fixture
def settings() -> Settings:
    return Settings(static_dir=None)


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def client(settings: Settings, fake_db: FakeDatabase) -> TestClient:
    return TestClient(create_app(settings, fake_db))


@pytest.fixture
def make_failing_client(settings: Settings):
    def _make(exc: Exception, **client_kwargs: Any) -> TestClient:
        return TestClient(create_app(settings, FailingDatabase(exc)), **client_kwargs)

    return _make


@pytest.fixture
def failing_client(make_failing_client) -> TestClient:
    return make_failing_client(DatabaseError('relation "cities" does not exist'))
