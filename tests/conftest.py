"""Shared test fixtures and fakes."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone

# Must be set before quotedesk.database creates its engine
os.environ["DATABASE_URL"] = "sqlite://"

import pytest

from quotedesk.database import engine
from quotedesk.db_models import Base

SHEET_ID = "1AbCdEfGhIjKlMnOpQrStUvWxYz0123456789"
SHEET_URL = f"https://docs.google.com/spreadsheets/d/{SHEET_ID}/edit#gid=0"


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeUtcClock:
    """Wall clock returning timezone-aware datetimes, advanced by hand."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeSheetsClient:
    """Stand-in for SheetsClient returning canned payloads."""

    def __init__(
        self,
        values: list | None = None,
        metadata: dict | None = None,
        error: Exception | None = None,
    ) -> None:
        self.values = values
        self.metadata = metadata if metadata is not None else {"sheets": []}
        self.error = error
        self.calls: list[tuple] = []

    async def get_values(self, sheet_id: str, sheet_name: str = "Sheet1", cell_range: str | None = None) -> dict:
        self.calls.append(("values", sheet_id, sheet_name, cell_range))
        if self.error is not None:
            raise self.error
        return {"values": self.values} if self.values is not None else {}

    async def get_metadata(self, sheet_id: str, fresh: bool = False) -> dict:
        self.calls.append(("metadata", sheet_id, fresh))
        if self.error is not None:
            raise self.error
        return self.metadata

    async def close(self) -> None:
        pass


@pytest.fixture
def db():
    """Fresh tables for each test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
