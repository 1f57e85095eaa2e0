"""Shared fixtures: in-memory database, fake clock and fake adapters."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from grantsync.database import (
    GrantRepository,
    SourceStore,
    UpdateHistoryStore,
    init_db,
)
from grantsync.ingestion.base import BaseAdapter, SourceConfig
from grantsync.ingestion.records import GrantRecord


NOW = datetime(2025, 3, 1, 9, 0, 0)


class FakeClock:
    """Clock whose sleep advances time instantly and records the delay."""

    def __init__(self, start: datetime = NOW):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)


class FakeAdapter(BaseAdapter):
    """Adapter serving canned listings or raising a canned error."""

    def __init__(self, name, listings=None, error=None, quick=False,
                 rate_limit=None, enabled=True, on_fetch=None):
        super().__init__(SourceConfig(
            name=name,
            display_name=name.title(),
            base_url=f"https://{name}.example.org",
            kind="api",
            enabled=enabled,
            rate_limit=rate_limit,
            quick=quick,
        ))
        self.listings = listings or []
        self.error = error
        self.on_fetch = on_fetch
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.on_fetch:
            self.on_fetch(self)
        error = self.error(self.calls) if callable(self.error) else self.error
        if error:
            raise error
        return list(self.listings)

    def normalize(self, raw):
        return GrantRecord(
            external_id=raw["id"],
            source=self.name,
            title=raw["title"],
            description=raw.get("description", ""),
            agency=raw.get("agency"),
            application_deadline=raw.get("deadline"),
            tags=raw.get("tags", []),
        )


def listing(grant_id, title=None, agency="Department of Energy", days=60, **extra):
    """Raw listing for FakeAdapter with a deadline ``days`` after NOW."""
    return {
        "id": grant_id,
        "title": title or f"Grant {grant_id}",
        "agency": agency,
        "deadline": NOW + timedelta(days=days) if days is not None else None,
        **extra,
    }


def make_record(external_id="G-1", source="grants_gov", **fields):
    """GrantRecord with sensible defaults."""
    values = dict(
        title=f"Grant {external_id}",
        description="Support for small business technology projects",
        agency="Department of Energy",
        category="Energy",
        award_min=50_000,
        award_max=250_000,
        application_deadline=NOW + timedelta(days=90),
        tags=["department-of-energy", "technology"],
    )
    values.update(fields)
    return GrantRecord(external_id=external_id, source=source, **values)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


@pytest.fixture
def repository(session_factory):
    return GrantRepository(session_factory)


@pytest.fixture
def source_store(session_factory):
    return SourceStore(session_factory)


@pytest.fixture
def history(session_factory):
    return UpdateHistoryStore(session_factory)


@pytest.fixture
def clock():
    return FakeClock()
