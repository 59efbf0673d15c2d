"""Pytest fixtures for the staging backend.

Provides reusable test fixtures for:
- Redis via fakeredis (decode_responses=True, like production)
- SQLite in-memory database shared across sessions (StaticPool)
- A controllable clock for TTL tests
- In-memory catalog and durable repository fakes with failure injection
- Wired StageManager and CommitOrchestrator

Usage:
    def test_commit(manager, orchestrator, owner):
        draft = manager.add(owner, "A", 2)
        result = orchestrator.commit(owner, draft.id)
"""

import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

# Set environment variables BEFORE any imports to ensure they take effect
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-256-bits-minimum-length-required-for-hs256")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

backend_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(backend_src))

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import Settings
from catalog.ports import ProductLookupPort, ProductQuote
from commit.orchestrator import CommitOrchestrator
from events.publisher import EventPublisher
from models.base import Base
from repositories.ports import DurableRecord, DurableRepositoryPort, StoredRecord
from staging.actor import Actor, Privilege
from staging.errors import TransientBackendError
from staging.session_store import RedisSessionStore
from staging.stage_manager import StageManager
from validation.engine import BusinessRuleValidator


# =============================================================================
# Fakes
# =============================================================================

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self):
        self.now = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class InMemoryCatalog(ProductLookupPort):
    """Catalog backed by a dict of ProductQuote."""

    def __init__(self):
        self.quotes: Dict[str, ProductQuote] = {}

    def add(self, ref_id: str, price: str, tax_rate: str = "0", active: bool = True, name: str = None):
        self.quotes[ref_id] = ProductQuote(
            ref_id=ref_id,
            name=name or f"Product {ref_id}",
            unit_price=Decimal(price),
            tax_rate=Decimal(tax_rate),
            active=active,
        )

    def get_quote(self, ref_id: str) -> Optional[ProductQuote]:
        return self.quotes.get(ref_id)


class InMemoryRepository(DurableRepositoryPort):
    """Durable repository fake that honours idempotency keys.

    Failure injection:
        fail_on_create: 1-based create call numbers that raise ``create_error``
        fail_delete_keys: idempotency keys whose delete always raises TransientBackendError
        on_create: optional hook called before each create
    """

    def __init__(self):
        self.records: Dict[str, StoredRecord] = {}
        self.create_calls = 0
        self.deleted: List[str] = []
        self.fail_on_create: set = set()
        self.create_error: Exception = TransientBackendError("backend unavailable")
        self.fail_delete_keys: set = set()
        self.on_create = None

    def create(self, record: DurableRecord) -> str:
        self.create_calls += 1
        if self.on_create:
            self.on_create(record)
        if self.create_calls in self.fail_on_create:
            raise self.create_error

        existing = self.find_by_idempotency_key(record.record_type, record.idempotency_key)
        if existing:
            return existing.id

        record_id = str(uuid.uuid4())
        self.records[record_id] = StoredRecord(
            id=record_id,
            record_type=record.record_type,
            idempotency_key=record.idempotency_key,
            session_id=record.session_id,
            owner_id=record.owner_id,
            payload=dict(record.payload),
        )
        return record_id

    def update(self, record_id: str, patch: dict) -> None:
        self.records[record_id].payload.update(patch)

    def delete(self, record_id: str) -> None:
        record = self.records.get(record_id)
        if record is not None and record.idempotency_key in self.fail_delete_keys:
            raise TransientBackendError(f"cannot delete {record_id}")
        self.records.pop(record_id, None)
        self.deleted.append(record_id)

    def find_by_idempotency_key(self, record_type: str, idempotency_key: str) -> Optional[StoredRecord]:
        for record in self.records.values():
            if record.record_type == record_type and record.idempotency_key == idempotency_key:
                return record
        return None

    def find(self, record_type: str, owner_id: str) -> List[StoredRecord]:
        return [
            r for r in self.records.values()
            if r.record_type == record_type and r.owner_id == owner_id
        ]


class RecordingDispatch:
    """Collects (event_name, payload) pairs instead of queueing Celery tasks."""

    def __init__(self):
        self.events = []

    def __call__(self, event_name: str, payload: dict) -> None:
        self.events.append((event_name, payload))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings() -> Settings:
    return Settings(BACKEND_MAX_ATTEMPTS=3, BACKEND_RETRY_BASE_DELAY=2.0)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def dispatch() -> RecordingDispatch:
    return RecordingDispatch()


@pytest.fixture
def publisher(dispatch) -> EventPublisher:
    return EventPublisher(dispatch=dispatch)


@pytest.fixture
def store(redis_client, publisher, clock) -> RedisSessionStore:
    return RedisSessionStore(
        client=redis_client,
        ttl_seconds=3600,
        lock_ttl_seconds=30,
        result_ttl_seconds=3600,
        publisher=publisher,
        clock=clock,
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    catalog = InMemoryCatalog()
    catalog.add("A", "10.00")
    catalog.add("B", "5.00")
    catalog.add("TAXED", "100.00", tax_rate="13")
    catalog.add("RETIRED", "1.00", active=False)
    return catalog


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def manager(store, catalog, repository, publisher) -> StageManager:
    return StageManager(
        store=store,
        catalog=catalog,
        validator=BusinessRuleValidator(repository=repository),
        publisher=publisher,
    )


@pytest.fixture
def orchestrator(store, repository, catalog, publisher, settings, sleeps) -> CommitOrchestrator:
    return CommitOrchestrator(
        store=store,
        repository=repository,
        catalog=catalog,
        publisher=publisher,
        settings=settings,
        sleep=sleeps.append,
    )


@pytest.fixture
def owner() -> Actor:
    return Actor(id="member-1")


@pytest.fixture
def stranger() -> Actor:
    return Actor(id="member-2")


@pytest.fixture
def admin() -> Actor:
    return Actor(id="staff-1", privilege=Privilege.ADMIN)


@pytest.fixture
def session_factory():
    """SQLite in-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
