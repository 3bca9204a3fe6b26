"""
Shared fixtures: in-memory storage, a record store and sessions.
"""

from __future__ import annotations

import pytest

from db import MemoryStorage, TableRepository
from schemas import DonationRecord, UserSession
from services.acknowledgment import AcknowledgmentSlot, SuccessEvents
from services.records import RecordStore


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def tables(storage: MemoryStorage) -> TableRepository:
    return TableRepository(storage)


@pytest.fixture
def acks() -> AcknowledgmentSlot:
    return AcknowledgmentSlot(MemoryStorage())


@pytest.fixture
def events() -> SuccessEvents:
    return SuccessEvents()


@pytest.fixture
def announced(events: SuccessEvents) -> list[DonationRecord]:
    seen: list[DonationRecord] = []
    events.subscribe(seen.append)
    return seen


@pytest.fixture
def store(tables: TableRepository, acks: AcknowledgmentSlot, events: SuccessEvents) -> RecordStore:
    return RecordStore(tables, acks, events)


@pytest.fixture
def admin() -> UserSession:
    return UserSession(
        user_id="u_admin_seed",
        email="admin@donatehub.com",
        full_name="System Administrator",
        role="admin",
        login_at="2026-01-01T00:00:00+00:00",
    )


@pytest.fixture
def donor() -> UserSession:
    return UserSession(
        user_id="u_donor",
        email="donor@donatehub.com",
        full_name="Dana Donor",
        role="user",
        login_at="2026-01-01T00:00:00+00:00",
    )
