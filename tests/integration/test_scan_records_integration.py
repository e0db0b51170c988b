"""Integration tests for ScanRecordRepository with a real SQLAlchemy async session.

These tests use an **in-memory SQLite** database (via ``aiosqlite`` +
``StaticPool``, see ``tests/conftest.py``) so that no PostgreSQL server is
required.  They exercise the full ORM lifecycle of the bulk scanner writing
through the repository.

Test scope
----------
- Upsert creates one row per path and overwrites it on re-scan
- Concurrent upserts of one path (file-backed database, separate connections)
- Re-scanning unchanged content keeps the content hash and advances scan_date
- ``scan_errors`` are stored joined with ``", "``
- Date-range and personal-data filters on ``list_scan_records``
- End-to-end bulk folder scan persisted through the repository

Database compatibility note
----------------------------
SQLite hands back naive datetimes for ``DateTime(timezone=True)`` columns, so
comparisons below strip tzinfo from the values written.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from gdprguard.core.adapters import InMemoryObjectStore
from gdprguard.core.bulk_scanner import BulkFolderScanner
from gdprguard.core.scan_record import FileScanRecord
from gdprguard.db.base import Base
from gdprguard.models.file_scan_result import FileScanResult
from gdprguard.services.scan_records import (
    ScanRecordRepository,
    deserialize_types,
    record_from_row,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


T0 = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def _record(
    path: str = "hr/staff.csv",
    *,
    when: datetime = T0,
    risk: str = "medium",
    types: tuple[str, ...] = ("Email Address",),
    content_hash: str | None = "abc123",
    errors: tuple[str, ...] = (),
) -> FileScanRecord:
    return FileScanRecord(
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        has_personal_data=bool(types),
        personal_data_types=types,
        risk_level=risk,
        file_type="csv",
        file_size_bytes=128,
        content_hash=content_hash,
        scan_duration_ms=3,
        scan_errors=errors,
        scan_version="1.0.0",
        scan_date=when,
    )


def _naive(value: datetime) -> datetime:
    return value.replace(tzinfo=None)


async def _count(session_factory, path: str) -> int:
    async with session_factory() as session:
        return (
            await session.execute(
                select(func.count()).select_from(FileScanResult).where(FileScanResult.file_path == path)
            )
        ).scalar_one()


@pytest.fixture
def repository(session_factory) -> ScanRecordRepository:
    return ScanRecordRepository(session_factory)


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------


class TestUpsert:
    async def test_insert(self, repository, session_factory):
        row = await repository.upsert_scan_record("hr/staff.csv", _record())

        assert row.id is not None
        assert row.scan_status == "completed"
        assert deserialize_types(row.personal_data_types) == ["Email Address"]
        assert await _count(session_factory, "hr/staff.csv") == 1

    async def test_rescan_overwrites_single_row(self, repository, session_factory):
        first = await repository.upsert_scan_record("hr/staff.csv", _record())
        second = await repository.upsert_scan_record(
            "hr/staff.csv",
            _record(when=T0 + timedelta(hours=1), risk="critical", types=("IBAN",)),
        )

        assert second.id == first.id
        assert await _count(session_factory, "hr/staff.csv") == 1

        stored = await repository.find_scan_record("hr/staff.csv")
        assert stored is not None
        assert stored.risk_level == "critical"
        assert deserialize_types(stored.personal_data_types) == ["IBAN"]

    async def test_unchanged_content_keeps_hash_and_advances_date(self, repository, session_factory):
        await repository.upsert_scan_record("hr/staff.csv", _record(content_hash="h1"))
        await repository.upsert_scan_record(
            "hr/staff.csv", _record(content_hash="h1", when=T0 + timedelta(days=1))
        )

        stored = await repository.find_scan_record("hr/staff.csv")
        assert stored.content_hash == "h1"
        assert _naive(stored.scan_date) == _naive(T0 + timedelta(days=1))
        assert await _count(session_factory, "hr/staff.csv") == 1

    async def test_scan_errors_joined(self, repository):
        row = await repository.upsert_scan_record(
            "hr/staff.csv", _record(errors=("first problem", "second problem"))
        )
        assert row.scan_errors == "first problem, second problem"

    async def test_no_errors_stored_as_null(self, repository):
        row = await repository.upsert_scan_record("hr/staff.csv", _record())
        assert row.scan_errors is None

    async def test_mismatched_key_rejected(self, repository):
        with pytest.raises(ValueError):
            await repository.upsert_scan_record("other/path.csv", _record())

    async def test_round_trip_to_record(self, repository):
        original = _record(types=("Email Address", "Phone Number"), errors=("note",))
        row = await repository.upsert_scan_record(original.file_path, original)

        restored = record_from_row(row)

        assert restored.personal_data_types == original.personal_data_types
        assert restored.scan_errors == ("note",)
        assert restored.content_hash == original.content_hash


# ---------------------------------------------------------------------------
# Concurrent writers
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite database, one connection per session."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


class TestConcurrentUpsert:
    async def test_same_path_from_several_writers(self, file_session_factory):
        repository = ScanRecordRepository(file_session_factory)
        records = [
            _record("hr/a.txt", when=T0 + timedelta(minutes=i), content_hash=f"h{i}")
            for i in range(4)
        ]

        rows = await asyncio.gather(
            *(repository.upsert_scan_record("hr/a.txt", r) for r in records)
        )

        assert len({row.id for row in rows}) == 1
        assert await _count(file_session_factory, "hr/a.txt") == 1
        stored = await repository.find_scan_record("hr/a.txt")
        assert stored.content_hash in {"h0", "h1", "h2", "h3"}


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    async def test_find_missing(self, repository):
        assert await repository.find_scan_record("nope.txt") is None

    async def test_list_filters(self, repository):
        await repository.upsert_scan_record("a.txt", _record("a.txt", when=T0))
        await repository.upsert_scan_record(
            "b.txt", _record("b.txt", when=T0 + timedelta(days=10), types=())
        )
        await repository.upsert_scan_record("c.txt", _record("c.txt", when=T0 + timedelta(days=20)))

        in_range = await repository.list_scan_records(T0 + timedelta(days=5), T0 + timedelta(days=25))
        assert [r.file_path for r in in_range] == ["c.txt", "b.txt"]

        inclusive = await repository.list_scan_records(T0, T0)
        assert [r.file_path for r in inclusive] == ["a.txt"]

        flagged = await repository.list_scan_records(personal_data_only=True)
        assert [r.file_path for r in flagged] == ["c.txt", "a.txt"]

        everything = await repository.list_all_scan_records()
        assert len(everything) == 3


# ---------------------------------------------------------------------------
# Bulk scanner end to end
# ---------------------------------------------------------------------------


class TestBulkScanPersistence:
    async def test_rescan_of_unchanged_folder(self, repository, session_factory):
        store = InMemoryObjectStore(
            {
                "hr/contacts.txt": b"Contact me at jane.doe@example.com or 555-123-4567",
                "hr/photo_123-45-6789.png": b"\x89PNG",
            }
        )
        scanner = BulkFolderScanner(store, repository)

        first = await scanner.scan_folder_recursively("hr")
        before = await repository.find_scan_record("hr/contacts.txt")
        await asyncio.sleep(0.01)
        second = await scanner.scan_folder_recursively("hr")
        after = await repository.find_scan_record("hr/contacts.txt")

        assert first.scanned_files == second.scanned_files == 2
        assert before.content_hash == after.content_hash
        assert after.scan_date > before.scan_date
        assert await _count(session_factory, "hr/contacts.txt") == 1
        assert len(await repository.list_all_scan_records()) == 2

        image = await repository.find_scan_record("hr/photo_123-45-6789.png")
        assert image.has_personal_data is True
        assert image.content_hash is None
