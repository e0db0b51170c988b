"""ScanRecordRepository: SQLAlchemy persistence for file scan records.

Implements the :class:`~gdprguard.core.scan_record.ScanRecordStore` protocol
used by the bulk folder scanner plus the read queries used by reporting.

Every public method opens its own session from the supplied factory and
commits before returning, so a failed upsert for one file never leaves a
broken transaction behind for the next.

Usage::

    from gdprguard.db import get_sessionmaker
    from gdprguard.services.scan_records import ScanRecordRepository

    repository = ScanRecordRepository(get_sessionmaker())
    await repository.upsert_scan_record(record.file_path, record)
    latest = await repository.find_scan_record("hr/staff.csv")
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Sequence

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gdprguard.core.scan_record import FileScanRecord
from gdprguard.models.file_scan_result import FileScanResult

logger = logging.getLogger(__name__)


def serialize_types(types: Sequence[str]) -> str:
    """Encode detector names as the stored JSON array string."""
    return json.dumps(list(types))


def deserialize_types(raw: str | None) -> list[str]:
    """Decode a stored ``personal_data_types`` value; malformed input yields ``[]``."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Malformed personal_data_types value: %r", raw)
        return []
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def record_from_row(row: FileScanResult) -> FileScanRecord:
    """Convert a stored row back into a :class:`FileScanRecord`.

    The stored ``scan_errors`` text is one joined string and comes back as a
    single entry.
    """
    return FileScanRecord(
        file_path=row.file_path,
        file_name=row.file_name,
        has_personal_data=row.has_personal_data,
        personal_data_types=tuple(deserialize_types(row.personal_data_types)),
        risk_level=row.risk_level,
        file_type=row.file_type,
        file_size_bytes=row.file_size_bytes,
        content_hash=row.content_hash,
        scan_duration_ms=row.scan_duration_ms,
        scan_errors=(row.scan_errors,) if row.scan_errors else (),
        scan_version=row.scan_version,
        scan_date=row.scan_date,
    )


def _values(record: FileScanRecord) -> dict[str, Any]:
    return {
        "file_name": record.file_name,
        "scan_status": "completed",
        "has_personal_data": record.has_personal_data,
        "personal_data_types": serialize_types(record.personal_data_types),
        "risk_level": record.risk_level,
        "file_type": record.file_type,
        "file_size_bytes": record.file_size_bytes,
        "content_hash": record.content_hash,
        "scan_duration_ms": record.scan_duration_ms,
        "scan_errors": ", ".join(record.scan_errors) or None,
        "scan_version": record.scan_version,
        "scan_date": record.scan_date,
    }


# INSERT .. ON CONFLICT builders for the dialects the service runs on.
_UPSERT_INSERTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ScanRecordRepository:
    """Create-or-overwrite store of :class:`FileScanResult` rows keyed by path.

    Args:
        session_factory: Factory producing :class:`AsyncSession` objects.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_scan_record(self, file_path: str, record: FileScanRecord) -> FileScanResult:
        """Insert the record for *file_path*, or overwrite the existing one.

        A single ``INSERT .. ON CONFLICT (file_path) DO UPDATE`` statement, so
        concurrent writers for the same path all succeed and the last commit
        wins.

        Raises:
            ValueError: If ``record.file_path`` differs from *file_path*.
            RuntimeError: If the database dialect has no upsert support here.
        """
        if record.file_path != file_path:
            raise ValueError(
                f"Record path {record.file_path!r} does not match key {file_path!r}"
            )

        values = _values(record)
        async with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_INSERTS.get(dialect)
            if insert is None:
                raise RuntimeError(f"Scan record upsert is not supported on {dialect!r}")

            stmt = insert(FileScanResult).values(id=uuid.uuid4(), file_path=file_path, **values)
            stmt = stmt.on_conflict_do_update(index_elements=["file_path"], set_=values)
            await session.execute(stmt)
            await session.commit()

            row = (
                await session.execute(
                    select(FileScanResult).where(FileScanResult.file_path == file_path)
                )
            ).scalar_one()

        logger.debug(
            "Scan record upserted: path=%s risk=%s personal_data=%s",
            file_path,
            record.risk_level,
            record.has_personal_data,
        )
        return row

    async def find_scan_record(self, file_path: str) -> FileScanResult | None:
        """Return the most recent scan of *file_path*, or ``None``."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(FileScanResult)
                .where(FileScanResult.file_path == file_path)
                .order_by(FileScanResult.scan_date.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_scan_records(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        *,
        personal_data_only: bool = False,
    ) -> Sequence[FileScanResult]:
        """Return records whose ``scan_date`` lies within ``[start, end]``, newest first.

        Either bound may be ``None`` for an open interval.
        """
        query = select(FileScanResult)
        if start is not None:
            query = query.where(FileScanResult.scan_date >= start)
        if end is not None:
            query = query.where(FileScanResult.scan_date <= end)
        if personal_data_only:
            query = query.where(FileScanResult.has_personal_data.is_(True))

        async with self._session_factory() as session:
            result = await session.execute(query.order_by(FileScanResult.scan_date.desc()))
            return result.scalars().all()

    async def list_all_scan_records(self) -> Sequence[FileScanResult]:
        """Return every stored record, newest first."""
        return await self.list_scan_records()
