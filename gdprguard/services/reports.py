"""GdprReportService: aggregation and storage of GDPR compliance reports.

The service reads :class:`~gdprguard.models.file_scan_result.FileScanResult`
rows through :class:`~gdprguard.services.scan_records.ScanRecordRepository`,
reshapes them into a :class:`~gdprguard.schemas.report.GdprReportPayload`
(grouping by folder, risk level and detector), and stores the payload as a
JSON snapshot on a ``gdpr_report`` row.

Scan records only hold the latest scan of each path, so the stored snapshot
is the only place a report's view of the data survives later re-scans.

Usage::

    service = GdprReportService(get_sessionmaker())
    report = await service.generate_and_store(
        report_type="monthly",
        start=datetime(2026, 1, 1, tzinfo=timezone.utc),
        end=datetime(2026, 1, 31, 23, 59, 59, tzinfo=timezone.utc),
    )
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gdprguard.models.file_scan_result import FileScanResult
from gdprguard.models.gdpr_report import GdprReport
from gdprguard.schemas.report import (
    DataTypeSummary,
    FolderSummary,
    GdprReportPayload,
    ReportFile,
    RiskBreakdown,
)
from gdprguard.services.scan_records import ScanRecordRepository, deserialize_types

logger = logging.getLogger(__name__)

ROOT_FOLDER = "root"


def parent_folder(file_path: str) -> str:
    """Return the parent folder of *file_path*, or ``"root"`` for top-level files."""
    head, sep, _ = file_path.rpartition("/")
    return head if sep and head else ROOT_FOLDER


class GdprReportService:
    """Service for aggregating scan records into reports and persisting them.

    Args:
        session_factory: Factory producing :class:`AsyncSession` objects.
        repository: Scan record reader.  Defaults to a
            :class:`ScanRecordRepository` over the same factory.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        repository: ScanRecordRepository | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._repository = repository or ScanRecordRepository(session_factory)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    @staticmethod
    def build_payload(
        records: Sequence[FileScanResult],
        period_start: datetime,
        period_end: datetime,
        *,
        scans_in_period: int,
        generated_at: datetime | None = None,
    ) -> GdprReportPayload:
        """Reshape *records* (all current scan records) into a report payload."""
        flagged = [r for r in records if r.has_personal_data]

        risk_counts = {"low": 0, "medium": 0, "high": 0, "critical": 0}
        folders: dict[str, list[ReportFile]] = {}
        folder_risks: dict[str, dict[str, int]] = {}
        type_stats: dict[str, list[ReportFile]] = {}

        for record in flagged:
            types = deserialize_types(record.personal_data_types)
            entry = ReportFile(
                path=record.file_path,
                name=record.file_name,
                risk_level=record.risk_level,
                personal_data_types=types,
                scan_date=record.scan_date,
            )
            if record.risk_level in risk_counts:
                risk_counts[record.risk_level] += 1

            folder = parent_folder(record.file_path)
            folders.setdefault(folder, []).append(entry)
            counts = folder_risks.setdefault(folder, {"low": 0, "medium": 0, "high": 0, "critical": 0})
            if record.risk_level in counts:
                counts[record.risk_level] += 1

            for data_type in types:
                type_stats.setdefault(data_type, []).append(entry)

        return GdprReportPayload(
            period_start=period_start,
            period_end=period_end,
            generated_at=generated_at or datetime.now(tz=timezone.utc),
            total_files_scanned=len(records),
            scans_in_period=scans_in_period,
            files_with_personal_data=len(flagged),
            risk_breakdown=RiskBreakdown(**risk_counts),
            files_by_folder=[
                FolderSummary(
                    folder_path=folder,
                    file_count=len(files),
                    files=files,
                    risk_levels=RiskBreakdown(**folder_risks[folder]),
                )
                for folder, files in sorted(folders.items())
            ],
            personal_data_type_stats={
                name: DataTypeSummary(count=len(files), files=files)
                for name, files in sorted(type_stats.items(), key=lambda x: (-len(x[1]), x[0]))
            },
        )

    async def aggregate(self, start: datetime, end: datetime) -> GdprReportPayload:
        """Build a payload from the current scan records.

        File counts reflect the current state of every scanned path; only
        ``scans_in_period`` is restricted to ``[start, end]``.
        """
        records = await self._repository.list_all_scan_records()
        in_period = await self._repository.list_scan_records(start, end)
        return self.build_payload(records, start, end, scans_in_period=len(in_period))

    def generate_json_report(self, payload: GdprReportPayload) -> bytes:
        """Serialise *payload* to indented UTF-8 JSON bytes."""
        return json.dumps(payload.model_dump(mode="json"), indent=2).encode("utf-8")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def generate_and_store(
        self,
        report_type: str,
        start: datetime,
        end: datetime,
        *,
        generated_by: str | None = None,
    ) -> GdprReport:
        """Aggregate the current scan records and persist a report snapshot."""
        payload = await self.aggregate(start, end)

        async with self._session_factory() as session:
            report = GdprReport(
                report_type=report_type,
                start_date=start,
                end_date=end,
                generated_by=generated_by,
                status="completed",
                report_data=payload.model_dump(mode="json"),
                generated_at=payload.generated_at,
            )
            session.add(report)
            await session.commit()
            await session.refresh(report)

        logger.info(
            json.dumps(
                {
                    "event": "gdpr_report_generated",
                    "report_id": str(report.id),
                    "report_type": report_type,
                    "files_with_personal_data": payload.files_with_personal_data,
                    "period_start": start.isoformat(),
                    "period_end": end.isoformat(),
                }
            )
        )
        return report

    async def list_reports(
        self,
        *,
        report_type: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[GdprReport], int]:
        """Return ``(page, total_count)`` of reports, newest first."""
        base_query = select(GdprReport)
        if report_type is not None:
            base_query = base_query.where(GdprReport.report_type == report_type)

        async with self._session_factory() as session:
            count_query = select(func.count()).select_from(base_query.subquery())
            total: int = (await session.execute(count_query)).scalar_one()

            paged_query = (
                base_query.order_by(GdprReport.generated_at.desc()).limit(limit).offset(offset)
            )
            rows = (await session.execute(paged_query)).scalars().all()

        return rows, total

    async def get_report(self, report_id: uuid.UUID) -> GdprReport | None:
        """Return a single report by id, or ``None``."""
        async with self._session_factory() as session:
            result = await session.execute(select(GdprReport).where(GdprReport.id == report_id))
            return result.scalar_one_or_none()
