"""Unit tests for gdprguard/services/reports.py and gdprguard/schemas/report.py.

Coverage targets:
* ``build_payload`` grouping: by parent folder (``"root"`` for top-level
  files), by risk level, and by detector name.
* ``aggregate`` counts every current record but only in-period scans for
  ``scans_in_period``.
* ``generate_and_store`` persists a JSON snapshot that later re-scans do
  not change.
* ``list_reports`` / ``get_report`` queries.
* Schema validation of report periods.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from gdprguard.core.scan_record import FileScanRecord
from gdprguard.models.file_scan_result import FileScanResult
from gdprguard.schemas.report import GdprReportCreate, GdprReportPayload, GdprReportRead
from gdprguard.services.reports import GdprReportService, parent_folder
from gdprguard.services.scan_records import ScanRecordRepository, serialize_types

NOW = datetime(2026, 6, 30, 12, 0, tzinfo=timezone.utc)
PERIOD_START = datetime(2026, 6, 1, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 6, 30, 23, 59, 59, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row(path: str, risk: str, types: list[str], *, when: datetime = NOW) -> FileScanResult:
    return FileScanResult(
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        scan_status="completed",
        has_personal_data=bool(types),
        personal_data_types=serialize_types(types),
        risk_level=risk,
        file_type=path.rsplit(".", 1)[-1],
        file_size_bytes=10,
        content_hash=None,
        scan_duration_ms=1,
        scan_errors=None,
        scan_version="1.0.0",
        scan_date=when,
    )


def _record(path: str, risk: str, types: tuple[str, ...], when: datetime) -> FileScanRecord:
    return FileScanRecord(
        file_path=path,
        file_name=path.rsplit("/", 1)[-1],
        has_personal_data=bool(types),
        personal_data_types=types,
        risk_level=risk,
        file_type="txt",
        file_size_bytes=10,
        content_hash=None,
        scan_duration_ms=1,
        scan_errors=(),
        scan_version="1.0.0",
        scan_date=when,
    )


ROWS = [
    _row("hr/staff.csv", "critical", ["Social Security Number", "Email Address"]),
    _row("hr/payroll/june.csv", "high", ["Date of Birth"]),
    _row("notes.txt", "medium", ["Email Address"]),
    _row("hr/clean.txt", "low", []),
]


# ---------------------------------------------------------------------------
# build_payload
# ---------------------------------------------------------------------------


class TestBuildPayload:
    def _payload(self) -> GdprReportPayload:
        return GdprReportService.build_payload(
            ROWS, PERIOD_START, PERIOD_END, scans_in_period=3, generated_at=NOW
        )

    def test_totals(self):
        payload = self._payload()

        assert payload.total_files_scanned == 4
        assert payload.scans_in_period == 3
        assert payload.files_with_personal_data == 3
        assert payload.generated_at == NOW

    def test_risk_breakdown(self):
        breakdown = self._payload().risk_breakdown

        assert (breakdown.critical, breakdown.high, breakdown.medium, breakdown.low) == (1, 1, 1, 0)
        assert breakdown.total == 3

    def test_folders(self):
        folders = self._payload().files_by_folder

        assert [f.folder_path for f in folders] == ["hr", "hr/payroll", "root"]
        hr = folders[0]
        assert hr.file_count == 1
        assert hr.files[0].path == "hr/staff.csv"
        assert hr.risk_levels.critical == 1
        assert folders[2].files[0].name == "notes.txt"

    def test_clean_files_are_excluded_from_groups(self):
        payload = self._payload()
        listed = [f.path for folder in payload.files_by_folder for f in folder.files]
        assert "hr/clean.txt" not in listed

    def test_data_type_stats(self):
        stats = self._payload().personal_data_type_stats

        assert list(stats) == ["Email Address", "Date of Birth", "Social Security Number"]
        assert stats["Email Address"].count == 2
        assert {f.path for f in stats["Email Address"].files} == {"hr/staff.csv", "notes.txt"}

    def test_empty(self):
        payload = GdprReportService.build_payload([], PERIOD_START, PERIOD_END, scans_in_period=0)

        assert payload.total_files_scanned == 0
        assert payload.files_by_folder == []
        assert payload.personal_data_type_stats == {}
        assert payload.risk_breakdown.total == 0

    def test_json_report(self):
        service = GdprReportService(MagicMock())
        data = json.loads(service.generate_json_report(self._payload()))

        assert data["files_with_personal_data"] == 3
        assert data["files_by_folder"][0]["folder_path"] == "hr"


@pytest.mark.parametrize(
    "path, expected",
    [("a.txt", "root"), ("hr/a.txt", "hr"), ("hr/x/a.txt", "hr/x"), ("/a.txt", "root")],
)
def test_parent_folder(path, expected):
    assert parent_folder(path) == expected


# ---------------------------------------------------------------------------
# Database-backed operations
# ---------------------------------------------------------------------------


@pytest.fixture
def repository(session_factory) -> ScanRecordRepository:
    return ScanRecordRepository(session_factory)


@pytest.fixture
def service(session_factory, repository) -> GdprReportService:
    return GdprReportService(session_factory, repository)


async def _seed(repository: ScanRecordRepository) -> None:
    await repository.upsert_scan_record(
        "hr/staff.csv",
        _record("hr/staff.csv", "critical", ("Social Security Number",), NOW),
    )
    await repository.upsert_scan_record(
        "old/archive.txt",
        _record("old/archive.txt", "medium", ("Email Address",), NOW - timedelta(days=90)),
    )
    await repository.upsert_scan_record(
        "hr/clean.txt", _record("hr/clean.txt", "low", (), NOW)
    )


class TestAggregate:
    async def test_counts_current_state_and_period_scans(self, service, repository):
        await _seed(repository)

        payload = await service.aggregate(PERIOD_START, PERIOD_END)

        assert payload.total_files_scanned == 3
        assert payload.scans_in_period == 2
        assert payload.files_with_personal_data == 2
        assert [f.folder_path for f in payload.files_by_folder] == ["hr", "old"]


class TestGenerateAndStore:
    async def test_snapshot_is_stored(self, service, repository):
        await _seed(repository)

        report = await service.generate_and_store("monthly", PERIOD_START, PERIOD_END, generated_by="dpo")

        assert isinstance(report.id, uuid.UUID)
        assert report.status == "completed"
        assert report.generated_by == "dpo"
        assert report.report_data["files_with_personal_data"] == 2
        assert report.report_data["risk_breakdown"]["critical"] == 1

    async def test_snapshot_survives_rescans(self, service, repository):
        await _seed(repository)
        report = await service.generate_and_store("monthly", PERIOD_START, PERIOD_END)

        await repository.upsert_scan_record(
            "hr/staff.csv", _record("hr/staff.csv", "low", (), NOW + timedelta(minutes=5))
        )
        stored = await service.get_report(report.id)

        assert stored is not None
        assert stored.report_data["risk_breakdown"]["critical"] == 1
        assert GdprReportRead.model_validate(stored).report_type == "monthly"

    async def test_list_and_get(self, service, repository):
        await _seed(repository)
        first = await service.generate_and_store("monthly", PERIOD_START, PERIOD_END)
        second = await service.generate_and_store("adhoc", PERIOD_START, PERIOD_END)

        rows, total = await service.list_reports()
        assert total == 2
        assert {r.id for r in rows} == {first.id, second.id}

        rows, total = await service.list_reports(report_type="adhoc")
        assert total == 1
        assert rows[0].id == second.id

        rows, total = await service.list_reports(limit=1)
        assert total == 2
        assert len(rows) == 1

    async def test_get_unknown_report(self, service):
        assert await service.get_report(uuid.uuid4()) is None


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class TestSchemas:
    def test_payload_rejects_inverted_period(self):
        with pytest.raises(ValidationError):
            GdprReportPayload(
                period_start=PERIOD_END,
                period_end=PERIOD_START,
                generated_at=NOW,
                total_files_scanned=0,
                scans_in_period=0,
                files_with_personal_data=0,
            )

    def test_create_rejects_inverted_period(self):
        with pytest.raises(ValidationError):
            GdprReportCreate(report_type="monthly", start_date=PERIOD_END, end_date=PERIOD_START)

    def test_create_rejects_empty_type(self):
        with pytest.raises(ValidationError):
            GdprReportCreate(report_type="", start_date=PERIOD_START, end_date=PERIOD_END)

    def test_negative_counts_rejected(self):
        with pytest.raises(ValidationError):
            GdprReportPayload(
                period_start=PERIOD_START,
                period_end=PERIOD_END,
                generated_at=NOW,
                total_files_scanned=-1,
                scans_in_period=0,
                files_with_personal_data=0,
            )
