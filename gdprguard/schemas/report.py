"""Pydantic schemas for GDPR report data structures.

``GdprReportPayload`` is the canonical in-memory representation of an
aggregated report; it is serialised to JSON and stored as the report
snapshot.  ``GdprReportCreate`` / ``GdprReportRead`` mirror the
``gdpr_report`` table.

Usage::

    from gdprguard.schemas.report import GdprReportPayload, RiskBreakdown

    payload = GdprReportPayload(
        period_start=start,
        period_end=end,
        generated_at=now,
        total_files_scanned=120,
        scans_in_period=40,
        files_with_personal_data=9,
        risk_breakdown=RiskBreakdown(critical=2, high=3, medium=4),
    )
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class RiskBreakdown(BaseModel):
    """Counts of files with personal data by risk level."""

    low: int = Field(default=0, ge=0)
    medium: int = Field(default=0, ge=0)
    high: int = Field(default=0, ge=0)
    critical: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.low + self.medium + self.high + self.critical


class ReportFile(BaseModel):
    """A file with personal data as listed in a report."""

    path: str
    name: str
    risk_level: str
    personal_data_types: list[str] = Field(default_factory=list)
    scan_date: datetime


class FolderSummary(BaseModel):
    """Files with personal data grouped under their parent folder.

    Files at the top level of the store are grouped under ``"root"``.
    """

    folder_path: str
    file_count: int = Field(ge=0)
    files: list[ReportFile] = Field(default_factory=list)
    risk_levels: RiskBreakdown = Field(default_factory=RiskBreakdown)


class DataTypeSummary(BaseModel):
    """Files in which one detector fired."""

    count: int = Field(ge=0)
    files: list[ReportFile] = Field(default_factory=list)


class GdprReportPayload(BaseModel):
    """Full aggregated data payload for a generated GDPR report.

    Attributes:
        period_start: Start of the report period (inclusive).
        period_end: End of the report period (inclusive).
        generated_at: Timestamp when the report was generated (UTC).
        total_files_scanned: Number of scan records, regardless of scan date.
        scans_in_period: Number of records whose latest scan falls in the
            period.
        files_with_personal_data: Current count of files with findings.
        risk_breakdown: Files with personal data by risk level.
        files_by_folder: Files with personal data grouped by parent folder,
            ordered by folder path.
        personal_data_type_stats: Detector name → files in which it fired.
    """

    period_start: datetime
    period_end: datetime
    generated_at: datetime
    total_files_scanned: int = Field(ge=0)
    scans_in_period: int = Field(ge=0)
    files_with_personal_data: int = Field(ge=0)
    risk_breakdown: RiskBreakdown = Field(default_factory=RiskBreakdown)
    files_by_folder: list[FolderSummary] = Field(default_factory=list)
    personal_data_type_stats: dict[str, DataTypeSummary] = Field(default_factory=dict)

    @field_validator("period_end")
    @classmethod
    def period_end_after_start(cls, v: datetime, info: object) -> datetime:
        """Ensure period_end is strictly after period_start."""
        data = getattr(info, "data", {})
        period_start = data.get("period_start")
        if period_start is not None and v <= period_start:
            raise ValueError("period_end must be after period_start")
        return v


class GdprReportCreate(BaseModel):
    """Input schema for triggering report generation."""

    report_type: str = Field(min_length=1, max_length=64)
    start_date: datetime
    end_date: datetime
    generated_by: str | None = None

    @field_validator("end_date")
    @classmethod
    def end_after_start(cls, v: datetime, info: object) -> datetime:
        data = getattr(info, "data", {})
        start_date = data.get("start_date")
        if start_date is not None and v <= start_date:
            raise ValueError("end_date must be after start_date")
        return v


class GdprReportRead(BaseModel):
    """Read schema for a ``gdpr_report`` database row."""

    model_config = {"from_attributes": True}

    id: uuid.UUID
    report_type: str
    start_date: datetime
    end_date: datetime
    generated_by: str | None
    status: str
    report_data: dict
    generated_at: datetime
