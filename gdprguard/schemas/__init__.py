from gdprguard.schemas.report import (
    DataTypeSummary,
    FolderSummary,
    GdprReportCreate,
    GdprReportPayload,
    GdprReportRead,
    ReportFile,
    RiskBreakdown,
)

__all__ = [
    "DataTypeSummary",
    "FolderSummary",
    "GdprReportCreate",
    "GdprReportPayload",
    "GdprReportRead",
    "ReportFile",
    "RiskBreakdown",
]
