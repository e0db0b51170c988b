"""ORM model registry - import all models so Alembic autogenerate can detect them."""

from gdprguard.models.file_scan_result import FileScanResult
from gdprguard.models.gdpr_report import GdprReport

__all__ = [
    "FileScanResult",
    "GdprReport",
]
