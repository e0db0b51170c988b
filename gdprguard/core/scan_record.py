"""FileScanRecord: the persisted shape of a file scan, and the store protocol.

One record exists per file path.  Re-scanning a path overwrites the record, so
it always reflects the most recent scan; no history is kept here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol, Sequence, runtime_checkable

from gdprguard.core.pattern_scanner import FileDescriptor, ScanResult

NOTE_CONTENT_UNAVAILABLE = "File content could not be downloaded, only filename scanned"


@dataclass(frozen=True)
class FileScanRecord:
    """Snapshot of the latest scan of ``file_path``.

    ``content_hash`` is ``None`` when no content was read (filename-only
    scan); otherwise it is the SHA-256 of the bytes that were scanned.
    """

    file_path: str
    file_name: str
    has_personal_data: bool
    personal_data_types: tuple[str, ...]
    risk_level: str
    file_type: str
    file_size_bytes: int
    content_hash: str | None
    scan_duration_ms: int
    scan_errors: tuple[str, ...]
    scan_version: str
    scan_date: datetime

    @classmethod
    def from_scan_result(
        cls,
        file: FileDescriptor,
        result: ScanResult,
        *,
        content_hash: str | None,
        scan_version: str,
        notes: Sequence[str] = (),
        scan_date: datetime | None = None,
    ) -> "FileScanRecord":
        return cls(
            file_path=file.path,
            file_name=file.name,
            has_personal_data=result.has_personal_data,
            personal_data_types=result.personal_data_types,
            risk_level=result.risk_level,
            file_type=file.declared_type,
            file_size_bytes=file.size_bytes,
            content_hash=content_hash,
            scan_duration_ms=result.scan_duration_ms,
            scan_errors=(*notes, *result.scan_errors),
            scan_version=scan_version,
            scan_date=scan_date or datetime.now(tz=timezone.utc),
        )


@runtime_checkable
class ScanRecordStore(Protocol):
    """Persistence capability required by the bulk folder scanner."""

    async def upsert_scan_record(self, file_path: str, record: FileScanRecord) -> object:
        """Create or overwrite the record keyed by *file_path*."""
        ...
