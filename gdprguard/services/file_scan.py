"""FileScanService: on-demand scan of a single file with a freshness cache.

Used for one-off scans (for example when a user opens a file) as opposed to
the folder walk performed by :class:`~gdprguard.core.bulk_scanner.BulkFolderScanner`.
Both write through the same :class:`ScanRecordRepository`, so a file scanned
either way has exactly one record.

A stored record newer than ``cache_max_age`` is returned as-is instead of
re-scanning.  Pass ``use_cache=False`` to force a fresh scan.

Usage::

    service = FileScanService(ScanRecordRepository(get_sessionmaker()))
    outcome = await service.scan_file(
        FileDescriptor(path="hr/notes.txt", name="notes.txt", size_bytes=42,
                       declared_type="txt", content=text)
    )
    if not outcome.from_cache:
        print(outcome.detected_patterns)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from gdprguard.config import DEFAULT_MAX_FILE_SIZE_BYTES, Settings
from gdprguard.core.pattern_scanner import (
    DetectedPattern,
    FileDescriptor,
    generate_content_hash,
    is_text_type,
    scan,
)
from gdprguard.core.patterns import DetectorRegistry, default_registry
from gdprguard.core.scan_record import NOTE_CONTENT_UNAVAILABLE, FileScanRecord
from gdprguard.services.scan_records import ScanRecordRepository, record_from_row

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileScanOutcome:
    """Result of :meth:`FileScanService.scan_file`.

    ``detected_patterns`` is empty when the record came from the cache; the
    stored record keeps detector names only.
    """

    record: FileScanRecord
    from_cache: bool
    detected_patterns: tuple[DetectedPattern, ...] = ()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class FileScanService:
    """Scan one file, persist the record, and serve recent records from the store.

    Args:
        repository: Scan record persistence.
        registry: Detectors to apply.  Defaults to the built-in set.
        scan_version: Tag written to every record.
        cache_max_age: Records scanned more recently than this are reused.
        max_file_size_bytes: Content above this size is not scanned.
        text_extensions: Extensions treated as text.
    """

    def __init__(
        self,
        repository: ScanRecordRepository,
        registry: DetectorRegistry | None = None,
        *,
        scan_version: str = "1.0.0",
        cache_max_age: timedelta = timedelta(hours=24),
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
        text_extensions: Iterable[str] | None = None,
    ) -> None:
        self._repository = repository
        self._registry = registry if registry is not None else default_registry()
        self._scan_version = scan_version
        self._cache_max_age = cache_max_age
        self._max_file_size_bytes = max_file_size_bytes
        self._text_extensions = frozenset(text_extensions) if text_extensions is not None else None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: ScanRecordRepository,
        registry: DetectorRegistry | None = None,
    ) -> "FileScanService":
        return cls(
            repository,
            registry,
            scan_version=settings.scan_version,
            cache_max_age=timedelta(hours=settings.scan_cache_max_age_hours),
            max_file_size_bytes=settings.scan_max_file_size_bytes,
            text_extensions=settings.scan_text_extensions,
        )

    async def scan_file(self, file: FileDescriptor, *, use_cache: bool = True) -> FileScanOutcome:
        """Return a fresh-enough record for *file*, scanning it when needed."""
        if use_cache:
            cached = await self._cached_record(file.path)
            if cached is not None:
                logger.debug("Serving cached scan for %s (scanned %s)", file.path, cached.scan_date)
                return FileScanOutcome(record=cached, from_cache=True)

        notes: list[str] = []
        content = file.content
        content_hash: str | None = None
        if is_text_type(file.declared_type, self._text_extensions):
            if content is None:
                notes.append(NOTE_CONTENT_UNAVAILABLE)
            else:
                encoded = content.encode("utf-8")
                if len(encoded) > self._max_file_size_bytes:
                    logger.info(
                        "File %s is too large (%d bytes), skipping content scan",
                        file.path,
                        len(encoded),
                    )
                    notes.append(
                        f"File exceeds {self._max_file_size_bytes} byte limit, only filename scanned"
                    )
                    content = None
                else:
                    content_hash = generate_content_hash(encoded)

        result = scan(
            replace(file, content=content),
            self._registry,
            text_extensions=self._text_extensions,
        )
        record = FileScanRecord.from_scan_result(
            file,
            result,
            content_hash=content_hash,
            scan_version=self._scan_version,
            notes=notes,
        )
        await self._repository.upsert_scan_record(file.path, record)

        logger.info(
            "Scanned %s: personal_data=%s risk=%s types=%s",
            file.path,
            result.has_personal_data,
            result.risk_level,
            ",".join(result.personal_data_types) or "-",
        )
        return FileScanOutcome(
            record=record,
            from_cache=False,
            detected_patterns=result.detected_patterns,
        )

    async def _cached_record(self, file_path: str) -> FileScanRecord | None:
        row = await self._repository.find_scan_record(file_path)
        if row is None:
            return None
        cutoff = datetime.now(tz=timezone.utc) - self._cache_max_age
        if _as_utc(row.scan_date) < cutoff:
            return None
        return record_from_row(row)
