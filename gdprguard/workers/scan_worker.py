"""Celery tasks for recursive folder scans and GDPR report generation.

* :func:`scan_folder_task`: walk a storage folder with
  :class:`~gdprguard.core.bulk_scanner.BulkFolderScanner`, persisting one
  scan record per file.  Progress is published as the task's ``PROGRESS``
  state so that pollers can render ``scanned_files / total_files``.

* :func:`generate_report_task`: aggregate the current scan records into a
  stored :class:`~gdprguard.models.gdpr_report.GdprReport` snapshot.

Both tasks build their collaborators from
:func:`~gdprguard.config.get_settings` at run time, not at import time, and
run the async code with :func:`asyncio.run`.

**Retry policy**

Per-file failures never fail the task; they are counted in the returned
result.  Only transient connection errors escaping the scan (for example the
database being unreachable while the engine is built) trigger a retry, with
a countdown that doubles after each attempt (2 s, 4 s, 8 s).

**Usage**::

    from gdprguard.workers.scan_worker import scan_folder_task

    async_result = scan_folder_task.delay("hr/2026")
    async_result.info   # {"total_files": 120, "scanned_files": 37, ...} while running
    async_result.get()  # BulkScanResult.to_dict() when done
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any

from gdprguard.celery_app import celery_app
from gdprguard.config import Settings, get_settings
from gdprguard.core.adapters import BunnyStorageAdapter, ObjectStore
from gdprguard.core.bulk_scanner import BulkFolderScanner, ScanProgress
from gdprguard.core.patterns import load_registry
from gdprguard.core.scan_record import ScanRecordStore
from gdprguard.db import get_engine, get_sessionmaker
from gdprguard.services.reports import GdprReportService
from gdprguard.services.scan_records import ScanRecordRepository

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Maximum number of automatic retries for transient failures.
_MAX_RETRIES: int = 3

#: Base retry countdown in seconds; doubles on each attempt.
_RETRY_BASE_SECONDS: int = 2

_TRANSIENT_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
)


# ---------------------------------------------------------------------------
# Collaborator factories
# ---------------------------------------------------------------------------


def _build_object_store(settings: Settings) -> ObjectStore:
    return BunnyStorageAdapter.from_settings(settings)


def _build_record_store() -> ScanRecordStore:
    return ScanRecordRepository(get_sessionmaker())


def _build_report_service() -> GdprReportService:
    return GdprReportService(get_sessionmaker())


async def _dispose_engine() -> None:
    # Pooled connections are bound to the event loop that asyncio.run is
    # about to close.
    if get_engine.cache_info().currsize:
        await get_engine().dispose()


def _retry_countdown(task: Any) -> int:
    return _RETRY_BASE_SECONDS * (2 ** task.request.retries)


# ---------------------------------------------------------------------------
# Folder scan
# ---------------------------------------------------------------------------


async def _run_folder_scan(task: Any, root_path: str) -> dict[str, Any]:
    settings = get_settings()
    registry = load_registry(settings.scan_custom_patterns_path)
    store = _build_object_store(settings)
    scanner = BulkFolderScanner(
        store,
        _build_record_store(),
        registry,
        max_file_size_bytes=settings.scan_max_file_size_bytes,
        text_extensions=settings.scan_text_extensions,
        scan_version=settings.scan_version,
    )

    def publish(progress: ScanProgress) -> None:
        task.update_state(state="PROGRESS", meta=asdict(progress))

    try:
        result = await scanner.scan_folder_recursively(root_path, progress_sink=publish)
    finally:
        await store.aclose()
        await _dispose_engine()
    return result.to_dict()


@celery_app.task(
    name="gdprguard.workers.scan_worker.scan_folder_task",
    bind=True,
    max_retries=_MAX_RETRIES,
    acks_late=True,
    reject_on_worker_lost=True,
)
def scan_folder_task(self: Any, root_path: str) -> dict[str, Any]:
    """Celery task: recursively scan *root_path* and persist a record per file.

    Args:
        root_path: Folder to scan, relative to the storage zone root.  An
            empty string scans the whole zone.

    Returns:
        :meth:`BulkScanResult.to_dict` output: ``success``, the file
        counters, ``scan_results``, ``error_details`` and ``cancelled``.

    Raises:
        :exc:`celery.exceptions.Retry`: On transient connection failure.
    """
    logger.info("scan_folder_task: starting root=%r task_id=%s", root_path, self.request.id)
    try:
        result = asyncio.run(_run_folder_scan(self, root_path))
    except _TRANSIENT_EXCEPTIONS as exc:
        countdown = _retry_countdown(self)
        logger.warning(
            "scan_folder_task: transient error, retry %d/%d in %ds: root=%r error=%r",
            self.request.retries + 1,
            _MAX_RETRIES,
            countdown,
            root_path,
            exc,
        )
        raise self.retry(exc=exc, countdown=countdown)

    logger.info(
        "scan_folder_task: complete root=%r success=%s total=%d scanned=%d errors=%d",
        root_path,
        result["success"],
        result["total_files"],
        result["scanned_files"],
        result["errors"],
    )
    return result


# ---------------------------------------------------------------------------
# Report generation
# ---------------------------------------------------------------------------


async def _run_report(
    report_type: str,
    start: datetime,
    end: datetime,
    generated_by: str | None,
) -> dict[str, Any]:
    service = _build_report_service()
    try:
        report = await service.generate_and_store(
            report_type, start, end, generated_by=generated_by
        )
    finally:
        await _dispose_engine()
    return {
        "report_id": str(report.id),
        "report_type": report.report_type,
        "status": report.status,
        "files_with_personal_data": report.report_data["files_with_personal_data"],
    }


@celery_app.task(
    name="gdprguard.workers.scan_worker.generate_report_task",
    bind=True,
    max_retries=_MAX_RETRIES,
    acks_late=True,
    reject_on_worker_lost=True,
)
def generate_report_task(
    self: Any,
    report_type: str,
    period_start: str,
    period_end: str,
    generated_by: str | None = None,
) -> dict[str, Any]:
    """Celery task: generate and store a GDPR report for a period.

    Args:
        report_type: Free-form label, e.g. ``"monthly"``.
        period_start: ISO-8601 start of the period (inclusive).
        period_end: ISO-8601 end of the period (inclusive).
        generated_by: Optional identifier of the requesting user.

    Returns:
        Dict with ``report_id``, ``report_type``, ``status`` and
        ``files_with_personal_data``.

    Raises:
        ValueError: If the period bounds are not valid ISO-8601 timestamps.
        :exc:`celery.exceptions.Retry`: On transient connection failure.
    """
    start = datetime.fromisoformat(period_start)
    end = datetime.fromisoformat(period_end)

    try:
        result = asyncio.run(_run_report(report_type, start, end, generated_by))
    except _TRANSIENT_EXCEPTIONS as exc:
        countdown = _retry_countdown(self)
        logger.warning(
            "generate_report_task: transient error, retry %d/%d in %ds: error=%r",
            self.request.retries + 1,
            _MAX_RETRIES,
            countdown,
            exc,
        )
        raise self.retry(exc=exc, countdown=countdown)

    logger.info(
        "generate_report_task: stored report_id=%s type=%s",
        result["report_id"],
        report_type,
    )
    return result
