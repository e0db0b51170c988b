"""BulkFolderScanner: recursive personal-data scan of an object-store folder.

:class:`BulkFolderScanner` walks a folder tree breadth-first, fetches content
for text-like files under a size cap, runs :func:`~gdprguard.core.pattern_scanner.scan`
on each file, upserts one :class:`~gdprguard.core.scan_record.FileScanRecord`
per path and reports progress to an optional sink.

**Phases**

1. *Enumeration*: a FIFO queue seeded with the root folder.  Every listed
   sub-folder is normalised (no leading/trailing slash) and queued once.  A
   sub-folder that fails to list is recorded in ``error_details`` and
   skipped; a root that fails to list ends the run with ``success=False``.
2. *Per-file scan*: strictly sequential, in enumeration order.  A progress
   event is emitted before each file.  Fetch, scan and persist failures are
   isolated to the file: ``errors`` is incremented, a message is appended to
   ``error_details`` and the walk continues.
3. *Completion*: a final ``completed`` (or ``error``) progress event.

**Counters**

``scanned_files`` counts files whose scan *and* persist succeeded.  A persist
failure after a successful scan counts as an error, not as scanned, so
``scanned_files + errors == total_files`` for every run that is not cancelled.

**Cancellation**

An optional :class:`asyncio.Event` is checked between files.  A file already
in progress always completes.

Usage::

    scanner = BulkFolderScanner(store, repository)
    result = await scanner.scan_folder_recursively("hr", progress_sink=print)
    print(result.scanned_files, result.errors)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Callable, Iterable, Literal

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from prometheus_client import Counter

from gdprguard.config import DEFAULT_MAX_FILE_SIZE_BYTES
from gdprguard.core.adapters.object_store import ObjectStore
from gdprguard.core.pattern_scanner import (
    FileDescriptor,
    ScanResult,
    file_type_from_name,
    generate_content_hash,
    is_text_type,
    scan,
)
from gdprguard.core.patterns import DetectorRegistry, default_registry
from gdprguard.core.scan_record import NOTE_CONTENT_UNAVAILABLE, FileScanRecord, ScanRecordStore

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("gdprguard.bulk_scanner")

# ---------------------------------------------------------------------------
# Prometheus metrics
# ---------------------------------------------------------------------------

files_scanned_total = Counter(
    "gdpr_files_scanned_total",
    "Total number of files scanned and persisted by the bulk folder scanner",
    ["risk_level"],
)

file_scan_errors_total = Counter(
    "gdpr_file_scan_errors_total",
    "Total number of files that failed during a bulk folder scan",
    ["step"],
)

folder_list_errors_total = Counter(
    "gdpr_folder_list_errors_total",
    "Total number of folders that could not be listed during enumeration",
)

ScanStatus = Literal["scanning", "completed", "error"]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class EnumerationError(Exception):
    """Raised when the root folder of a scan cannot be listed."""

    def __init__(self, root_path: str, original: Exception) -> None:
        super().__init__(f"Cannot enumerate root folder {root_path!r}: {original}")
        self.root_path = root_path
        self.original = original


class FileScanError(Exception):
    """A single file failed during one step of the per-file scan.

    Attributes:
        step_name: ``"fetch"``, ``"scan"`` or ``"persist"``.
        file_path: Path of the file that failed.
        original: The underlying exception.
    """

    def __init__(self, step_name: str, file_path: str, original: Exception) -> None:
        super().__init__(f"Error scanning {file_path} during {step_name}: {original}")
        self.step_name = step_name
        self.file_path = file_path
        self.original = original


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ScanProgress:
    """Snapshot of a running bulk scan, delivered to the progress sink."""

    total_files: int
    scanned_files: int
    files_with_personal_data: int
    errors: int
    status: ScanStatus
    current_file: str | None = None


ProgressSink = Callable[[ScanProgress], Any]


@dataclass(frozen=True)
class FileScanSummary:
    """Per-file projection of a :class:`ScanResult` kept in the bulk result."""

    file_path: str
    file_name: str
    has_personal_data: bool
    risk_level: str
    personal_data_types: tuple[str, ...]


@dataclass
class BulkScanResult:
    """Aggregate outcome of :meth:`BulkFolderScanner.scan_folder_recursively`.

    ``success`` is ``False`` only when the root folder could not be listed.
    """

    success: bool
    total_files: int = 0
    scanned_files: int = 0
    files_with_personal_data: int = 0
    errors: int = 0
    scan_results: list[FileScanSummary] = field(default_factory=list)
    error_details: list[str] = field(default_factory=list)
    cancelled: bool = False

    def progress(self, status: ScanStatus, current_file: str | None = None) -> ScanProgress:
        return ScanProgress(
            total_files=self.total_files,
            scanned_files=self.scanned_files,
            files_with_personal_data=self.files_with_personal_data,
            errors=self.errors,
            status=status,
            current_file=current_file,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for item in data["scan_results"]:
            item["personal_data_types"] = list(item["personal_data_types"])
        return data


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def normalize_path(path: str) -> str:
    """Strip surrounding slashes and collapse empty segments (``"/a//b/"`` → ``"a/b"``).

    This is the canonical form for queue, visited-set and record keys.  Object
    stores append the trailing slash themselves when listing a folder.
    """
    return "/".join(segment for segment in path.split("/") if segment)


# ---------------------------------------------------------------------------
# BulkFolderScanner
# ---------------------------------------------------------------------------


class BulkFolderScanner:
    """Sequential, fault-isolating folder scanner.

    Args:
        object_store: Source of folder listings and file content.
        record_store: Destination for per-file scan records.
        registry: Detectors to apply.  Defaults to the built-in set.
        max_file_size_bytes: Files larger than this are scanned by filename
            only; their content is never fetched.
        text_extensions: Extensions whose content is fetched and scanned.
            Defaults to the built-in list.
        scan_version: Tag written to every record.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        record_store: ScanRecordStore,
        registry: DetectorRegistry | None = None,
        *,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
        text_extensions: Iterable[str] | None = None,
        scan_version: str = "1.0.0",
    ) -> None:
        self._store = object_store
        self._records = record_store
        self._registry = registry if registry is not None else default_registry()
        self._max_file_size_bytes = max_file_size_bytes
        self._text_extensions = frozenset(text_extensions) if text_extensions is not None else None
        self._scan_version = scan_version

    # ------------------------------------------------------------------
    # Phase 1: enumeration
    # ------------------------------------------------------------------

    async def enumerate_files(self, root_path: str) -> tuple[list[FileDescriptor], list[str]]:
        """Walk *root_path* breadth-first and return ``(files, error_details)``.

        Raises:
            EnumerationError: If the root folder itself cannot be listed.
        """
        root = normalize_path(root_path)
        queue: deque[str] = deque([root])
        visited: set[str] = {root}
        files: list[FileDescriptor] = []
        seen_files: set[str] = set()
        error_details: list[str] = []

        while queue:
            folder = queue.popleft()
            try:
                entries = await self._store.list(folder)
            except MemoryError:
                raise
            except Exception as exc:
                if folder == root:
                    raise EnumerationError(root_path, exc) from exc
                folder_list_errors_total.inc()
                error_details.append(f"Error listing folder {folder}: {exc}")
                logger.warning("Skipping folder %s: %s", folder, exc)
                continue

            for entry in entries:
                path = normalize_path(entry.object_path)
                if not path:
                    continue
                if entry.is_directory:
                    if path not in visited:
                        visited.add(path)
                        queue.append(path)
                    continue
                if path in seen_files:
                    continue
                try:
                    descriptor = FileDescriptor(
                        path=path,
                        name=entry.name,
                        size_bytes=max(entry.size_bytes, 0),
                        declared_type=file_type_from_name(entry.name),
                    )
                except ValueError as exc:
                    error_details.append(f"Skipping invalid entry {entry.object_path!r}: {exc}")
                    logger.warning("Skipping invalid entry %r: %s", entry.object_path, exc)
                    continue
                seen_files.add(path)
                files.append(descriptor)

        logger.debug(
            "Enumerated %s: folders=%d files=%d folder_errors=%d",
            root or "/",
            len(visited),
            len(files),
            len(error_details),
        )
        return files, error_details

    # ------------------------------------------------------------------
    # Phase 2: per-file scan
    # ------------------------------------------------------------------

    async def _fetch_content(
        self, file: FileDescriptor
    ) -> tuple[str | None, str | None, tuple[str, ...]]:
        """Return ``(text, content_hash, notes)`` for *file*.

        ``text`` is ``None`` whenever the scan must fall back to the filename.
        """
        if not is_text_type(file.declared_type, self._text_extensions):
            return None, None, ()

        if file.size_bytes > self._max_file_size_bytes:
            logger.info(
                "File %s is too large (%d bytes), skipping content scan",
                file.path,
                file.size_bytes,
            )
            return None, None, (
                f"File exceeds {self._max_file_size_bytes} byte limit, only filename scanned",
            )

        data = await self._store.get(file.path)
        if data is None:
            return None, None, (NOTE_CONTENT_UNAVAILABLE,)

        if len(data) > self._max_file_size_bytes:
            logger.info(
                "File %s returned %d bytes, above the limit; skipping content scan",
                file.path,
                len(data),
            )
            return None, None, (
                f"File exceeds {self._max_file_size_bytes} byte limit, only filename scanned",
            )

        return data.decode("utf-8", errors="replace"), generate_content_hash(data), ()

    async def scan_file(self, file: FileDescriptor) -> ScanResult:
        """Fetch, scan and persist a single file.

        Raises:
            FileScanError: When any step fails.
        """
        try:
            content, content_hash, notes = await self._fetch_content(file)
        except MemoryError:
            raise
        except Exception as exc:
            raise FileScanError("fetch", file.path, exc) from exc

        try:
            result = scan(
                replace(file, content=content),
                self._registry,
                text_extensions=self._text_extensions,
            )
        except MemoryError:
            raise
        except Exception as exc:
            raise FileScanError("scan", file.path, exc) from exc

        record = FileScanRecord.from_scan_result(
            file,
            result,
            content_hash=content_hash,
            scan_version=self._scan_version,
            notes=notes,
        )
        try:
            await self._records.upsert_scan_record(file.path, record)
        except MemoryError:
            raise
        except Exception as exc:
            raise FileScanError("persist", file.path, exc) from exc

        return result

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def scan_folder_recursively(
        self,
        root_path: str,
        progress_sink: ProgressSink | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkScanResult:
        """Scan every file under *root_path* and return the aggregate result.

        Never raises for enumeration, fetch, scan or persistence failures;
        they are reported through the returned :class:`BulkScanResult`.
        """
        result = BulkScanResult(success=True)

        with tracer.start_as_current_span("gdprguard.scan_folder") as root_span:
            root_span.set_attribute("gdprguard.root_path", root_path)

            try:
                files, folder_errors = await self.enumerate_files(root_path)
            except EnumerationError as exc:
                logger.error("Bulk scan of %s aborted: %s", root_path, exc)
                root_span.set_status(Status(StatusCode.ERROR, str(exc)))
                result.success = False
                result.error_details.append(str(exc))
                await self._emit(progress_sink, result.progress("error"))
                return result

            result.total_files = len(files)
            result.error_details.extend(folder_errors)
            root_span.set_attribute("gdprguard.total_files", result.total_files)
            await self._emit(progress_sink, result.progress("scanning"))

            for file in files:
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    logger.info(
                        "Bulk scan of %s cancelled after %d of %d files",
                        root_path,
                        result.scanned_files + result.errors,
                        result.total_files,
                    )
                    break

                await self._emit(progress_sink, result.progress("scanning", file.path))

                with tracer.start_as_current_span("gdprguard.scan_file") as span:
                    span.set_attribute("gdprguard.file_path", file.path)
                    try:
                        scan_result = await self.scan_file(file)
                    except FileScanError as exc:
                        span.set_status(Status(StatusCode.ERROR, str(exc)))
                        file_scan_errors_total.labels(step=exc.step_name).inc()
                        result.errors += 1
                        result.error_details.append(str(exc))
                        logger.warning("%s", exc)
                        continue

                files_scanned_total.labels(risk_level=scan_result.risk_level).inc()
                result.scanned_files += 1
                if scan_result.has_personal_data:
                    result.files_with_personal_data += 1
                result.scan_results.append(
                    FileScanSummary(
                        file_path=file.path,
                        file_name=file.name,
                        has_personal_data=scan_result.has_personal_data,
                        risk_level=scan_result.risk_level,
                        personal_data_types=scan_result.personal_data_types,
                    )
                )

            root_span.set_attribute("gdprguard.scanned_files", result.scanned_files)
            root_span.set_attribute("gdprguard.errors", result.errors)

        await self._emit(progress_sink, result.progress("completed"))

        logger.info(
            "Bulk scan of %s complete: total=%d scanned=%d personal_data=%d errors=%d cancelled=%s",
            root_path or "/",
            result.total_files,
            result.scanned_files,
            result.files_with_personal_data,
            result.errors,
            result.cancelled,
        )
        return result

    async def _emit(self, sink: ProgressSink | None, progress: ScanProgress) -> None:
        """Deliver *progress* to *sink*; sink failures are logged, never raised."""
        if sink is None:
            return
        try:
            outcome = sink(progress)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:  # noqa: BLE001
            logger.warning("Progress sink raised: %s", exc)


async def scan_folder_recursively(
    root_path: str,
    object_store: ObjectStore,
    record_store: ScanRecordStore,
    progress_sink: ProgressSink | None = None,
    *,
    registry: DetectorRegistry | None = None,
    cancel_event: asyncio.Event | None = None,
    **scanner_options: Any,
) -> BulkScanResult:
    """One-shot wrapper around :meth:`BulkFolderScanner.scan_folder_recursively`."""
    scanner = BulkFolderScanner(object_store, record_store, registry, **scanner_options)
    return await scanner.scan_folder_recursively(
        root_path, progress_sink, cancel_event=cancel_event
    )
