"""Pattern scanner: classify file content against a detector registry.

:func:`scan` runs every :class:`~gdprguard.core.patterns.Detector` in a
:class:`~gdprguard.core.patterns.DetectorRegistry` over the text of a single
:class:`FileDescriptor` and returns an immutable :class:`ScanResult`.

**Target selection**

* Text-like files (extension in the configured set) with content available
  are scanned on their content.
* Everything else (binary types, or text files whose content could not be
  obtained) is scanned on the file *name* only, so a
  name such as ``ssn-123-45-6789.png`` still raises a finding.

**Redaction**

Matches produced by ``financial`` and ``identification`` detectors never leave
this module verbatim: values longer than four characters keep their first and
last two characters (``"41***11"``), shorter values become ``"***"``.

**Failure handling**

A detector that raises while matching is recorded in
:attr:`ScanResult.scan_errors` and the remaining detectors still run.
:func:`scan` itself never raises.

Usage::

    from gdprguard.core.pattern_scanner import FileDescriptor, scan

    result = scan(
        FileDescriptor(
            path="hr/contacts.txt",
            name="contacts.txt",
            size_bytes=52,
            declared_type="txt",
            content="Contact me at jane.doe@example.com or 555-123-4567",
        )
    )
    print(result.risk_level)  # "medium"
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from gdprguard.config import DEFAULT_TEXT_EXTENSIONS
from gdprguard.core.patterns import (
    Category,
    Detector,
    DetectorRegistry,
    RiskLevel,
    default_registry,
    max_risk_level,
)

logger = logging.getLogger(__name__)

REDACTED_MARK = "***"

#: Categories whose matches are partially masked before being returned.
_REDACTED_CATEGORIES: frozenset[str] = frozenset({"financial", "identification"})

_DEFAULT_TEXT_EXTENSIONS: frozenset[str] = frozenset(DEFAULT_TEXT_EXTENSIONS)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileDescriptor:
    """A file to be scanned.

    Attributes:
        path: Full object path, used as the scan record key.
        name: File name (last path segment).
        size_bytes: Size reported by the object store.
        declared_type: Extension or type tag, e.g. ``"txt"`` or ``"png"``.
        content: Decoded text content.  ``None`` when the content was not
            fetched (binary type, over the size cap, or unavailable); an
            empty string is a real, empty text file.
    """

    path: str
    name: str
    size_bytes: int
    declared_type: str
    content: str | None = None

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("FileDescriptor.path must not be empty")
        if not self.name:
            raise ValueError("FileDescriptor.name must not be empty")
        if self.size_bytes < 0:
            raise ValueError(f"FileDescriptor.size_bytes must be >= 0 (got {self.size_bytes})")


@dataclass(frozen=True)
class DetectedPattern:
    """One detector that matched, with its (possibly redacted) matches."""

    detector_name: str
    sanitized_matches: tuple[str, ...]
    risk_level: RiskLevel
    category: Category


@dataclass(frozen=True)
class ScanResult:
    """Outcome of scanning a single file.

    Attributes:
        has_personal_data: ``True`` iff at least one detector matched.
        personal_data_types: De-duplicated detector names, in registry order.
        risk_level: Most severe risk among the matched detectors, ``"low"``
            when nothing matched.
        detected_patterns: One entry per matching detector.
        scan_duration_ms: Wall-clock duration of the scan.
        scan_errors: Non-fatal errors raised by individual detectors.
    """

    has_personal_data: bool
    personal_data_types: tuple[str, ...]
    risk_level: RiskLevel
    detected_patterns: tuple[DetectedPattern, ...]
    scan_duration_ms: int
    scan_errors: tuple[str, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def sanitize_match(match: str, category: str) -> str:
    """Apply the redaction rule for *category* to a matched substring."""
    if category not in _REDACTED_CATEGORIES:
        return match
    if len(match) > 4:
        return f"{match[:2]}{REDACTED_MARK}{match[-2:]}"
    return REDACTED_MARK


def is_text_type(declared_type: str, text_extensions: Iterable[str] | None = None) -> bool:
    """Return ``True`` when *declared_type* names a text-like file type.

    *declared_type* may be a bare extension (``"txt"``) or a file name
    (``"notes.TXT"``); only the last dot-separated segment is compared.
    """
    extensions = (
        _DEFAULT_TEXT_EXTENSIONS if text_extensions is None else frozenset(text_extensions)
    )
    extension = declared_type.lower().rsplit(".", 1)[-1]
    return extension in extensions


def file_type_from_name(name: str) -> str:
    """Return the lower-cased extension of *name*, or ``"unknown"``."""
    if "." not in name:
        return "unknown"
    extension = name.rsplit(".", 1)[-1].lower()
    return extension or "unknown"


def generate_content_hash(data: bytes | str) -> str:
    """Return the SHA-256 hex digest of *data* for change detection."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def _match_detector(detector: Detector, text: str) -> DetectedPattern | None:
    spans = detector.matcher.find_all(text)
    if not spans:
        return None
    return DetectedPattern(
        detector_name=detector.name,
        sanitized_matches=tuple(
            sanitize_match(text[start:end], detector.category) for start, end in spans
        ),
        risk_level=detector.risk_level,
        category=detector.category,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def scan(
    file: FileDescriptor,
    registry: DetectorRegistry | None = None,
    *,
    text_extensions: Iterable[str] | None = None,
) -> ScanResult:
    """Scan *file* against *registry* and return a :class:`ScanResult`.

    Args:
        file: The file to scan.
        registry: Detectors to apply, in order.  Defaults to the built-in set.
        text_extensions: Extensions treated as text.  Defaults to the
            built-in list.

    Returns:
        The scan result.  Deterministic for identical input and registry.
    """
    started = time.perf_counter()
    if registry is None:
        registry = default_registry()

    if file.content is not None and is_text_type(file.declared_type, text_extensions):
        target = file.content
        target_kind = "content"
    else:
        target = file.name
        target_kind = "filename"

    detected: list[DetectedPattern] = []
    errors: list[str] = []

    for detector in registry:
        try:
            pattern = _match_detector(detector, target)
        except Exception as exc:  # noqa: BLE001
            errors.append(f"Detector {detector.name!r} failed: {exc}")
            logger.warning(
                "Detector %r raised while scanning %s (%s): %s",
                detector.name,
                file.path,
                target_kind,
                exc,
            )
            continue
        if pattern is not None:
            detected.append(pattern)
            logger.debug(
                "Detector match: path=%s detector=%r risk=%s count=%d",
                file.path,
                detector.name,
                detector.risk_level,
                len(pattern.sanitized_matches),
            )

    personal_data_types = tuple(dict.fromkeys(p.detector_name for p in detected))
    duration_ms = int((time.perf_counter() - started) * 1000)

    return ScanResult(
        has_personal_data=bool(detected),
        personal_data_types=personal_data_types,
        risk_level=max_risk_level([p.risk_level for p in detected]),
        detected_patterns=tuple(detected),
        scan_duration_ms=duration_ms,
        scan_errors=tuple(errors),
    )
