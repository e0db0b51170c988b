"""Built-in GDPR personal-data detector library.

This module provides the detector catalogue used by the pattern scanner.  Each
:class:`Detector` pairs a :class:`Matcher` with a human-readable name, a risk
level and a data category.  Detectors are grouped into an immutable
:class:`DetectorRegistry` that is passed explicitly into every scan; there is
no shared, mutable scanner state.

The built-in set covers the following categories:

* Contact data: email address, phone number, street address, postal code
* Financial data: credit card number, bank account number, IBAN
* Health data: medical record number, ICD-10 diagnosis code
* Identification: SSN, passport, driver licence, national ID, full name,
  date of birth
* Other: VAT number, company registration number

Additional organisation-specific detectors can be supplied via a JSON config
file (see :func:`load_registry`).  Custom detectors are appended after the
built-ins.  All regexes are compiled on load; none are compiled at scan time.

**JSON config format** (array of objects at the root):

.. code-block:: json

    [
        {
            "name": "Employee ID",
            "pattern": "EMP-\\\\d{6}",
            "risk_level": "medium",
            "category": "identification",
            "description": "Internal employee identifiers"
        }
    ]

Usage::

    from gdprguard.core.patterns import default_registry

    registry = default_registry()
    registry = registry.without_detector("Full Name")
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Literal, Optional, Protocol, Sequence, runtime_checkable

logger = logging.getLogger(__name__)

RiskLevel = Literal["low", "medium", "high", "critical"]
Category = Literal["contact", "financial", "health", "identification", "other"]

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Severity rank of each risk level; higher is more severe.
RISK_ORDER: dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}

VALID_CATEGORIES: frozenset[str] = frozenset(
    {"contact", "financial", "health", "identification", "other"}
)


def max_risk_level(levels: Sequence[str]) -> RiskLevel:
    """Return the most severe level in *levels*, or ``"low"`` when empty."""
    if not levels:
        return "low"
    return max(levels, key=lambda level: RISK_ORDER[level])  # type: ignore[return-value]


class DuplicateDetectorError(ValueError):
    """Raised when a detector name is already present in a registry."""


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------


@runtime_checkable
class Matcher(Protocol):
    """Anything that can locate occurrences of a pattern in text."""

    def find_all(self, text: str) -> list[tuple[int, int]]:
        """Return ``(start, end)`` spans of every non-overlapping match."""
        ...


class RegexMatcher:
    """:class:`Matcher` backed by a pre-compiled :mod:`re` pattern.

    Zero-length matches are discarded so optional-only patterns never report
    empty findings.
    """

    __slots__ = ("regex",)

    def __init__(self, pattern: str | re.Pattern[str], flags: int = 0) -> None:
        if isinstance(pattern, re.Pattern):
            self.regex = pattern
        else:
            self.regex = re.compile(pattern, flags)

    def find_all(self, text: str) -> list[tuple[int, int]]:
        return [m.span() for m in self.regex.finditer(text) if m.end() > m.start()]

    def __repr__(self) -> str:
        return f"RegexMatcher({self.regex.pattern!r})"


# ---------------------------------------------------------------------------
# Detector and registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Detector:
    """A named personal-data rule.

    Attributes:
        name: Unique identifier, reported in scan results
            (e.g. ``"Email Address"``).
        description: Free text shown to reviewers.
        matcher: Object implementing :class:`Matcher`.
        risk_level: Severity of a positive match.
        category: Data category; ``financial`` and ``identification``
            matches are redacted before they leave the scanner.
    """

    name: str
    description: str
    matcher: Matcher
    risk_level: RiskLevel
    category: Category

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Detector name must not be empty")
        if self.risk_level not in RISK_ORDER:
            raise ValueError(f"Invalid risk level {self.risk_level!r} for detector {self.name!r}")
        if self.category not in VALID_CATEGORIES:
            raise ValueError(f"Invalid category {self.category!r} for detector {self.name!r}")


class DetectorRegistry:
    """Immutable, ordered collection of uniquely-named detectors.

    "Customising" a registry always produces a new instance; the original is
    never modified, so a scan already holding a registry is unaffected.
    """

    __slots__ = ("_detectors",)

    def __init__(self, detectors: Sequence[Detector] = ()) -> None:
        seen: set[str] = set()
        for detector in detectors:
            if detector.name in seen:
                raise DuplicateDetectorError(f"Duplicate detector name: {detector.name!r}")
            seen.add(detector.name)
        self._detectors: tuple[Detector, ...] = tuple(detectors)

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors)

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, name: object) -> bool:
        return any(d.name == name for d in self._detectors)

    def __repr__(self) -> str:
        return f"DetectorRegistry({list(self.names())!r})"

    @property
    def detectors(self) -> tuple[Detector, ...]:
        return self._detectors

    def names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self._detectors)

    def get(self, name: str) -> Detector | None:
        for detector in self._detectors:
            if detector.name == name:
                return detector
        return None

    def with_detector(self, detector: Detector) -> "DetectorRegistry":
        """Return a new registry with *detector* appended.

        Raises:
            DuplicateDetectorError: If a detector with the same name exists.
        """
        return DetectorRegistry((*self._detectors, detector))

    def without_detector(self, name: str) -> "DetectorRegistry":
        """Return a new registry without the detector called *name*.

        Removing an unknown name is a no-op.
        """
        return DetectorRegistry(tuple(d for d in self._detectors if d.name != name))


# ---------------------------------------------------------------------------
# Built-in raw pattern strings
# ---------------------------------------------------------------------------

_EMAIL = r"\b[A-Za-z0-9._%+\-]+@[A-Za-z0-9.\-]+\.[A-Za-z]{2,}\b"

# Optional +CC and (area) prefix, then three to five digit groups separated by
# spaces, dots or hyphens.  Anchored on non-word characters so that digits
# embedded in identifiers are not reported.
_PHONE = (
    r"(?<![\w+])"
    r"(?:\+\d{1,3}[\s.\-]?)?"
    r"(?:\(\d{2,4}\)[\s.\-]?)?"
    r"\d{2,4}(?:[\s.\-]?\d{2,4}){2,4}"
    r"(?!\w)"
)

_STREET_ADDRESS = (
    r"\b\d+\s+[A-Za-z]+(?:\s[A-Za-z]+){0,4}\s"
    r"(?:Street|St|Avenue|Ave|Road|Rd|Boulevard|Blvd|Lane|Ln|Drive|Dr|Way|Place|Pl|Court|Ct)\b"
)

# US ZIP / ZIP+4, Canadian A1A 1A1
_POSTAL_CODE = r"\b\d{5}(?:[\-\s]\d{4})?\b|\b[A-Z]\d[A-Z]\s?\d[A-Z]\d\b"

_CREDIT_CARD = r"\b\d{4}[\-\s]?\d{4}[\-\s]?\d{4}[\-\s]?\d{4}\b"

_BANK_ACCOUNT = r"\b\d{8,17}\b"

_IBAN = r"\b[A-Z]{2}\d{2}[A-Z0-9]{4}\d{7}[A-Z0-9]{0,16}\b"

# Lookarounds instead of \b so that "report_123-45-6789" still matches.
_SSN = r"(?<![\d\-])\d{3}-\d{2}-\d{4}(?![\d\-])"

_MEDICAL_RECORD = r"\bMRN[:\s\-]?\d+\b"

_DIAGNOSIS_CODE = r"\b[A-Z]\d{2}\.?\d{0,2}\b"

_PASSPORT = r"\b[A-Z]\d{8}\b|\b\d{9}\b"

_DRIVER_LICENSE = r"\b[A-Z]\d{7}\b|\b\d{9}\b"

_NATIONAL_ID = r"\b\d{10,12}\b"

_FULL_NAME = r"\b[A-Z][a-z]+\s+[A-Z][a-z]+\b"

_DATE_OF_BIRTH = r"\b(?:DOB|Birth|Born)[:\s\-]?\s?\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}\b"

_VAT_NUMBER = r"\b[A-Z]{2}\d{9,12}\b"

_COMPANY_REGISTRATION = r"\b(?:RegNo|Reg|Company|Corp)[:\s\-]?\s?\d+\b"

# ---------------------------------------------------------------------------
# Built-in detector catalogue
# ---------------------------------------------------------------------------

#: (name, description, raw_pattern, flags, risk_level, category)
_BUILTIN_DEFINITIONS: list[tuple[str, str, str, int, RiskLevel, Category]] = [
    ("Email Address", "Standard email address format", _EMAIL, 0, "medium", "contact"),
    ("Phone Number", "International and local phone number formats", _PHONE, 0, "medium", "contact"),
    ("Physical Address", "Street addresses", _STREET_ADDRESS, re.IGNORECASE, "high", "contact"),
    ("Postal Code", "Various postal code formats", _POSTAL_CODE, re.IGNORECASE, "medium", "contact"),
    ("Credit Card Number", "Credit card number patterns", _CREDIT_CARD, 0, "critical", "financial"),
    ("Bank Account Number", "Bank account number patterns", _BANK_ACCOUNT, 0, "critical", "financial"),
    ("IBAN", "International Bank Account Number", _IBAN, 0, "critical", "financial"),
    ("Social Security Number", "SSN format (US)", _SSN, 0, "critical", "identification"),
    ("Medical Record Number", "Medical record identifiers", _MEDICAL_RECORD, re.IGNORECASE, "critical", "health"),
    ("Diagnosis Codes", "ICD-10 diagnosis codes", _DIAGNOSIS_CODE, 0, "high", "health"),
    ("Passport Number", "Passport number patterns", _PASSPORT, 0, "critical", "identification"),
    ("Driver License", "Driver license number patterns", _DRIVER_LICENSE, 0, "critical", "identification"),
    ("National ID", "National identification numbers", _NATIONAL_ID, 0, "critical", "identification"),
    ("Full Name", "Full name patterns (first + last)", _FULL_NAME, 0, "low", "identification"),
    ("Date of Birth", "Date of birth patterns", _DATE_OF_BIRTH, re.IGNORECASE, "high", "identification"),
    ("VAT Number", "VAT identification numbers", _VAT_NUMBER, 0, "medium", "other"),
    ("Company Registration", "Company registration numbers", _COMPANY_REGISTRATION, re.IGNORECASE, "medium", "other"),
]

_BUILTIN_DETECTORS: tuple[Detector, ...] = tuple(
    Detector(
        name=name,
        description=description,
        matcher=RegexMatcher(raw, flags),
        risk_level=risk_level,
        category=category,
    )
    for name, description, raw, flags, risk_level, category in _BUILTIN_DEFINITIONS
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_registry() -> DetectorRegistry:
    """Return a registry holding only the built-in detectors."""
    return DetectorRegistry(_BUILTIN_DETECTORS)


def load_registry(
    custom_config_path: Optional[str | Path] = None,
) -> DetectorRegistry:
    """Return the built-in registry extended with detectors from a JSON file.

    Each entry in the file must contain ``"name"``, ``"pattern"``,
    ``"risk_level"`` and ``"category"``; ``"description"`` and
    ``"case_insensitive"`` are optional.

    Malformed entries (missing keys, invalid risk level or category, duplicate
    name, un-compilable regex) are skipped with a warning so that the scanner
    can run with the valid detectors even when the config contains errors.

    Note:
        This function never raises.  Filesystem and JSON errors are surfaced
        only as log messages and the built-in registry is returned.
    """
    registry = default_registry()

    if custom_config_path is None:
        return registry

    path = Path(custom_config_path)

    if not path.exists():
        logger.warning(
            "Custom detector config not found: %s; using built-in detectors only",
            path,
        )
        return registry

    try:
        entries = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        logger.error(
            "Cannot read custom detector config %s: %s; using built-in detectors only",
            path,
            exc,
        )
        return registry
    except json.JSONDecodeError as exc:
        logger.error(
            "Invalid JSON in custom detector config %s: %s; using built-in detectors only",
            path,
            exc,
        )
        return registry

    if not isinstance(entries, list):
        logger.error(
            "Custom detector config %s must contain a JSON array at the root "
            "(got %s); using built-in detectors only",
            path,
            type(entries).__name__,
        )
        return registry

    loaded = 0
    for i, entry in enumerate(entries):
        detector = _detector_from_entry(entry, i)
        if detector is None:
            continue
        try:
            registry = registry.with_detector(detector)
        except DuplicateDetectorError:
            logger.warning(
                "Custom detector %r at index %d duplicates an existing name; skipping",
                detector.name,
                i,
            )
            continue
        loaded += 1

    logger.info(
        "Loaded %d custom detector(s) from %s (total detectors: %d)",
        loaded,
        path,
        len(registry),
    )
    return registry


def _detector_from_entry(entry: object, index: int) -> Detector | None:
    if not isinstance(entry, dict):
        logger.warning("Custom detector entry at index %d is not a JSON object; skipping", index)
        return None

    name = entry.get("name")
    raw_pattern = entry.get("pattern")
    risk_level = entry.get("risk_level")
    category = entry.get("category")

    if not name or not isinstance(name, str):
        logger.warning("Custom detector entry at index %d missing valid 'name'; skipping", index)
        return None
    if not raw_pattern or not isinstance(raw_pattern, str):
        logger.warning(
            "Custom detector %r at index %d missing valid 'pattern'; skipping", name, index
        )
        return None
    if risk_level not in RISK_ORDER:
        logger.warning(
            "Custom detector %r at index %d has invalid risk_level %r "
            "(must be one of %s); skipping",
            name,
            index,
            risk_level,
            sorted(RISK_ORDER),
        )
        return None
    if category not in VALID_CATEGORIES:
        logger.warning(
            "Custom detector %r at index %d has invalid category %r "
            "(must be one of %s); skipping",
            name,
            index,
            category,
            sorted(VALID_CATEGORIES),
        )
        return None

    flags = re.IGNORECASE if entry.get("case_insensitive") else 0
    try:
        matcher = RegexMatcher(raw_pattern, flags)
    except re.error as exc:
        logger.error(
            "Custom detector %r at index %d has invalid regex %r: %s; skipping",
            name,
            index,
            raw_pattern,
            exc,
        )
        return None

    return Detector(
        name=name,
        description=str(entry.get("description", "")),
        matcher=matcher,
        risk_level=risk_level,
        category=category,
    )
