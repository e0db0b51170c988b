"""Personal-data detector library.

Provides the built-in GDPR detector set, the immutable registry type and
custom detector loading.
"""

from gdprguard.core.patterns.gdpr_patterns import (
    RISK_ORDER,
    Category,
    Detector,
    DetectorRegistry,
    DuplicateDetectorError,
    Matcher,
    RegexMatcher,
    RiskLevel,
    default_registry,
    load_registry,
    max_risk_level,
)

__all__ = [
    "RISK_ORDER",
    "Category",
    "Detector",
    "DetectorRegistry",
    "DuplicateDetectorError",
    "Matcher",
    "RegexMatcher",
    "RiskLevel",
    "default_registry",
    "load_registry",
    "max_risk_level",
]
