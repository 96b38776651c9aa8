"""
Severity classification.

Each source reports severity in its own vocabulary; everything is mapped onto
SeverityLevel through fixed tables. Unmapped values become UNKNOWN.
"""
from typing import Dict, Iterable, List, Optional, Tuple, Union

from medsafe.constants import SEVERITY_WEIGHTS, SeverityLevel, Sources
from medsafe.schemas import InteractionFinding

DEFAULT_VOCABULARY: Dict[str, SeverityLevel] = {
    "contraindicated": SeverityLevel.CONTRAINDICATED,
    "contraindication": SeverityLevel.CONTRAINDICATED,
    # "critical" vocabularies collapse into the major tier
    "critical": SeverityLevel.MAJOR,
    "severe": SeverityLevel.MAJOR,
    "serious": SeverityLevel.MAJOR,
    "major": SeverityLevel.MAJOR,
    "high": SeverityLevel.MAJOR,
    "moderate": SeverityLevel.MODERATE,
    "medium": SeverityLevel.MODERATE,
    "significant": SeverityLevel.MODERATE,
    "minor": SeverityLevel.MINOR,
    "mild": SeverityLevel.MINOR,
    "low": SeverityLevel.MINOR,
}

SOURCE_VOCABULARIES: Dict[str, Dict[str, SeverityLevel]] = {
    Sources.RXNORM: {
        "high": SeverityLevel.MAJOR,
        "moderate": SeverityLevel.MAJOR,
        "low": SeverityLevel.MODERATE,
        "minor": SeverityLevel.MINOR,
    },
    Sources.OPENFDA_EVENTS: {
        "serious": SeverityLevel.MAJOR,
        "non-serious": SeverityLevel.MINOR,
    },
    Sources.OPENFDA_LABEL: {
        "contraindicated": SeverityLevel.CONTRAINDICATED,
        "serious": SeverityLevel.MAJOR,
        "caution": SeverityLevel.MODERATE,
        "mentioned": SeverityLevel.MINOR,
    },
}


def normalize_severity(
    value: Optional[Union[str, SeverityLevel]], source: Optional[str] = None
) -> SeverityLevel:
    """Map a source-specific severity string onto SeverityLevel."""
    if isinstance(value, SeverityLevel):
        return value
    if not value:
        return SeverityLevel.UNKNOWN

    key = str(value).strip().lower()
    vocabulary = SOURCE_VOCABULARIES.get(source) if source else None
    if vocabulary is not None:
        # A source table is authoritative for its own vocabulary
        return vocabulary.get(key, SeverityLevel.UNKNOWN)
    return DEFAULT_VOCABULARY.get(key, SeverityLevel.UNKNOWN)


def severity_weight(severity: Union[str, SeverityLevel]) -> int:
    return SEVERITY_WEIGHTS[normalize_severity(severity)]


def rank(findings: Iterable[InteractionFinding]) -> Tuple[List[InteractionFinding], Dict[str, int]]:
    """
    Sort findings by severity, highest first, and count them per level.

    The sort is stable, so equal severities keep discovery order.
    """
    ranked = sorted(findings, key=lambda f: SEVERITY_WEIGHTS[f.severity], reverse=True)
    summary = {level.value: 0 for level in SeverityLevel}
    for finding in ranked:
        summary[finding.severity.value] += 1
    return ranked, summary


def highest_severity(findings: Iterable[InteractionFinding]) -> Optional[SeverityLevel]:
    best: Optional[SeverityLevel] = None
    for finding in findings:
        if best is None or SEVERITY_WEIGHTS[finding.severity] > SEVERITY_WEIGHTS[best]:
            best = finding.severity
    return best


def is_serious(severity: SeverityLevel) -> bool:
    """Contraindicated or major."""
    return SEVERITY_WEIGHTS[severity] >= SEVERITY_WEIGHTS[SeverityLevel.MAJOR]
