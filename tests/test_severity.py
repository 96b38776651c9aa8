import pytest

from medsafe.constants import InteractionKind, SeverityLevel, Sources
from medsafe.schemas import InteractionFinding
from medsafe.services.severity import highest_severity, is_serious, normalize_severity, rank


def finding(severity, subject_b="other"):
    return InteractionFinding(
        subject_a="subject",
        subject_b=subject_b,
        kind=InteractionKind.DRUG_DRUG,
        severity=severity,
        description="desc",
        recommendation="rec",
        source=Sources.CURATED,
    )


@pytest.mark.parametrize("value,source,expected", [
    ("high", Sources.RXNORM, SeverityLevel.MAJOR),
    ("moderate", Sources.RXNORM, SeverityLevel.MAJOR),
    ("low", Sources.RXNORM, SeverityLevel.MODERATE),
    ("serious", Sources.OPENFDA_EVENTS, SeverityLevel.MAJOR),
    ("non-serious", Sources.OPENFDA_EVENTS, SeverityLevel.MINOR),
    ("contraindicated", Sources.OPENFDA_LABEL, SeverityLevel.CONTRAINDICATED),
    ("caution", Sources.OPENFDA_LABEL, SeverityLevel.MODERATE),
    ("Critical", None, SeverityLevel.MAJOR),
    ("SEVERE", None, SeverityLevel.MAJOR),
    ("mild", None, SeverityLevel.MINOR),
    ("contraindicated", Sources.CURATED, SeverityLevel.CONTRAINDICATED),
])
def test_source_vocabularies(value, source, expected):
    assert normalize_severity(value, source) == expected


def test_unmapped_values_are_unknown():
    assert normalize_severity("N/A") == SeverityLevel.UNKNOWN
    assert normalize_severity("") == SeverityLevel.UNKNOWN
    assert normalize_severity(None) == SeverityLevel.UNKNOWN
    # source table is authoritative for its own vocabulary
    assert normalize_severity("severe", Sources.RXNORM) == SeverityLevel.UNKNOWN


def test_rank_orders_highest_first_and_is_stable():
    findings = [
        finding(SeverityLevel.MINOR, "a"),
        finding(SeverityLevel.CONTRAINDICATED, "b"),
        finding(SeverityLevel.MODERATE, "c"),
        finding(SeverityLevel.MINOR, "d"),
        finding(SeverityLevel.UNKNOWN, "e"),
    ]
    ranked, summary = rank(findings)
    assert [f.subject_b for f in ranked] == ["b", "c", "a", "d", "e"]
    assert summary == {"contraindicated": 1, "major": 0, "moderate": 1, "minor": 2, "unknown": 1}


def test_empty_summary_has_every_level():
    ranked, summary = rank([])
    assert ranked == []
    assert set(summary) == {level.value for level in SeverityLevel}
    assert not any(summary.values())


def test_highest_and_serious():
    assert highest_severity([]) is None
    assert highest_severity([finding(SeverityLevel.MINOR), finding(SeverityLevel.MAJOR)]) == SeverityLevel.MAJOR
    assert is_serious(SeverityLevel.CONTRAINDICATED)
    assert is_serious(SeverityLevel.MAJOR)
    assert not is_serious(SeverityLevel.MODERATE)


def test_rank_mixed_levels():
    ranked, summary = rank([finding(level) for level in (
        SeverityLevel.MINOR, SeverityLevel.MAJOR, SeverityLevel.MODERATE, SeverityLevel.CONTRAINDICATED,
    )])
    assert [f.severity for f in ranked] == [
        SeverityLevel.CONTRAINDICATED, SeverityLevel.MAJOR, SeverityLevel.MODERATE, SeverityLevel.MINOR,
    ]
    assert sum(summary.values()) == 4
