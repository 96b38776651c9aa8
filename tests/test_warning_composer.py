import pytest

from medsafe.constants import InteractionKind, SeverityLevel, Sources
from medsafe.schemas import Alternative, InteractionFinding
from medsafe.services.alternatives import safe_fallback
from medsafe.services.interaction_service import InteractionEngine
from medsafe.services.resolver import soft_failure_record
from medsafe.services.warning_composer import (
    BASE_WARNING, CRITICAL_EMERGENCY_WARNING, CRITICAL_WARNINGS, DEGRADED_WARNING, GENERAL_EMERGENCY_WARNING,
    LEGAL_DISCLAIMER, WarningComposer, apply_complementary_framing, dedupe,
)

from tests.fakes import make_record


@pytest.fixture
def engine():
    return InteractionEngine([])


def test_critical_medication_gets_critical_warnings(engine):
    record = make_record("Warfarin")
    composed = WarningComposer().compose(record, engine.build_report([], [record]))
    assert composed.warnings[0] == BASE_WARNING
    for line in CRITICAL_WARNINGS:
        assert line in composed.warnings
    assert composed.emergency_warning == CRITICAL_EMERGENCY_WARNING
    assert composed.disclaimer == LEGAL_DISCLAIMER


def test_supplement_gets_general_warnings(engine):
    record = make_record("Melatonin")
    composed = WarningComposer().compose(record, engine.build_report([], [record]))
    assert not any(line in composed.warnings for line in CRITICAL_WARNINGS)
    assert composed.emergency_warning == GENERAL_EMERGENCY_WARNING
    assert "911" in composed.emergency_warning


def test_serious_findings_are_listed(engine):
    record = make_record("Warfarin")
    findings = [
        InteractionFinding(subject_a="Warfarin", subject_b="Ibuprofen", kind=InteractionKind.DRUG_DRUG,
                           severity=SeverityLevel.MAJOR, description="Bleeding risk.",
                           recommendation="Avoid.", source=Sources.CURATED),
        InteractionFinding(subject_a="Warfarin", subject_b="vitamin K-rich foods", kind=InteractionKind.DRUG_FOOD,
                           severity=SeverityLevel.MODERATE, description="Reduces effect.",
                           recommendation="Keep intake steady.", source=Sources.CURATED),
    ]
    composed = WarningComposer().compose(record, engine.build_report(findings, [record]))
    assert "MAJOR: Warfarin + Ibuprofen - Bleeding risk." in composed.warnings
    assert not any(line.startswith("MODERATE") for line in composed.warnings)


def test_degraded_and_soft_failure_notices(engine):
    record = soft_failure_record("Zyxoprine", upstream_unavailable=True)
    composed = WarningComposer().compose(record, engine.build_report([], [record]), safe_fallback(), degraded=True)
    assert DEGRADED_WARNING in composed.warnings
    assert any("temporarily unavailable" in line and "Zyxoprine" in line for line in composed.warnings)


def test_generator_warnings_are_deduplicated(engine):
    record = make_record("Melatonin")
    output = safe_fallback().model_copy(update={
        "warnings": ["consult your healthcare provider before making any medication changes", "Avoid alcohol"],
    })
    composed = WarningComposer().compose(record, engine.build_report([], [record]), output)
    assert sum(1 for line in composed.warnings if line.casefold() == BASE_WARNING.casefold()) == 1
    assert "Avoid alcohol" in composed.warnings


def test_dedupe_keeps_first_occurrence():
    assert dedupe(["A", " a ", "B", "", "b", "C"]) == ["A", "B", "C"]


def test_complementary_framing():
    framed = apply_complementary_framing([
        Alternative(name="Fish oil", description="d", effectiveness_label="Moderate"),
        Alternative(name="Garlic", description="d", effectiveness_label="Moderate (as complement)"),
    ])
    assert all(a.complementary_only for a in framed)
    assert framed[0].effectiveness_label == "Moderate (as complement)"
    assert framed[1].effectiveness_label == "Moderate (as complement)"
