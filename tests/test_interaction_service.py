"""
Tests for the interaction engine: pair chain, caching and patient rules.
"""
import pytest

from medsafe.constants import InteractionKind, SeverityLevel, Sources
from medsafe.exceptions import UpstreamError
from medsafe.knowledge import normalize_term
from medsafe.schemas import Allergy, PatientFactors
from medsafe.services.fallback import Provider
from medsafe.services.interaction_service import (
    ALLERGY_RECOMMENDATION, InteractionEngine, curated_pair, pair_key,
)
from medsafe.services.registries import RegistryInteraction

from tests.fakes import make_record


class PairProvider:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def __call__(self, record_a, record_b):
        self.calls += 1
        if self.error:
            raise self.error
        return self.result


def curated_engine():
    return InteractionEngine([Provider(Sources.CURATED, curated_pair)])


def test_pair_key_is_order_independent():
    assert pair_key("Warfarin", "aspirin") == pair_key("ASPIRIN", " warfarin ")
    assert InteractionEngine.pair_key("b", "a") == ("a", "b")


@pytest.mark.anyio
async def test_maoi_with_ssri_is_contraindicated_and_ranked_first():
    engine = curated_engine()
    report = await engine.check([
        make_record("Nardil", generic_name="phenelzine"),
        make_record("Zoloft", generic_name="sertraline"),
        make_record("Advil", generic_name="ibuprofen"),
    ])

    assert report.has_interactions
    top = report.findings[0]
    assert top.severity == SeverityLevel.CONTRAINDICATED
    assert {top.subject_a, top.subject_b} == {"Nardil", "Zoloft"}
    assert top.kind == InteractionKind.DRUG_DRUG
    assert report.severity_summary["contraindicated"] == 1
    # sertraline + ibuprofen is a curated moderate pair
    assert any(f.severity == SeverityLevel.MODERATE and f.subject_b == "Advil" for f in report.findings)
    assert report.checked_medications == ["Nardil", "Zoloft", "Advil"]


@pytest.mark.anyio
async def test_pair_result_is_same_in_either_order():
    engine = curated_engine()
    warfarin = make_record("Warfarin")
    ibuprofen = make_record("Ibuprofen")
    forward, _ = await engine.check_pair(warfarin, ibuprofen)
    engine.cache.clear()
    reverse, _ = await engine.check_pair(ibuprofen, warfarin)
    assert forward.severity == reverse.severity == SeverityLevel.MAJOR


@pytest.mark.anyio
async def test_registry_severity_is_normalized():
    provider = PairProvider(RegistryInteraction(
        severity="high", description="Increased bleeding risk", source=Sources.RXNORM, confidence=0.9,
    ))
    engine = InteractionEngine([Provider(Sources.RXNORM, provider)])
    finding, errored = await engine.check_pair(make_record("Warfarin"), make_record("Aspirin"))
    assert finding.severity == SeverityLevel.MAJOR
    assert finding.source == Sources.RXNORM
    assert not errored


@pytest.mark.anyio
async def test_documented_miss_is_cached():
    provider = PairProvider()
    engine = InteractionEngine([Provider(Sources.RXNORM, provider)])
    a, b = make_record("Metformin"), make_record("Omeprazole")

    assert await engine.check_pair(a, b) == (None, False)
    assert await engine.check_pair(b, a) == (None, False)
    assert provider.calls == 1


@pytest.mark.anyio
async def test_errored_miss_is_not_cached_and_degrades_report():
    broken = PairProvider(error=UpstreamError(Sources.RXNORM, "HTTP 500"))
    engine = InteractionEngine([Provider(Sources.RXNORM, broken), Provider(Sources.CURATED, curated_pair)])
    medications = [make_record("Metformin"), make_record("Omeprazole")]

    report = await engine.check(medications)
    assert report.degraded
    assert not any(f.kind == InteractionKind.DRUG_DRUG for f in report.findings)

    await engine.check(medications)
    assert broken.calls == 2


@pytest.mark.anyio
async def test_cached_hit_uses_current_names():
    engine = curated_engine()
    await engine.check_pair(make_record("Coumadin", generic_name="warfarin"), make_record("Advil", generic_name="ibuprofen"))
    finding, _ = await engine.check_pair(
        make_record("Jantoven", generic_name="warfarin"), make_record("Motrin", generic_name="ibuprofen"),
    )
    assert (finding.subject_a, finding.subject_b) == ("Jantoven", "Motrin")


@pytest.mark.anyio
async def test_same_medication_twice_is_not_a_pair():
    engine = curated_engine()
    report = await engine.check([make_record("Zoloft", generic_name="sertraline"), make_record("Sertraline")])
    assert not any(f.kind == InteractionKind.DRUG_DRUG for f in report.findings)


class TestPatientRules:

    def test_penicillin_allergy_flags_amoxicillin(self):
        engine = curated_engine()
        findings = engine.check_allergies([make_record("Amoxil", generic_name="amoxicillin")],
                                          [Allergy(allergen="Penicillin")])
        assert len(findings) == 1
        assert findings[0].severity == SeverityLevel.CONTRAINDICATED
        assert findings[0].recommendation == ALLERGY_RECOMMENDATION
        assert findings[0].kind == InteractionKind.DRUG_ALLERGY

    def test_allergy_synonyms_match(self):
        engine = curated_engine()
        findings = engine.check_allergies([make_record("Advil", generic_name="ibuprofen")],
                                          [Allergy(allergen="Motrin", synonyms=["ibuprofen"])])
        assert len(findings) == 1

    def test_unrelated_allergy_does_not_match(self):
        engine = curated_engine()
        assert engine.check_allergies([make_record("Metformin")], [Allergy(allergen="Latex")]) == []

    def test_pregnancy_category_x_is_contraindicated(self):
        engine = curated_engine()
        findings = engine.check_contraindications([make_record("Warfarin")], PatientFactors(pregnant=True))
        assert [f.severity for f in findings] == [SeverityLevel.CONTRAINDICATED]
        assert "category X" in findings[0].description

    def test_pregnancy_ignored_when_not_pregnant(self):
        engine = curated_engine()
        assert engine.check_contraindications([make_record("Warfarin")], PatientFactors(pregnant=False)) == []

    def test_pediatric_aspirin(self):
        engine = curated_engine()
        findings = engine.check_contraindications([make_record("Aspirin")], PatientFactors(age=8))
        assert any(f.kind == InteractionKind.DRUG_AGE and f.subject_b == "pediatric patient" for f in findings)
        adult = engine.check_contraindications([make_record("Aspirin")], PatientFactors(age=30))
        assert not any(f.kind == InteractionKind.DRUG_AGE for f in adult)

    def test_geriatric_benzodiazepine(self):
        engine = curated_engine()
        findings = engine.check_contraindications([make_record("Alprazolam")], PatientFactors(age=78))
        assert any(f.kind == InteractionKind.DRUG_AGE and f.severity == SeverityLevel.MAJOR for f in findings)

    def test_condition_rule_matches_once(self):
        engine = curated_engine()
        findings = engine.check_contraindications(
            [make_record("Ibuprofen")],
            PatientFactors(conditions=["Chronic kidney disease", "kidney disease stage 3"]),
        )
        kidney = [f for f in findings if f.kind == InteractionKind.DRUG_CONDITION]
        assert len(kidney) == 1
        assert kidney[0].severity == SeverityLevel.MAJOR

    @pytest.mark.anyio
    async def test_food_findings_always_checked(self):
        engine = curated_engine()
        report = await engine.check([make_record("Simvastatin")])
        grapefruit = [f for f in report.findings if f.kind == InteractionKind.DRUG_FOOD]
        assert grapefruit and grapefruit[0].subject_b == "grapefruit"
        assert grapefruit[0].severity == SeverityLevel.MAJOR


def test_screen_alternatives_against_subject():
    engine = curated_engine()
    findings = engine.screen_alternatives(
        make_record("Warfarin"), ["Ginkgo biloba", "Chamomile tea", "St. Johns Wort"],
    )
    by_name = {f.subject_b: f.severity for f in findings}
    assert by_name == {"Ginkgo biloba": SeverityLevel.MODERATE, "St. Johns Wort": SeverityLevel.MAJOR}


@pytest.mark.parametrize("spelling", [
    "St. John's Wort", "St. John’s Wort", "St John's wort", "ST. JOHNS WORT", "Saint John's Wort",
])
def test_screen_alternatives_handles_apostrophe_spellings(spelling):
    engine = curated_engine()
    findings = engine.screen_alternatives(make_record("Sertraline"), [spelling])
    assert [(f.subject_b, f.severity) for f in findings] == [(spelling, SeverityLevel.MAJOR)]


def test_normalize_term_folds_punctuation():
    assert normalize_term("  St. John’s  Wort ") == "st johns wort"
    assert normalize_term("Omega-3") == "omega-3"
