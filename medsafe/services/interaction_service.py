"""
Interaction Engine.

Checks a set of resolved medications against each other and against the
patient: drug-drug pairs through the registry chain, then age, condition,
pregnancy, allergy and food rules from the curated tables. Findings are
ranked by the severity classifier.
"""
import itertools
import logging
from typing import List, Optional, Sequence, Tuple

from medsafe.constants import CacheTTL, InteractionKind, SeverityLevel, Sources
from medsafe.knowledge import (
    AGE_RULES, CONDITION_RULES, FOOD_RULES, PREGNANCY_SEVERITY, allergen_class_for,
    find_critical_pair, pregnancy_category_for,
)
from medsafe.schemas import (
    Allergy, InteractionFinding, InteractionReport, MedicationRecord, PatientFactors,
)
from medsafe.services.cache import TTLCache
from medsafe.services.fallback import Provider, first_success
from medsafe.services.registries import RegistryInteraction
from medsafe.services.severity import normalize_severity, rank

logger = logging.getLogger(__name__)

ALLERGY_RECOMMENDATION = "DO NOT ADMINISTER - Contact your healthcare provider immediately"

PREGNANCY_RECOMMENDATIONS = {
    "C": "Use only if the benefit justifies the potential risk to the fetus; discuss with your prescriber.",
    "D": "Evidence of fetal risk exists; use only under specialist supervision.",
    "X": "Do not use during pregnancy. Contact your prescriber before the next dose.",
}


async def curated_pair(record_a: MedicationRecord, record_b: MedicationRecord) -> Optional[RegistryInteraction]:
    """Known critical pair lookup as a chain provider (no I/O)."""
    pair = find_critical_pair(
        record_a.match_terms(), record_a.pharm_classes, record_b.match_terms(), record_b.pharm_classes,
    )
    if pair is None:
        return None
    return RegistryInteraction(
        severity=pair.severity.value,
        description=pair.description,
        source=Sources.CURATED,
        mechanism=pair.mechanism,
        recommendation=pair.recommendation,
        confidence=0.85,
    )


def pair_key(name_a: str, name_b: str) -> Tuple[str, str]:
    """Order-independent, case-folded cache key for a pair."""
    a, b = name_a.strip().casefold(), name_b.strip().casefold()
    return (a, b) if a <= b else (b, a)


def _key_name(record: MedicationRecord) -> str:
    return record.generic_name or record.name


class InteractionEngine:
    """Service for checking interactions and contraindications."""

    def __init__(
        self,
        pair_providers: Sequence[Provider[RegistryInteraction]],
        cache: Optional[TTLCache[List[InteractionFinding]]] = None,
    ):
        self.pair_providers = list(pair_providers)
        self.cache = cache if cache is not None else TTLCache(CacheTTL.INTERACTION_PAIR, name="interaction-pairs")

    pair_key = staticmethod(pair_key)

    async def check(
        self,
        medications: Sequence[MedicationRecord],
        patient_factors: Optional[PatientFactors] = None,
    ) -> InteractionReport:
        """
        Check medications against each other and the patient.

        Args:
            medications: resolved records, subject first
            patient_factors: optional patient context

        Returns:
            InteractionReport with ranked findings
        """
        findings: List[InteractionFinding] = []
        degraded = False

        for record_a, record_b in itertools.combinations(medications, 2):
            first, second = pair_key(_key_name(record_a), _key_name(record_b))
            if first == second:
                continue  # same medication listed twice
            finding, errored = await self.check_pair(record_a, record_b)
            if finding is not None:
                findings.append(finding)
            degraded = degraded or errored

        if patient_factors is not None:
            findings.extend(self.check_contraindications(medications, patient_factors))
            findings.extend(self.check_allergies(medications, patient_factors.allergies))
        findings.extend(self.check_food(medications))

        return self.build_report(findings, medications, degraded)

    def build_report(
        self,
        findings: Sequence[InteractionFinding],
        medications: Sequence[MedicationRecord],
        degraded: bool = False,
    ) -> InteractionReport:
        ranked, summary = rank(findings)
        return InteractionReport(
            has_interactions=bool(ranked),
            findings=ranked,
            severity_summary=summary,
            degraded=degraded,
            checked_medications=[m.name for m in medications],
        )

    def merge(self, report: InteractionReport, extra: Sequence[InteractionFinding]) -> InteractionReport:
        """Add findings to a report and re-rank."""
        if not extra:
            return report
        ranked, summary = rank(list(report.findings) + list(extra))
        return report.model_copy(update={
            "has_interactions": True,
            "findings": ranked,
            "severity_summary": summary,
        })

    async def check_pair(
        self, record_a: MedicationRecord, record_b: MedicationRecord
    ) -> Tuple[Optional[InteractionFinding], bool]:
        """
        Ask the pair chain, with caching.

        Returns (finding or None, whether the answer is incomplete because a
        source failed).
        """
        key = pair_key(_key_name(record_a), _key_name(record_b))
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Interaction cache hit: {key}")
            if not cached:
                return None, False
            return cached[0].model_copy(update={"subject_a": record_a.name, "subject_b": record_b.name}), False

        outcome = await first_success(self.pair_providers, record_a, record_b)
        if outcome.found:
            finding = self._to_finding(outcome.value, record_a, record_b)
            self.cache.set(key, [finding])
            return finding, False

        if outcome.errors:
            logger.warning(f"Pair check incomplete: {len(outcome.errors)} sources failed; not caching")
            return None, True

        self.cache.set(key, [])
        return None, False

    def _to_finding(
        self, raw: RegistryInteraction, record_a: MedicationRecord, record_b: MedicationRecord
    ) -> InteractionFinding:
        return InteractionFinding(
            subject_a=record_a.name,
            subject_b=record_b.name,
            kind=InteractionKind.DRUG_DRUG,
            severity=normalize_severity(raw.severity, raw.source),
            description=raw.description,
            mechanism=raw.mechanism,
            recommendation=raw.recommendation or "Consult your healthcare provider before combining these medications.",
            source=raw.source,
            confidence=raw.confidence,
        )

    def check_contraindications(
        self, medications: Sequence[MedicationRecord], patient_factors: PatientFactors
    ) -> List[InteractionFinding]:
        """Age-band, condition and pregnancy rules."""
        findings: List[InteractionFinding] = []
        for record in medications:
            terms = record.match_terms()

            if patient_factors.age is not None:
                age = patient_factors.age
                for rule in AGE_RULES:
                    if rule.applies(age) and rule.group.matches(terms, record.pharm_classes):
                        findings.append(InteractionFinding(
                            subject_a=record.name,
                            subject_b=f"{rule.band} patient",
                            kind=InteractionKind.DRUG_AGE,
                            severity=rule.severity,
                            description=rule.description,
                            recommendation=rule.recommendation,
                            source=Sources.CURATED,
                            confidence=0.85,
                        ))

            matched_rules = set()
            for condition in patient_factors.conditions:
                for index, rule in enumerate(CONDITION_RULES):
                    if index in matched_rules:
                        continue
                    if rule.matches_condition(condition) and rule.group.matches(terms, record.pharm_classes):
                        matched_rules.add(index)
                        findings.append(InteractionFinding(
                            subject_a=record.name,
                            subject_b=condition,
                            kind=InteractionKind.DRUG_CONDITION,
                            severity=rule.severity,
                            description=rule.description,
                            recommendation=rule.recommendation,
                            source=Sources.CURATED,
                            confidence=0.85,
                        ))

            if patient_factors.pregnant:
                finding = self._pregnancy_finding(record)
                if finding is not None:
                    findings.append(finding)

        return findings

    def _pregnancy_finding(self, record: MedicationRecord) -> Optional[InteractionFinding]:
        category = record.pregnancy_category or pregnancy_category_for(record.match_terms())
        severity = PREGNANCY_SEVERITY.get((category or "").upper())
        if severity is None:
            return None
        category = category.upper()
        return InteractionFinding(
            subject_a=record.name,
            subject_b="pregnancy",
            kind=InteractionKind.DRUG_PREGNANCY,
            severity=severity,
            description=f"{record.name} is FDA pregnancy category {category}.",
            recommendation=PREGNANCY_RECOMMENDATIONS[category],
            source=Sources.CURATED,
            confidence=0.9,
        )

    def check_allergies(
        self, medications: Sequence[MedicationRecord], allergies: Sequence[Allergy]
    ) -> List[InteractionFinding]:
        """Every allergy match is contraindicated."""
        findings: List[InteractionFinding] = []
        for record in medications:
            terms = record.match_terms()
            for allergy in allergies:
                if self._matches_allergy(terms, record.pharm_classes, allergy):
                    findings.append(InteractionFinding(
                        subject_a=record.name,
                        subject_b=allergy.allergen,
                        kind=InteractionKind.DRUG_ALLERGY,
                        severity=SeverityLevel.CONTRAINDICATED,
                        description=f"Potential allergic reaction to {allergy.allergen} in {record.name}",
                        recommendation=ALLERGY_RECOMMENDATION,
                        source=Sources.PATIENT_PROFILE,
                        confidence=0.95,
                    ))
        return findings

    @staticmethod
    def _matches_allergy(terms: Sequence[str], pharm_classes: Sequence[str], allergy: Allergy) -> bool:
        allergen_terms = [t.strip().lower() for t in [allergy.allergen, *allergy.synonyms] if t and t.strip()]
        for allergen in allergen_terms:
            for term in terms:
                if allergen in term or (len(term) >= 3 and term in allergen):
                    return True
            group = allergen_class_for(allergen)
            if group is not None and group.matches(terms, pharm_classes):
                return True
        return False

    def check_food(self, medications: Sequence[MedicationRecord]) -> List[InteractionFinding]:
        findings: List[InteractionFinding] = []
        for record in medications:
            terms = record.match_terms()
            seen_foods = set()
            for rule in FOOD_RULES:
                if rule.food in seen_foods or not rule.group.matches(terms, record.pharm_classes):
                    continue
                seen_foods.add(rule.food)
                findings.append(InteractionFinding(
                    subject_a=record.name,
                    subject_b=rule.food,
                    kind=InteractionKind.DRUG_FOOD,
                    severity=rule.severity,
                    description=rule.description,
                    recommendation=rule.recommendation,
                    source=Sources.CURATED,
                    confidence=0.8,
                ))
        return findings

    def screen_alternatives(
        self, subject: MedicationRecord, names: Sequence[str]
    ) -> List[InteractionFinding]:
        """Check suggested alternatives against the curated pair table."""
        findings: List[InteractionFinding] = []
        for name in names:
            pair = find_critical_pair(subject.match_terms(), subject.pharm_classes, [name.strip().lower()], ())
            if pair is None:
                continue
            findings.append(InteractionFinding(
                subject_a=subject.name,
                subject_b=name,
                kind=InteractionKind.DRUG_DRUG,
                severity=pair.severity,
                description=pair.description,
                mechanism=pair.mechanism,
                recommendation=pair.recommendation,
                source=Sources.CURATED,
                confidence=0.85,
            ))
        return findings
