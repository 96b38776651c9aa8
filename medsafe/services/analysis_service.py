"""
Medication analysis pipeline.

validate -> collapse duplicates -> resolve -> {interactions || alternatives}
-> screen alternatives -> compose warnings -> AnalysisResult -> audit.

ValidationError is the only failure a caller ever sees. Timeouts and
unexpected errors inside the pipeline produce a degraded but complete
result that still carries the disclaimer and emergency warning.
"""
import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from medsafe.config import Settings, get_settings
from medsafe.constants import SeverityLevel, Sources
from medsafe.exceptions import ValidationError
from medsafe.schemas import (
    AnalysisResult, Alternative, InteractionFinding, InteractionReport, MedicationInfo,
    MedicationRecord, PatientFactors,
)
from medsafe.services.alternatives import AlternativeGenerator, safe_fallback, to_alternative
from medsafe.services.audit import AuditLogger, AuditSink, NullAuditSink
from medsafe.services.cache import TTLCache
from medsafe.services.completion import create_completion_client
from medsafe.services.fallback import Provider
from medsafe.services.idempotency import IdempotencyStore, make_idempotency_key
from medsafe.services.interaction_service import InteractionEngine, curated_pair
from medsafe.services.rate_limiter import SourceThrottle
from medsafe.services.registries import (
    CuratedFormulary, OpenFDAEventsRegistry, OpenFDALabelRegistry, RxNormRegistry,
)
from medsafe.services.resolver import MedicationResolver, soft_failure_record
from medsafe.services.validator import require_valid_name
from medsafe.services.warning_composer import WarningComposer, apply_complementary_framing, dedupe

logger = logging.getLogger(__name__)

BASE_RECOMMENDATION = "Discuss any natural alternative with your doctor or pharmacist before starting it"


class MedicationAnalysisService:
    """Public entry point of the analysis engine."""

    def __init__(
        self,
        resolver: MedicationResolver,
        engine: InteractionEngine,
        generator: AlternativeGenerator,
        composer: Optional[WarningComposer] = None,
        idempotency: Optional[IdempotencyStore] = None,
        audit: Optional[AuditSink] = None,
        request_timeout: float = 30.0,
        max_medications: int = 10,
        caches: Sequence[TTLCache] = (),
        clock: Callable[[], float] = time.monotonic,
    ):
        self.resolver = resolver
        self.engine = engine
        self.generator = generator
        self.composer = composer or WarningComposer()
        self.idempotency = idempotency or IdempotencyStore()
        self.audit = audit or NullAuditSink()
        self.request_timeout = request_timeout
        self.max_medications = max_medications
        # Registry-level caches swept alongside the resolver and engine caches
        self.caches = [resolver.cache, engine.cache, *caches]
        self._clock = clock

    # ==================== ENTRY POINTS ====================

    async def analyze(
        self, medication_name: str, patient_factors: Optional[PatientFactors] = None
    ) -> AnalysisResult:
        """
        Analyze one medication.

        Args:
            medication_name: raw name as entered or scanned
            patient_factors: optional patient context

        Returns:
            AnalysisResult (degraded when sources failed or time ran out)

        Raises:
            ValidationError: if any name fails validation
        """
        name = require_valid_name(medication_name)
        current = self._validate_names(patient_factors.current_medications if patient_factors else [], extra=1)

        key = make_idempotency_key("analyze", {
            "medication": name.casefold(),
            "patientFactors": patient_factors.model_dump(mode="json") if patient_factors else None,
        })
        return await self.idempotency.run(
            key,
            lambda: self._analyze_bounded(name, current, patient_factors),
            remember=lambda result: not result.degraded,
        )

    async def check_interactions(
        self, medication_names: Sequence[str], patient_factors: Optional[PatientFactors] = None
    ) -> InteractionReport:
        """Check a list of medications against each other and the patient."""
        names = self._validate_names(medication_names)
        if not names:
            raise ValidationError("At least one medication is required", rule="required")

        async def run() -> InteractionReport:
            records = await asyncio.gather(*(self.resolver.resolve(n) for n in names))
            return await self.engine.check(records, patient_factors)

        try:
            return await asyncio.wait_for(run(), timeout=self.request_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Interaction check exceeded {self.request_timeout:g}s; returning degraded report")
            return InteractionReport(has_interactions=False, degraded=True, checked_medications=names,
                                     severity_summary={level.value: 0 for level in SeverityLevel})

    async def resolve(self, medication_name: str) -> MedicationRecord:
        return await self.resolver.resolve(require_valid_name(medication_name))

    def _validate_names(self, names: Sequence[str], extra: int = 0) -> List[str]:
        validated = [require_valid_name(n) for n in names]
        if len(validated) + extra > self.max_medications:
            raise ValidationError(
                f"At most {self.max_medications} medications can be checked at once", rule="max_medications"
            )
        return validated

    # ==================== PIPELINE ====================

    async def _analyze_bounded(
        self, name: str, current: List[str], patient_factors: Optional[PatientFactors]
    ) -> AnalysisResult:
        started = self._clock()
        try:
            result = await asyncio.wait_for(
                self._analyze(name, current, patient_factors, started), timeout=self.request_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Analysis exceeded {self.request_timeout:g}s; returning degraded result")
            result = self._degraded_result(name, started)
        except Exception as e:
            logger.error(f"Unexpected analysis failure: {e}", exc_info=True)
            result = self._degraded_result(name, started)
        await self.audit.record(result)
        return result

    async def _analyze(
        self,
        name: str,
        current: List[str],
        patient_factors: Optional[PatientFactors],
        started: float,
    ) -> AnalysisResult:
        record, *others = await asyncio.gather(
            self.resolver.resolve(name), *(self.resolver.resolve(n) for n in current)
        )

        report, output = await asyncio.gather(
            self.engine.check([record, *others], patient_factors),
            self.generator.generate(record, current),
        )

        alternatives = [to_alternative(a) for a in output.alternatives]
        screened: List[InteractionFinding] = []
        for subject in (record, *others):
            screened.extend(self.engine.screen_alternatives(subject, [a.name for a in alternatives]))
        alternatives = self._apply_screening(alternatives, screened)
        report = self.engine.merge(report, screened)

        if record.is_critical:
            alternatives = apply_complementary_framing(alternatives)

        degraded = report.degraded or record.upstream_unavailable or output.fallback
        composed = self.composer.compose(record, report, output)

        confidence = output.confidence
        if record.validation_warning:
            confidence = min(confidence, 0.5)

        result = AnalysisResult(
            medication_name=name,
            medication_info=MedicationInfo.from_record(record),
            alternatives=alternatives,
            warnings=composed.warnings,
            recommendations=dedupe([*output.recommendations, BASE_RECOMMENDATION]),
            interactions=report,
            disclaimer=composed.disclaimer,
            emergency_warning=composed.emergency_warning,
            confidence=confidence,
            degraded=degraded,
            processing_time_ms=self._elapsed_ms(started),
            analyzed_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Analysis complete: category={record.category} critical={record.is_critical} "
            f"alternatives={len(alternatives)} findings={len(report.findings)} degraded={degraded}"
        )
        return result

    @staticmethod
    def _apply_screening(alternatives: List[Alternative], screened: List[InteractionFinding]) -> List[Alternative]:
        """Drop contraindicated alternatives; annotate the rest with curated findings."""
        kept = []
        for alternative in alternatives:
            findings = [f for f in screened if f.subject_b == alternative.name]
            if any(f.severity == SeverityLevel.CONTRAINDICATED for f in findings):
                logger.warning("Dropped a contraindicated alternative")
                continue
            if findings:
                notes = " ".join(f.description for f in findings)
                existing = alternative.interactions_with_subject
                alternative = alternative.model_copy(update={
                    "interactions_with_subject": f"{notes} {existing}".strip(),
                })
            kept.append(alternative)
        return kept

    def _degraded_result(self, name: str, started: float) -> AnalysisResult:
        record = self.resolver.cache.get(name.lower()) or soft_failure_record(name, upstream_unavailable=True)
        report = InteractionReport(
            has_interactions=False,
            degraded=True,
            checked_medications=[record.name],
            severity_summary={level.value: 0 for level in SeverityLevel},
        )
        output = safe_fallback()
        composed = self.composer.compose(record, report, output, degraded=True)
        return AnalysisResult(
            medication_name=name,
            medication_info=MedicationInfo.from_record(record),
            alternatives=[],
            warnings=composed.warnings,
            recommendations=dedupe([*output.recommendations, BASE_RECOMMENDATION]),
            interactions=report,
            disclaimer=composed.disclaimer,
            emergency_warning=composed.emergency_warning,
            confidence=0.0,
            degraded=True,
            processing_time_ms=self._elapsed_ms(started),
            analyzed_at=datetime.now(timezone.utc),
        )

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))

    # ==================== LIFECYCLE ====================

    def start_sweepers(self, interval: float) -> None:
        for cache in self.caches:
            cache.start_sweeper(interval)
        self.idempotency.start_sweeper(interval)

    async def stop_sweepers(self) -> None:
        for cache in self.caches:
            await cache.stop_sweeper()
        await self.idempotency.stop_sweeper()


def create_analysis_service(settings: Optional[Settings] = None) -> MedicationAnalysisService:
    """Wire the production service from settings."""
    settings = settings or get_settings()
    throttle = SourceThrottle(min_interval=settings.SOURCE_MIN_INTERVAL_SECONDS)
    registry_kwargs = {"throttle": throttle, "timeout": settings.UPSTREAM_TIMEOUT_SECONDS}

    labels = OpenFDALabelRegistry(
        settings.OPENFDA_BASE_URL, api_key=settings.OPENFDA_API_KEY,
        cache=TTLCache(settings.LABEL_CACHE_TTL_SECONDS, name="label-text"), **registry_kwargs,
    )
    events = OpenFDAEventsRegistry(settings.OPENFDA_BASE_URL, api_key=settings.OPENFDA_API_KEY, **registry_kwargs)
    rxnorm = RxNormRegistry(
        settings.RXNAV_BASE_URL,
        cache=TTLCache(settings.MEDICATION_CACHE_TTL_SECONDS, name="rxcui"), **registry_kwargs,
    )
    formulary = CuratedFormulary()

    resolver = MedicationResolver(
        providers=[
            Provider(Sources.OPENFDA_LABEL, labels.lookup),
            Provider(Sources.RXNORM, rxnorm.lookup),
            Provider(Sources.CURATED, formulary.lookup),
        ],
        cache=TTLCache(settings.MEDICATION_CACHE_TTL_SECONDS, name="medications"),
    )
    engine = InteractionEngine(
        pair_providers=[
            Provider(Sources.RXNORM, rxnorm.interaction_between),
            Provider(Sources.OPENFDA_EVENTS, events.interaction_reports),
            Provider(Sources.CURATED, curated_pair),
            Provider(Sources.OPENFDA_LABEL, labels.interaction_mention),
        ],
        cache=TTLCache(settings.INTERACTION_CACHE_TTL_SECONDS, name="interaction-pairs"),
    )
    generator = AlternativeGenerator(
        create_completion_client(settings), timeout=settings.COMPLETION_TIMEOUT_SECONDS
    )

    return MedicationAnalysisService(
        resolver=resolver,
        engine=engine,
        generator=generator,
        idempotency=IdempotencyStore(ttl=settings.IDEMPOTENCY_TTL_SECONDS),
        audit=AuditLogger(settings.AUDIT_LOG_PATH),
        request_timeout=settings.REQUEST_TIMEOUT_SECONDS,
        max_medications=settings.MAX_MEDICATIONS,
        caches=[labels.cache, rxnorm.cache],
    )
