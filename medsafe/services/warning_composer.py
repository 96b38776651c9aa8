"""
Warning Composer.

Builds the ordered, de-duplicated warning list, the mandatory disclaimer and
the emergency call-to-action for one analysis.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from medsafe.schemas import Alternative, GeneratorOutput, InteractionReport, MedicationRecord
from medsafe.services.severity import is_serious

LEGAL_DISCLAIMER = """IMPORTANT MEDICAL DISCLAIMER

This information is for EDUCATIONAL PURPOSES ONLY and is NOT medical advice.

DO NOT make changes to your medication without consulting your healthcare provider.

- Natural alternatives may interact with your medications
- This is not a substitute for professional medical advice
- Individual results vary significantly
- Some conditions require prescription medication
- Stopping medication abruptly can be dangerous

EMERGENCY: If experiencing severe symptoms, call 911 immediately.

By proceeding, you acknowledge that you understand these limitations and will consult with a qualified healthcare provider before making any changes to your treatment plan."""

CRITICAL_EMERGENCY_WARNING = (
    "EMERGENCY: If you experience chest pain, difficulty breathing, severe bleeding, "
    "or other serious symptoms, call 911 immediately. Do not wait."
)
GENERAL_EMERGENCY_WARNING = "If you are experiencing a medical emergency, call 911 immediately."

BASE_WARNING = "Consult your healthcare provider before making any medication changes"
CRITICAL_WARNINGS = (
    "This medication treats a serious condition - DO NOT stop without medical supervision",
    "Natural alternatives should ONLY be used as complementary therapy, not replacements",
)
INTERACTION_WARNING = "This medication has known interactions - discuss with your pharmacist"
DEGRADED_WARNING = (
    "Some safety data sources were unavailable; interaction results may be incomplete. "
    "Confirm with your pharmacist"
)
SUPPLEMENT_WARNINGS = (
    "Natural supplements can have side effects and interactions",
    "Quality and potency of supplements vary by manufacturer",
    "Some supplements are not safe during pregnancy or breastfeeding",
)

COMPLEMENT_SUFFIX = "(as complement)"


@dataclass(frozen=True)
class ComposedWarnings:
    warnings: List[str] = field(default_factory=list)
    disclaimer: str = LEGAL_DISCLAIMER
    emergency_warning: str = GENERAL_EMERGENCY_WARNING


def dedupe(lines: Iterable[str]) -> List[str]:
    """Drop repeated lines (case-insensitive), keeping first occurrence order."""
    seen = set()
    result = []
    for line in lines:
        key = line.strip().casefold()
        if key and key not in seen:
            seen.add(key)
            result.append(line.strip())
    return result


def soft_failure_notice(record: MedicationRecord) -> Optional[str]:
    if not record.validation_warning:
        return None
    if record.upstream_unavailable:
        return (
            f"Medication databases are temporarily unavailable, so '{record.name}' could not be verified. "
            "Confirm the name and its safety information with your pharmacist"
        )
    return (
        f"'{record.name}' could not be verified against FDA or RxNorm records. "
        "Check the spelling and confirm with your pharmacist"
    )


def apply_complementary_framing(alternatives: Iterable[Alternative]) -> List[Alternative]:
    """Mark alternatives as complementary only (used for critical medications)."""
    framed = []
    for alternative in alternatives:
        label = alternative.effectiveness_label
        if "complement" not in label.lower():
            label = f"{label} {COMPLEMENT_SUFFIX}".strip()
        framed.append(alternative.model_copy(update={"complementary_only": True, "effectiveness_label": label}))
    return framed


class WarningComposer:
    """Composes user-facing warnings for an analysis."""

    def compose(
        self,
        record: MedicationRecord,
        report: InteractionReport,
        generator_output: Optional[GeneratorOutput] = None,
        degraded: bool = False,
    ) -> ComposedWarnings:
        lines: List[str] = [BASE_WARNING]

        if record.is_critical:
            lines.extend(CRITICAL_WARNINGS)

        notice = soft_failure_notice(record)
        if notice:
            lines.append(notice)

        if report.has_interactions:
            lines.append(INTERACTION_WARNING)
            for finding in report.findings:
                if is_serious(finding.severity):
                    partner = f" + {finding.subject_b}" if finding.subject_b else ""
                    lines.append(
                        f"{finding.severity.value.upper()}: {finding.subject_a}{partner} - {finding.description}"
                    )

        if report.degraded or degraded:
            lines.append(DEGRADED_WARNING)

        if generator_output is not None:
            lines.extend(generator_output.warnings)

        lines.extend(SUPPLEMENT_WARNINGS)

        return ComposedWarnings(
            warnings=dedupe(lines),
            disclaimer=LEGAL_DISCLAIMER,
            emergency_warning=self.emergency_warning(record),
        )

    @staticmethod
    def emergency_warning(record: MedicationRecord) -> str:
        return CRITICAL_EMERGENCY_WARNING if record.is_critical else GENERAL_EMERGENCY_WARNING
