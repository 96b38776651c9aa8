"""Pydantic schemas for the analysis engine and its API."""
from pydantic import (
    AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
)
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from medsafe.constants import InteractionKind, SeverityLevel


GENERATOR_SCHEMA_VERSION = "1"


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Medication Schemas
class MedicationRecord(CamelModel):
    """Canonical record produced by the resolver. Replaced, never mutated."""
    model_config = ConfigDict(frozen=True)

    name: str
    generic_name: Optional[str] = None
    brand_names: List[str] = Field(default_factory=list)
    category: str = "Unknown"
    normalized_id: Optional[str] = None
    fda_approved: bool = False
    is_critical: bool = False
    source: str
    resolved_at: datetime
    pharm_classes: List[str] = Field(default_factory=list)
    active_ingredients: List[str] = Field(default_factory=list)
    pregnancy_category: Optional[str] = None
    validation_warning: bool = False
    upstream_unavailable: bool = False

    def match_terms(self) -> List[str]:
        """Lower-cased names this medication is known by."""
        terms = [self.name, self.generic_name or ""]
        terms.extend(self.brand_names)
        terms.extend(self.active_ingredients)
        seen = []
        for term in terms:
            term = term.strip().lower()
            if term and term not in seen:
                seen.append(term)
        return seen


class MedicationInfo(CamelModel):
    """Subset of MedicationRecord returned to callers."""
    name: str
    generic_name: Optional[str] = None
    brand_names: List[str] = Field(default_factory=list)
    category: str
    fda_approved: bool
    is_critical: bool
    source: str
    validation_warning: bool = False

    @classmethod
    def from_record(cls, record: MedicationRecord) -> "MedicationInfo":
        return cls(
            name=record.name,
            generic_name=record.generic_name,
            brand_names=list(record.brand_names),
            category=record.category,
            fda_approved=record.fda_approved,
            is_critical=record.is_critical,
            source=record.source,
            validation_warning=record.validation_warning,
        )


# Patient Schemas
class Allergy(CamelModel):
    """A patient allergy with optional synonyms."""
    allergen: str = Field(..., min_length=1, max_length=100)
    synonyms: List[str] = Field(default_factory=list)


class PatientFactors(CamelModel):
    """Read-only patient context supplied once per request."""
    age: Optional[int] = Field(default=None, ge=0, le=130)
    conditions: List[str] = Field(default_factory=list)
    allergies: List[Allergy] = Field(default_factory=list)
    pregnant: bool = False
    current_medications: List[str] = Field(default_factory=list)

    @field_validator("conditions")
    @classmethod
    def strip_conditions(cls, v: List[str]) -> List[str]:
        return [c.strip() for c in v if c and c.strip()]


# Interaction Schemas
class InteractionFinding(CamelModel):
    """One interaction or contraindication finding."""
    model_config = ConfigDict(frozen=True)

    subject_a: str
    subject_b: Optional[str] = None
    kind: InteractionKind
    severity: SeverityLevel
    description: str
    mechanism: Optional[str] = None
    recommendation: str
    source: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class InteractionReport(CamelModel):
    """Ranked findings for a set of medications."""
    has_interactions: bool
    findings: List[InteractionFinding] = Field(default_factory=list)
    severity_summary: Dict[str, int] = Field(default_factory=dict)
    degraded: bool = False
    checked_medications: List[str] = Field(default_factory=list)


# Alternative Schemas
class Alternative(CamelModel):
    """A natural alternative as returned to callers."""
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    evidence_level: str = "Insufficient"
    effectiveness_label: str
    dosage_guidance: str = "Consult your healthcare provider for personalized dosing"
    interactions_with_subject: str = ""
    contraindications: str = ""
    side_effects: str = ""
    cost: str = ""
    complementary_only: bool = False


def _as_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(v) for v in value if v is not None)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class GeneratedAlternative(BaseModel):
    """One alternative as emitted by the completion model."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    evidence: str = Field(
        default="", validation_alias=AliasChoices("evidence", "scientificEvidence", "evidenceLevel")
    )
    effectiveness: str = Field(..., min_length=1)
    dosage: str = ""
    side_effects: str = Field(default="", validation_alias=AliasChoices("sideEffects", "side_effects"))
    interactions: str = ""
    contraindications: str = ""
    cost: str = ""

    @field_validator(
        "evidence", "dosage", "side_effects", "interactions", "contraindications", "cost",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> Any:
        return _as_text(v)


class GeneratorOutput(BaseModel):
    """Versioned schema for completion output."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    schema_version: str = Field(
        default=GENERATOR_SCHEMA_VERSION, validation_alias=AliasChoices("schemaVersion", "schema_version")
    )
    alternatives: List[GeneratedAlternative] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    fallback: bool = False

    @field_validator("schema_version", mode="before")
    @classmethod
    def supported_version(cls, v: Any) -> str:
        v = str(v)
        if v != GENERATOR_SCHEMA_VERSION:
            raise ValueError(f"Unsupported schema version {v!r}")
        return v

    @field_validator("warnings", "recommendations")
    @classmethod
    def drop_blank(cls, v: List[str]) -> List[str]:
        return [line.strip() for line in v if line and line.strip()]


# Analysis Schemas
class AnalyzeRequest(CamelModel):
    """Request to analyze a single medication."""
    medication_name: str
    patient_factors: Optional[PatientFactors] = None


class InteractionCheckRequest(CamelModel):
    """Request to check a set of medications against each other and a patient."""
    medications: List[str] = Field(..., min_length=1)
    patient_factors: Optional[PatientFactors] = None


class AnalysisResult(CamelModel):
    """Final result of one analysis. Built once, never mutated."""
    model_config = ConfigDict(frozen=True)

    medication_name: str
    medication_info: MedicationInfo
    alternatives: List[Alternative] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    interactions: InteractionReport
    disclaimer: str
    emergency_warning: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    requires_consultation: Literal[True] = True
    degraded: bool = False
    processing_time_ms: int = 0
    analyzed_at: datetime

    @model_validator(mode="after")
    def disclaimer_present(self) -> "AnalysisResult":
        if not self.disclaimer.strip() or not self.emergency_warning.strip():
            raise ValueError("disclaimer and emergency warning are mandatory")
        return self
