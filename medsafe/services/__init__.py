"""Services module for the medication safety engine."""

from medsafe.services.analysis_service import (
    MedicationAnalysisService,
    create_analysis_service,
)
from medsafe.services.alternatives import AlternativeGenerator
from medsafe.services.audit import AuditLogger, MemoryAuditSink, NullAuditSink
from medsafe.services.interaction_service import InteractionEngine
from medsafe.services.resolver import MedicationResolver
from medsafe.services.warning_composer import WarningComposer

__all__ = [
    "MedicationAnalysisService",
    "create_analysis_service",
    "AlternativeGenerator",
    "AuditLogger",
    "MemoryAuditSink",
    "NullAuditSink",
    "InteractionEngine",
    "MedicationResolver",
    "WarningComposer",
]
