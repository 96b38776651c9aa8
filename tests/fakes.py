"""Fakes and builders shared by the test suite."""
import asyncio
import json
from typing import List, Optional, Union

from medsafe.constants import Sources
from medsafe.schemas import MedicationRecord
from medsafe.services.alternatives import AlternativeGenerator
from medsafe.services.analysis_service import MedicationAnalysisService
from medsafe.services.audit import MemoryAuditSink
from medsafe.services.completion import CompletionClient
from medsafe.services.fallback import Provider
from medsafe.services.interaction_service import InteractionEngine, curated_pair
from medsafe.services.registries import CuratedFormulary, RegistryMatch
from medsafe.services.resolver import MedicationResolver, build_record


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_record(
    name: str,
    pharm_classes=(),
    generic_name: Optional[str] = None,
    source: str = Sources.CURATED,
    **kwargs,
) -> MedicationRecord:
    """Record built the same way the resolver builds one."""
    match = RegistryMatch(
        name=name,
        source=source,
        generic_name=generic_name or name.lower(),
        pharm_classes=tuple(pharm_classes),
        **kwargs,
    )
    return build_record(match)


class FakeCompletionClient(CompletionClient):
    """Returns canned responses in order; exceptions are raised."""

    def __init__(self, responses: List[Union[str, Exception]], delay: float = 0.0):
        super().__init__(temperature=0.2)
        self.responses = list(responses)
        self.delay = delay
        self.prompts: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses[min(len(self.prompts), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


def generator_json(alternatives=None, warnings=None, recommendations=None, confidence=0.7, **extra) -> str:
    payload = {
        "schemaVersion": "1",
        "alternatives": alternatives if alternatives is not None else [
            {
                "name": "Omega-3 fatty acids",
                "description": "Marine oils that support heart health.",
                "scientificEvidence": "Moderate",
                "effectiveness": "Moderate",
                "dosage": "Consult your healthcare provider",
                "sideEffects": "Fishy aftertaste",
                "interactions": "May increase bleeding risk",
                "contraindications": "Fish allergy",
                "cost": "$10-20",
            }
        ],
        "warnings": warnings if warnings is not None else ["Monitor for unusual bruising"],
        "recommendations": recommendations if recommendations is not None else ["Review with your pharmacist"],
        "confidence": confidence,
    }
    payload.update(extra)
    return json.dumps(payload)


def build_service(responses=None, resolver_providers=None, request_timeout=5.0, clock=None, **kwargs):
    """Analysis service over the curated formulary and pair table, with a fake completion client."""
    client = FakeCompletionClient(responses or [generator_json()])
    service = MedicationAnalysisService(
        resolver=MedicationResolver(resolver_providers or [Provider(Sources.CURATED, CuratedFormulary().lookup)]),
        engine=InteractionEngine([Provider(Sources.CURATED, curated_pair)]),
        generator=AlternativeGenerator(client, timeout=1.0),
        audit=MemoryAuditSink(),
        request_timeout=request_timeout,
        **({"clock": clock} if clock else {}),
        **kwargs,
    )
    return service, client
