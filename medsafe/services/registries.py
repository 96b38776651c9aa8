"""
External registry clients.

Sources:
1. openFDA drug labels (identity, pharmacologic class, label text)
2. openFDA adverse events (FAERS reports coded as "drug interaction")
3. RxNorm / RxNav (normalized identifiers, RxClass, interaction registry)
4. Curated offline formulary (no I/O)

Every client answers None for "not known here" and raises UpstreamError or
UpstreamTimeout for "could not ask". Outbound calls go through the shared
SourceThrottle.
"""
import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from medsafe.constants import CacheTTL, Limits, Sources
from medsafe.exceptions import UpstreamError, UpstreamTimeout
from medsafe.knowledge import extract_pregnancy_category, formulary_lookup
from medsafe.schemas import MedicationRecord
from medsafe.services.cache import TTLCache
from medsafe.services.rate_limiter import SourceThrottle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryMatch:
    """Identity data for one medication as reported by a registry."""
    name: str
    source: str
    generic_name: Optional[str] = None
    brand_names: Tuple[str, ...] = ()
    pharm_classes: Tuple[str, ...] = ()
    active_ingredients: Tuple[str, ...] = ()
    normalized_id: Optional[str] = None
    fda_approved: bool = False
    pregnancy_category: Optional[str] = None


@dataclass(frozen=True)
class RegistryInteraction:
    """A raw pair interaction; severity is still in the source's vocabulary."""
    severity: str
    description: str
    source: str
    mechanism: Optional[str] = None
    recommendation: Optional[str] = None
    confidence: float = 0.8


class RegistryClient:
    """Throttled JSON GET with timeout and error mapping."""

    source = "registry"

    def __init__(
        self,
        base_url: str,
        throttle: Optional[SourceThrottle] = None,
        timeout: float = 5.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.throttle = throttle or SourceThrottle()
        self.timeout = timeout

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return params

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict]:
        """
        GET base_url/path.

        Returns None on 404 (openFDA's "no matches"), the decoded body on 200.
        """
        await self.throttle.wait(self.source)
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.get(url, params=self._params(params or {})) as response:
                    if response.status == 404:
                        return None
                    if response.status != 200:
                        raise UpstreamError(self.source, f"HTTP {response.status}")
                    return await response.json(content_type=None)
        except asyncio.TimeoutError:
            raise UpstreamTimeout(self.source, self.timeout)
        except aiohttp.ClientError as e:
            raise UpstreamError(self.source, str(e) or e.__class__.__name__)
        except ValueError as e:
            raise UpstreamError(self.source, f"invalid JSON: {e}")


def _first(values: Optional[List[str]]) -> Optional[str]:
    return values[0] if values else None


def _dedupe(values) -> Tuple[str, ...]:
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


def _openfda_phrase(value: str) -> str:
    return value.replace('"', " ").strip()


class OpenFDALabelRegistry(RegistryClient):
    """openFDA /drug/label.json."""

    source = Sources.OPENFDA_LABEL

    LABEL_SECTIONS = ("drug_interactions", "contraindications", "warnings", "boxed_warning")

    def __init__(self, base_url: str, api_key: str = "", cache: Optional[TTLCache] = None, **kwargs):
        super().__init__(base_url, **kwargs)
        self.api_key = api_key
        self.cache: TTLCache[Dict] = cache if cache is not None else TTLCache(CacheTTL.LABEL_TEXT, name="label-text")

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.api_key:
            params = dict(params, api_key=self.api_key)
        return params

    async def _label(self, name: str) -> Optional[Dict]:
        key = name.lower()
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        phrase = _openfda_phrase(name)
        data = await self._get_json("label.json", {
            "search": f'openfda.generic_name:"{phrase}" openfda.brand_name:"{phrase}"',
            "limit": 1,
        })
        results = (data or {}).get("results") or []
        if not results:
            return None
        self.cache.set(key, results[0])
        return results[0]

    async def lookup(self, name: str) -> Optional[RegistryMatch]:
        label = await self._label(name)
        if label is None:
            return None
        return self._parse_label(label, name)

    def _parse_label(self, label: Dict, queried: str) -> Optional[RegistryMatch]:
        openfda = label.get("openfda") or {}
        brand_names = openfda.get("brand_name") or []
        generic_names = openfda.get("generic_name") or []
        if not (brand_names or generic_names):
            return None

        pregnancy_text = " ".join((label.get("pregnancy") or []) + (label.get("teratogenic_effects") or []))
        return RegistryMatch(
            name=queried,
            source=self.source,
            generic_name=_first(generic_names).lower() if generic_names else None,
            brand_names=_dedupe(b.title() for b in brand_names),
            pharm_classes=_dedupe(
                (openfda.get("pharm_class_epc") or []) + (openfda.get("pharm_class_moa") or [])
            ),
            active_ingredients=_dedupe(s.lower() for s in openfda.get("substance_name") or []),
            normalized_id=_first(openfda.get("rxcui")),
            fda_approved=bool(openfda.get("application_number")),
            pregnancy_category=extract_pregnancy_category(pregnancy_text),
        )

    async def label_text(self, name: str) -> Optional[str]:
        """Interaction-relevant label sections joined into one lower-cased string."""
        label = await self._label(name)
        if label is None:
            return None
        parts: List[str] = []
        for section in self.LABEL_SECTIONS:
            parts.extend(label.get(section) or [])
        return " ".join(parts).lower() or None

    async def interaction_mention(
        self, record_a: MedicationRecord, record_b: MedicationRecord
    ) -> Optional[RegistryInteraction]:
        """Heuristic: look for B's names in A's label text, then A's in B's."""
        for subject, partner in ((record_a, record_b), (record_b, record_a)):
            text = await self.label_text(subject.generic_name or subject.name)
            if not text:
                continue
            mention = extract_label_interaction(text, partner.match_terms())
            if mention is not None:
                severity, snippet = mention
                return RegistryInteraction(
                    severity=severity,
                    description=f"The {subject.name} label mentions {partner.name}: \"{snippet}\"",
                    source=self.source,
                    recommendation="Follow FDA labeling guidance and review with your healthcare provider.",
                    confidence=0.5,
                )
        return None


# Ordered strongest first; the first phrase found in a sentence sets its tier.
LABEL_SEVERITY_PHRASES: List[Tuple[str, Tuple[str, ...]]] = [
    ("contraindicated", ("contraindicated", "do not use", "must not be")),
    ("serious", ("fatal", "life-threatening", "serious", "avoid", "boxed warning")),
    ("caution", ("monitor", "caution", "increase", "decrease", "adjust")),
]

_SENTENCE_SPLIT = re.compile(r"(?<=[.;])\s+")


def extract_label_interaction(text: str, partner_terms: List[str]) -> Optional[Tuple[str, str]]:
    """
    Find the first sentence in label text naming any partner term.

    Returns (label severity vocabulary, snippet) or None.
    """
    terms = [t for t in partner_terms if len(t) >= 4]
    if not terms:
        return None
    for sentence in _SENTENCE_SPLIT.split(text):
        if not any(re.search(rf"\b{re.escape(t)}\b", sentence) for t in terms):
            continue
        severity = "mentioned"
        for level, phrases in LABEL_SEVERITY_PHRASES:
            if any(p in sentence for p in phrases):
                severity = level
                break
        return severity, sentence.strip()[:Limits.LABEL_SNIPPET_LENGTH]
    return None


class OpenFDAEventsRegistry(RegistryClient):
    """openFDA /drug/event.json (FAERS), secondary interaction registry."""

    source = Sources.OPENFDA_EVENTS

    def __init__(self, base_url: str, api_key: str = "", min_reports: int = 3, **kwargs):
        super().__init__(base_url, **kwargs)
        self.api_key = api_key
        self.min_reports = min_reports

    def _params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.api_key:
            params = dict(params, api_key=self.api_key)
        return params

    async def interaction_reports(
        self, record_a: MedicationRecord, record_b: MedicationRecord
    ) -> Optional[RegistryInteraction]:
        a = _openfda_phrase(record_a.generic_name or record_a.name)
        b = _openfda_phrase(record_b.generic_name or record_b.name)
        data = await self._get_json("event.json", {
            "search": (
                f'patient.drug.openfda.generic_name:"{a}" AND patient.drug.openfda.generic_name:"{b}" '
                f'AND patient.reaction.reactionmeddrapt:"drug interaction"'
            ),
            "limit": 10,
        })
        if not data:
            return None

        total = ((data.get("meta") or {}).get("results") or {}).get("total", 0)
        results = data.get("results") or []
        if total < self.min_reports or not results:
            return None

        serious = sum(1 for event in results if str(event.get("serious", "")) == "1")
        severity = "serious" if serious else "non-serious"
        return RegistryInteraction(
            severity=severity,
            description=(
                f"{total} adverse event reports list {record_a.name} and {record_b.name} "
                f"together with a drug interaction reaction ({serious} of {len(results)} sampled were serious)."
            ),
            source=self.source,
            recommendation="Reported in post-marketing surveillance; discuss this combination with your pharmacist.",
            confidence=0.6,
        )


class RxNormRegistry(RegistryClient):
    """RxNav REST: rxcui lookup, RxClass and the interaction registry."""

    source = Sources.RXNORM

    CLASS_TYPES = ("EPC", "MOA", "ATC1-4", "VA")

    def __init__(self, base_url: str, cache: Optional[TTLCache] = None, **kwargs):
        super().__init__(base_url, **kwargs)
        self.cache: TTLCache[str] = cache if cache is not None else TTLCache(CacheTTL.MEDICATION, name="rxcui")

    async def resolve_id(self, name: str) -> Optional[str]:
        key = name.lower()
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        data = await self._get_json("rxcui.json", {"name": name, "search": 2})
        ids = ((data or {}).get("idGroup") or {}).get("rxnormId") or []
        if not ids:
            return None
        self.cache.set(key, ids[0])
        return ids[0]

    async def classes_for(self, rxcui: str) -> Tuple[str, ...]:
        data = await self._get_json("rxclass/class/byRxcui.json", {"rxcui": rxcui})
        infos = ((data or {}).get("rxclassDrugInfoList") or {}).get("rxclassDrugInfo") or []
        names = []
        for info in infos:
            item = info.get("rxclassMinConceptItem") or {}
            if item.get("classType") in self.CLASS_TYPES:
                names.append(item.get("className", ""))
        return _dedupe(names)

    async def lookup(self, name: str) -> Optional[RegistryMatch]:
        rxcui = await self.resolve_id(name)
        if rxcui is None:
            return None
        classes = await self.classes_for(rxcui)
        return RegistryMatch(
            name=name,
            source=self.source,
            generic_name=name.lower(),
            pharm_classes=classes,
            active_ingredients=(name.lower(),),
            normalized_id=rxcui,
            # RxNorm only carries prescribable concepts; approval is assumed
            fda_approved=True,
        )

    async def interaction_between(
        self, record_a: MedicationRecord, record_b: MedicationRecord
    ) -> Optional[RegistryInteraction]:
        id_a = record_a.normalized_id or await self.resolve_id(record_a.generic_name or record_a.name)
        id_b = record_b.normalized_id or await self.resolve_id(record_b.generic_name or record_b.name)
        if not (id_a and id_b):
            return None

        data = await self._get_json("interaction/list.json", {"rxcuis": f"{id_a} {id_b}"})
        pairs = []
        for group in (data or {}).get("fullInteractionTypeGroup") or []:
            for interaction_type in group.get("fullInteractionType") or []:
                pairs.extend(interaction_type.get("interactionPair") or [])
        if not pairs:
            return None

        # Prefer a pair carrying a real severity over "N/A"
        pair = next((p for p in pairs if str(p.get("severity", "")).lower() not in ("", "n/a")), pairs[0])
        return RegistryInteraction(
            severity=str(pair.get("severity", "")),
            description=pair.get("description") or "Interaction listed in the RxNav registry.",
            source=self.source,
            recommendation="Consult your healthcare provider before combining these medications.",
            confidence=0.9,
        )


class CuratedFormulary:
    """Offline registry over the curated formulary table."""

    source = Sources.CURATED

    async def lookup(self, name: str) -> Optional[RegistryMatch]:
        entry = formulary_lookup(name)
        if entry is None:
            return None
        return RegistryMatch(
            name=name,
            source=self.source,
            generic_name=entry.generic_name,
            brand_names=entry.brand_names,
            pharm_classes=entry.pharm_classes,
            active_ingredients=entry.active_ingredients,
            fda_approved=entry.approved,
            pregnancy_category=entry.pregnancy_category,
        )
