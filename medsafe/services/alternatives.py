"""
Alternative Generator.

Asks the completion provider for natural alternatives, validates the reply
against GeneratorOutput and enforces the safety rules on what comes back.
Any failure (timeout, upstream error, safety block, malformed output)
produces the safe empty fallback instead of an exception.
"""
import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from medsafe.constants import Limits
from medsafe.exceptions import ParseError, UpstreamError
from medsafe.prompts import build_alternatives_prompt
from medsafe.schemas import Alternative, GeneratedAlternative, GeneratorOutput, MedicationRecord
from medsafe.services.completion import CompletionClient

logger = logging.getLogger(__name__)

FALLBACK_WARNING = "AI analysis temporarily unavailable"
SAFE_EFFECTIVENESS = "Moderate (as complement)"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")
_OVERCLAIM = re.compile(
    r"\b(?:high|highly|guarantee\w*|cures?|curative|miracle|proven to (?:cure|work))\b|100\s*%",
    re.IGNORECASE,
)
_DISCONTINUATION = re.compile(
    r"\b(?:stop(?:ping)?|discontinu\w*|quit(?:ting)?|cease|replac\w*|substitut\w*|instead of"
    r"|switch(?:ing)? (?:from|off)|come off|wean(?:ing)? off)\b",
    re.IGNORECASE,
)
_NEGATION = re.compile(r"\b(?:do not|don't|never|not|without|avoid|before|consult|talk to|ask)\b", re.IGNORECASE)
# Nominal forms only: "Stopping X can cause ..." names the act, "Stop X" instructs it
_DISCONTINUATION_SUBJECT = re.compile(
    r"^(?:(?:abruptly|suddenly|quickly)\s+)?(?:stopping|discontinu(?:ing|ation)|quitting|ceasing|replacing"
    r"|substituting|switching|weaning|coming off)\b",
    re.IGNORECASE,
)
_HARM = re.compile(
    r"\b(?:risk\w*|danger\w*|harm\w*|caus\w*|lead\w* to|result\w* in|withdrawal|rebound|unsafe"
    r"|complication\w*|clot\w*|seizure\w*|relapse\w*)\b",
    re.IGNORECASE,
)
_BENEFIT = re.compile(r"\b(?:reduc\w*|lower\w*|decreas\w*|prevent\w*|support\w*|improv\w*|help\w*)\b", re.IGNORECASE)
_CLAUSE_SPLIT = re.compile(r"[.;!?]")


def safe_fallback() -> GeneratorOutput:
    """The conservative answer used whenever generation fails."""
    return GeneratorOutput(
        alternatives=[],
        warnings=[
            FALLBACK_WARNING,
            "Please consult your healthcare provider for personalized advice",
        ],
        recommendations=[
            "Speak with your doctor or pharmacist",
            "Do not make medication changes without medical supervision",
        ],
        confidence=0.0,
        fallback=True,
    )


def extract_json(text: str) -> Dict[str, Any]:
    """Extract a JSON object from fenced or bare model output."""
    text = (text or "").strip()
    if "```json" in text:
        start = text.find("```json") + 7
        end = text.find("```", start)
        text = text[start:end if end != -1 else None].strip()
    elif "```" in text:
        start = text.find("```") + 3
        end = text.find("```", start)
        text = text[start:end if end != -1 else None].strip()

    match = _JSON_OBJECT.search(text)
    if match is None:
        raise ParseError("No JSON object in generator output")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON in generator output: {e.msg}")
    if not isinstance(data, dict):
        raise ParseError("Generator output is not a JSON object")
    return data


def parse_generator_output(text: str) -> GeneratorOutput:
    data = extract_json(text)
    try:
        return GeneratorOutput.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(f"Generator output failed schema validation ({e.error_count()} errors)")


def rewrite_effectiveness(label: str) -> str:
    """Replace overclaiming effectiveness labels with the conservative one."""
    if _OVERCLAIM.search(label or ""):
        return SAFE_EFFECTIVENESS
    return label


def recommends_discontinuation(text: str) -> bool:
    """True if any clause tells the reader to stop or replace their medication."""
    for clause in _CLAUSE_SPLIT.split(text or ""):
        match = _DISCONTINUATION.search(clause)
        if match is None or _NEGATION.search(clause[:match.start()]):
            continue
        if not _describes_discontinuation_risk(clause.strip()):
            return True
    return False


def _describes_discontinuation_risk(clause: str) -> bool:
    """True for "Stopping X suddenly can cause ..." style warnings about the act itself."""
    subject = _DISCONTINUATION_SUBJECT.match(clause)
    if subject is None:
        return False
    rest = clause[subject.end():]
    return _HARM.search(rest) is not None and _BENEFIT.search(rest) is None


def to_alternative(generated: GeneratedAlternative) -> Alternative:
    return Alternative(
        name=generated.name,
        description=generated.description,
        evidence_level=generated.evidence or "Insufficient",
        effectiveness_label=generated.effectiveness,
        dosage_guidance=generated.dosage or "Consult your healthcare provider for personalized dosing",
        interactions_with_subject=generated.interactions,
        contraindications=generated.contraindications,
        side_effects=generated.side_effects,
        cost=generated.cost,
    )


class AlternativeGenerator:
    """Generates safety-constrained natural alternatives for a medication."""

    def __init__(
        self,
        client: CompletionClient,
        timeout: float = 25.0,
        max_alternatives: int = Limits.MAX_ALTERNATIVES,
    ):
        self.client = client
        self.timeout = timeout
        self.max_alternatives = max_alternatives

    async def generate(
        self, record: MedicationRecord, other_medications: Optional[List[str]] = None
    ) -> GeneratorOutput:
        """
        Generate alternatives for a resolved medication.

        Args:
            record: resolved subject medication
            other_medications: sanitized names of co-medications

        Returns:
            Post-validated GeneratorOutput, or the safe fallback
        """
        prompt = build_alternatives_prompt(record, other_medications)
        try:
            text = await asyncio.wait_for(self.client.complete(prompt), timeout=self.timeout)
            output = parse_generator_output(text)
        except asyncio.TimeoutError:
            logger.warning(f"Completion timed out after {self.timeout:g}s; using safe fallback")
            return safe_fallback()
        except UpstreamError as e:
            logger.warning(f"Completion failed ({e.detail}); using safe fallback")
            return safe_fallback()
        except ParseError as e:
            logger.warning(f"Completion output rejected ({e.detail}); using safe fallback")
            return safe_fallback()
        except Exception as e:
            logger.error(f"Unexpected completion failure: {e}")
            return safe_fallback()

        return self.post_validate(output)

    def post_validate(self, output: GeneratorOutput) -> GeneratorOutput:
        """Apply the safety rules to a schema-valid output."""
        alternatives: List[GeneratedAlternative] = []
        for alternative in output.alternatives:
            text = " ".join([alternative.description, alternative.effectiveness, alternative.dosage])
            if recommends_discontinuation(text):
                logger.warning("Dropped an alternative that recommended stopping the medication")
                continue
            effectiveness = rewrite_effectiveness(alternative.effectiveness)
            if effectiveness != alternative.effectiveness:
                alternative = alternative.model_copy(update={"effectiveness": effectiveness})
            alternatives.append(alternative)

        return output.model_copy(update={
            "alternatives": alternatives[:self.max_alternatives],
            "warnings": [w for w in output.warnings if not recommends_discontinuation(w)],
            "recommendations": [r for r in output.recommendations if not recommends_discontinuation(r)],
        })
