"""
Prompt templates for natural-alternative generation
"""
from typing import List, Optional

from medsafe.constants import Limits
from medsafe.schemas import GENERATOR_SCHEMA_VERSION, MedicationRecord

SAFETY_PREAMBLE = """You are a medical information assistant providing EDUCATIONAL information about natural alternatives. You must:

CRITICAL SAFETY RULES:
1. ALWAYS emphasize consulting healthcare providers
2. NEVER recommend stopping or replacing prescription medication
3. ALWAYS warn about potential drug interactions
4. NEVER diagnose conditions
5. ALWAYS include emergency warnings for serious conditions
6. NEVER guarantee effectiveness or claim a cure
7. ALWAYS mention individual variation in responses
8. NEVER provide dosing for prescription medications
9. ALWAYS prioritize user safety over completeness
10. NEVER contradict established medical guidelines

If unsure about safety, default to recommending medical consultation."""

CRITICAL_AMPLIFIER = """
## CRITICAL MEDICATION ALERT
This medication treats a serious condition. Your response MUST:
- Present alternatives ONLY as complementary support, never as replacements
- Warn explicitly about the serious risks of stopping this medication
- Strongly recommend medical supervision for any change
- Include an explicit discontinuation warning in "warnings"
"""

RESPONSE_SCHEMA = f"""{{
    "schemaVersion": "{GENERATOR_SCHEMA_VERSION}",
    "alternatives": [
        {{
            "name": "Alternative name",
            "description": "Brief description",
            "evidence": "Strong | Moderate | Limited | Insufficient",
            "effectiveness": "Moderate | Low (as complement, not replacement)",
            "dosage": "General guidance - consult healthcare provider for personalized dosing",
            "sideEffects": "Potential side effects",
            "interactions": "Potential interactions with the medication",
            "contraindications": "Who should avoid this",
            "cost": "Estimated monthly cost range"
        }}
    ],
    "warnings": ["Safety, interaction and contraindication warnings"],
    "recommendations": ["Consultation, monitoring and lifestyle recommendations"],
    "confidence": 0.0-1.0
}}"""


def build_alternatives_prompt(record: MedicationRecord, other_medications: Optional[List[str]] = None) -> str:
    """
    Build the generation prompt for one resolved medication.

    Only sanitized names and registry-derived fields are interpolated.
    """
    critical_line = "YES - Extra caution required" if record.is_critical else "No"
    context = f"""## Medication Information:
- **Name**: {record.name}
- **Generic name**: {record.generic_name or 'Unknown'}
- **Category**: {record.category}
- **Critical medication**: {critical_line}"""
    if record.pharm_classes:
        context += f"\n- **Pharmacologic class**: {', '.join(record.pharm_classes[:3])}"
    if other_medications:
        context += f"\n- **Also taking**: {', '.join(other_medications[:5])}"

    amplifier = CRITICAL_AMPLIFIER if record.is_critical else ""

    return f"""{SAFETY_PREAMBLE}

{context}
{amplifier}
## Your Task:
Provide educational information about natural alternatives for {record.name}.

## Required Response Format (JSON):
{RESPONSE_SCHEMA}

Provide 2-{Limits.MAX_ALTERNATIVES} alternatives maximum. Quality and safety over quantity.
Provide ONLY the JSON response, no additional text."""
