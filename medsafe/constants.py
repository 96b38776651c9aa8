"""
Application-wide constants.
"""
from enum import Enum


class SeverityLevel(str, Enum):
    """Canonical severity scale for findings, highest first."""
    CONTRAINDICATED = "contraindicated"
    MAJOR = "major"
    MODERATE = "moderate"
    MINOR = "minor"
    UNKNOWN = "unknown"


class InteractionKind(str, Enum):
    """What a finding relates the medication to."""
    DRUG_DRUG = "drug-drug"
    DRUG_FOOD = "drug-food"
    DRUG_ALLERGY = "drug-allergy"
    DRUG_CONDITION = "drug-condition"
    DRUG_AGE = "drug-age"
    DRUG_PREGNANCY = "drug-pregnancy"


# Ranking weights for SeverityLevel
SEVERITY_WEIGHTS = {
    SeverityLevel.CONTRAINDICATED: 4,
    SeverityLevel.MAJOR: 3,
    SeverityLevel.MODERATE: 2,
    SeverityLevel.MINOR: 1,
    SeverityLevel.UNKNOWN: 0,
}


# Registry / source identifiers (also used as throttle keys)
class Sources:
    OPENFDA_LABEL = "openfda-label"
    OPENFDA_EVENTS = "openfda-events"
    RXNORM = "rxnorm"
    CURATED = "curated"
    UNRESOLVED = "unresolved"
    PATIENT_PROFILE = "patient-profile"
    COMPLETION = "completion"


# Default Limits
class Limits:
    """Default limits for inputs and operations."""
    MAX_NAME_LENGTH = 100
    MAX_MEDICATIONS = 10
    MAX_ALTERNATIVES = 4
    LABEL_SNIPPET_LENGTH = 300


# Cache TTL (Time To Live) in seconds
class CacheTTL:
    """Cache expiration times."""
    MEDICATION = 3600  # 1 hour
    INTERACTION_PAIR = 86400  # 24 hours
    LABEL_TEXT = 3600  # 1 hour
    IDEMPOTENCY = 3600  # 1 hour


# Error Codes
class ErrorCodes:
    """Standard error codes."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    PARSE_ERROR = "PARSE_ERROR"
    RATE_LIMIT_ERROR = "RATE_LIMIT_ERROR"
