"""
Input validation for medication names.

Every string that ends up in a registry query or a completion prompt must
pass through validate_medication_name (or require_valid_name) first.
"""
import re
from typing import Optional, Tuple

from medsafe.constants import Limits
from medsafe.exceptions import ValidationError

ALLOWED_NAME_PATTERN = re.compile(r"^[A-Za-z0-9 \-.()]*$")
_DISALLOWED_CHARS = re.compile(r"[^A-Za-z0-9 \-.()]")
_WHITESPACE_RUN = re.compile(r"\s+")

# (rule, pattern) checked against the raw input, first match wins
INJECTION_SIGNATURES = [
    ("sql", re.compile(r"\bunion\b.*\bselect\b", re.IGNORECASE | re.DOTALL)),
    ("sql", re.compile(r"\bselect\b.*\bfrom\b", re.IGNORECASE | re.DOTALL)),
    ("sql", re.compile(r"\binsert\b.*\binto\b", re.IGNORECASE | re.DOTALL)),
    ("sql", re.compile(r"\bdelete\b.*\bfrom\b", re.IGNORECASE | re.DOTALL)),
    ("sql", re.compile(r"\bupdate\b.*\bset\b", re.IGNORECASE | re.DOTALL)),
    ("sql", re.compile(r"\b(?:drop|truncate|alter)\b\s+\b(?:table|database|schema)\b", re.IGNORECASE)),
    ("sql", re.compile(r"\b(?:exec|execute)\b\s*\(?\s*\w", re.IGNORECASE)),
    ("sql", re.compile(r"'\s*(?:or|and)\s+'?\w+'?\s*=", re.IGNORECASE)),
    ("sql", re.compile(r"--|/\*|\*/|;")),
    ("markup", re.compile(r"<\s*/?\s*[a-z!?]", re.IGNORECASE)),
    ("markup", re.compile(r"\bon\w+\s*=", re.IGNORECASE)),
    ("script_uri", re.compile(r"\b(?:javascript|vbscript|livescript)\s*:", re.IGNORECASE)),
    ("script_uri", re.compile(r"\bdata\s*:\s*[a-z]+/[a-z0-9.+-]+", re.IGNORECASE)),
    ("path_traversal", re.compile(r"\.\.[/\\]|[/\\]\.\.")),
    ("path_traversal", re.compile(r"%2e%2e|%252e|\.\.%2f|\.\.%5c|%c0%ae", re.IGNORECASE)),
]

RULE_MESSAGES = {
    "sql": "Invalid input detected: medication name contains database query syntax",
    "markup": "Invalid input detected: medication name contains markup or script content",
    "script_uri": "Invalid input detected: medication name contains a script URI",
    "path_traversal": "Invalid input detected: medication name contains a path traversal sequence",
}


def sanitize(name: str) -> str:
    """
    Reduce a name to the allowed character set.

    Removes characters outside [A-Za-z0-9 -.()], collapses whitespace,
    trims and truncates. sanitize(sanitize(x)) == sanitize(x).
    """
    cleaned = _DISALLOWED_CHARS.sub("", _WHITESPACE_RUN.sub(" ", name or ""))
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()
    return cleaned[:Limits.MAX_NAME_LENGTH].strip()


def find_injection(name: str) -> Optional[str]:
    """Return the first injection rule the raw input violates, if any."""
    for rule, pattern in INJECTION_SIGNATURES:
        if pattern.search(name):
            return rule
    return None


def validate_medication_name(name) -> Tuple[Optional[str], Optional[ValidationError]]:
    """
    Validate and sanitize a raw medication name.

    Returns:
        (sanitized, None) on success, (None, ValidationError) describing the
        first rule violated otherwise.
    """
    if not isinstance(name, str) or not name.strip():
        return None, ValidationError("Medication name is required", rule="required")

    raw = name.strip()
    if len(raw) > Limits.MAX_NAME_LENGTH:
        return None, ValidationError(
            f"Medication name must be {Limits.MAX_NAME_LENGTH} characters or fewer",
            rule="length",
        )

    rule = find_injection(raw)
    if rule:
        return None, ValidationError(RULE_MESSAGES[rule], rule=rule)

    sanitized = sanitize(raw)
    if not sanitized:
        return None, ValidationError(
            "Medication name must contain letters or numbers", rule="charset"
        )
    return sanitized, None


def require_valid_name(name) -> str:
    """Like validate_medication_name but raises ValidationError."""
    sanitized, error = validate_medication_name(name)
    if error:
        raise error
    return sanitized
