"""
Redact PII-shaped substrings (emails, phone numbers, street addresses) from JSON values
before they are sent to an LLM provider.
"""
from __future__ import annotations

import re
from typing import Any

EMAIL_PATTERN = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"(?<![\w-])(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")
# Australian mobile (04xx / +61 4xx) and landline (0[2378] / +61 [2378])
PHONE_AU_MOBILE_PATTERN = re.compile(r"(?:\+61[\s().-]*4[\s().-]*|\b04)\d{2}[\s.-]*\d{3}[\s.-]*\d{3}\b")
PHONE_AU_LANDLINE_PATTERN = re.compile(r"(?:\+61[\s().-]*[2378]|\b0[2378])[\s().-]*\d{4}[\s.-]*\d{4}\b")
ADDRESS_AU_PATTERN = re.compile(
    r"\b(?:\d{1,5}/)?\d{1,5}\s+[A-Za-z0-9.'-]+(?:\s+[A-Za-z0-9.'-]+){0,4}\s+"
    r"(?:st|street|rd|road|ave|avenue|dr|drive|blvd|boulevard|ln|lane|ct|court|cres|crescent|pde|parade|tce|terrace|pl|place)\.?\b"
    r"[^\n]{0,60}\b(?:NSW|VIC|QLD|SA|WA|TAS|NT|ACT)\b(?:\s+\d{4})?\b",
    re.IGNORECASE,
)
# Requires a trailing comma or postal code to keep false positives low
ADDRESS_PATTERN = re.compile(
    r"\b\d{1,5}\s+[^\n,]{1,40}\s+(?:st|street|ave|avenue|rd|road|blvd|boulevard|ln|lane|dr|drive|ct|court)\b(?:\s*,|\s+\d{4,5}\b)",
    re.IGNORECASE,
)

_REPLACEMENTS: tuple[tuple[re.Pattern, str], ...] = (
    (EMAIL_PATTERN, "[REDACTED_EMAIL]"),
    (PHONE_PATTERN, "[REDACTED_PHONE]"),
    (PHONE_AU_MOBILE_PATTERN, "[REDACTED_PHONE_AU]"),
    (PHONE_AU_LANDLINE_PATTERN, "[REDACTED_PHONE_AU]"),
    (ADDRESS_AU_PATTERN, "[REDACTED_ADDRESS_AU]"),
    (ADDRESS_PATTERN, "[REDACTED_ADDRESS]"),
)


def redact_text(text: str) -> str:
    out = text
    for pattern, replacement in _REPLACEMENTS:
        out = pattern.sub(replacement, out)
    return out


def redact_json(value: Any) -> Any:
    """Return a copy of a JSON-compatible value with every string redacted. Keys are kept."""
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, list):
        return [redact_json(v) for v in value]
    if isinstance(value, dict):
        return {k: redact_json(v) for k, v in value.items()}
    return value
