"""Input sanitization for claim intake data."""

import re
from typing import Any

# Maximum lengths for text fields (characters)
MAX_LENGTHS = {
    "claimant_name": 200,
    "claimant_id": 64,
    "email": 254,
    "phone": 32,
    "address": 500,
    "incident_date": 32,
    "incident_location": 300,
    "description": 5000,
}
MAX_DOCUMENT_REF = 500
MAX_DOCUMENTS = 50

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def _sanitize_text(text: Any, max_length: int) -> Any:
    """Strip control characters and truncate to max_length. Non-strings pass through."""
    if not isinstance(text, str):
        return text
    cleaned = _CONTROL_CHARS.sub("", text).strip()
    if len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def sanitize_claim_data(claim_data: dict[str, Any]) -> dict[str, Any]:
    """
    Clean claim intake data before validation.

    - Strips control characters and surrounding whitespace from text fields
    - Truncates text fields to safe lengths
    - Drops empty document references and caps the document list
    - Leaves numbers and unknown keys as-is (validated by Pydantic)

    Returns a new dict; does not mutate the input.
    """
    if not claim_data or not isinstance(claim_data, dict):
        return claim_data or {}

    out: dict[str, Any] = {}
    for key, value in claim_data.items():
        if key in MAX_LENGTHS:
            out[key] = _sanitize_text(value, MAX_LENGTHS[key])
        elif key == "supporting_documents" and isinstance(value, list):
            docs = [_sanitize_text(d, MAX_DOCUMENT_REF) for d in value]
            out[key] = [d for d in docs if d][:MAX_DOCUMENTS]
        else:
            out[key] = value
    return out
