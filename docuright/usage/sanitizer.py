"""Form-data sanitization before anything reaches client-durable storage.

Security contract:
- Only allow-listed fields are kept (parties, type, date, purpose, AI flag)
- Addresses, representative names and every other field are dropped
- E-mail and phone patterns inside kept free text are redacted
- String values are length-capped to bound the stored payload
"""

from __future__ import annotations

import re
from typing import Any, Mapping

ALLOWED_FIELDS = (
    "documentType",
    "firstPartyName",
    "secondPartyName",
    "effectiveDate",
    "purposeOfNDA",
    "useAIEnhancements",
)

DEFAULT_DOCUMENT_TYPE = "nda"
MAX_VALUE_LENGTH = 200

_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
_PHONE_PATTERN = re.compile(r"\b(?:\+\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b")


def redact_text(text: str) -> str:
    """Replace e-mail and phone patterns with placeholders."""
    result = _EMAIL_PATTERN.sub("[EMAIL]", text)
    result = _PHONE_PATTERN.sub("[PHONE]", result)
    return result


def _clean_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)[:MAX_VALUE_LENGTH]
    if isinstance(value, (bool, int, float)) or value is None:
        return value
    # Nested structures are never stored
    return None


def sanitize_form_data(form_data: Mapping[str, Any], document_type: str | None = None) -> dict[str, Any]:
    """Reduce submitted form data to the allow-listed subset."""
    sanitized = {name: _clean_value(form_data.get(name)) for name in ALLOWED_FIELDS}
    # The caller's document type wins over whatever the form claims
    sanitized["documentType"] = (
        document_type or sanitized.get("documentType") or DEFAULT_DOCUMENT_TYPE
    )
    return sanitized
