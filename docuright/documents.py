"""Document generation with usage gating.

Signed-in callers generate through the token manager (401 renewal included).
Anonymous callers are checked against the usage meter first and their
generation is recorded only once the backend has produced the document.
This is the one path whose network errors must reach the user, so failures
raise ServerError with the backend's own message where it sent one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from docuright.errors import UsageLimitReached
from docuright.sessions.manager import TokenLifecycleManager
from docuright.transport import ApiTransport, ensure_success
from docuright.usage.meter import UsageMeter
from docuright.usage.models import PromptType

logger = logging.getLogger(__name__)

_FILENAME_PATTERN = re.compile(r'filename\*?=(?:UTF-8\'\')?"?([^";]+)"?', re.IGNORECASE)


@dataclass
class GeneratedDocument:
    """A generated document plus the registration prompt to surface next."""
    content: bytes
    filename: str
    media_type: str
    prompt_type: PromptType = PromptType.NONE


def default_filename(document_type: str) -> str:
    return f"{document_type.upper()}_Document.pdf"


def _filename_from(response: httpx.Response, document_type: str) -> str:
    disposition = response.headers.get("Content-Disposition", "")
    match = _FILENAME_PATTERN.search(disposition)
    if match:
        return match.group(1).strip()
    return default_filename(document_type)


class DocumentService:
    """Generates documents for signed-in and anonymous callers."""

    def __init__(self, transport: ApiTransport, sessions: TokenLifecycleManager, meter: UsageMeter):
        self._transport = transport
        self._sessions = sessions
        self._meter = meter
        self._reserved = 0  # Anonymous generations awaiting the backend

    async def generate(self, document_type: str, fields: Mapping[str, Any]) -> GeneratedDocument:
        """Generate a document. Raises UsageLimitReached, AuthError or NetworkError."""
        path = f"/{document_type}/generate"
        payload = dict(fields)

        if self._sessions.is_authenticated:
            response = await self._sessions.authorized_request("POST", path, json=payload)
            ensure_success(response, "Failed to generate the document")
            logger.info("Generated %s for user %s", document_type, self._sessions.user.id)
            return self._document(response, document_type, PromptType.NONE)

        # Slots held by concurrent calls count against the limit until they settle
        if self._meter.remaining() - self._reserved <= 0:
            logger.info("Anonymous generation refused at the gate (%s)", document_type)
            raise UsageLimitReached(
                "You have used all free documents. Create a free account to continue.",
                limit=self._meter.max_free_generations,
            )

        self._reserved += 1
        try:
            response = await self._transport.request("POST", path, json=payload)
            ensure_success(response, "Failed to generate the document")
            self._meter.record_generation(document_type, payload)
        finally:
            self._reserved -= 1
        return self._document(response, document_type, self._meter.current_prompt_type())

    @staticmethod
    def _document(response: httpx.Response, document_type: str, prompt: PromptType) -> GeneratedDocument:
        return GeneratedDocument(
            content=response.content,
            filename=_filename_from(response, document_type),
            media_type=response.headers.get("Content-Type", "application/pdf"),
            prompt_type=prompt,
        )
