"""Error kinds raised by the ingestion and query pipeline.

Each error carries the HTTP status code the API layer reports it with, so the
routes never have to translate core failures by hand.
"""

from __future__ import annotations


class StudyAssistantError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code = 500
    default_message = "An unexpected error occurred"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MalformedQuery(StudyAssistantError):
    """A request is missing its question or file reference."""

    status_code = 400
    default_message = "Malformed query"


class RecordNotFound(StudyAssistantError):
    """No document record exists for the requested key."""

    status_code = 404
    default_message = "File metadata not found"

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"File metadata not found: {key}")


class ExtractionEmpty(StudyAssistantError):
    """The document exists but has no extractable content."""

    status_code = 422
    default_message = "No extracted text available"


class LLMUnavailable(StudyAssistantError):
    status_code = 503
    default_message = "AI provider not configured. Set GROQ_API_KEY in .env."
