"""Exception taxonomy for content generation.

Every failure a section can hit derives from ``GenerationError`` so that a
generator can convert it into that section's error state in one place.
"""

from __future__ import annotations

from typing import Optional

#: Upper bound on how much raw provider text an error may carry.
EXCERPT_LIMIT = 500


class GenerationError(Exception):
    """Base class for all section generation failures."""


class ProviderError(GenerationError):
    """A provider call failed (network failure, non-2xx status or error payload)."""

    timed_out = False

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"{status_code} {message}"
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """A provider call exceeded the configured timeout."""

    timed_out = True

    def __init__(self, provider: str, timeout: float) -> None:
        self.provider = provider
        self.timeout = timeout
        super().__init__(f"{provider} request timed out after {timeout:g}s")


class ResponseParseError(GenerationError):
    """Sanitised provider text is not valid JSON or lacks the expected shape.

    Only a bounded excerpt of the raw text is kept so that log lines and
    diagnostic payloads stay small.
    """

    def __init__(
        self,
        section_label: str,
        raw_text: str,
        cause: Optional[BaseException] = None,
        reason: str = "JSONの解析に失敗しました",
    ) -> None:
        self.section_label = section_label
        self.excerpt = (raw_text or "")[:EXCERPT_LIMIT]
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"[{section_label}] {reason}{detail}")


class ResponseValidationError(GenerationError):
    """Parsed JSON is well-formed but a record is missing required fields."""

    def __init__(self, section_label: str, detail: str) -> None:
        self.section_label = section_label
        super().__init__(f"[{section_label}] 不正なレコード: {detail}")
