"""Shared error classes for lead verification, gatherers, and sinks."""

from __future__ import annotations


class LeadVerificationError(RuntimeError):
    """Base exception raised while verifying or persisting leads."""

    def __init__(self, message: str, code: str = "LEAD_VERIFICATION_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GathererUnavailableError(LeadVerificationError):
    """Raised when a search or page provider cannot be reached."""

    def __init__(self, message: str, code: str = "GATHERER_UNAVAILABLE") -> None:
        super().__init__(message, code=code)


class ExtractionParseError(LeadVerificationError):
    """Raised when a structured extraction response cannot be decoded."""

    def __init__(self, message: str, code: str = "EXTRACTION_PARSE_FAILURE") -> None:
        super().__init__(message, code=code)


class SinkUnavailableError(LeadVerificationError):
    """Raised when the lead sink fails to list or append records."""

    def __init__(self, message: str, code: str = "SINK_UNAVAILABLE") -> None:
        super().__init__(message, code=code)


class FatalConfigurationError(LeadVerificationError):
    """Raised at construction time when a collaborator is missing credentials."""

    def __init__(self, message: str, code: str = "FATAL_CONFIGURATION") -> None:
        super().__init__(message, code=code)
