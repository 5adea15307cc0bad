"""Error taxonomy for formula recognition.

Every failure a caller can see carries a human-readable message and a
machine classification (``ErrorKind``). Input and configuration faults are
raised before any network attempt; upstream faults travel inside
``InvocationResult`` and are only turned into a classification by the
recognizer.
"""
from __future__ import annotations

from enum import Enum

# Bound on upstream bodies quoted back to callers
RAW_EXCERPT_LIMIT = 500


class ErrorKind(str, Enum):
    CLIENT_INPUT = "client_input"
    CREDENTIAL_MISSING = "credential_missing"
    UPSTREAM_TRANSIENT = "upstream_transient"
    UPSTREAM_PERMANENT = "upstream_permanent"
    CONTENT_UNRESOLVED = "content_unresolved"
    PROCESSING_TIMEOUT = "processing_timeout"
    INTERNAL = "internal"


class RecognitionError(RuntimeError):
    """Base class for failures reported to the caller."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.raw = truncate(raw)


class ClientInputError(RecognitionError):
    """Missing, empty, oversized or unsupported upload."""

    kind = ErrorKind.CLIENT_INPUT


class CredentialMissingError(RecognitionError):
    """No API key configured in any of the known sources."""

    kind = ErrorKind.CREDENTIAL_MISSING


class ProcessingTimeoutError(RecognitionError):
    """The outer wall-clock deadline expired before recognition finished."""

    kind = ErrorKind.PROCESSING_TIMEOUT


class UpstreamError(RecognitionError):
    """The inference service failed after the retry policy ran its course."""

    def __init__(self, message: str, *, kind: ErrorKind, raw: str = "") -> None:
        super().__init__(message, raw=raw)
        self.kind = kind


def truncate(text: str, limit: int = RAW_EXCERPT_LIMIT) -> str:
    return text[:limit] if text else ""
