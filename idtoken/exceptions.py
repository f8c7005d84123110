"""Verifier exception hierarchy."""

from __future__ import annotations


class VerifierError(Exception):
    """Base class for all token verification exceptions."""


class ConfigurationError(VerifierError):
    """Raised when verifier configuration is missing or contradictory."""


class KeyFetchError(VerifierError):
    """Raised when a remote key set cannot be retrieved."""

    def __init__(self, detail: str, status_code: int | None = None) -> None:
        """Initialize with optional HTTP status code context."""
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class SignatureError(VerifierError):
    """Raised when a token is malformed or its signature does not validate."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidTokenError(VerifierError):
    """Raised when a token must not be trusted."""

    def __init__(self, reason: str) -> None:
        """Initialize with the human-readable rejection reason."""
        super().__init__(reason)
        self.reason = reason
