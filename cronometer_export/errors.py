"""Exception types raised by the export pipeline."""

from __future__ import annotations

__all__ = [
    "AuthorizationError",
    "ConfigError",
    "CronometerError",
    "CronometerLoginError",
    "ExportError",
    "SheetsAppendError",
    "SheetsAuthError",
]


class ExportError(RuntimeError):
    """Base class for every failure that terminates a run."""


class ConfigError(ExportError):
    """Raised for missing or invalid configuration, before any network call."""


class CronometerError(ExportError):
    """Raised when a Cronometer request fails or returns something unusable."""


class CronometerLoginError(CronometerError):
    """Raised when Cronometer rejects the account credentials."""


class AuthorizationError(ExportError):
    """Raised when a spreadsheet token cannot be loaded, refreshed or obtained."""


class SheetsAppendError(ExportError):
    """Raised when an append call fails for a reason unrelated to credentials."""


class SheetsAuthError(SheetsAppendError):
    """Raised when an append call fails because the stored token is unusable."""
