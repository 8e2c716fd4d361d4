"""Error taxonomy for storyshot.

Run-scoped failures (``ConfigurationError``) abort before any unit starts.
Unit-scoped failures (``CaptureError``, ``StorageError``) are caught at the
unit boundary and recorded as outcomes.
"""

from __future__ import annotations

from typing import Any


class StoryshotError(Exception):
    """Base exception carrying the context needed to act on a failure."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


class ConfigurationError(StoryshotError):
    """Invalid environment, empty story set or unreachable target. Fatal to the run."""


class CaptureError(StoryshotError):
    """Navigation, selector or screenshot failure. Fatal to one unit only."""


class StorageError(StoryshotError):
    """Object store failure other than "not found". Fatal to one unit only."""
