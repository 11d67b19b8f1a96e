"""Custom exceptions for core logic."""

from __future__ import annotations

from pathlib import Path


class RuleSetError(ValueError):
    """Raised when a rule-set file cannot be read or fails validation."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path
