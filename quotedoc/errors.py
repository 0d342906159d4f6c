from __future__ import annotations

from typing import Optional


class GenerationError(Exception):
    """A document could not be generated. Nothing is written when raised."""

    def __init__(self, message: str, section: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.section = section

    def in_section(self, section: str) -> "GenerationError":
        return type(self)(self.message, section=section)

    def __str__(self) -> str:
        if self.section:
            return f"[{self.section}] {self.message}"
        return self.message


class ConfigurationError(GenerationError):
    """Bad geometry, column set or document profile."""


class MeasurementError(GenerationError):
    """The text measurer or the canvas failed."""


class DataError(GenerationError):
    """The document model is missing something that has no safe fallback."""
