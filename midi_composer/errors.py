from __future__ import annotations

from typing import Optional


class ComposerError(Exception):
    """Base class for composition failures.

    ``unit`` names the section (or "Full Composition") that was being
    processed when the error surfaced, if any.
    """

    def __init__(self, message: str, unit: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.unit = unit

    def __str__(self) -> str:
        if self.unit:
            return f"{self.message} (unit: {self.unit})"
        return self.message


class ParseError(ComposerError):
    """The source MIDI bytes could not be read."""


class ConfigurationError(ComposerError):
    """A required service credential or setting is missing."""


class ExternalServiceError(ComposerError):
    """The generative service failed (network, HTTP status, quota, timeout)."""


class MalformedResponse(ComposerError):
    """The generative service answered with unusable JSON."""


class EmptySection(ComposerError):
    """A section's time window holds no notes."""
