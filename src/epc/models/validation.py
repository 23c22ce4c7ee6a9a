"""Validation result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "Severity",
    "ValidationMessage",
    "ValidationResult",
    "has_field_error",
    "has_field_warning",
    "messages_for_field",
]


class Severity(Enum):
    """Severity of a validation message.

    Errors block the export; warnings and info are advisory.
    """

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ValidationMessage:
    """A single diagnostic.

    Attributes:
        severity: Error, warning or info
        field: Settings field the message concerns (fps, resolution, colors, quality)
        code: Stable identifier (e.g. GIF_FPS_TOO_HIGH)
        message: Human-readable text
    """

    severity: Severity
    field: str
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.severity.value,
            "field": self.field,
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one settings object."""

    messages: tuple[ValidationMessage, ...] = field(default_factory=tuple)

    @property
    def has_errors(self) -> bool:
        return any(m.severity is Severity.ERROR for m in self.messages)

    @property
    def has_warnings(self) -> bool:
        return any(m.severity is Severity.WARNING for m in self.messages)

    @property
    def is_valid(self) -> bool:
        return not self.has_errors

    @property
    def can_export(self) -> bool:
        # Same rule as is_valid today; kept separate for callers that render both.
        return not self.has_errors

    @property
    def errors(self) -> list[ValidationMessage]:
        return [m for m in self.messages if m.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationMessage]:
        return [m for m in self.messages if m.severity is Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "canExport": self.can_export,
            "hasErrors": self.has_errors,
            "hasWarnings": self.has_warnings,
            "messages": [m.to_dict() for m in self.messages],
        }


def messages_for_field(result: ValidationResult, field_name: str) -> list[ValidationMessage]:
    """Return every message concerning one field."""
    return [m for m in result.messages if m.field == field_name]


def has_field_error(result: ValidationResult, field_name: str) -> bool:
    """Check whether a field has at least one blocking error."""
    return any(m.severity is Severity.ERROR for m in messages_for_field(result, field_name))


def has_field_warning(result: ValidationResult, field_name: str) -> bool:
    """Check whether a field has at least one warning."""
    return any(m.severity is Severity.WARNING for m in messages_for_field(result, field_name))
