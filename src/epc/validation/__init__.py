"""Export settings validation."""

from epc.validation.engine import validate

__all__ = ["validate"]
