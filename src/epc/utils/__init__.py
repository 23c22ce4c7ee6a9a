"""Utility modules for the export pipeline client."""

from epc.utils.once import OneShot
from epc.utils.progress import (
    MonotonicProgress,
    ProgressStream,
    clamp_progress,
    scale_progress,
)

__all__ = [
    "OneShot",
    "MonotonicProgress",
    "ProgressStream",
    "clamp_progress",
    "scale_progress",
]
