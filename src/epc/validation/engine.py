"""Export settings validation.

Rules are grouped into one function per format plus one function for
rules shared by every format. Each rule function appends to a shared
message list; the order of messages is the order in which rules fire.

Validation is pure and synchronous so it can run on every settings change.
"""

from __future__ import annotations

from collections.abc import Callable

from epc.models.settings import ExportFormat, ExportSettings, QualityTier
from epc.models.validation import Severity, ValidationMessage, ValidationResult

__all__ = ["validate", "RULES_BY_FORMAT"]

RuleFunction = Callable[[ExportSettings, list[ValidationMessage]], None]

# GIF limits
GIF_MAX_FPS = 50
GIF_HIGH_FPS = 30
GIF_LOW_FPS = 10
GIF_MAX_WIDTH = 1920
GIF_MAX_HEIGHT = 1080
GIF_MAX_PIXELS = 2_073_600  # 1920x1080
GIF_MIN_COLORS = 16
GIF_MAX_COLORS = 256

# Video limits
VIDEO_MAX_FPS = 60
MOV_MAX_FPS = 120
VIDEO_MIN_FPS = 1
VIDEO_MIN_DIMENSION = 128
VIDEO_MAX_DIMENSION = 4096
MOV_8K_WIDTH = 7680
MOV_8K_HEIGHT = 4320

# Shared limits
LOW_QUALITY_DIMENSION = 240


def _error(messages: list[ValidationMessage], field: str, code: str, message: str) -> None:
    messages.append(ValidationMessage(Severity.ERROR, field, code, message))


def _warning(messages: list[ValidationMessage], field: str, code: str, message: str) -> None:
    messages.append(ValidationMessage(Severity.WARNING, field, code, message))


def validate_gif_settings(settings: ExportSettings, messages: list[ValidationMessage]) -> None:
    """GIF rules: frame rate, output size and palette size."""
    if settings.fps:
        if settings.fps > GIF_MAX_FPS:
            _error(
                messages,
                "fps",
                "GIF_FPS_TOO_HIGH",
                f"GIF frame rate must be {GIF_MAX_FPS} or lower for compatibility",
            )
        elif settings.fps > GIF_HIGH_FPS:
            _warning(
                messages,
                "fps",
                "GIF_FPS_HIGH",
                f"Frame rates above {GIF_HIGH_FPS} can produce very large GIF files",
            )
        elif settings.fps < GIF_LOW_FPS:
            _warning(
                messages,
                "fps",
                "GIF_FPS_LOW",
                f"Frame rates below {GIF_LOW_FPS} can make the animation look choppy",
            )

    resolution = settings.resolution
    if resolution.width > GIF_MAX_WIDTH or resolution.height > GIF_MAX_HEIGHT:
        _warning(
            messages,
            "resolution",
            "GIF_RESOLUTION_HIGH",
            "High resolutions can produce very large GIF files",
        )
    if resolution.total_pixels > GIF_MAX_PIXELS:
        _warning(
            messages,
            "resolution",
            "GIF_RESOLUTION_PERFORMANCE",
            "Very high resolutions can cause performance problems",
        )

    gif = settings.gif_options
    if gif is not None and gif.colors:
        if gif.colors < GIF_MIN_COLORS:
            _warning(
                messages,
                "colors",
                "GIF_COLORS_LOW",
                f"Fewer than {GIF_MIN_COLORS} colors can result in very low quality",
            )
        elif gif.colors > GIF_MAX_COLORS:
            _error(
                messages,
                "colors",
                "GIF_COLORS_INVALID",
                f"GIF cannot have more than {GIF_MAX_COLORS} colors",
            )


def _validate_video_fps(
    settings: ExportSettings, messages: list[ValidationMessage], max_fps: int
) -> None:
    prefix = settings.format.value.upper()
    if not settings.fps:
        return
    if settings.fps > max_fps:
        _error(
            messages,
            "fps",
            f"{prefix}_FPS_TOO_HIGH",
            f"{prefix} frame rate must be {max_fps} or lower",
        )
    elif settings.fps < VIDEO_MIN_FPS:
        _error(
            messages,
            "fps",
            f"{prefix}_FPS_TOO_LOW",
            f"Frame rate must be at least {VIDEO_MIN_FPS}",
        )


def _validate_video_min_resolution(
    settings: ExportSettings, messages: list[ValidationMessage]
) -> None:
    resolution = settings.resolution
    if resolution.width < VIDEO_MIN_DIMENSION or resolution.height < VIDEO_MIN_DIMENSION:
        _error(
            messages,
            "resolution",
            f"{settings.format.value.upper()}_RESOLUTION_TOO_LOW",
            f"Resolution must be at least {VIDEO_MIN_DIMENSION}x{VIDEO_MIN_DIMENSION}",
        )


def validate_standard_video_settings(
    settings: ExportSettings, messages: list[ValidationMessage]
) -> None:
    """MP4 and WebM rules."""
    _validate_video_fps(settings, messages, VIDEO_MAX_FPS)
    _validate_video_min_resolution(settings, messages)

    resolution = settings.resolution
    if resolution.width > VIDEO_MAX_DIMENSION or resolution.height > VIDEO_MAX_DIMENSION:
        _error(
            messages,
            "resolution",
            f"{settings.format.value.upper()}_RESOLUTION_TOO_HIGH",
            f"Resolution cannot exceed {VIDEO_MAX_DIMENSION}x{VIDEO_MAX_DIMENSION}",
        )


def validate_mov_settings(settings: ExportSettings, messages: list[ValidationMessage]) -> None:
    """MOV rules: higher frame-rate ceiling, 8K is advisory only."""
    _validate_video_fps(settings, messages, MOV_MAX_FPS)
    _validate_video_min_resolution(settings, messages)

    resolution = settings.resolution
    if resolution.width > MOV_8K_WIDTH or resolution.height > MOV_8K_HEIGHT:
        _warning(
            messages,
            "resolution",
            "MOV_RESOLUTION_8K",
            "Resolutions above 8K can cause performance problems",
        )


def validate_general_settings(settings: ExportSettings, messages: list[ValidationMessage]) -> None:
    """Rules that apply to every format."""
    if settings.quality and settings.quality not in QualityTier.values():
        _error(
            messages,
            "quality",
            "INVALID_QUALITY",
            f"Invalid quality: {settings.quality}. Must be one of: {', '.join(QualityTier.values())}",
        )

    resolution = settings.resolution
    if resolution.width <= 0 or resolution.height <= 0:
        _error(
            messages,
            "resolution",
            "INVALID_RESOLUTION",
            "Resolution must be greater than 0",
        )

    if resolution.width < LOW_QUALITY_DIMENSION or resolution.height < LOW_QUALITY_DIMENSION:
        _warning(
            messages,
            "resolution",
            "RESOLUTION_LOW_QUALITY",
            "Very low resolutions can result in poor quality",
        )


RULES_BY_FORMAT: dict[ExportFormat, RuleFunction] = {
    ExportFormat.GIF: validate_gif_settings,
    ExportFormat.MP4: validate_standard_video_settings,
    ExportFormat.WEBM: validate_standard_video_settings,
    ExportFormat.MOV: validate_mov_settings,
}


def validate(settings: ExportSettings) -> ValidationResult:
    """Validate export settings.

    Args:
        settings: Settings to check

    Returns:
        ValidationResult with every message in rule order
    """
    messages: list[ValidationMessage] = []
    RULES_BY_FORMAT[settings.format](settings, messages)
    validate_general_settings(settings, messages)
    return ValidationResult(messages=tuple(messages))
