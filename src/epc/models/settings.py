"""Export settings models.

Each export format carries exactly one format-specific option block:
GIF exports carry GifOptions, video exports (mp4, webm, mov) carry
VideoOptions. The pairing is checked when the settings object is built;
numeric bounds are left to the validation engine so that out-of-range
values surface as diagnostics instead of exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "DitherMode",
    "ExportFormat",
    "ExportSettings",
    "GifOptions",
    "QualityTier",
    "Resolution",
    "VideoOptions",
    "PALETTE_PRESETS",
    "RESOLUTION_PRESETS",
]


class ExportFormat(Enum):
    """Output formats accepted by the export service."""

    GIF = "gif"
    MP4 = "mp4"
    WEBM = "webm"
    MOV = "mov"

    @property
    def is_video(self) -> bool:
        return self is not ExportFormat.GIF


class QualityTier(Enum):
    """Recognized quality tiers."""

    WEB = "web"
    STANDARD = "standard"
    HIGH = "high"
    PREMIUM = "premium"
    ULTRA = "ultra"

    @classmethod
    def values(cls) -> tuple[str, ...]:
        return tuple(tier.value for tier in cls)


class DitherMode(Enum):
    """Dithering algorithms for palette reduction."""

    NONE = "none"
    BAYER = "bayer"
    FLOYD_STEINBERG = "floyd_steinberg"
    SIERRA2 = "sierra2"
    SIERRA2_4A = "sierra2_4a"


# Palette sizes offered to users
PALETTE_PRESETS: tuple[int, ...] = (16, 32, 64, 128, 256)

# Named resolution presets with fixed dimensions
RESOLUTION_PRESETS: dict[str, tuple[int, int]] = {
    "480p": (854, 480),
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4k": (3840, 2160),
}


@dataclass(frozen=True)
class Resolution:
    """Target output resolution.

    Attributes:
        width: Width in pixels
        height: Height in pixels
        preset: Preset name (original, 480p, 720p, 1080p, 4k, custom)
    """

    width: int
    height: int
    preset: str = "custom"

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    @classmethod
    def from_preset(cls, name: str) -> Resolution:
        """Build a resolution from a named preset.

        Args:
            name: Preset name (480p, 720p, 1080p, 4k)

        Returns:
            Resolution with the preset dimensions

        Raises:
            ValueError: If the preset is unknown
        """
        if name not in RESOLUTION_PRESETS:
            raise ValueError(
                f"Unknown resolution preset: {name}. "
                f"Valid presets: {', '.join(RESOLUTION_PRESETS)}"
            )
        width, height = RESOLUTION_PRESETS[name]
        return cls(width=width, height=height, preset=name)

    def to_dict(self) -> dict[str, Any]:
        return {"width": self.width, "height": self.height, "preset": self.preset}


@dataclass(frozen=True)
class GifOptions:
    """GIF-specific options.

    Attributes:
        colors: Palette size (presets are 16-256)
        dither: Dithering algorithm
        loop: Whether the animation loops forever
    """

    colors: int = 256
    dither: DitherMode = DitherMode.FLOYD_STEINBERG
    loop: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "colors": self.colors,
            "dither": self.dither.value,
            "loop": "infinite" if self.loop else "1",
        }


@dataclass(frozen=True)
class VideoOptions:
    """Options shared by the video formats (mp4, webm, mov).

    Attributes:
        bitrate: Target bitrate in kbps (None lets the service decide)
        fast_start: Move the index to the front of the file for streaming
    """

    bitrate: int | None = None
    fast_start: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {"bitrate": self.bitrate, "fastStart": self.fast_start}


@dataclass(frozen=True)
class ExportSettings:
    """A complete export configuration.

    Attributes:
        format: Output format
        fps: Target frame rate (0 means "let the service decide")
        quality: Quality tier name, kept as a string so unknown tiers
            can be reported by validation
        resolution: Target resolution
        options: GifOptions for GIF, VideoOptions for every video format
    """

    format: ExportFormat
    fps: int = 30
    quality: str = QualityTier.STANDARD.value
    resolution: Resolution = field(default_factory=lambda: Resolution.from_preset("1080p"))
    options: GifOptions | VideoOptions = field(default_factory=VideoOptions)

    def __post_init__(self):
        """Check that the option block matches the format."""
        if not isinstance(self.format, ExportFormat):
            raise ValueError(f"Invalid format: {self.format!r}")
        if self.format is ExportFormat.GIF and not isinstance(self.options, GifOptions):
            raise ValueError("GIF exports require GifOptions")
        if self.format.is_video and not isinstance(self.options, VideoOptions):
            raise ValueError(f"{self.format.value} exports require VideoOptions")

    @classmethod
    def gif(
        cls,
        fps: int = 15,
        quality: str = QualityTier.STANDARD.value,
        resolution: Resolution | None = None,
        colors: int = 256,
        dither: DitherMode = DitherMode.FLOYD_STEINBERG,
        loop: bool = True,
    ) -> ExportSettings:
        """Build GIF settings."""
        return cls(
            format=ExportFormat.GIF,
            fps=fps,
            quality=quality,
            resolution=resolution or Resolution(width=640, height=480),
            options=GifOptions(colors=colors, dither=dither, loop=loop),
        )

    @classmethod
    def video(
        cls,
        format: ExportFormat | str = ExportFormat.MP4,
        fps: int = 30,
        quality: str = QualityTier.STANDARD.value,
        resolution: Resolution | None = None,
        bitrate: int | None = None,
        fast_start: bool = True,
    ) -> ExportSettings:
        """Build settings for one of the video formats."""
        return cls(
            format=ExportFormat(format),
            fps=fps,
            quality=quality,
            resolution=resolution or Resolution.from_preset("1080p"),
            options=VideoOptions(bitrate=bitrate, fast_start=fast_start),
        )

    @property
    def gif_options(self) -> GifOptions | None:
        return self.options if isinstance(self.options, GifOptions) else None

    @property
    def file_extension(self) -> str:
        return self.format.value

    def to_payload(self) -> dict[str, Any]:
        """Render settings in the shape the export service expects."""
        payload: dict[str, Any] = {
            "format": self.format.value,
            "fps": self.fps,
            "quality": self.quality,
            "resolution": self.resolution.preset,
            "videoConfig": {"resolution": self.resolution.to_dict()},
        }
        if isinstance(self.options, GifOptions):
            payload["gif"] = self.options.to_dict()
        else:
            payload["videoConfig"].update(self.options.to_dict())
        return payload
