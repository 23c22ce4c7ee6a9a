"""Configuration manager for the export pipeline client."""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from epc.models.settings import ExportFormat, QualityTier

logger = logging.getLogger(__name__)

VALID_FORMATS = tuple(f.value for f in ExportFormat)
VALID_QUALITIES = QualityTier.values()


@dataclass
class ApiConfig:
    """Export service connection settings.

    Attributes:
        base_url: Base URL of the export service
        timeout_seconds: Per-request timeout
    """

    base_url: str = "http://localhost:3001"
    timeout_seconds: float = 30.0

    def __post_init__(self):
        """Validate configuration values."""
        if not self.base_url:
            raise ValueError("Invalid base_url: must not be empty")
        if self.timeout_seconds <= 0:
            raise ValueError(f"Invalid timeout_seconds: {self.timeout_seconds}. Must be positive")


@dataclass
class TrackingConfig:
    """Job tracking settings.

    Attributes:
        push_fallback_seconds: How long to wait for a terminal push event
            before switching to polling
        poll_interval_seconds: Delay between status polls
        max_poll_attempts: Poll ceiling before the job is reported as timed out
    """

    push_fallback_seconds: float = 3.0
    poll_interval_seconds: float = 2.0
    max_poll_attempts: int = 60

    def __post_init__(self):
        """Validate configuration values."""
        if self.push_fallback_seconds < 0:
            raise ValueError(
                f"Invalid push_fallback_seconds: {self.push_fallback_seconds}. Must not be negative"
            )
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                f"Invalid poll_interval_seconds: {self.poll_interval_seconds}. Must be positive"
            )
        if not 1 <= self.max_poll_attempts <= 600:
            raise ValueError(
                f"Invalid max_poll_attempts: {self.max_poll_attempts}. Must be between 1 and 600"
            )


@dataclass
class ExportConfig:
    """Export defaults.

    Attributes:
        output_dir: Folder finished exports are saved to
        default_format: Format used when none is given
        default_quality: Quality tier used when none is given
    """

    output_dir: str = field(
        default_factory=lambda: str(Path.home() / "Movies" / "ExportPipeline")
    )
    default_format: str = "mp4"
    default_quality: str = "standard"

    def __post_init__(self):
        """Validate configuration values."""
        if self.default_format not in VALID_FORMATS:
            raise ValueError(
                f"Invalid default_format: {self.default_format}. "
                f"Must be one of: {', '.join(VALID_FORMATS)}"
            )
        if self.default_quality not in VALID_QUALITIES:
            raise ValueError(
                f"Invalid default_quality: {self.default_quality}. "
                f"Must be one of: {', '.join(VALID_QUALITIES)}"
            )

    @property
    def output_dir_path(self) -> Path:
        """Get output folder as Path object."""
        return Path(self.output_dir).expanduser()


@dataclass
class Config:
    """Main configuration container."""

    api: ApiConfig = field(default_factory=ApiConfig)
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    schema_version: str = "1.0"


# Fields coerced from CLI strings on `set`
_FIELD_TYPES: dict[str, type] = {
    "api.timeout_seconds": float,
    "tracking.push_fallback_seconds": float,
    "tracking.poll_interval_seconds": float,
    "tracking.max_poll_attempts": int,
}


class ConfigManager:
    """Manages configuration loading, saving, and access.

    Configuration is stored in ~/.config/epc/config.json
    """

    DEFAULT_CONFIG_PATH = Path.home() / ".config" / "epc" / "config.json"

    def __init__(self, config_path: Path | None = None):
        """Initialize ConfigManager.

        Args:
            config_path: Custom path for config file (default: ~/.config/epc/config.json)
        """
        self.config_path = config_path or self.DEFAULT_CONFIG_PATH
        self.config = self._load_config()

    def _load_config(self) -> Config:
        """Load configuration from file or create default."""
        if self.config_path.exists():
            try:
                with open(self.config_path, encoding="utf-8") as f:
                    data = json.load(f)
                return self._dict_to_config(data)
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Could not load config from {self.config_path}: {e}")
                return Config()
        return Config()

    def _dict_to_config(self, data: dict) -> Config:
        """Convert dictionary to Config object."""
        api_data = data.get("api", {})
        tracking_data = data.get("tracking", {})
        export_data = data.get("export", {})
        defaults = Config()

        return Config(
            api=ApiConfig(
                base_url=api_data.get("base_url", defaults.api.base_url),
                timeout_seconds=api_data.get("timeout_seconds", defaults.api.timeout_seconds),
            ),
            tracking=TrackingConfig(
                push_fallback_seconds=tracking_data.get(
                    "push_fallback_seconds", defaults.tracking.push_fallback_seconds
                ),
                poll_interval_seconds=tracking_data.get(
                    "poll_interval_seconds", defaults.tracking.poll_interval_seconds
                ),
                max_poll_attempts=tracking_data.get(
                    "max_poll_attempts", defaults.tracking.max_poll_attempts
                ),
            ),
            export=ExportConfig(
                output_dir=export_data.get("output_dir", defaults.export.output_dir),
                default_format=export_data.get("default_format", defaults.export.default_format),
                default_quality=export_data.get(
                    "default_quality", defaults.export.default_quality
                ),
            ),
            schema_version=data.get("schema_version", "1.0"),
        )

    def _config_to_dict(self, config: Config) -> dict:
        """Convert Config object to dictionary."""
        return {
            "schema_version": config.schema_version,
            "api": {
                "base_url": config.api.base_url,
                "timeout_seconds": config.api.timeout_seconds,
            },
            "tracking": {
                "push_fallback_seconds": config.tracking.push_fallback_seconds,
                "poll_interval_seconds": config.tracking.poll_interval_seconds,
                "max_poll_attempts": config.tracking.max_poll_attempts,
            },
            "export": {
                "output_dir": config.export.output_dir,
                "default_format": config.export.default_format,
                "default_quality": config.export.default_quality,
            },
        }

    def save(self) -> None:
        """Save current configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._config_to_dict(self.config)
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def get(self, key: str) -> Any:
        """Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., "api.base_url", "tracking.max_poll_attempts")

        Returns:
            Configuration value

        Raises:
            KeyError: If key is not found
        """
        parts = key.split(".")

        if len(parts) == 1:
            if hasattr(self.config, key):
                return getattr(self.config, key)
            raise KeyError(f"Unknown configuration key: {key}")

        if len(parts) == 2:
            section, name = parts
            if hasattr(self.config, section):
                section_obj = getattr(self.config, section)
                if hasattr(section_obj, name):
                    return getattr(section_obj, name)
            raise KeyError(f"Unknown configuration key: {key}")

        raise KeyError(f"Invalid configuration key format: {key}")

    def set(self, key: str, value: Any) -> None:
        """Set configuration value by dot-notation key.

        The section is rebuilt with the new value so the section's own
        validation runs.

        Args:
            key: Configuration key (e.g., "api.base_url")
            value: Value to set

        Raises:
            KeyError: If key is not found
            ValueError: If value is invalid
        """
        parts = key.split(".")

        if len(parts) != 2:
            raise KeyError(f"Invalid configuration key format: {key}")

        section, name = parts

        if section == "schema_version" or not hasattr(self.config, section):
            raise KeyError(f"Unknown configuration section: {section}")

        section_obj = getattr(self.config, section)

        if not hasattr(section_obj, name):
            raise KeyError(f"Unknown configuration key: {key}")

        if key in _FIELD_TYPES:
            try:
                value = _FIELD_TYPES[key](value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for {key}: {value}") from e

        fields = dict(vars(section_obj))
        fields[name] = value
        setattr(self.config, section, type(section_obj)(**fields))

    def get_all(self) -> dict:
        """Get all configuration as dictionary."""
        return self._config_to_dict(self.config)

    def reset_to_defaults(self) -> None:
        """Reset configuration to default values."""
        self.config = Config()

    def ensure_output_dir(self) -> Path:
        """Ensure output folder exists and return its path."""
        output_path = self.config.export.output_dir_path
        output_path.mkdir(parents=True, exist_ok=True)
        return output_path
