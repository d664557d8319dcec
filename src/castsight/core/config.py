"""
Configuration Management for CastSight

Provides configuration loading from multiple sources:
- Default values
- Configuration files (YAML, TOML, JSON)
- Environment variables
- Command line arguments

Configuration precedence (highest to lowest):
1. Command line arguments
2. Environment variables (CASTSIGHT_*)
3. Configuration file
4. Default values
"""

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from castsight.core.constants import (
    CORRELATION_WINDOW_MS,
    FALLBACK_WINDOW_MS,
    INTERRUPT_TRACKING_VERSION,
    KICK_COLLAPSE_WINDOW_SECONDS,
    UNRESOLVED_TIMEOUT_MS,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Configuration Dataclasses
# ============================================================================


@dataclass
class ResolverConfig:
    """Configuration for grouping events into intent attempts."""

    # Events sharing a correlation id join an attempt within this window
    correlation_window_ms: float = CORRELATION_WINDOW_MS

    # Events without a correlation id join by ability within this window
    fallback_window_ms: float = FALLBACK_WINDOW_MS

    # Display horizon for attempts that never resolved
    unresolved_timeout_ms: float = UNRESOLVED_TIMEOUT_MS


@dataclass
class CollapseConfig:
    """Configuration for collapsing duplicate attempts."""

    window_seconds: float = KICK_COLLAPSE_WINDOW_SECONDS

    # When false, only fuzzy correlation id matches are merged
    aggressive: bool = True


@dataclass
class TelemetryConfig:
    """Configuration for the kick telemetry snapshot."""

    # Matches recorded below this schema version are flagged as legacy
    current_tracked_version: int = INTERRUPT_TRACKING_VERSION

    # Compute the detailed (debug) breakdown
    include_diagnostics: bool = False


@dataclass
class MetricsConfig:
    """Configuration for spell metric aggregation."""

    default_metric: str = "damage"


@dataclass
class ExportConfig:
    """Configuration for data export."""

    default_format: str = "json"
    json_indent: int = 2
    csv_delimiter: str = ","


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: str | None = None


@dataclass
class CastSightConfig:
    """Main configuration container."""

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    collapse: CollapseConfig = field(default_factory=CollapseConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Version of the config format
    config_version: str = "1.0"


SECTION_NAMES = ("resolver", "collapse", "telemetry", "metrics", "export", "logging")


# ============================================================================
# Configuration Loading
# ============================================================================


def get_default_config_paths() -> list[Path]:
    """Get the default paths to search for configuration files."""
    paths = []

    # Current directory
    paths.append(Path.cwd() / "castsight.yaml")
    paths.append(Path.cwd() / "castsight.toml")
    paths.append(Path.cwd() / "castsight.json")
    paths.append(Path.cwd() / ".castsight.yaml")

    # User home directory
    home = Path.home()
    paths.append(home / ".config" / "castsight" / "config.yaml")
    paths.append(home / ".config" / "castsight" / "config.toml")
    paths.append(home / ".castsight.yaml")

    # XDG config directory
    xdg_config = os.environ.get("XDG_CONFIG_HOME", str(home / ".config"))
    paths.append(Path(xdg_config) / "castsight" / "config.yaml")

    return paths


def load_yaml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a YAML file."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def load_toml_config(path: Path) -> dict[str, Any]:
    """Load configuration from a TOML file."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def load_json_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON file."""
    with open(path) as f:
        return json.load(f)


def load_config_file(path: Path) -> dict[str, Any]:
    """Load configuration from a file, detecting format from extension."""
    if not path.exists():
        return {}

    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml_config(path)
    elif suffix == ".toml":
        return load_toml_config(path)
    elif suffix == ".json":
        return load_json_config(path)
    else:
        logger.warning(f"Unknown config file format: {suffix}")
        return {}


def load_env_config() -> dict[str, Any]:
    """Load configuration from environment variables."""
    config: dict[str, Any] = {}

    env_mappings = {
        "CASTSIGHT_LOG_LEVEL": ("logging", "level"),
        "CASTSIGHT_LOG_FILE": ("logging", "file"),
        "CASTSIGHT_CORRELATION_WINDOW_MS": ("resolver", "correlation_window_ms"),
        "CASTSIGHT_FALLBACK_WINDOW_MS": ("resolver", "fallback_window_ms"),
        "CASTSIGHT_UNRESOLVED_TIMEOUT_MS": ("resolver", "unresolved_timeout_ms"),
        "CASTSIGHT_COLLAPSE_WINDOW_SECONDS": ("collapse", "window_seconds"),
        "CASTSIGHT_COLLAPSE_AGGRESSIVE": ("collapse", "aggressive"),
        "CASTSIGHT_TRACKED_VERSION": ("telemetry", "current_tracked_version"),
        "CASTSIGHT_DIAGNOSTICS": ("telemetry", "include_diagnostics"),
        "CASTSIGHT_DEFAULT_METRIC": ("metrics", "default_metric"),
        "CASTSIGHT_EXPORT_FORMAT": ("export", "default_format"),
    }

    for env_var, (section, key) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            if section not in config:
                config[section] = {}

            # Type conversion
            if value.lower() in ("true", "false"):
                value = value.lower() == "true"
            elif value.isdigit():
                value = int(value)
            else:
                try:
                    value = float(value)
                except ValueError:
                    pass

            config[section][key] = value

    return config


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two configuration dictionaries."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def dict_to_config(data: dict[str, Any]) -> CastSightConfig:
    """Convert a dictionary to CastSightConfig, ignoring unknown keys."""
    config = CastSightConfig()

    for section_name in SECTION_NAMES:
        section_data = data.get(section_name)
        if not isinstance(section_data, dict):
            continue
        section = getattr(config, section_name)
        for key, value in section_data.items():
            if hasattr(section, key):
                setattr(section, key, value)
            else:
                logger.debug(f"Ignoring unknown config key: {section_name}.{key}")

    return config


def load_config(config_file: Path | None = None, include_env: bool = True) -> CastSightConfig:
    """
    Load configuration from all sources.

    Args:
        config_file: Explicit path to a config file (optional)
        include_env: Whether to include environment variables

    Returns:
        Merged CastSightConfig
    """
    config_data: dict[str, Any] = {}

    # Try to find and load a config file
    if config_file:
        config_data = load_config_file(config_file)
        logger.info(f"Loaded config from: {config_file}")
    else:
        for path in get_default_config_paths():
            if path.exists():
                config_data = load_config_file(path)
                logger.info(f"Loaded config from: {path}")
                break

    # Merge environment variables
    if include_env:
        env_config = load_env_config()
        config_data = merge_configs(config_data, env_config)

    return dict_to_config(config_data)


# ============================================================================
# Configuration Saving
# ============================================================================


def save_config(config: CastSightConfig, path: Path) -> None:
    """
    Save configuration to a file.

    Args:
        config: Configuration to save
        path: Path to save to (format detected from extension)
    """
    data = config_to_dict(config)
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    elif suffix == ".json":
        with open(path, "w") as f:
            json.dump(data, f, indent=2)

    else:
        raise ValueError(f"Unknown config format: {suffix}")

    logger.info(f"Saved config to: {path}")


def config_to_dict(config: CastSightConfig) -> dict[str, Any]:
    """Convert CastSightConfig to a dictionary."""
    return asdict(config)


# ============================================================================
# Global Configuration
# ============================================================================

_global_config: CastSightConfig | None = None


def get_config() -> CastSightConfig:
    """Get the global configuration, loading it if necessary."""
    global _global_config

    if _global_config is None:
        _global_config = load_config()

    return _global_config


def set_config(config: CastSightConfig) -> None:
    """Set the global configuration."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset the global configuration to defaults."""
    global _global_config
    _global_config = None


# ============================================================================
# Configuration Templates
# ============================================================================

DEFAULT_CONFIG_YAML = """# CastSight Configuration

# Attempt grouping windows
resolver:
  correlation_window_ms: 800.0
  fallback_window_ms: 250.0
  unresolved_timeout_ms: 1500.0

# Duplicate attempt collapsing
collapse:
  window_seconds: 0.35
  aggressive: true

# Kick telemetry snapshot
telemetry:
  current_tracked_version: 3
  include_diagnostics: false

# Spell metric aggregation
metrics:
  default_metric: damage  # damage, healing or interrupts

# Export settings
export:
  default_format: json
  json_indent: 2
  csv_delimiter: ","

# Logging settings
logging:
  level: INFO
  # file: /path/to/castsight.log
"""


def generate_default_config(path: Path) -> None:
    """Generate a default configuration file."""
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        path.write_text(DEFAULT_CONFIG_YAML)
    else:
        config = CastSightConfig()
        save_config(config, path)

    logger.info(f"Generated default config at: {path}")
