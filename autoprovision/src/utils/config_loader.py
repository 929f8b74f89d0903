import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from autoprovision.src.core.errors import ProjectConfigurationError
from autoprovision.src.core.types import DistributionType

CONFIG_SECTION = "autoprovision"


def get_config_path() -> Path:
    """Return the path to the configuration file."""
    env_path = os.environ.get("AUTOPROVISION_CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".autoprovision" / "config.toml"


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the [autoprovision] section of the TOML configuration file."""
    config_path = Path(config_path) if config_path else get_config_path()
    if not config_path.exists():
        return {}

    try:
        return toml.load(config_path).get(CONFIG_SECTION, {})
    except (toml.TomlDecodeError, OSError) as e:
        raise ProjectConfigurationError(f"Failed to load config {config_path}: {e}") from e


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ("yes", "true", "1"):
        return True
    if normalized in ("no", "false", "0", ""):
        return False
    raise ProjectConfigurationError(f"invalid boolean value: {value}")


@dataclass
class StepConfig:
    project_path: str = ""
    scheme: str = ""
    configuration: str = ""
    distribution_type: str = DistributionType.DEVELOPMENT.value
    min_profile_days_valid: int = 0
    verbose_log: bool = False
    api_token: str = ""
    skip_project_update: bool = False

    @property
    def distribution(self) -> DistributionType:
        return DistributionType.parse(self.distribution_type)

    def validate(self) -> None:
        if not self.project_path:
            raise ProjectConfigurationError("project_path is required")
        if not self.scheme:
            raise ProjectConfigurationError("scheme is required")
        # parse to fail early on unknown values
        self.distribution
        if self.min_profile_days_valid < 0:
            raise ProjectConfigurationError(
                f"min_profile_days_valid must not be negative: {self.min_profile_days_valid}"
            )


_FIELDS = {
    "project_path": str,
    "scheme": str,
    "configuration": str,
    "distribution_type": str,
    "min_profile_days_valid": int,
    "verbose_log": parse_bool,
    "api_token": str,
    "skip_project_update": parse_bool,
}


def load_step_config(
    overrides: Optional[Dict[str, Any]] = None, config_path: Optional[Path] = None
) -> StepConfig:
    """CLI overrides > environment variables > config file > defaults"""
    values: Dict[str, Any] = {}
    file_config = load_config(config_path)

    for name, convert in _FIELDS.items():
        raw = None
        if overrides and overrides.get(name) not in (None, ""):
            raw = overrides[name]
        elif os.environ.get(name):
            raw = os.environ[name]
        elif file_config.get(name) not in (None, ""):
            raw = file_config[name]
        if raw is None:
            continue
        try:
            values[name] = convert(raw)
        except ValueError as e:
            raise ProjectConfigurationError(f"invalid value for {name}: {raw}") from e

    return StepConfig(**values)
