"""Fleet configuration.

Precedence (highest to lowest): CLI options > environment variables >
JSON config file > defaults. Empty environment variables are treated as unset.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from cli_agent_fleet.constants import (
    COORDINATION_DIR_NAME,
    CONFIG_FILE_NAME,
    CRITICAL_WAIT_SECONDS,
    DEFAULT_PROVIDER,
    DEFAULT_SKILLS_DIR,
    ENV_PREFIX,
    MAX_FEATURE_ROUNDS,
    MAX_ROUNDS,
    POLL_INTERVAL,
)
from cli_agent_fleet.models.provider import ProviderType

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when the config file or environment holds invalid settings."""

    pass


class FleetConfig(BaseModel):
    """Settings shared by every fleet command."""

    project_dir: Path = Field(default_factory=Path.cwd)
    provider: ProviderType = ProviderType(DEFAULT_PROVIDER)
    agent_command: Optional[str] = None
    extra_args: List[str] = Field(default_factory=list)
    skills_dir: Path = DEFAULT_SKILLS_DIR
    max_rounds: int = Field(default=MAX_ROUNDS, ge=1)
    max_feature_rounds: int = Field(default=MAX_FEATURE_ROUNDS, ge=1)
    poll_interval: float = Field(default=POLL_INTERVAL, gt=0)
    critical_wait_seconds: float = Field(default=CRITICAL_WAIT_SECONDS, ge=0)
    phase_timeout: Optional[float] = Field(default=None, gt=0)
    yolo: bool = False

    @property
    def coordination_dir(self) -> Path:
        return self.project_dir / COORDINATION_DIR_NAME


# (config key, env var suffix, value type); extra_args is JSON-only
_CONFIG_KEYS: List[tuple] = [
    ("provider",              "PROVIDER",              str),
    ("agent_command",         "AGENT_COMMAND",         str),
    ("skills_dir",            "SKILLS_DIR",            str),
    ("max_rounds",            "MAX_ROUNDS",            int),
    ("max_feature_rounds",    "MAX_FEATURE_ROUNDS",    int),
    ("poll_interval",         "POLL_INTERVAL",         float),
    ("critical_wait_seconds", "CRITICAL_WAIT_SECONDS", float),
    ("phase_timeout",         "PHASE_TIMEOUT",         float),
    ("yolo",                  "YOLO",                  bool),
]
VALID_FILE_KEYS = frozenset(key for key, _, _ in _CONFIG_KEYS) | {"extra_args"}


def _parse_env(env: Mapping[str, str], suffix: str, typ: type) -> Optional[Any]:
    """Read env var; return None if unset or empty string (treated as unset)."""
    env_var = f"{ENV_PREFIX}{suffix}"
    raw = env.get(env_var)
    if raw is None or raw == "":
        return None
    if typ is bool:
        return raw == "1"
    try:
        return typ(raw)
    except ValueError:
        raise ConfigError(f"Invalid value for {env_var}: {raw!r}")


def _read_config_file(path: Path) -> Dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    unknown = set(data) - VALID_FILE_KEYS
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(sorted(unknown))}")
    return data


def load_config(
    project_dir: Optional[Path] = None,
    config_file: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> FleetConfig:
    """Load config from defaults, optional JSON file, env vars and CLI overrides.

    Without an explicit ``config_file``, ``_coordination/fleet.json`` is used
    when it exists. ``None`` values in ``overrides`` are ignored.
    """
    if env is None:
        env = os.environ
    project_dir = Path(project_dir) if project_dir is not None else Path.cwd()

    values: Dict[str, Any] = {"project_dir": project_dir}

    if config_file is None:
        default_file = project_dir / COORDINATION_DIR_NAME / CONFIG_FILE_NAME
        if default_file.is_file():
            config_file = default_file
    if config_file is not None:
        logger.debug(f"Loading config file: {config_file}")
        values.update(_read_config_file(Path(config_file)))

    for key, suffix, typ in _CONFIG_KEYS:
        env_val = _parse_env(env, suffix, typ)
        if env_val is not None:
            values[key] = env_val

    for key, value in (overrides or {}).items():
        if value is not None:
            values[key] = value

    if "skills_dir" in values:
        values["skills_dir"] = Path(values["skills_dir"]).expanduser()

    try:
        return FleetConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}")
