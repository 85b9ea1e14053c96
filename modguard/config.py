"""Runtime configuration.

Settings come from three layers, later layers winning: built-in defaults, a
YAML file, and ``MODGUARD_*`` environment variables.  The YAML file is looked
up from the explicit *path*, then ``$MODGUARD_CONFIG``, then
``<data_dir>/config.yaml``.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from modguard.errors import ConfigurationError

ENV_PREFIX = "MODGUARD_"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """All tunables of the pipeline."""

    data_dir: Path = Path.home() / ".modguard"
    batch_size: int = 10
    store_timeout: float = 5.0
    operation_timeout: float = 30.0
    health_check_timeout: float = 2.0
    notification_timeout: float = 5.0
    enable_audit_logging: bool = True
    enable_events: bool = True
    enable_notifications: bool = True
    log_level: str = "INFO"
    log_json: bool = False
    webhook_url: str = ""
    webhook_secret: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.data_dir, Path):
            object.__setattr__(self, "data_dir", Path(self.data_dir).expanduser())
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1", {"batch_size": self.batch_size})
        for name in ("store_timeout", "operation_timeout", "health_check_timeout", "notification_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name} must be positive", {name: getattr(self, name)})
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level '{self.log_level}'")
        object.__setattr__(self, "log_level", self.log_level.upper())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["data_dir"] = str(self.data_dir)
        if data["webhook_secret"]:
            data["webhook_secret"] = "***"
        return data


def _coerce(name: str, raw: Any, default: Any) -> Any:
    """Convert a YAML or environment value to the type of the default."""
    try:
        if isinstance(default, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(raw)
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, Path):
            return Path(str(raw)).expanduser()
        return str(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}", {"key": name}) from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Failed to read config file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from defaults, a YAML file and the environment."""
    env = os.environ if env is None else env
    defaults = Settings()
    known = {f.name: getattr(defaults, f.name) for f in fields(Settings)}
    values: dict[str, Any] = {}

    env_data_dir = env.get(f"{ENV_PREFIX}DATA_DIR")
    config_path = path or env.get(f"{ENV_PREFIX}CONFIG")
    if config_path is None:
        base = Path(env_data_dir).expanduser() if env_data_dir else defaults.data_dir
        candidate = base / "config.yaml"
        config_path = candidate if candidate.exists() else None

    if config_path is not None:
        for key, raw in _read_yaml(Path(config_path)).items():
            if key not in known:
                raise ConfigurationError(f"Unknown config key '{key}'", {"key": key})
            values[key] = _coerce(key, raw, known[key])

    for key, default in known.items():
        raw = env.get(f"{ENV_PREFIX}{key.upper()}")
        if raw is not None:
            values[key] = _coerce(key, raw, default)

    return Settings(**values)


class ConfigService:
    """Holds the live settings for a running process."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def settings(self) -> Settings:
        return self._settings

    def update(self, **changes: Any) -> Settings:
        """Replace settings; validation runs on the new instance."""
        unknown = set(changes) - {f.name for f in fields(Settings)}
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        self._settings = replace(self._settings, **changes)
        return self._settings

    def _probe_data_dir(self) -> None:
        data_dir = self._settings.data_dir
        data_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=data_dir, prefix=".health-"):
            pass

    async def health_check(self) -> None:
        """Verify the data directory exists and is writable."""
        await asyncio.to_thread(self._probe_data_dir)
