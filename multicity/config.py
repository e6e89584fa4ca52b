"""Runtime settings for multicity.

Settings come from built-in defaults, an optional YAML file
(``~/.multicity/config.yaml``) and environment variables, in increasing
order of precedence.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from multicity.errors import ConfigError

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG_PATH = Path.home() / ".multicity" / "config.yaml"
_DEFAULT_BASE_URL = "https://sandbox-api.seeru.travel/v1/flights"

# Environment variable -> settings field
_ENV_VARS = {
    "SEERU_API_BASE_URL": "base_url",
    "SEERU_API_KEY": "api_key",
    "MULTICITY_HTTP_TIMEOUT": "http_timeout",
    "MULTICITY_POLL_INTERVAL": "poll_interval",
}


class SearchSettings(BaseModel):
    """Tunables for the search client, poller and orchestrator."""

    base_url: str = _DEFAULT_BASE_URL
    api_key: str = Field(default="", repr=False)
    http_timeout: float = Field(default=15.0, gt=0)

    poll_interval: float = Field(default=0.8, ge=0, description="Seconds between poll cycles")
    cache_ttl: float = Field(default=300.0, gt=0, description="Seconds a cache entry stays fresh")
    reveal_step: int = Field(default=4, ge=1)

    max_idle_polls: int = Field(default=8, ge=1)
    max_idle_polls_no_results: int = Field(default=5, ge=1)
    max_empty_polls: int = Field(default=5, ge=1)
    fast_fail_completion: int = Field(default=50, ge=0, le=100)


def _read_yaml(path: Path) -> dict[str, Any]:
    """Load a YAML mapping, or an empty dict if the file is absent."""
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"YAML parse error in {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(raw).__name__}")
    return raw


def load_settings(path: Optional[Path] = None) -> SearchSettings:
    """Build settings from defaults, the YAML file and the environment.

    Args:
        path: Explicit config file. Defaults to ``~/.multicity/config.yaml``.

    Raises:
        ConfigError: If any value fails validation.
    """
    config_path = path or _DEFAULT_CONFIG_PATH
    values = _read_yaml(config_path)

    for env_name, field_name in _ENV_VARS.items():
        env_value = os.environ.get(env_name, "").strip()
        if env_value:
            values[field_name] = env_value

    try:
        settings = SearchSettings(**values)
    except ValidationError as exc:
        lines = [f"Invalid settings (from {config_path} and environment):"]
        for err in exc.errors():
            loc = " -> ".join(str(x) for x in err["loc"])
            lines.append(f"  {loc}: {err['msg']}")
        raise ConfigError("\n".join(lines)) from exc

    logger.debug("Loaded settings from %s (api key set: %s)", config_path, bool(settings.api_key))
    return settings
