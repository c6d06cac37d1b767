"""
Settings loader for node discovery (Zero Hardcoding principle).

Values come from config/discovery.yaml, section "discovery". Lookup order:
explicit path, $NODE_DISCOVERY_CONFIG, the repository config file, then the
built-in defaults below.

DEFAULT_CONFIG_PATH is resolved relative to this file, so it only finds
config/discovery.yaml in a source checkout (or an editable install). An
installed package has no such file and falls back to the defaults; point
$NODE_DISCOVERY_CONFIG at a file to configure it.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "NODE_DISCOVERY_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "discovery.yaml"


class DefaultsSettings(BaseModel):
    """Names used when the backend address omits them."""
    model_config = ConfigDict(frozen=True)

    collection: str = Field(default="nodes", min_length=1)
    field: str = Field(default="url", min_length=1)


class RegistrationSettings(BaseModel):
    """How register() shapes the stored record."""
    model_config = ConfigDict(frozen=True)

    comment: str = "registered by node-discovery"
    default_scheme: str = Field(default="http", min_length=1)
    recognized_schemes: List[str] = Field(default_factory=lambda: ["http", "https"])


class MongoSettings(BaseModel):
    """Driver options."""
    model_config = ConfigDict(frozen=True)

    scheme: str = "mongodb"
    server_selection_timeout_ms: int = Field(default=5000, ge=1)
    use_sessions: bool = True


class DiscoverySettings(BaseModel):
    """All node-discovery settings."""
    model_config = ConfigDict(frozen=True)

    defaults: DefaultsSettings = Field(default_factory=DefaultsSettings)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)
    mongo: MongoSettings = Field(default_factory=MongoSettings)


def _resolve_path(config_path: Optional[str]) -> Optional[Path]:
    if config_path is None:
        config_path = os.getenv(CONFIG_ENV_VAR)
    if config_path is None:
        return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None
    return Path(config_path)


def _read_section(path: Path) -> Dict[str, Any]:
    with open(path) as f:
        file_config = yaml.safe_load(f)
    if not file_config:
        return {}
    return file_config.get("discovery", {}) or {}


def load_settings(config_path: Optional[str] = None) -> DiscoverySettings:
    """
    Load settings from YAML, falling back to defaults.

    Args:
        config_path: Path to discovery.yaml. If None, uses
                     $NODE_DISCOVERY_CONFIG or the repository config file.

    Returns:
        Frozen DiscoverySettings.
    """
    path = _resolve_path(config_path)
    if path is None:
        return DiscoverySettings()

    if not path.exists():
        logger.warning(f"Config file {path} not found, using defaults")
        return DiscoverySettings()

    try:
        settings = DiscoverySettings.model_validate(_read_section(path))
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return DiscoverySettings()

    logger.info(f"Loaded config from {path}")
    return settings
