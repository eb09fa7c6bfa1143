"""Configuration of the HTTP transport and of every source.

Settings are read from a YAML document whose top level sections mirror the
dataclasses below (``http``, ``central``, ``sdkman``, ``zulu``, ``github``,
``minikube``). Missing keys keep their defaults.
"""
from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)


def _default_sdkman_local() -> str:
    sdkman_dir = os.environ.get(Constants.ENV_SDKMAN_DIR)
    if sdkman_dir:
        return os.path.join(sdkman_dir, "candidates")
    return Constants.SDKMAN_LOCAL


@dataclass
class HttpSettings:
    """Transport configuration."""

    log: bool = False
    connect_timeout: float = Constants.CONNECT_TIMEOUT_SEC
    request_timeout: float = Constants.REQUEST_TIMEOUT_SEC
    cache: str = Constants.HTTP_CACHE_DIR
    cache_validity: float = Constants.HTTP_CACHE_VALIDITY_SEC
    max_concurrent_requests: int = 0
    proxy: Optional[str] = None


@dataclass
class CentralSettings:
    """Maven repository source, one provider per GAV."""

    base: str = Constants.CENTRAL_BASE
    local: str = Constants.CENTRAL_LOCAL
    gavs: List[str] = field(default_factory=lambda: list(Constants.CENTRAL_GAVS))
    header: Optional[str] = None
    disabled: List[str] = field(default_factory=list)


@dataclass
class SdkManSettings:
    """SDKMAN candidate catalog."""

    enabled: bool = True
    base: str = Constants.SDKMAN_BASE
    local: str = field(default_factory=_default_sdkman_local)
    platform: str = "auto"


@dataclass
class ZuluSettings:
    """Azul Zulu CDN and metadata API."""

    enabled: bool = True
    prefer_jre: bool = False
    base: str = Constants.ZULU_BASE
    prefer_api: bool = False
    api_base: str = Constants.ZULU_API_BASE
    platform: str = "auto"
    local: str = Constants.ZULU_LOCAL


@dataclass
class GithubSettings:
    """GitHub API access shared by release based sources."""

    base: str = Constants.GITHUB_BASE
    local: str = Constants.GITHUB_LOCAL
    header: Optional[str] = None


@dataclass
class MinikubeSettings:
    enabled: bool = True


@dataclass
class Settings:
    """Whole configuration."""

    http: HttpSettings = field(default_factory=HttpSettings)
    central: CentralSettings = field(default_factory=CentralSettings)
    sdkman: SdkManSettings = field(default_factory=SdkManSettings)
    zulu: ZuluSettings = field(default_factory=ZuluSettings)
    github: GithubSettings = field(default_factory=GithubSettings)
    minikube: MinikubeSettings = field(default_factory=MinikubeSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Settings":
        """Build settings from a parsed YAML mapping.

        Args:
            data: Mapping of section name to section mapping.

        Returns:
            Settings instance; unknown sections and keys are logged and ignored.
        """
        settings = cls()
        for section, values in (data or {}).items():
            name = str(section).replace("-", "_")
            if name not in {f.name for f in dataclasses.fields(cls)}:
                logger.warning("Ignoring unknown configuration section '%s'", section)
                continue
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ValueError(f"Configuration section '{section}' must be a mapping")
            setattr(settings, name, _merge(getattr(settings, name), values, name))
        return settings


def _merge(current: Any, values: Dict[str, Any], section: str) -> Any:
    known = {f.name: f for f in dataclasses.fields(current)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        name = str(key).replace("-", "_")
        if name not in known:
            logger.warning("Ignoring unknown configuration key '%s.%s'", section, key)
            continue
        if isinstance(getattr(current, name), list) and isinstance(value, str):
            value = [item.strip() for item in value.split(",") if item.strip()]
        updates[name] = value
    return dataclasses.replace(current, **updates)


def load_settings(path: Optional[str] = None) -> Settings:
    """Load settings from ``path``, else ``YEM_CONFIG``, else defaults.

    Args:
        path: Optional YAML file path.

    Returns:
        Settings instance.
    """
    config_path = path or os.environ.get(Constants.ENV_CONFIG)
    if not config_path:
        return Settings()

    if not os.path.isfile(config_path):
        logger.warning("Config file not found: %s", config_path)
        return Settings()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error("Failed to load config: %s", e)
        raise ValueError(f"Invalid configuration file {config_path}: {e}") from e

    if data is None:
        return Settings()
    if not isinstance(data, dict):
        raise ValueError(f"Invalid configuration file {config_path}: expected a mapping")
    return Settings.from_dict(data)
