# === NAVMAP v1 ===
# {
#   "module": "P2Layout.LayoutResolver.settings",
#   "purpose": "Define configuration models, environment overrides, and platform directories",
#   "sections": [
#     {"id": "directories", "name": "Platform Directories", "anchor": "DIR", "kind": "constants"},
#     {"id": "httpconfiguration", "name": "HttpConfiguration", "anchor": "class-httpconfiguration", "kind": "class"},
#     {"id": "loggingconfiguration", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "layoutconfiguration", "name": "LayoutConfiguration", "anchor": "class-layoutconfiguration", "kind": "class"},
#     {"id": "repositorydeclaration", "name": "RepositoryDeclaration", "anchor": "class-repositorydeclaration", "kind": "class"},
#     {"id": "resolvedconfig", "name": "ResolvedConfig", "anchor": "class-resolvedconfig", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "load-config", "name": "load_config", "anchor": "function-load-config", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the p2 layout resolver.

Settings fall into three groups: HTTP transport knobs consumed by
:mod:`P2Layout.LayoutResolver.net`, logging options consumed by
:func:`P2Layout.LayoutResolver.logging_utils.setup_logging`, and layout
session options (scratch directory root, manifest locale). A YAML file may
additionally declare the p2 repositories known to the CLI. Environment
variables prefixed with ``P2LAYOUT_`` override file and default values.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import platformdirs
import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "CACHE_DIR",
    "LOG_DIR",
    "HttpConfiguration",
    "LoggingConfiguration",
    "LayoutConfiguration",
    "RepositoryDeclaration",
    "ResolvedConfig",
    "EnvironmentOverrides",
    "get_default_config",
    "invalidate_default_config_cache",
    "load_config",
    "load_raw_yaml",
]

APP_NAME = "p2layout"

CACHE_DIR = Path(platformdirs.user_cache_dir(APP_NAME))
LOG_DIR = Path(platformdirs.user_log_dir(APP_NAME))


class HttpConfiguration(BaseModel):
    """HTTP transport, redirect, and batch concurrency settings."""

    timeout_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    connect_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    pool_timeout_sec: float = Field(default=5.0, gt=0.0, le=60.0)
    max_connections: int = Field(default=64, ge=1, le=1024)
    max_keepalive_connections: int = Field(default=16, ge=0, le=1024)
    keepalive_expiry_sec: float = Field(default=30.0, gt=0.0, le=600.0)
    http2_enabled: bool = Field(default=False)
    max_redirects: int = Field(
        default=20,
        ge=0,
        le=100,
        description="Redirect hops followed before a resource is treated as absent",
    )
    concurrent_downloads: int = Field(default=4, ge=1, le=64)
    cache_enabled: bool = Field(default=True, description="Cache responses with Hishel")
    user_agent: str = Field(default="p2layout/1.0 (+https://github.com/OpenNTF/p2-layout-provider)")

    def http_headers(self) -> Dict[str, str]:
        """Return default headers applied to every outbound request."""

        return {"User-Agent": self.user_agent}

    model_config = {"validate_assignment": True}


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for the layout resolver."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=100, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=30, ge=1, description="Retention period for log files")
    json_logs: bool = Field(default=False, description="Also write JSON lines into the log dir")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class LayoutConfiguration(BaseModel):
    """Per-session options for :class:`~P2Layout.LayoutResolver.layout.RepositoryLayout`."""

    scratch_root: Optional[Path] = Field(
        default=None,
        description="Parent directory for session scratch dirs (system temp dir when unset)",
    )
    locale: Optional[str] = Field(
        default=None,
        description="Locale used to resolve %key manifest headers (process locale when unset)",
    )
    generator_name: str = Field(
        default="P2Layout.LayoutResolver.layout.RepositoryLayout",
        description="Name recorded in the comment of synthesized POMs",
    )

    model_config = {"validate_assignment": True}


class RepositoryDeclaration(BaseModel):
    """A remote repository known to the CLI: Maven group id plus p2 base URL."""

    id: str = Field(min_length=1)
    url: str = Field(min_length=1)
    content_type: str = Field(default="p2")


class ResolvedConfig(BaseModel):
    """Materialised configuration combining defaults, file values, and env overrides."""

    http: HttpConfiguration = Field(default_factory=HttpConfiguration)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)
    layout: LayoutConfiguration = Field(default_factory=LayoutConfiguration)
    repositories: List[RepositoryDeclaration] = Field(default_factory=list)

    @classmethod
    def from_defaults(cls) -> "ResolvedConfig":
        """Construct a configuration populated with defaults and env overrides."""

        config = cls()
        _apply_env_overrides(config)
        return config

    def repository(self, repository_id: str) -> Optional[RepositoryDeclaration]:
        """Return the declared repository whose id matches ``repository_id``."""

        for declaration in self.repositories:
            if declaration.id == repository_id:
                return declaration
        return None

    model_config = {"validate_assignment": True}


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    timeout_sec: Optional[float] = Field(default=None, alias="P2LAYOUT_TIMEOUT_SEC")
    max_redirects: Optional[int] = Field(default=None, alias="P2LAYOUT_MAX_REDIRECTS")
    concurrent_downloads: Optional[int] = Field(
        default=None, alias="P2LAYOUT_CONCURRENT_DOWNLOADS"
    )
    log_level: Optional[str] = Field(default=None, alias="P2LAYOUT_LOG_LEVEL")
    scratch_root: Optional[Path] = Field(default=None, alias="P2LAYOUT_SCRATCH_ROOT")
    locale: Optional[str] = Field(default=None, alias="P2LAYOUT_LOCALE")

    model_config = SettingsConfigDict(env_prefix="P2LAYOUT_", case_sensitive=False, extra="ignore")


def _apply_env_overrides(config: ResolvedConfig) -> None:
    """Mutate ``config`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger("P2Layout.LayoutResolver")

    if env.timeout_sec is not None:
        config.http.timeout_sec = env.timeout_sec
        logger.info("Config overridden: timeout_sec=%s", env.timeout_sec, extra={"stage": "config"})
    if env.max_redirects is not None:
        config.http.max_redirects = env.max_redirects
        logger.info(
            "Config overridden: max_redirects=%s", env.max_redirects, extra={"stage": "config"}
        )
    if env.concurrent_downloads is not None:
        config.http.concurrent_downloads = env.concurrent_downloads
        logger.info(
            "Config overridden: concurrent_downloads=%s",
            env.concurrent_downloads,
            extra={"stage": "config"},
        )
    if env.log_level is not None:
        config.logging.level = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.scratch_root is not None:
        config.layout.scratch_root = env.scratch_root
        logger.info(
            "Config overridden: scratch_root=%s", env.scratch_root, extra={"stage": "config"}
        )
    if env.locale is not None:
        config.layout.locale = env.locale
        logger.info("Config overridden: locale=%s", env.locale, extra={"stage": "config"})


_DEFAULT_CONFIG_LOCK = threading.RLock()
_DEFAULT_CONFIG_CACHE: Optional[ResolvedConfig] = None


def get_default_config(*, copy: bool = False) -> ResolvedConfig:
    """Return a memoised :class:`ResolvedConfig` constructed from defaults."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = ResolvedConfig.from_defaults()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config_cache() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None


def normalize_config_path(config_path: Path) -> Path:
    """Return a user-supplied configuration path with ``~`` and symlinks resolved."""

    expanded = Path(config_path).expanduser()
    try:
        return expanded.resolve(strict=False)
    except (OSError, RuntimeError):  # pragma: no cover - only triggered on rare filesystems
        return expanded


def load_raw_yaml(config_path: Path) -> Mapping[str, object]:
    """Read a YAML configuration file and return its top-level mapping."""

    normalized_path = normalize_config_path(config_path)

    if not normalized_path.exists():
        raise UserConfigError(f"Configuration file not found: {normalized_path}")

    try:
        with normalized_path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise UserConfigError(
            f"Configuration file '{normalized_path}' contains invalid YAML"
        ) from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise UserConfigError("Configuration file must contain a mapping at the root")
    return data


def build_resolved_config(raw_config: Mapping[str, object]) -> ResolvedConfig:
    """Materialise a :class:`ResolvedConfig` from a raw mapping loaded from disk."""

    allowed_keys = {"http", "logging", "layout", "repositories"}
    unknown = sorted(str(key) for key in raw_config if key not in allowed_keys)
    if unknown:
        raise UserConfigError("Configuration validation failed:\n- Unknown keys: " + ", ".join(unknown))

    try:
        config = ResolvedConfig.model_validate(dict(raw_config))
    except PydanticValidationError as exc:
        messages = []
        for error in exc.errors():
            location = " -> ".join(str(part) for part in error["loc"])
            messages.append(f"{location}: {error['msg']}")
        raise UserConfigError(
            "Configuration validation failed:\n  " + "\n  ".join(messages)
        ) from exc

    _apply_env_overrides(config)
    return config


def load_config(config_path: Path) -> ResolvedConfig:
    """Load, validate, and resolve configuration from a YAML file."""

    return build_resolved_config(load_raw_yaml(config_path))
