# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.settings",
#   "purpose": "Define configuration models and environment overrides for binding acquisition",
#   "sections": [
#     {"id": "httpsettings", "name": "HttpSettings", "anchor": "class-httpsettings", "kind": "class"},
#     {"id": "downloadsettings", "name": "DownloadSettings", "anchor": "class-downloadsettings", "kind": "class"},
#     {"id": "buildersettings", "name": "BuilderSettings", "anchor": "class-buildersettings", "kind": "class"},
#     {"id": "loggingsettings", "name": "LoggingSettings", "anchor": "class-loggingsettings", "kind": "class"},
#     {"id": "settings", "name": "Settings", "anchor": "class-settings", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "load-settings", "name": "load_settings", "anchor": "function-load-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and environment overrides.

Settings are frozen pydantic models. Values come from the model defaults,
optionally overridden by ``PREBUILT_BINDINGS_*`` environment variables read
through :class:`EnvironmentOverrides`, and finally by explicit keyword
overrides (typically CLI options) passed to :func:`load_settings`.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "HttpSettings",
    "DownloadSettings",
    "BuilderSettings",
    "LoggingSettings",
    "Settings",
    "EnvironmentOverrides",
    "default_builder_executable",
    "load_settings",
]

_DEFAULT_BUILDERS: Dict[str, str] = {"win32": "cmake.exe"}


def default_builder_executable(platform: Optional[str] = None) -> str:
    """Return the toolchain executable name assumed to be on ``PATH``.

    Examples:
        >>> default_builder_executable("win32")
        'cmake.exe'
        >>> default_builder_executable("linux")
        'cmake'
    """
    return _DEFAULT_BUILDERS.get(platform or sys.platform, "cmake")


class HttpSettings(BaseModel):
    """HTTP client settings for the shared HTTPX client."""

    model_config = ConfigDict(frozen=True)

    timeout_connect: float = Field(default=10.0, gt=0.0, le=120.0, description="Connect timeout (s)")
    timeout_read: float = Field(default=60.0, gt=0.0, le=600.0, description="Read timeout (s)")
    timeout_write: float = Field(default=60.0, gt=0.0, le=600.0, description="Write timeout (s)")
    timeout_pool: float = Field(default=10.0, gt=0.0, le=120.0, description="Pool acquire timeout (s)")
    max_connections: int = Field(default=16, ge=1, le=256)
    max_keepalive_connections: int = Field(default=8, ge=0, le=256)
    trust_env: bool = Field(
        default=True,
        description="Honor HTTP(S)_PROXY, NO_PROXY and SSL_CERT_FILE environment variables",
    )
    user_agent: str = Field(default="prebuilt-bindings (+https://pypi.org/project/prebuilt-bindings)")


class DownloadSettings(BaseModel):
    """Streaming and redirect behaviour for candidate downloads."""

    model_config = ConfigDict(frozen=True)

    max_redirects: int = Field(default=10, ge=0, le=50, description="Redirect hop limit per candidate")
    chunk_size: int = Field(default=64 * 1024, ge=1024, description="Read size for body streaming")


class BuilderSettings(BaseModel):
    """External build toolchain invocation."""

    model_config = ConfigDict(frozen=True)

    executable: Optional[str] = Field(
        default=None,
        description="Toolchain executable; defaults to a per-platform name resolved on PATH",
    )
    args: List[str] = Field(default_factory=lambda: ["--build", "build", "--config", "Release"])

    def resolved_executable(self) -> str:
        """Return the configured executable or the platform default."""
        return self.executable or default_builder_executable()


class LoggingSettings(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    json_logs: bool = Field(default=False, description="Emit JSON-formatted log lines")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = str(v).upper()
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {sorted(valid_levels)}, got '{v}'")
        return upper

    def level_int(self) -> int:
        """Convert level string to logging module integer."""
        return getattr(logging, self.level)


class Settings(BaseModel):
    """Aggregate settings for one acquisition run."""

    model_config = ConfigDict(frozen=True)

    http: HttpSettings = Field(default_factory=HttpSettings)
    download: DownloadSettings = Field(default_factory=DownloadSettings)
    builder: BuilderSettings = Field(default_factory=BuilderSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    verify_build_output: bool = Field(
        default=True,
        description="Verify every binding again after the build fallback succeeds",
    )


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    builder: Optional[str] = None
    log_level: Optional[str] = None
    max_redirects: Optional[int] = None
    timeout_read: Optional[float] = None
    verify_build_output: Optional[bool] = None

    model_config = SettingsConfigDict(
        env_prefix="PREBUILT_BINDINGS_", case_sensitive=False, extra="ignore"
    )


def _merge(model: BaseModel, updates: Dict[str, Any]) -> Any:
    if not updates:
        return model
    payload = model.model_dump()
    payload.update(updates)
    return type(model).model_validate(payload)


def load_settings(
    *,
    log_level: Optional[str] = None,
    json_logs: Optional[bool] = None,
    builder: Optional[str] = None,
    env: Optional[EnvironmentOverrides] = None,
) -> Settings:
    """Build :class:`Settings` from defaults, environment, and explicit overrides.

    Explicit keyword arguments win over environment variables.
    """
    env = env if env is not None else EnvironmentOverrides()
    base = Settings()

    http = _merge(base.http, {"timeout_read": env.timeout_read} if env.timeout_read else {})
    download = _merge(
        base.download,
        {"max_redirects": env.max_redirects} if env.max_redirects is not None else {},
    )

    builder_updates: Dict[str, Any] = {}
    if builder or env.builder:
        builder_updates["executable"] = builder or env.builder
    builder_settings = _merge(base.builder, builder_updates)

    logging_updates: Dict[str, Any] = {}
    if log_level or env.log_level:
        logging_updates["level"] = log_level or env.log_level
    if json_logs is not None:
        logging_updates["json_logs"] = json_logs
    logging_settings = _merge(base.logging, logging_updates)

    verify_build_output = (
        env.verify_build_output if env.verify_build_output is not None else base.verify_build_output
    )

    return Settings(
        http=http,
        download=download,
        builder=builder_settings,
        logging=logging_settings,
        verify_build_output=verify_build_output,
    )
