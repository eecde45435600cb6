# === NAVMAP v1 ===
# {
#   "module": "PrebuiltBindings.config",
#   "purpose": "Expand user binding configuration against project metadata",
#   "sections": [
#     {"id": "models", "name": "Configuration Models", "anchor": "MOD", "kind": "api"},
#     {"id": "naming", "name": "Artifact Naming", "anchor": "NAM", "kind": "helpers"},
#     {"id": "repository", "name": "Repository URLs", "anchor": "REP", "kind": "helpers"},
#     {"id": "loading", "name": "Config Loading", "anchor": "LOA", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Expand user binding configuration against project metadata.

Project identity (name, version, source repository) comes from the
``[project]`` table of ``pyproject.toml``. Bindings are listed under
``[tool.prebuilt-bindings]`` or in a separate YAML/TOML file passed with
``--config``. Bindings that omit ``remote`` get two GitHub-release style
candidate URLs, and bindings that omit ``local`` are placed under
``build/Release``.
"""

from __future__ import annotations

import platform
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlsplit, urlunsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigurationError

__all__ = [
    "BindingConfig",
    "BindingSpec",
    "ProjectMetadata",
    "ResolvedConfig",
    "artifact_suffix",
    "default_binding_filename",
    "default_binding_urls",
    "default_local_path",
    "expand_config",
    "load_project_config",
    "read_project_metadata",
    "repository_url",
]

TOOL_TABLE = "prebuilt-bindings"
_REPOSITORY_URL_KEYS = ("repository", "source", "source code", "homepage")
_ARCH_ALIASES = {"amd64": "x86_64", "x64": "x86_64", "aarch64": "arm64", "i686": "x86", "i386": "x86"}

# --- Configuration Models ---------------------------------------------------


class BindingConfig(BaseModel):
    """A binding entry as written by the user, before expansion."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    remote: Optional[Union[str, List[str]]] = None
    local: Optional[str] = None


class BindingSpec(BaseModel):
    """A fully expanded binding consumed read-only by the pipeline.

    Attributes:
        name: Binding identity; also the module name used during verification.
        remote: Candidate URLs tried strictly in order.
        local: Absolute path of the single local artifact.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    remote: Tuple[str, ...]
    local: Path

    @field_validator("local")
    @classmethod
    def require_absolute(cls, value: Path) -> Path:
        """Reject relative local paths."""
        if not value.is_absolute():
            raise ValueError(f"local path must be absolute, got '{value}'")
        return value


class ProjectMetadata(BaseModel):
    """Package identity used to synthesise default URLs."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    repository: Optional[str] = None


class ResolvedConfig(BaseModel):
    """Expanded configuration for one acquisition run."""

    model_config = ConfigDict(frozen=True)

    context: Path
    bindings: Tuple[BindingSpec, ...]

    def to_json(self) -> str:
        """Render the config the way the ``config`` command prints it."""
        return self.model_dump_json(indent=2)


# --- Artifact Naming --------------------------------------------------------


def artifact_suffix(platform_name: Optional[str] = None) -> str:
    """Return the native extension suffix for ``platform_name``.

    Examples:
        >>> artifact_suffix("win32")
        '.pyd'
        >>> artifact_suffix("darwin")
        '.so'
    """
    return ".pyd" if (platform_name or sys.platform) == "win32" else ".so"


def _normalized_arch() -> str:
    machine = platform.machine().lower() or "unknown"
    return _ARCH_ALIASES.get(machine, machine)


def default_binding_filename(name: str) -> str:
    """Return ``<name>-<abi>-<platform>-<arch><suffix>`` for the running interpreter.

    Examples:
        >>> default_binding_filename("fast").startswith("fast-")
        True
    """
    abi = sys.implementation.cache_tag or sys.implementation.name
    parts = [name, abi, sys.platform, _normalized_arch()]
    return "-".join(parts) + artifact_suffix()


def default_local_path(context: Path, name: str) -> Path:
    """Return the default artifact location ``<context>/build/Release/<name><suffix>``."""
    return (context / "build" / "Release" / f"{name}{artifact_suffix()}").resolve()


# --- Repository URLs --------------------------------------------------------


def _expand_repository_shortcut(value: str) -> str:
    scheme = urlsplit(value).scheme
    if not scheme:
        return f"https://github.com/{value.lstrip('/')}"
    if scheme in {"http", "https"}:
        return value
    raise ConfigurationError(f"Unsupported repository shortcut '{value}'")


def repository_url(metadata: ProjectMetadata) -> str:
    """Return the normalised repository URL from ``metadata``.

    Raises:
        ConfigurationError: When no repository is set or its scheme is not HTTP(S).

    Examples:
        >>> repository_url(ProjectMetadata(name="x", version="1", repository="me/x"))
        'https://github.com/me/x'
    """
    if not metadata.repository:
        raise ConfigurationError("Repository not set in project metadata")
    url = _expand_repository_shortcut(metadata.repository.strip())
    parts = urlsplit(url)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ConfigurationError(f"Unsupported repository URL '{url}'")
    path = parts.path.rstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


def default_binding_urls(name: str, metadata: ProjectMetadata) -> Tuple[str, str]:
    """Return the ``.gz`` release asset URL followed by the uncompressed one."""
    base = "/".join(
        [
            repository_url(metadata),
            "releases",
            "download",
            f"v{metadata.version}",
            default_binding_filename(name),
        ]
    )
    return f"{base}.gz", base


# --- Config Loading ---------------------------------------------------------


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Configuration file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping at the top of {path}")
    return data


def _repository_from_pyproject(project: Mapping[str, Any], tool: Mapping[str, Any]) -> Optional[str]:
    explicit = tool.get("repository")
    if isinstance(explicit, str) and explicit:
        return explicit
    urls = project.get("urls") or {}
    lowered = {str(key).lower(): value for key, value in urls.items()}
    for key in _REPOSITORY_URL_KEYS:
        value = lowered.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def read_project_metadata(context: Path) -> Tuple[ProjectMetadata, Dict[str, Any]]:
    """Read ``pyproject.toml`` under ``context``.

    Returns:
        The project identity and the raw ``[tool.prebuilt-bindings]`` table.
    """
    data = _read_toml(context / "pyproject.toml")
    project = data.get("project") or {}
    tool = (data.get("tool") or {}).get(TOOL_TABLE) or {}
    if not project.get("name"):
        raise ConfigurationError("Project name not set in pyproject.toml")
    if not project.get("version"):
        raise ConfigurationError("Project version not set in pyproject.toml")
    metadata = ProjectMetadata(
        name=str(project["name"]),
        version=str(project["version"]),
        repository=_repository_from_pyproject(project, tool),
    )
    return metadata, dict(tool)


def _parse_bindings(raw: Any) -> List[BindingConfig]:
    if not raw:
        raise ConfigurationError("No bindings configured")
    if not isinstance(raw, list):
        raise ConfigurationError("'bindings' must be a list of tables")
    try:
        return [BindingConfig.model_validate(entry) for entry in raw]
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid binding configuration: {exc}") from exc


def expand_config(
    context: Path,
    bindings: Sequence[Union[BindingConfig, Mapping[str, Any]]],
    metadata: ProjectMetadata,
) -> ResolvedConfig:
    """Expand raw binding entries into :class:`BindingSpec` instances.

    Args:
        context: Project root; relative ``local`` paths resolve against it.
        bindings: User binding entries in their configured order.
        metadata: Project identity used for default remote URLs.

    Raises:
        ConfigurationError: When an entry is malformed or a default URL
            cannot be synthesised.
    """
    context = context.resolve()
    entries = _parse_bindings(list(bindings))
    specs: List[BindingSpec] = []
    seen: set[str] = set()
    for entry in entries:
        if entry.name in seen:
            raise ConfigurationError(f"Duplicate binding name '{entry.name}'")
        seen.add(entry.name)
        if entry.remote:
            remote = (entry.remote,) if isinstance(entry.remote, str) else tuple(entry.remote)
        else:
            remote = default_binding_urls(entry.name, metadata)
        local = (
            (context / entry.local).resolve()
            if entry.local
            else default_local_path(context, entry.name)
        )
        specs.append(BindingSpec(name=entry.name, remote=remote, local=local))
    return ResolvedConfig(context=context, bindings=tuple(specs))


def load_project_config(context: Path, config_file: Optional[Path] = None) -> ResolvedConfig:
    """Load metadata and bindings for the project rooted at ``context``.

    ``config_file`` (YAML or TOML) replaces the ``[tool.prebuilt-bindings]``
    table when given; project identity always comes from ``pyproject.toml``.
    """
    context = context.resolve()
    metadata, tool = read_project_metadata(context)
    if config_file is not None:
        config_path = config_file if config_file.is_absolute() else context / config_file
        if config_path.suffix in {".yaml", ".yml"}:
            tool = _read_yaml(config_path)
        else:
            tool = _read_toml(config_path)
        if tool.get("repository"):
            metadata = metadata.model_copy(update={"repository": str(tool["repository"])})
    return expand_config(context, tool.get("bindings") or [], metadata)
