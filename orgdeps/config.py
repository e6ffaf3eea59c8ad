"""Configuration loading for orgdeps (.orgdeps.yml plus environment overrides)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, TypeVar

import yaml

CONFIG_FILENAME = ".orgdeps.yml"

T = TypeVar("T")

DEFAULT_MANIFEST_FILES: tuple[str, ...] = (
    "package.json",
    "requirements.txt",
    "Gemfile",
    "pom.xml",
)
DEFAULT_MONOREPO_FOLDERS: tuple[str, ...] = (
    "packages",
    "applications",
    "services",
    "apps",
    "libs",
)

ENV_ORG_KEYS = ("ORGDEPS_ORG", "GITHUB_ORG")
ENV_TOKEN_KEYS = ("ORGDEPS_TOKEN", "GITHUB_TOKEN")
ENV_PREFIX_KEYS = ("ORGDEPS_INTERNAL_PREFIX",)


class ConfigError(RuntimeError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class GitHubConfig:
    """Remote API access settings."""

    org: Optional[str] = None
    token: Optional[str] = None
    api_url: str = "https://api.github.com"
    per_page: int = 100
    repo_limit: Optional[int] = None
    request_timeout: float = 30.0
    max_retries: int = 8
    initial_backoff: float = 1.0
    max_backoff: float = 64.0


@dataclass
class CacheConfig:
    """Content cache location and expiry."""

    directory: Path = Path(".orgdeps/cache")
    ttl_seconds: float = 24 * 60 * 60


@dataclass
class ScanConfig:
    """Repository scan and batching settings."""

    max_depth: int = 2
    concurrency: int = 10
    batch_size: int = 50
    batch_pause: float = 60.0
    quota_pause: float = 300.0
    manifest_files: List[str] = field(default_factory=lambda: list(DEFAULT_MANIFEST_FILES))
    monorepo_folders: List[str] = field(default_factory=lambda: list(DEFAULT_MONOREPO_FOLDERS))


@dataclass
class OrgDepsConfig:
    """Represents the settings defined in .orgdeps.yml after overrides."""

    root: Path
    github: GitHubConfig = field(default_factory=GitHubConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    internal_prefix: Optional[str] = None
    checkpoint_path: Path = Path(".orgdeps/progress.json")
    output_path: Path = Path("dependencies.json")


def load_config(
    config_path: Path, *, environ: Mapping[str, str] | None = None
) -> OrgDepsConfig:
    """Load configuration from disk, then apply environment overrides."""
    env = os.environ if environ is None else environ
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    data: Dict[str, Any] = {}
    if config_file.exists():
        data = _read_config(config_file)

    github_data = _as_dict(data.get("github"))
    github = GitHubConfig()
    github.org = _as_str(github_data.get("org")) or _as_str(data.get("org"))
    github.token = _as_str(github_data.get("token"))
    github.api_url = (_as_str(github_data.get("api_url")) or github.api_url).rstrip("/")
    github.per_page = _or_default(_as_int(github_data.get("per_page")), github.per_page)
    github.repo_limit = _as_int(github_data.get("repo_limit"))
    github.request_timeout = _or_default(
        _as_float(github_data.get("request_timeout")), github.request_timeout
    )
    github.max_retries = _or_default(_as_int(github_data.get("max_retries")), github.max_retries)
    github.initial_backoff = _or_default(
        _as_float(github_data.get("initial_backoff")), github.initial_backoff
    )
    github.max_backoff = _or_default(_as_float(github_data.get("max_backoff")), github.max_backoff)

    cache_data = _as_dict(data.get("cache"))
    cache = CacheConfig(directory=root / CacheConfig.directory)
    cache_dir = _as_str(cache_data.get("directory"))
    if cache_dir:
        cache.directory = root / cache_dir
    cache.ttl_seconds = _or_default(_as_float(cache_data.get("ttl_seconds")), cache.ttl_seconds)

    scan_data = _as_dict(data.get("scan"))
    scan = ScanConfig()
    max_depth = _as_int(scan_data.get("max_depth"))
    if max_depth is not None:
        scan.max_depth = max_depth
    scan.concurrency = _or_default(_as_int(scan_data.get("concurrency")), scan.concurrency)
    scan.batch_size = _or_default(_as_int(scan_data.get("batch_size")), scan.batch_size)
    batch_pause = _as_float(scan_data.get("batch_pause"))
    if batch_pause is not None:
        scan.batch_pause = batch_pause
    quota_pause = _as_float(scan_data.get("quota_pause"))
    if quota_pause is not None:
        scan.quota_pause = quota_pause
    manifest_files = _as_str_list(scan_data.get("manifest_files"))
    if manifest_files:
        scan.manifest_files = manifest_files
    monorepo_folders = _as_str_list(scan_data.get("monorepo_folders"))
    if monorepo_folders:
        scan.monorepo_folders = monorepo_folders

    checkpoint = _as_str(data.get("checkpoint_path"))
    output = _as_str(data.get("output_path"))

    config = OrgDepsConfig(
        root=root,
        github=github,
        cache=cache,
        scan=scan,
        internal_prefix=_as_str(data.get("internal_prefix")),
        checkpoint_path=root / (checkpoint or OrgDepsConfig.checkpoint_path),
        output_path=root / (output or OrgDepsConfig.output_path),
    )
    _apply_environment(config, env)
    validate_config(config)
    return config


def _apply_environment(config: OrgDepsConfig, env: Mapping[str, str]) -> None:
    org = _first_env_value(env, ENV_ORG_KEYS)
    if org:
        config.github.org = org
    token = _first_env_value(env, ENV_TOKEN_KEYS)
    if token:
        config.github.token = token
    prefix = _first_env_value(env, ENV_PREFIX_KEYS)
    if prefix:
        config.internal_prefix = prefix


def validate_config(config: OrgDepsConfig) -> None:
    """Raise ``ConfigError`` when a setting is outside the range the scanner can run with."""
    scan = config.scan
    github = config.github
    if scan.max_depth < 0:
        raise ConfigError("scan.max_depth must be zero or greater")
    if scan.concurrency < 1:
        raise ConfigError("scan.concurrency must be at least 1")
    if scan.batch_size < 1:
        raise ConfigError("scan.batch_size must be at least 1")
    if scan.batch_pause < 0 or scan.quota_pause < 0:
        raise ConfigError("scan pauses must be zero or greater")
    if github.per_page < 1 or github.per_page > 100:
        raise ConfigError("github.per_page must be between 1 and 100")
    if github.repo_limit is not None and github.repo_limit < 0:
        raise ConfigError("github.repo_limit must be zero or greater")
    if github.max_retries < 0:
        raise ConfigError("github.max_retries must be zero or greater")
    if github.request_timeout <= 0:
        raise ConfigError("github.request_timeout must be greater than zero")
    if github.initial_backoff < 0 or github.max_backoff < github.initial_backoff:
        raise ConfigError("github.max_backoff must be at least github.initial_backoff")
    if config.cache.ttl_seconds < 0:
        raise ConfigError("cache.ttl_seconds must be zero or greater")


def _first_env_value(env: Mapping[str, str], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = env.get(key)
        if value:
            return value
    return None


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _or_default(value: Optional[T], default: T) -> T:
    return default if value is None else value


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    return str(value) if isinstance(value, (str, int, float)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []
