"""Monorepo-aware discovery of the dependencies a remote repository declares."""

from __future__ import annotations

import asyncio
import json
from fnmatch import fnmatchcase
from typing import (
    Any,
    Callable,
    Coroutine,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Set,
    TypeVar,
)

import yaml

from .config import DEFAULT_MANIFEST_FILES, DEFAULT_MONOREPO_FOLDERS
from .errors import ManifestParseError, QuotaExhausted, RemoteApiError
from .logging import get_logger
from .models import DirectoryEntry
from .parsers import parse_dependencies

LERNA_CONFIG = "lerna.json"
PNPM_WORKSPACE = "pnpm-workspace.yaml"
DEFAULT_WORKSPACE_PATTERNS = ("packages/*",)

_EXCLUDED_DIRS = {"node_modules", "vendor", "__pycache__"}

ManifestParser = Callable[[str, str], Sequence[str]]
T = TypeVar("T")


class RepoContentProvider(Protocol):
    async def get_file_content(self, repo: str, path: str) -> Optional[str]: ...

    async def list_directory(self, repo: str, path: str = "") -> Optional[List[DirectoryEntry]]: ...


def _join(base: str, name: str) -> str:
    base = base.strip("/")
    return f"{base}/{name}" if base else name


def _split_pattern(pattern: str) -> List[str]:
    cleaned = pattern.strip()
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return [part for part in cleaned.split("/") if part and part != "."]


def glob_matches(path_parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    """Match a relative path against a glob, segment by segment.

    ``*`` (and any other fnmatch wildcard) stays inside one segment while ``**``
    spans zero or more segments.
    """
    if not pattern_parts:
        return not path_parts
    head = pattern_parts[0]
    if head == "**":
        return any(
            glob_matches(path_parts[index:], pattern_parts[1:])
            for index in range(len(path_parts) + 1)
        )
    if not path_parts:
        return False
    return fnmatchcase(path_parts[0], head) and glob_matches(path_parts[1:], pattern_parts[1:])


def _may_contain_matches(path_parts: Sequence[str], pattern_parts: Sequence[str]) -> bool:
    """Return True when a directory below ``path_parts`` could still match the glob."""
    if not pattern_parts:
        return False
    head = pattern_parts[0]
    if head == "**":
        return True
    if not path_parts:
        return True
    return fnmatchcase(path_parts[0], head) and _may_contain_matches(
        path_parts[1:], pattern_parts[1:]
    )


def _lerna_patterns(text: str) -> List[str]:
    try:
        config = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestParseError(f"invalid JSON in {LERNA_CONFIG}: {exc}") from exc
    if not isinstance(config, dict):
        raise ManifestParseError(f"{LERNA_CONFIG} must contain an object")
    return _pattern_list(config.get("packages"), LERNA_CONFIG)


def _pnpm_patterns(text: str) -> List[str]:
    try:
        config = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestParseError(f"invalid YAML in {PNPM_WORKSPACE}: {exc}") from exc
    if not isinstance(config, dict):
        raise ManifestParseError(f"{PNPM_WORKSPACE} must contain a mapping")
    return _pattern_list(config.get("packages"), PNPM_WORKSPACE)


def _pattern_list(value: object, source: str) -> List[str]:
    if value is None:
        return list(DEFAULT_WORKSPACE_PATTERNS)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ManifestParseError(f"'packages' in {source} must be a list of globs")
    # Negated globs only exclude; directory discovery works from the positive ones.
    return [item for item in value if not item.startswith("!")]


async def _run_all(coros: Iterable[Coroutine[Any, Any, T]]) -> List[T]:
    """Await ``coros`` together; the first failure cancels the others and is re-raised as is."""
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(coro) for coro in coros]
    except BaseExceptionGroup as failed:
        error = _first_failure(failed)
    else:
        return [task.result() for task in tasks]
    raise error


def _first_failure(failed: BaseExceptionGroup) -> BaseException:
    quota = failed.subgroup(QuotaExhausted)
    chosen: BaseException = quota if quota is not None else failed
    while isinstance(chosen, BaseExceptionGroup):
        chosen = chosen.exceptions[0]
    return chosen


class RepoScanner:
    """Collects dependency identifiers from every manifest relevant to a repository."""

    def __init__(
        self,
        source: RepoContentProvider,
        *,
        manifest_files: Iterable[str] = DEFAULT_MANIFEST_FILES,
        monorepo_folders: Iterable[str] = DEFAULT_MONOREPO_FOLDERS,
        parser: ManifestParser = parse_dependencies,
    ) -> None:
        self.source = source
        self.manifest_files = tuple(manifest_files)
        self.monorepo_folders = tuple(monorepo_folders)
        self._parser = parser
        self.logger = get_logger("scanner")

    async def scan(self, repo: str, max_depth: int = 2) -> List[str]:
        """Return the sorted, deduplicated dependency identifiers declared in ``repo``."""
        patterns = await self._workspace_patterns(repo)
        if patterns is not None:
            self.logger.debug("%s declares workspace packages %s", repo, patterns)
            found = await self._scan_workspace(repo, patterns, max_depth)
        else:
            found = await self._fallback_scan(repo, max_depth)
        return sorted(found)

    # ------------------------------------------------------------------
    # Workspace (monorepo config) discovery

    async def _workspace_patterns(self, repo: str) -> Optional[List[str]]:
        for filename, loader in ((LERNA_CONFIG, _lerna_patterns), (PNPM_WORKSPACE, _pnpm_patterns)):
            text = await self._fetch(repo, filename)
            if text is None:
                continue
            try:
                return loader(text)
            except ManifestParseError as exc:
                self.logger.warning("%s in %s: %s; using fallback scan", filename, repo, exc)
                return None
        return None

    async def _scan_workspace(self, repo: str, patterns: Sequence[str], max_depth: int) -> Set[str]:
        matched = await _run_all(
            (self._matching_directories(repo, pattern, max_depth) for pattern in patterns)
        )
        directories = sorted({directory for group in matched for directory in group})
        found = await _run_all(
            (self._read_manifests(repo, directory) for directory in directories)
        )
        return set().union(*found)

    async def _matching_directories(self, repo: str, pattern: str, max_depth: int) -> List[str]:
        parts = _split_pattern(pattern)
        if not parts:
            return []
        limit = max(len(parts), max_depth) if "**" in parts else len(parts)
        return await self._walk_matching(repo, "", parts, limit)

    async def _walk_matching(
        self, repo: str, path: str, parts: Sequence[str], limit: int
    ) -> List[str]:
        level = len(path.split("/")) if path else 0
        if level >= limit:
            return []
        matches: List[str] = []
        descend: List[str] = []
        for entry in await self._subdirectories(repo, path):
            child = _join(path, entry.name)
            child_parts = child.split("/")
            if glob_matches(child_parts, parts):
                matches.append(child)
            if _may_contain_matches(child_parts, parts):
                descend.append(child)
        nested = await _run_all(
            (self._walk_matching(repo, child, parts, limit) for child in descend)
        )
        for group in nested:
            matches.extend(group)
        return matches

    # ------------------------------------------------------------------
    # Fallback discovery

    async def _fallback_scan(self, repo: str, max_depth: int) -> Set[str]:
        scans = [self._read_manifests(repo, "")]
        scans.extend(
            self._scan_directory(repo, folder, 1, max_depth) for folder in self.monorepo_folders
        )
        results = await _run_all(scans)
        return set().union(*results)

    async def _scan_directory(self, repo: str, path: str, depth: int, max_depth: int) -> Set[str]:
        if depth > max_depth:
            return set()
        subdirectories = await self._subdirectories(repo, path)
        results = await _run_all(
            (
                self._scan_subdirectory(repo, _join(path, entry.name), depth, max_depth)
                for entry in subdirectories
            )
        )
        return set().union(*results)

    async def _scan_subdirectory(self, repo: str, path: str, depth: int, max_depth: int) -> Set[str]:
        local, nested = await _run_all(
            [
                self._read_manifests(repo, path),
                self._scan_directory(repo, path, depth + 1, max_depth),
            ]
        )
        return local | nested

    # ------------------------------------------------------------------
    # Remote access

    async def _read_manifests(self, repo: str, directory: str) -> Set[str]:
        results = await _run_all(
            (self._read_manifest(repo, _join(directory, name)) for name in self.manifest_files)
        )
        return set().union(*results)

    async def _read_manifest(self, repo: str, path: str) -> Set[str]:
        content = await self._fetch(repo, path)
        if content is None:
            return set()
        try:
            dependencies = self._parser(path, content)
        except (ManifestParseError, ValueError) as exc:
            self.logger.warning("Failed to parse %s in %s: %s", path, repo, exc)
            return set()
        return set(dependencies)

    async def _fetch(self, repo: str, path: str) -> Optional[str]:
        try:
            return await self.source.get_file_content(repo, path)
        except QuotaExhausted:
            raise
        except RemoteApiError as exc:
            self.logger.warning("Could not read %s in %s: %s", path, repo, exc)
            return None

    async def _subdirectories(self, repo: str, path: str) -> List[DirectoryEntry]:
        try:
            entries = await self.source.list_directory(repo, path)
        except QuotaExhausted:
            raise
        except RemoteApiError as exc:
            self.logger.warning("Could not list %s in %s: %s", path or "/", repo, exc)
            return []
        if not entries:
            return []
        return [
            entry
            for entry in entries
            if entry.is_dir and entry.name not in _EXCLUDED_DIRS and not entry.name.startswith(".")
        ]


__all__ = ["RepoScanner", "glob_matches"]
