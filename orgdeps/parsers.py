"""Manifest parsers that turn raw file content into dependency identifiers."""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from pathlib import PurePosixPath
from typing import Callable, Dict, List

from .errors import ManifestParseError
from .logging import get_logger

_LOGGER = get_logger("parsers")

_REQUIREMENT_NAME = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)")
_GEM_LINE = re.compile(r"""^gem\s+['"]([^'"]+)['"]""")
_GRADLE_COORDINATE = re.compile(r"['\"]([\w\-.]+:[\w\-.]+)(?::[\w\-.]+)?['\"]")
_GRADLE_CONFIGURATIONS = ("implementation", "api", "compile", "runtimeOnly", "testImplementation")
_NODE_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)


def parse_dependencies(path: str, content: str) -> List[str]:
    """Return the dependency identifiers declared by the manifest at ``path``.

    Unrecognised file names and malformed content both yield an empty list; the
    latter is logged so operators can spot manifests that scanned to nothing.
    """
    parser = _PARSERS.get(PurePosixPath(path).name)
    if parser is None:
        return []
    try:
        return parser(content)
    except ManifestParseError as exc:
        _LOGGER.warning("Could not parse %s: %s", path, exc)
        return []


def supported_manifests() -> List[str]:
    return sorted(_PARSERS)


# Node.js


def parse_package_json(content: str) -> List[str]:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestParseError("package.json must contain an object")

    deps: List[str] = []
    for section in _NODE_SECTIONS:
        values = data.get(section)
        if isinstance(values, dict):
            deps.extend(str(name) for name in values)
    return deps


# Python


def parse_requirements(content: str) -> List[str]:
    packages: List[str] = []
    for line in content.splitlines():
        stripped = line.split("#", 1)[0].strip()
        if not stripped or stripped.startswith("-"):
            continue
        if "://" in stripped.split("@", 1)[0]:
            # Bare VCS/URL requirement without a project name.
            continue
        match = _REQUIREMENT_NAME.match(stripped)
        if match:
            packages.append(match.group(1))
    return packages


def parse_pyproject(content: str) -> List[str]:
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestParseError(f"invalid TOML: {exc}") from exc

    dependencies: List[object] = []
    project = data.get("project")
    if isinstance(project, dict):
        dependencies.extend(project.get("dependencies", []) or [])
        optional = project.get("optional-dependencies", {}) or {}
        if isinstance(optional, dict):
            for values in optional.values():
                dependencies.extend(values or [])

    tool = data.get("tool")
    poetry = tool.get("poetry", {}) if isinstance(tool, dict) else {}
    if isinstance(poetry, dict):
        poetry_deps = poetry.get("dependencies", {}) or {}
        if isinstance(poetry_deps, dict):
            dependencies.extend(poetry_deps.keys())

    packages: List[str] = []
    for dep in dependencies:
        if not isinstance(dep, str):
            continue
        match = _REQUIREMENT_NAME.match(dep.strip())
        if match and match.group(1).lower() != "python":
            packages.append(match.group(1))
    return packages


# Ruby


def parse_gemfile(content: str) -> List[str]:
    gems: List[str] = []
    for line in content.splitlines():
        match = _GEM_LINE.match(line.strip())
        if match:
            gems.append(match.group(1))
    return gems


# Java


def parse_pom(content: str) -> List[str]:
    try:
        root = ET.fromstring(content)
    except ET.ParseError as exc:
        raise ManifestParseError(f"invalid XML: {exc}") from exc

    namespace = _detect_xml_namespace(root)
    tag = f"{{{namespace}}}dependency" if namespace else "dependency"
    group_tag = f"{{{namespace}}}groupId" if namespace else "groupId"
    artifact_tag = f"{{{namespace}}}artifactId" if namespace else "artifactId"

    deps: List[str] = []
    for dep in root.iter(tag):
        group = (dep.findtext(group_tag, default="") or "").strip()
        artifact = (dep.findtext(artifact_tag, default="") or "").strip()
        if group and artifact:
            deps.append(f"{group}:{artifact}")
    return deps


def parse_gradle(content: str) -> List[str]:
    deps: List[str] = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("//"):
            continue
        if any(token in line for token in _GRADLE_CONFIGURATIONS):
            match = _GRADLE_COORDINATE.search(line)
            if match:
                deps.append(match.group(1))
    return deps


def _detect_xml_namespace(element: ET.Element) -> str | None:
    match = re.match(r"\{(.+)}", element.tag)
    return match.group(1) if match else None


_PARSERS: Dict[str, Callable[[str], List[str]]] = {
    "package.json": parse_package_json,
    "requirements.txt": parse_requirements,
    "pyproject.toml": parse_pyproject,
    "Gemfile": parse_gemfile,
    "pom.xml": parse_pom,
    "build.gradle": parse_gradle,
    "build.gradle.kts": parse_gradle,
}


__all__ = ["parse_dependencies", "supported_manifests"]
