"""Reading and writing the emitted graph file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from .errors import PersistenceError
from .fileio import atomic_write_text
from .logging import get_logger
from .models import DependencyGraph

_LOGGER = get_logger("output")


def write_graph(graph: DependencyGraph, path: Path) -> Path:
    """Write ``{nodes, links}`` JSON for the visualization client."""
    try:
        atomic_write_text(path, json.dumps(graph.to_dict(), indent=2) + "\n")
    except OSError as exc:
        raise PersistenceError(f"Failed to save dependencies to {path}: {exc}") from exc
    _LOGGER.info(
        "Dependencies saved to %s (%d nodes, %d links)", path, len(graph.nodes), len(graph.links)
    )
    return path


def load_graph(path: Path) -> Optional[DependencyGraph]:
    """Return the graph stored at ``path``, or ``None`` if it has not been written yet."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        raise PersistenceError(f"Failed to read dependencies from {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise PersistenceError(f"{path} does not contain a graph object")
    try:
        return DependencyGraph.from_dict(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Malformed graph in {path}: {exc}") from exc


__all__ = ["load_graph", "write_graph"]
