"""Durable record of repositories that have already been scanned."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..errors import PersistenceError
from ..fileio import atomic_write_text
from ..logging import get_logger

_SAVE_ATTEMPTS = 3


class CheckpointStore:
    """Maps repository name to its dependency list; rewritten in full on every save."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._progress: Dict[str, List[str]] = {}
        self.logger = get_logger("checkpoint")

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, List[str]]:
        """Read the checkpoint file; a missing or corrupt file starts an empty run."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            self._progress = {}
            return self.all()
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Ignoring unreadable checkpoint %s: %s", self._path, exc)
            self._progress = {}
            return self.all()

        progress: Dict[str, List[str]] = {}
        if isinstance(data, dict):
            for repo, deps in data.items():
                if isinstance(repo, str) and isinstance(deps, list):
                    progress[repo] = [str(dep) for dep in deps if isinstance(dep, str)]
        self._progress = progress
        return self.all()

    def save(self) -> None:
        """Rewrite the checkpoint atomically, retrying transient failures."""
        text = json.dumps(self._progress, indent=2, sort_keys=True)
        last_error: OSError | None = None
        for attempt in range(1, _SAVE_ATTEMPTS + 1):
            try:
                atomic_write_text(self._path, text)
                return
            except OSError as exc:
                last_error = exc
                self.logger.warning(
                    "Checkpoint save attempt %d/%d failed: %s", attempt, _SAVE_ATTEMPTS, exc
                )
        raise PersistenceError(f"Failed to save checkpoint {self._path}: {last_error}")

    def set(self, repo: str, dependencies: Sequence[str]) -> None:
        self._progress[repo] = list(dependencies)

    def get(self, repo: str) -> Optional[List[str]]:
        deps = self._progress.get(repo)
        return list(deps) if deps is not None else None

    def all(self) -> Dict[str, List[str]]:
        return {repo: list(deps) for repo, deps in self._progress.items()}

    def clear(self) -> None:
        self._progress = {}
        self.save()

    def __contains__(self, repo: object) -> bool:
        return repo in self._progress

    def __len__(self) -> int:
        return len(self._progress)


__all__ = ["CheckpointStore"]
