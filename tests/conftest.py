from __future__ import annotations

from pathlib import Path
from typing import Mapping

import pytest

from orgdeps.config import OrgDepsConfig
from tests._fixtures.fake_source import FakeContentSource


@pytest.fixture
def fake_source():
    """Return a factory building an in-memory repository content source."""

    def _build(repos: Mapping[str, Mapping[str, str]]) -> FakeContentSource:
        return FakeContentSource(repos)

    return _build


@pytest.fixture
def config(tmp_path: Path) -> OrgDepsConfig:
    """Provide a configuration whose state files all live under tmp_path."""
    cfg = OrgDepsConfig(root=tmp_path)
    cfg.github.org = "acme"
    cfg.internal_prefix = "@org/"
    cfg.cache.directory = tmp_path / "cache"
    cfg.checkpoint_path = tmp_path / "progress.json"
    cfg.output_path = tmp_path / "dependencies.json"
    cfg.scan.batch_pause = 0.0
    return cfg
