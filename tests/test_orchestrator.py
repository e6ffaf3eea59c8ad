from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from typing import Dict, List, Sequence

import httpx
import pytest

from orgdeps.api import GitHubClient
from orgdeps.config import ConfigError, OrgDepsConfig
from orgdeps.errors import QuotaExhausted
from orgdeps.logging import current_repository
from orgdeps.orchestrator import Orchestrator, ScanOrchestrator
from orgdeps.stores import CheckpointStore


class _FakeScanner:
    def __init__(
        self,
        results: Dict[str, Sequence[str]] | None = None,
        failures: Dict[str, Exception] | None = None,
    ) -> None:
        self.results = dict(results or {})
        self.failures = dict(failures or {})
        self.calls: List[str] = []
        self.active = 0
        self.peak = 0

    async def scan(self, repo: str, max_depth: int = 2) -> List[str]:
        self.calls.append(repo)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            for _ in range(3):
                await asyncio.sleep(0)
            if repo in self.failures:
                raise self.failures[repo]
            return list(self.results.get(repo, []))
        finally:
            self.active -= 1


class _Sleeps:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _run(orchestrator: ScanOrchestrator, repos: Sequence[str]) -> Dict[str, List[str]]:
    return asyncio.run(orchestrator.run(repos, 2))


def test_resumes_from_checkpoint(tmp_path: Path) -> None:
    checkpoint = CheckpointStore(tmp_path / "progress.json")
    checkpoint.set("A", ["@org/a"])
    checkpoint.save()
    scanner = _FakeScanner({"B": ["@org/b"]})

    result = _run(ScanOrchestrator(scanner, checkpoint, batch_pause=0), ["A", "B"])

    assert scanner.calls == ["B"]
    assert result == {"A": ["@org/a"], "B": ["@org/b"]}


def test_failed_scan_is_recorded_empty_and_run_continues(tmp_path: Path) -> None:
    checkpoint = CheckpointStore(tmp_path / "progress.json")
    scanner = _FakeScanner(
        {"good": ["@org/x", "@org/x"], "later": ["@org/y"]},
        failures={"bad": RuntimeError("kaboom")},
    )

    result = _run(
        ScanOrchestrator(scanner, checkpoint, concurrency=1, batch_pause=0),
        ["good", "bad", "later"],
    )

    assert result == {"good": ["@org/x"], "bad": [], "later": ["@org/y"]}
    on_disk = json.loads((tmp_path / "progress.json").read_text())
    assert on_disk == {"bad": [], "good": ["@org/x"], "later": ["@org/y"]}


def test_each_result_is_saved_before_the_next_scan(tmp_path: Path) -> None:
    path = tmp_path / "progress.json"
    seen_on_disk: Dict[str, List[str]] = {}

    class _InspectingScanner:
        async def scan(self, repo: str, max_depth: int = 2) -> List[str]:
            stored = json.loads(path.read_text()) if path.exists() else {}
            seen_on_disk[repo] = sorted(stored)
            return []

    _run(
        ScanOrchestrator(_InspectingScanner(), CheckpointStore(path), concurrency=1, batch_pause=0),
        ["a", "b", "c"],
    )

    assert seen_on_disk == {"a": [], "b": ["a"], "c": ["a", "b"]}


def test_checkpoint_writes_run_off_the_event_loop(tmp_path: Path) -> None:
    save_threads: List[int] = []

    class _RecordingCheckpoint(CheckpointStore):
        def save(self) -> None:
            save_threads.append(threading.get_ident())
            super().save()

    checkpoint = _RecordingCheckpoint(tmp_path / "progress.json")
    result = _run(
        ScanOrchestrator(_FakeScanner({"a": ["@org/x"]}), checkpoint, batch_pause=0),
        ["a", "b"],
    )

    assert result == {"a": ["@org/x"], "b": []}
    assert len(save_threads) == 2
    assert threading.get_ident() not in save_threads
    assert json.loads((tmp_path / "progress.json").read_text()) == {"a": ["@org/x"], "b": []}


def test_scans_run_inside_their_repository_log_context(tmp_path: Path) -> None:
    seen: Dict[str, str | None] = {}

    class _ContextScanner:
        async def scan(self, repo: str, max_depth: int = 2) -> List[str]:
            await asyncio.sleep(0)
            seen[repo] = current_repository()
            return []

    _run(
        ScanOrchestrator(
            _ContextScanner(), CheckpointStore(tmp_path / "progress.json"), batch_pause=0
        ),
        ["web", "api"],
    )

    assert seen == {"web": "web", "api": "api"}


def test_batches_pause_between_but_not_after(tmp_path: Path) -> None:
    sleeps = _Sleeps()
    scanner = _FakeScanner()

    _run(
        ScanOrchestrator(
            scanner,
            CheckpointStore(tmp_path / "progress.json"),
            batch_size=2,
            batch_pause=60,
            sleep=sleeps,
        ),
        ["r1", "r2", "r3", "r4", "r5"],
    )

    assert sleeps.calls == [60, 60]
    assert sorted(scanner.calls) == ["r1", "r2", "r3", "r4", "r5"]


def test_concurrency_is_bounded(tmp_path: Path) -> None:
    scanner = _FakeScanner()

    _run(
        ScanOrchestrator(
            scanner,
            CheckpointStore(tmp_path / "progress.json"),
            concurrency=3,
            batch_size=10,
            batch_pause=0,
        ),
        [f"repo-{index}" for index in range(10)],
    )

    assert scanner.peak == 3
    assert len(scanner.calls) == 10


def test_quota_exhaustion_pauses_the_run(tmp_path: Path) -> None:
    sleeps = _Sleeps()
    scanner = _FakeScanner(
        {"after": ["@org/z"]},
        failures={"throttled": QuotaExhausted("quota gone", status=429)},
    )

    result = _run(
        ScanOrchestrator(
            scanner,
            CheckpointStore(tmp_path / "progress.json"),
            concurrency=1,
            batch_pause=0,
            quota_pause=300,
            sleep=sleeps,
        ),
        ["throttled", "after"],
    )

    assert sleeps.calls == [300]
    assert result == {"throttled": [], "after": ["@org/z"]}


def test_duplicate_inputs_are_scanned_once(tmp_path: Path) -> None:
    scanner = _FakeScanner()

    _run(
        ScanOrchestrator(scanner, CheckpointStore(tmp_path / "progress.json"), batch_pause=0),
        ["a", "a", "b"],
    )

    assert sorted(scanner.calls) == ["a", "b"]


def test_invalid_limits_are_rejected(tmp_path: Path) -> None:
    checkpoint = CheckpointStore(tmp_path / "progress.json")

    with pytest.raises(ValueError):
        ScanOrchestrator(_FakeScanner(), checkpoint, concurrency=0)
    with pytest.raises(ValueError):
        ScanOrchestrator(_FakeScanner(), checkpoint, batch_size=0)


def _listing_client(config: OrgDepsConfig, names: Sequence[str]) -> GitHubClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/orgs/acme/repos"
        if request.url.params["page"] == "1":
            return httpx.Response(200, json=[{"name": name} for name in names])
        return httpx.Response(200, json=[])

    return GitHubClient(config.github, transport=httpx.MockTransport(handler))


def test_run_scan_lists_scans_and_writes_graph(config: OrgDepsConfig) -> None:
    scanner = _FakeScanner(
        {
            "svcA": ["@org/libX", "@org/libY", "left-pad"],
            "svcB": ["@org/libX"],
        }
    )
    orchestrator = Orchestrator(
        config,
        client=_listing_client(config, ["svcA", "svcB"]),
        scanner=scanner,
    )

    graph = asyncio.run(orchestrator.run_scan())

    assert sorted(scanner.calls) == ["svcA", "svcB"]
    written = json.loads(config.output_path.read_text())
    assert written == graph.to_dict()
    assert [node["id"] for node in written["nodes"]] == ["svcA", "svcB", "@org/libX", "@org/libY"]
    assert {(link["source"], link["target"]) for link in written["links"]} == {
        ("svcA", "@org/libX"),
        ("svcA", "@org/libY"),
        ("svcB", "@org/libX"),
    }
    assert json.loads(config.checkpoint_path.read_text())["svcB"] == ["@org/libX"]


def test_run_scan_with_explicit_repositories_skips_listing(config: OrgDepsConfig) -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError(f"unexpected request {request.url}")

    client = GitHubClient(config.github, transport=httpx.MockTransport(handler))
    scanner = _FakeScanner({"only": ["@org/one"]})

    graph = asyncio.run(Orchestrator(config, client=client, scanner=scanner).run_scan(["only"]))

    assert scanner.calls == ["only"]
    assert [node.id for node in graph.nodes] == ["only", "@org/one"]


def test_run_graph_rebuilds_from_checkpoint(config: OrgDepsConfig) -> None:
    config.checkpoint_path.write_text(
        json.dumps({"repo1": ["@org/dep1"], "@org/dep1": ["@org/dep2"]})
    )

    graph = Orchestrator(config).run_graph()

    assert {node.id: node.depth for node in graph.nodes} == {
        "@org/dep1": 1,
        "@org/dep2": 2,
        "repo1": 0,
    }
    assert config.output_path.exists()


def test_missing_internal_prefix_is_a_config_error(config: OrgDepsConfig) -> None:
    config.internal_prefix = None

    with pytest.raises(ConfigError):
        Orchestrator(config).run_graph()
    with pytest.raises(ConfigError):
        asyncio.run(Orchestrator(config, scanner=_FakeScanner()).run_scan(["x"]))


def test_reset_clears_progress_and_optionally_cache(config: OrgDepsConfig) -> None:
    config.checkpoint_path.write_text(json.dumps({"a": []}))
    config.cache.directory.mkdir(parents=True)
    (config.cache.directory / "entry.json").write_text("{}")

    Orchestrator(config).reset()
    assert json.loads(config.checkpoint_path.read_text()) == {}
    assert (config.cache.directory / "entry.json").exists()

    Orchestrator(config).reset(include_cache=True)
    assert not (config.cache.directory / "entry.json").exists()
