"""Pipeline orchestration: batched, resumable scanning followed by graph assembly."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from .api import ContentSource, GitHubClient
from .config import ConfigError, OrgDepsConfig
from .errors import PersistenceError, QuotaExhausted
from .graph import GraphBuilder
from .logging import get_logger, repository_context
from .models import DependencyGraph
from .output import write_graph
from .repo_scanner import RepoScanner
from .stores import CheckpointStore, ContentCache

SleepFn = Callable[[float], Awaitable[None]]


class RepositoryScanner(Protocol):
    async def scan(self, repo: str, max_depth: int = 2) -> List[str]: ...


class ScanOrchestrator:
    """Drives the scanner over many repositories with bounded concurrency.

    Repositories already present in the checkpoint are skipped. The rest run in
    sequential batches of ``batch_size``; inside a batch ``concurrency`` workers
    pull repositories from a queue. Every finished scan is checkpointed before the
    next result is recorded, so an interrupted run only loses in-flight scans.
    """

    def __init__(
        self,
        scanner: RepositoryScanner,
        checkpoint: CheckpointStore,
        *,
        concurrency: int = 10,
        batch_size: int = 50,
        batch_pause: float = 60.0,
        quota_pause: float = 300.0,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.scanner = scanner
        self.checkpoint = checkpoint
        self.concurrency = concurrency
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.quota_pause = quota_pause
        self._sleep = sleep
        self.logger = get_logger("orchestrator")
        self._save_lock: Optional[asyncio.Lock] = None
        self._gate: Optional[asyncio.Event] = None
        self._completed = 0
        self._total = 0

    async def run(self, repositories: Sequence[str], max_depth: int = 2) -> Dict[str, List[str]]:
        """Return ``repository -> dependencies`` for every input repository."""
        self.checkpoint.load()
        ordered = list(dict.fromkeys(repositories))
        remaining = [repo for repo in ordered if repo not in self.checkpoint]
        self.logger.info(
            "Resuming from %d previously processed repositories; %d left to scan",
            len(self.checkpoint),
            len(remaining),
        )

        self._save_lock = asyncio.Lock()
        self._gate = asyncio.Event()
        self._gate.set()
        self._completed = 0
        self._total = len(remaining)
        batches = [
            remaining[start : start + self.batch_size]
            for start in range(0, len(remaining), self.batch_size)
        ]
        for index, batch in enumerate(batches, start=1):
            await self._run_batch(batch, max_depth)
            self.logger.info("Completed batch %d/%d", index, len(batches))
            if index < len(batches) and self.batch_pause > 0:
                self.logger.info(
                    "Waiting for %.0f seconds before next batch...", self.batch_pause
                )
                await self._sleep(self.batch_pause)

        progress = self.checkpoint.all()
        return {repo: progress.get(repo, []) for repo in ordered}

    # ------------------------------------------------------------------
    # Internal helpers

    async def _run_batch(self, batch: Sequence[str], max_depth: int) -> None:
        queue: asyncio.Queue[str] = asyncio.Queue()
        for repo in batch:
            queue.put_nowait(repo)
        workers = [
            asyncio.create_task(self._worker(queue, max_depth))
            for _ in range(min(self.concurrency, len(batch)))
        ]
        await asyncio.gather(*workers)

    async def _worker(self, queue: asyncio.Queue[str], max_depth: int) -> None:
        while True:
            try:
                repo = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            await self._gate.wait()
            dependencies, exhausted = await self._scan_one(repo, max_depth)
            await self._record(repo, dependencies)
            if exhausted:
                await self._pause_for_quota()

    async def _scan_one(self, repo: str, max_depth: int) -> Tuple[List[str], bool]:
        try:
            with repository_context(repo):
                dependencies = await self.scanner.scan(repo, max_depth)
        except QuotaExhausted as exc:
            self.logger.error(
                "Quota exhausted while scanning %s; recording no dependencies: %s", repo, exc
            )
            return [], True
        except Exception:
            self.logger.exception("Error processing repository %s", repo)
            return [], False
        return list(dict.fromkeys(dependencies)), False

    async def _record(self, repo: str, dependencies: List[str]) -> None:
        loop = asyncio.get_running_loop()
        async with self._save_lock:
            self.checkpoint.set(repo, dependencies)
            try:
                await loop.run_in_executor(None, self.checkpoint.save)
            except PersistenceError as exc:
                self.logger.error("Progress for %s was not persisted: %s", repo, exc)
            self._completed += 1
            self.logger.info(
                "Processed repository %s (%d dependencies) [%d/%d]",
                repo,
                len(dependencies),
                self._completed,
                self._total,
            )

    async def _pause_for_quota(self) -> None:
        if not self._gate.is_set():
            await self._gate.wait()
            return
        self._gate.clear()
        self.logger.warning(
            "Pausing scans for %.0f seconds to let the API quota recover", self.quota_pause
        )
        try:
            await self._sleep(self.quota_pause)
        finally:
            self._gate.set()


class Orchestrator:
    """Coordinates a full run: list repositories, scan them, and emit the graph."""

    def __init__(
        self,
        config: OrgDepsConfig,
        *,
        client: GitHubClient | None = None,
        cache: ContentCache | None = None,
        checkpoint: CheckpointStore | None = None,
        scanner: RepositoryScanner | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.config = config
        self._client = client
        if cache is None:
            cache = ContentCache(config.cache.directory, ttl_seconds=config.cache.ttl_seconds)
        if checkpoint is None:
            checkpoint = CheckpointStore(config.checkpoint_path)
        self.cache = cache
        self.checkpoint = checkpoint
        self._scanner = scanner
        self._sleep = sleep
        self.logger = get_logger("pipeline")

    async def run_scan(self, repositories: Optional[Sequence[str]] = None) -> DependencyGraph:
        """Scan the organization (or the given repositories) and write the graph file."""
        builder = self._graph_builder()
        client = self._client or GitHubClient(self.config.github)
        try:
            if repositories is None:
                repositories = await client.list_repositories()
            self.logger.info("Scanning %d repositories", len(repositories))
            scanner = self._scanner or RepoScanner(
                ContentSource(client, self.cache),
                manifest_files=self.config.scan.manifest_files,
                monorepo_folders=self.config.scan.monorepo_folders,
            )
            scan = ScanOrchestrator(
                scanner,
                self.checkpoint,
                concurrency=self.config.scan.concurrency,
                batch_size=self.config.scan.batch_size,
                batch_pause=self.config.scan.batch_pause,
                quota_pause=self.config.scan.quota_pause,
                sleep=self._sleep,
            )
            await scan.run(repositories, self.config.scan.max_depth)
        finally:
            if self._client is None:
                await client.aclose()
        self.logger.info("Finished processing repositories")
        return self._emit(builder, self.checkpoint.all())

    def run_graph(self) -> DependencyGraph:
        """Rebuild the graph file from the checkpoint without touching the network."""
        builder = self._graph_builder()
        return self._emit(builder, self.checkpoint.load())

    def reset(self, *, include_cache: bool = False) -> None:
        """Forget scan progress, and optionally cached file content."""
        self.checkpoint.clear()
        self.logger.info("Cleared checkpoint %s", self.checkpoint.path)
        if include_cache:
            removed = self.cache.clear()
            self.logger.info("Removed %d cached files", removed)

    def _graph_builder(self) -> GraphBuilder:
        if not self.config.internal_prefix:
            raise ConfigError(
                "internal_prefix must be configured (set it in .orgdeps.yml or ORGDEPS_INTERNAL_PREFIX)"
            )
        return GraphBuilder(self.config.internal_prefix)

    def _emit(self, builder: GraphBuilder, repo_deps: Dict[str, List[str]]) -> DependencyGraph:
        counts = builder.count_dependencies(repo_deps)
        graph = builder.build_graph(repo_deps, counts)
        if repo_deps and not graph.nodes:
            self.logger.warning("Graph is empty although %d repositories were scanned", len(repo_deps))
        write_graph(graph, self.config.output_path)
        return graph


__all__ = ["Orchestrator", "ScanOrchestrator"]
