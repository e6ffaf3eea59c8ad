"""Builds the depth-layered internal dependency graph from per-repository lists."""

from __future__ import annotations

from typing import Dict, Iterator, List, Mapping, Sequence, Set, Tuple

from .logging import get_logger
from .models import DependencyCount, DependencyGraph, GraphEdge, GraphNode

RepoDependencies = Mapping[str, Sequence[str]]


class GraphBuilder:
    """Turns ``repository -> dependencies`` into nodes and links for internal packages.

    A dependency is internal when its identifier starts with ``internal_prefix``.
    Every repository is a root at depth 0. A node's depth is the deepest position
    at which any traversal reaches it; cycles are cut by a per-path visited set.
    """

    def __init__(self, internal_prefix: str) -> None:
        if not internal_prefix:
            raise ValueError("internal_prefix must be a non-empty string")
        self.internal_prefix = internal_prefix
        self.logger = get_logger("graph")

    def is_internal(self, identifier: str) -> bool:
        return identifier.startswith(self.internal_prefix)

    def count_dependencies(self, repo_deps: RepoDependencies) -> Dict[str, DependencyCount]:
        """Count, per internal dependency, the distinct repositories that declare it."""
        try:
            counts: Dict[str, DependencyCount] = {}
            for repo in sorted(repo_deps):
                for dep in _unique(repo_deps[repo]):
                    if not self.is_internal(dep):
                        continue
                    entry = counts.setdefault(dep, DependencyCount())
                    entry.count += 1
                    entry.sources.append(repo)
            return counts
        except Exception:  # pragma: no cover - unexpected failure
            self.logger.exception("Unexpected error while counting dependencies")
            return {}

    def build_graph(
        self,
        repo_deps: RepoDependencies,
        counts: Mapping[str, DependencyCount],
    ) -> DependencyGraph:
        """Return the deduplicated graph with maximum-depth node assignment."""
        try:
            return self._build(repo_deps, counts)
        except Exception:  # pragma: no cover - unexpected failure
            self.logger.exception("Unexpected error while building the dependency graph")
            return DependencyGraph()

    # ------------------------------------------------------------------
    # Internal helpers

    def _build(
        self,
        repo_deps: RepoDependencies,
        counts: Mapping[str, DependencyCount],
    ) -> DependencyGraph:
        adjacency: Dict[str, List[str]] = {
            repo: sorted(dep for dep in _unique(deps) if self.is_internal(dep))
            for repo, deps in repo_deps.items()
        }
        depths = _max_depths(adjacency)
        edges = sorted(
            {(source, target) for source, targets in adjacency.items() for target in targets}
        )

        nodes = [
            GraphNode(id=node_id, depth=depth, count=_count_of(counts, node_id, default=0))
            for node_id, depth in sorted(depths.items(), key=lambda item: (item[1], item[0]))
        ]
        links = [
            GraphEdge(source=source, target=target, count=_count_of(counts, target, default=1))
            for source, target in edges
        ]
        self.logger.debug("Built graph with %d nodes and %d links", len(nodes), len(links))
        return DependencyGraph(nodes=nodes, links=links)


def _max_depths(adjacency: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    """Return, per node, the length of the longest simple path from any root.

    Every key of ``adjacency`` is a root at depth 0. Components are visited in
    topological order so each node is settled once; only inside a cycle are
    simple paths enumerated.
    """
    nodes = sorted(set(adjacency).union(*adjacency.values()))
    entry: Dict[str, int] = {node: 0 for node in adjacency}
    depths: Dict[str, int] = {}
    for component in reversed(_strongly_connected(nodes, adjacency)):
        members = set(component)
        if len(component) == 1:
            node = component[0]
            depths[node] = entry[node]
        else:
            for node in component:
                depths[node] = -1
            for start in sorted(component):
                if start not in entry:
                    continue
                for node, length in _longest_within(start, members, adjacency).items():
                    depths[node] = max(depths[node], entry[start] + length)
        for node in component:
            for dep in adjacency.get(node, ()):
                if dep not in members:
                    entry[dep] = max(entry.get(dep, 0), depths[node] + 1)
    return depths


def _strongly_connected(
    nodes: Sequence[str], adjacency: Mapping[str, Sequence[str]]
) -> List[List[str]]:
    """Iterative Tarjan; components are returned in reverse topological order."""
    index: Dict[str, int] = {}
    lowlink: Dict[str, int] = {}
    on_stack: Set[str] = set()
    stack: List[str] = []
    components: List[List[str]] = []

    for root in nodes:
        if root in index:
            continue
        index[root] = lowlink[root] = len(index)
        stack.append(root)
        on_stack.add(root)
        work: List[Tuple[str, Iterator[str]]] = [(root, iter(adjacency.get(root, ())))]
        while work:
            node, children = work[-1]
            for child in children:
                if child not in index:
                    index[child] = lowlink[child] = len(index)
                    stack.append(child)
                    on_stack.add(child)
                    work.append((child, iter(adjacency.get(child, ()))))
                    break
                if child in on_stack:
                    lowlink[node] = min(lowlink[node], index[child])
            else:
                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])
                if lowlink[node] == index[node]:
                    component: List[str] = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node:
                            break
                    components.append(component)
    return components


def _longest_within(
    start: str, members: Set[str], adjacency: Mapping[str, Sequence[str]]
) -> Dict[str, int]:
    """Longest simple path from ``start`` to each member of one component."""
    best: Dict[str, int] = {start: 0}
    path: Set[str] = {start}

    def _inside(node: str) -> Iterator[str]:
        return (dep for dep in adjacency.get(node, ()) if dep in members)

    work: List[Tuple[str, Iterator[str]]] = [(start, _inside(start))]
    while work:
        node, children = work[-1]
        for child in children:
            if child in path:
                continue
            best[child] = max(best.get(child, 0), len(work))
            path.add(child)
            work.append((child, _inside(child)))
            break
        else:
            work.pop()
            path.discard(node)
    return best


def _unique(values: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(values))


def _count_of(counts: Mapping[str, DependencyCount], identifier: str, *, default: int) -> int:
    entry = counts.get(identifier)
    return entry.count if entry is not None else default


__all__ = ["GraphBuilder"]
