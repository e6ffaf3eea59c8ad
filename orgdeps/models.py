"""Core data models shared across orgdeps components."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RemoteContent:
    """Decoded file content returned by the remote API."""

    content: str
    token: Optional[str] = None


@dataclass
class CacheEntry:
    """Cached file content plus the change token it was fetched with."""

    content: str
    token: Optional[str]
    timestamp: float


@dataclass
class DirectoryEntry:
    """One item of a remote directory listing."""

    name: str
    path: str
    type: str

    @property
    def is_dir(self) -> bool:
        return self.type == "dir"


@dataclass
class DependencyCount:
    """How many distinct repositories depend on an internal package, and which."""

    count: int = 0
    sources: List[str] = field(default_factory=list)


@dataclass
class GraphNode:
    id: str
    depth: int
    count: int


@dataclass
class GraphEdge:
    source: str
    target: str
    count: int


@dataclass
class DependencyGraph:
    """Depth-layered graph of repositories and the internal packages they use."""

    nodes: List[GraphNode] = field(default_factory=list)
    links: List[GraphEdge] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [
                {"id": node.id, "depth": node.depth, "count": node.count}
                for node in self.nodes
            ],
            "links": [
                {"source": link.source, "target": link.target, "count": link.count}
                for link in self.links
            ],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DependencyGraph":
        nodes = [
            GraphNode(id=str(item["id"]), depth=int(item["depth"]), count=int(item["count"]))
            for item in payload.get("nodes", [])
            if isinstance(item, dict)
        ]
        links = [
            GraphEdge(
                source=str(item["source"]),
                target=str(item["target"]),
                count=int(item["count"]),
            )
            for item in payload.get("links", [])
            if isinstance(item, dict)
        ]
        return cls(nodes=nodes, links=links)
