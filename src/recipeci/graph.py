# graph.py
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from .errors import AncestorWarning
from .model import RecipeNode


class DependencyGraph:
    """
    Ordered, de-duplicated set of RecipeNode keyed by identifier.

    Nodes are stored flat (arena style); a re-encountered identifier is
    detected by lookup, never by following parent pointers.

    Invariants:
      - an identifier appears at most once
      - iteration order is discovery order (root first)
      - no node is deeper than max_depth
    """

    def __init__(self, root: str, max_depth: int):
        self.root = root
        self.max_depth = max_depth
        self.base_repo_url: Optional[str] = None
        self._nodes: Dict[str, RecipeNode] = {}

    def add(self, node: RecipeNode) -> None:
        if node.identifier in self._nodes:
            raise ValueError(f"Duplicate recipe in dependency graph: {node.identifier}")
        if node.depth > self.max_depth:
            raise ValueError(
                f"Recipe {node.identifier} at depth {node.depth} exceeds max_depth={self.max_depth}"
            )
        self._nodes[node.identifier] = node

    def get(self, identifier: str) -> Optional[RecipeNode]:
        return self._nodes.get(identifier)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._nodes

    def __iter__(self) -> Iterator[RecipeNode]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"DependencyGraph(root={self.root!r}, nodes={list(self._nodes)})"

    @property
    def nodes(self) -> List[RecipeNode]:
        return list(self._nodes.values())

    def pairs(self) -> List[Tuple[str, str]]:
        """(identifier, repo_url) for every node, discovery order."""
        return [(n.identifier, n.repo_url) for n in self._nodes.values()]

    def repo_urls(self) -> List[str]:
        """Unique repository URLs in discovery order, base repository last."""
        out: List[str] = []
        for n in self._nodes.values():
            if n.repo_url and n.repo_url not in out:
                out.append(n.repo_url)
        if self.base_repo_url and self.base_repo_url not in out:
            out.append(self.base_repo_url)
        return out

    def warnings(self) -> List[AncestorWarning]:
        return [w for n in self._nodes.values() for w in n.warnings]


def collect_repo_urls(graphs: Iterable[DependencyGraph] | Mapping[str, DependencyGraph]) -> List[str]:
    """Merge the repository URLs of many graphs, keeping first-seen order."""
    if isinstance(graphs, Mapping):
        graphs = graphs.values()
    seen: List[str] = []
    for g in graphs:
        for url in g.repo_urls():
            if url not in seen:
                seen.append(url)
    return seen
