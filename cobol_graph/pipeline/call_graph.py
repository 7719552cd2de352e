"""
CallGraph
=========

Directed multigraph over paragraph names and namespaced external-call
markers (``CALL::NAME``), backed by :class:`networkx.MultiDiGraph`.

Paragraph nodes carry ``kind="paragraph"``; external markers carry
``kind="external"`` and are leaves for reachability purposes: a program
invoked with ``CALL`` never makes a paragraph of *this* program reachable.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

import networkx as nx

from ..models import CallGraphEdge

logger = logging.getLogger(__name__)

PARAGRAPH = "paragraph"
EXTERNAL = "external"


class CallGraph:
    """
    Paragraph-level call graph.

    Parameters
    ----------
    external_prefix:
        Prefix that marks a target as an external program rather than a
        paragraph (``CALL::`` by default).
    """

    def __init__(self, external_prefix: str = "CALL::") -> None:
        self.external_prefix = external_prefix
        self._graph = nx.MultiDiGraph()
        # Ordered, duplicate-free targets per source, in edge insertion order.
        self._targets: Dict[str, List[str]] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_paragraph(self, name: str) -> None:
        if name in self._graph:
            self._graph.nodes[name]["kind"] = PARAGRAPH
        else:
            self._graph.add_node(name, kind=PARAGRAPH)
        self._targets.setdefault(name, [])

    def add_edge(self, edge: CallGraphEdge) -> None:
        if edge.source not in self._graph:
            self.add_paragraph(edge.source)
        if edge.target not in self._graph:
            kind = EXTERNAL if self.is_external(edge.target) else PARAGRAPH
            self._graph.add_node(edge.target, kind=kind)
        self._graph.add_edge(edge.source, edge.target)

        targets = self._targets.setdefault(edge.source, [])
        if edge.target not in targets:
            targets.append(edge.target)

    def add_edges(self, edges: Iterable[CallGraphEdge]) -> None:
        for edge in edges:
            self.add_edge(edge)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_external(self, name: str) -> bool:
        return name.startswith(self.external_prefix)

    @property
    def paragraphs(self) -> List[str]:
        return [n for n, kind in self._graph.nodes(data="kind") if kind == PARAGRAPH]

    def targets(self, paragraph: str) -> List[str]:
        return list(self._targets.get(paragraph, []))

    def edge_count(self, source: str, target: str) -> int:
        return self._graph.number_of_edges(source, target)

    def to_mapping(self) -> Dict[str, List[str]]:
        """Paragraph → ordered, duplicate-free target list."""
        return {name: list(targets) for name, targets in self._targets.items()}

    def reachable(self, entry: str) -> Set[str]:
        """
        Paragraphs reachable from *entry* by a depth-first walk that never
        enters an external-call marker.  *entry* is reachable by definition,
        even when it has no node.
        """
        if entry not in self._graph:
            return {entry}
        paragraph_view = nx.subgraph_view(
            self._graph,
            filter_node=lambda n: self._graph.nodes[n].get("kind") == PARAGRAPH,
        )
        return set(nx.dfs_preorder_nodes(paragraph_view, entry))

    def unreachable(self, paragraph_names: Iterable[str], entry: str) -> List[str]:
        """Names from *paragraph_names* not reachable from *entry* (recomputed per call)."""
        seen = self.reachable(entry)
        missing = [name for name in paragraph_names if name not in seen]
        if missing:
            logger.info("%d unreachable paragraph(s) from %s", len(missing), entry)
        return missing

    def to_networkx(self) -> nx.MultiDiGraph:
        """A copy of the underlying graph."""
        return self._graph.copy()

    def __contains__(self, name: object) -> bool:
        return name in self._graph

    def __len__(self) -> int:
        return self._graph.number_of_nodes()


def build_call_graph(
    paragraph_names: Iterable[str],
    edges: Iterable[CallGraphEdge],
    external_prefix: Optional[str] = None,
) -> CallGraph:
    graph = CallGraph(external_prefix or "CALL::")
    for name in paragraph_names:
        graph.add_paragraph(name)
    graph.add_edges(edges)
    return graph
