"""
cfg_builder.py
==============

Derive and render the line-level **Control Flow Graph** (CFG) of a program
from its post-processed statement trees.

Graph semantics
---------------
* **Nodes** – ``LINE_<n>`` markers for statements and terminators, plus
  paragraph names reached by GO TO / PERFORM.
* **Entry** – ``LINE_<n>`` of the first statement of the main paragraph, or
  ``UNKNOWN`` when that paragraph is missing or empty.
* **Edges**

  ============  ==========================================================
  Kind          Meaning
  ============  ==========================================================
  ``seq``       Fall-through between consecutive statements.
  ``goto``      GO TO → destination paragraph.
  ``perform``   PERFORM → start (and end) paragraph.
  ``block``     Block opener → its terminator line.
  ``nested``    Enclosing block opener → statement, while depth > 1.
  ============  ==========================================================

Derivation
----------
Each paragraph tree is flattened in pre-order; every node with an
``end_line`` contributes a synthetic terminator event after its subtree.
Events are stable-sorted by line and replayed against a block stack.

Outputs
-------
* **DOT** (Graphviz) – renderable with ``dot -Tsvg -o out.svg graph.dot``.
* **JSON** – ``{"entryPoint": ..., "edges": [{"from", "to"}, ...]}``.
* **Mermaid** – embeddable in GitHub Markdown.
* **NetworkX** – a :class:`networkx.MultiDiGraph` for further analysis.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import networkx as nx

from ..models import (
    GotoDescriptor,
    LoopDescriptor,
    PerformDescriptor,
    StatementKind,
    StatementNode,
)

# ---------------------------------------------------------------------------
# Colour constants
# ---------------------------------------------------------------------------

_EDGE_COLOR = {
    "seq":     "#444444",
    "goto":    "#E74C3C",   # alizarin red
    "perform": "#2E86AB",   # steel blue
    "block":   "#27AE60",   # emerald green
    "nested":  "#AAAAAA",
}
_ENTRY_FILL = "#2E86AB"
_PARAGRAPH_FILL = "#27AE60"

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_]")


def line_marker(line: Optional[int]) -> str:
    return f"LINE_{line}"


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass
class CFGEdge:
    """A directed control-flow edge."""

    from_id: str
    to_id: str
    kind: str = "seq"     # "seq" | "goto" | "perform" | "block" | "nested"

    def to_dict(self) -> Dict[str, str]:
        return {"from": self.from_id, "to": self.to_id}


@dataclass
class ControlFlowGraph:
    """Program-level, line-granular control flow graph."""

    entry: str = "UNKNOWN"
    edges: List[CFGEdge] = field(default_factory=list)

    @property
    def nodes(self) -> List[str]:
        """Every node id in first-appearance order."""
        seen: Dict[str, None] = {}
        if self.entry != "UNKNOWN":
            seen[self.entry] = None
        for edge in self.edges:
            seen.setdefault(edge.from_id, None)
            seen.setdefault(edge.to_id, None)
        return list(seen)

    def edge_pairs(self) -> List[Tuple[str, str]]:
        return [(e.from_id, e.to_id) for e in self.edges]

    # ------------------------------------------------------------------
    # NetworkX
    # ------------------------------------------------------------------

    def to_networkx(self) -> nx.MultiDiGraph:
        g = nx.MultiDiGraph(entry=self.entry)
        for node in self.nodes:
            g.add_node(node, kind="line" if node.startswith("LINE_") else "paragraph")
        for edge in self.edges:
            g.add_edge(edge.from_id, edge.to_id, kind=edge.kind)
        return g

    # ------------------------------------------------------------------
    # JSON renderer
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            "entryPoint": self.entry,
            "edges": [e.to_dict() for e in self.edges],
        }

    def to_json(self, indent: int = 2) -> str:
        """Return the graph serialised to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    # ------------------------------------------------------------------
    # DOT (Graphviz) renderer
    # ------------------------------------------------------------------

    def to_dot(self, title: str = "") -> str:
        """Render the graph as a Graphviz DOT string."""
        title = title or "Control Flow Graph"
        lines: List[str] = [
            'digraph "CFG" {',
            f'    label="{title}";',
            '    labelloc=t;',
            '    rankdir=TB;',
            '    node [fontname="Courier New", fontsize=11, shape=box];',
            '    edge [fontname="Courier New", fontsize=9];',
            '',
        ]
        for node in self.nodes:
            if node == self.entry:
                attrs = f'shape=doubleoctagon, style=filled, fillcolor="{_ENTRY_FILL}", fontcolor=white'
            elif not node.startswith("LINE_"):
                attrs = f'style=filled, fillcolor="{_PARAGRAPH_FILL}", fontcolor=white'
            else:
                attrs = "shape=box"
            lines.append(f'    "{node}" [{attrs}];')
        lines.append('')
        for edge in self.edges:
            color = _EDGE_COLOR.get(edge.kind, "#444444")
            style = "dashed" if edge.kind == "nested" else "solid"
            lines.append(
                f'    "{edge.from_id}" -> "{edge.to_id}" '
                f'[label="{edge.kind}", color="{color}", style={style}];'
            )
        lines.append('}')
        return '\n'.join(lines) + '\n'

    # ------------------------------------------------------------------
    # Mermaid renderer
    # ------------------------------------------------------------------

    def to_mermaid(self, title: str = "") -> str:
        """
        Render the graph as a Mermaid flowchart.

        Paste the output inside a ````` ```mermaid ``` ``` fenced code block.
        """
        title = title or "Control Flow Graph"
        lines: List[str] = ["---", f'title: "{title}"', "---", "flowchart TD"]
        for node in self.nodes:
            safe_id = _SAFE_ID_RE.sub("_", node)
            if node == self.entry:
                lines.append(f'    {safe_id}["{node}\\nENTRY"]:::entry')
            elif not node.startswith("LINE_"):
                lines.append(f'    {safe_id}["{node}"]:::paragraph')
            else:
                lines.append(f'    {safe_id}["{node}"]')
        lines.append('')
        for edge in self.edges:
            from_id = _SAFE_ID_RE.sub("_", edge.from_id)
            to_id = _SAFE_ID_RE.sub("_", edge.to_id)
            if edge.kind == "seq":
                lines.append(f'    {from_id} --> {to_id}')
            elif edge.kind == "nested":
                lines.append(f'    {from_id} -.-> {to_id}')
            else:
                lines.append(f'    {from_id} -->|"{edge.kind}"| {to_id}')
        lines.append('')
        lines.append('    classDef entry     fill:#2E86AB,color:#fff,stroke:#1a5276')
        lines.append('    classDef paragraph fill:#27AE60,color:#fff,stroke:#1e8449')
        return '\n'.join(lines) + '\n'


# ---------------------------------------------------------------------------
# CFGBuilder
# ---------------------------------------------------------------------------

_STMT = 0
_END = 1


def _events(statements: Sequence[StatementNode]) -> List[Tuple[int, int, StatementNode]]:
    """Pre-order (line, event, node) list with a terminator after each closed subtree."""
    out: List[Tuple[int, int, StatementNode]] = []

    def visit(node: StatementNode) -> None:
        out.append((node.line, _STMT, node))
        for block in node.child_lists():
            for child in block:
                visit(child)
        if node.end_line is not None:
            out.append((node.end_line, _END, node))

    for stmt in statements:
        visit(stmt)
    out.sort(key=lambda e: e[0])
    return out


def _opens_block(node: StatementNode) -> bool:
    if node.kind in (StatementKind.AT_END, StatementKind.NOT_AT_END):
        return True
    if node.kind == StatementKind.PERFORM:
        return isinstance(node.descriptor, (PerformDescriptor, LoopDescriptor))
    return node.block_kind in ("IF", "EVALUATE")


class CFGBuilder:
    """
    Build a :class:`ControlFlowGraph` from post-processed paragraphs.

    Parameters
    ----------
    main_paragraph:
        Paragraph whose first statement is the graph's entry.
    """

    def __init__(self, main_paragraph: str = "_MAIN") -> None:
        self.main_paragraph = main_paragraph

    def build(self, paragraphs: Mapping[str, Sequence[StatementNode]]) -> ControlFlowGraph:
        graph = ControlFlowGraph()
        main = paragraphs.get(self.main_paragraph)
        if main:
            graph.entry = line_marker(main[0].line)
        for statements in paragraphs.values():
            self._paragraph(statements, graph.edges)
        return graph

    @staticmethod
    def _paragraph(statements: Sequence[StatementNode], edges: List[CFGEdge]) -> None:
        stack: List[StatementNode] = []
        prev: Optional[str] = None

        for line, event, node in _events(statements):
            current = line_marker(line)

            if event == _END:
                if any(open_node is node for open_node in stack):
                    while True:
                        opener = stack.pop()
                        if opener is node:
                            break
                    edges.append(CFGEdge(line_marker(node.line), current, "block"))
            else:
                if prev is not None:
                    edges.append(CFGEdge(prev, current, "seq"))
                if isinstance(node.descriptor, GotoDescriptor):
                    edges.append(CFGEdge(current, node.descriptor.destination, "goto"))
                elif node.kind == StatementKind.PERFORM and isinstance(node.descriptor, PerformDescriptor):
                    edges.append(CFGEdge(current, node.descriptor.start, "perform"))
                    if node.descriptor.end is not None:
                        edges.append(CFGEdge(current, node.descriptor.end, "perform"))
                if _opens_block(node):
                    stack.append(node)

            # A freshly pushed nested opener yields a self-edge.
            if len(stack) > 1:
                edges.append(CFGEdge(line_marker(stack[-1].line), current, "nested"))
            prev = current
