"""
Mermaid renderers for the paragraph call graph and the data-flow movements.

Both return a ``graph TD`` flowchart; paste the output inside a
````` ```mermaid ``` ``` fenced code block.
"""
from __future__ import annotations

import re
from typing import List, Mapping, Sequence, Union

from ..models import MovementRecord
from ..pipeline.call_graph import CallGraph

_SAFE_ID_RE = re.compile(r"[^A-Za-z0-9_]")


def _node(name: str) -> str:
    safe = _SAFE_ID_RE.sub("_", name)
    return safe if safe == name else f'{safe}["{name}"]'


def call_graph_mermaid(
    call_graph: Union[CallGraph, Mapping[str, Sequence[str]]],
    external_prefix: str = "CALL::",
) -> str:
    """
    Render paragraph → target edges.  ``CALL::NAME`` targets are drawn as
    ``CALL_NAME`` nodes in the ``externalCall`` class.
    """
    if isinstance(call_graph, CallGraph):
        external_prefix = call_graph.external_prefix
        mapping = call_graph.to_mapping()
    else:
        mapping = call_graph

    lines: List[str] = ["graph TD"]
    externals: List[str] = []
    for source, targets in mapping.items():
        for target in targets:
            if target.startswith(external_prefix):
                label = target[len(external_prefix):]
                target_id = _SAFE_ID_RE.sub("_", f"CALL_{label}")
                if target_id not in externals:
                    externals.append(target_id)
            else:
                target_id = _node(target)
            lines.append(f"  {_node(source)} --> {target_id}")

    for target_id in externals:
        lines.append(f"  {target_id}:::externalCall")

    lines.append("")
    lines.append("classDef externalCall fill:#fdd,stroke:#d00;")
    return "\n".join(lines) + "\n"


def data_flow_mermaid(movements: Sequence[MovementRecord]) -> str:
    """
    Render one edge per (source, target) of every movement, labelled with the
    operation.  Source-less records start at ``INPUT``; target-less records
    end at ``EXTERNAL``.
    """
    lines: List[str] = ["graph TD"]
    for m in movements:
        target = _node(m.target) if m.target is not None else "EXTERNAL"
        sources = [_node(s) for s in m.sources] or ["INPUT"]
        for src in sources:
            lines.append(f"  {src} -->|{m.operation}| {target}")
    lines.append("")
    lines.append("classDef external fill:#fdd,stroke:#d00;")
    return "\n".join(lines) + "\n"
