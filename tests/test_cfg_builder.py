"""
Tests for CFGBuilder and the ControlFlowGraph renderers.
"""
from __future__ import annotations

import json

import networkx as nx
import pytest

from cobol_graph.models import (
    ConditionDescriptor,
    GotoDescriptor,
    PerformDescriptor,
    StatementKind,
    StatementNode,
)
from cobol_graph.output.cfg_builder import CFGBuilder, CFGEdge, ControlFlowGraph


def stmt(kind: StatementKind, line: int, content: str = "", **kwargs) -> StatementNode:
    return StatementNode(kind=kind, expanded_line=line, content=content or kind.value, **kwargs)


def if_block(line: int, end: int, then) -> StatementNode:
    return stmt(
        StatementKind.CONDITION, line, "IF A = B", block_kind="IF", then=then,
        end_line=end, descriptor=ConditionDescriptor("A", "B", "="),
    )


def build(paragraphs) -> ControlFlowGraph:
    return CFGBuilder().build(paragraphs)


def pairs(line_pairs):
    return [(f"LINE_{a}", f"LINE_{b}") for a, b in line_pairs]


# ─────────────────────────────────────────────────────────────────────────────
# Derivation
# ─────────────────────────────────────────────────────────────────────────────


class TestDerivation:
    def test_if_block(self):
        main = [if_block(1, 3, [stmt(StatementKind.MOVE, 2)]), stmt(StatementKind.DISPLAY, 4)]
        cfg = build({"_MAIN": main})
        assert cfg.entry == "LINE_1"
        assert cfg.edge_pairs() == pairs([(1, 2), (1, 3), (3, 4)])
        assert [e.kind for e in cfg.edges] == ["seq", "block", "seq"]

    def test_nested_if(self):
        inner = if_block(2, 4, [stmt(StatementKind.MOVE, 3)])
        cfg = build({"_MAIN": [if_block(1, 5, [inner])]})
        assert cfg.edge_pairs() == pairs([(1, 2), (2, 2), (2, 3), (2, 3), (2, 4), (1, 5)])
        assert [e.kind for e in cfg.edges] == ["seq", "nested", "seq", "nested", "block", "block"]

    def test_nested_opener_emits_self_edge(self):
        inner = if_block(2, 4, [stmt(StatementKind.MOVE, 3)])
        cfg = build({"_MAIN": [if_block(1, 5, [inner])]})
        nested = [(e.from_id, e.to_id) for e in cfg.edges if e.kind == "nested"]
        assert ("LINE_2", "LINE_2") in nested

    def test_goto_edge(self):
        goto = stmt(StatementKind.GOTO, 1, "GO TO PARA-X", descriptor=GotoDescriptor("PARA-X"))
        cfg = build({"_MAIN": [goto, stmt(StatementKind.DISPLAY, 2)]})
        assert cfg.edge_pairs() == [("LINE_1", "PARA-X"), ("LINE_1", "LINE_2")]
        assert cfg.edges[0].kind == "goto"

    def test_perform_thru_edges(self):
        perform = stmt(StatementKind.PERFORM, 1, "PERFORM A THRU B", descriptor=PerformDescriptor("A", "B"))
        cfg = build({"_MAIN": [perform]})
        assert cfg.edge_pairs() == [("LINE_1", "A"), ("LINE_1", "B")]
        assert {e.kind for e in cfg.edges} == {"perform"}

    def test_unterminated_performs_stay_open(self):
        main = [
            stmt(StatementKind.PERFORM, 1, "PERFORM A", descriptor=PerformDescriptor("A")),
            stmt(StatementKind.PERFORM, 2, "PERFORM B", descriptor=PerformDescriptor("B")),
            stmt(StatementKind.MOVE, 3),
        ]
        cfg = build({"_MAIN": main})
        assert ("LINE_2", "LINE_3") in [(e.from_id, e.to_id) for e in cfg.edges if e.kind == "nested"]

    def test_paragraphs_are_independent(self):
        cfg = build({
            "_MAIN": [stmt(StatementKind.DISPLAY, 1)],
            "PARA-A": [stmt(StatementKind.MOVE, 5), stmt(StatementKind.MOVE, 6)],
        })
        assert cfg.edge_pairs() == pairs([(5, 6)])

    def test_events_sorted_by_line(self):
        # A child reported before its parent still comes out in line order.
        main = [if_block(4, 6, [stmt(StatementKind.MOVE, 5)]), stmt(StatementKind.DISPLAY, 2)]
        cfg = build({"_MAIN": main})
        assert cfg.entry == "LINE_4"
        assert cfg.edge_pairs()[0] == ("LINE_2", "LINE_4")

    @pytest.mark.parametrize("paragraphs", [{}, {"_MAIN": []}, {"PARA-A": [stmt(StatementKind.MOVE, 1)]}])
    def test_unknown_entry(self, paragraphs):
        assert build(paragraphs).entry == "UNKNOWN"

    def test_custom_main_paragraph(self):
        cfg = CFGBuilder("START").build({"START": [stmt(StatementKind.MOVE, 9)]})
        assert cfg.entry == "LINE_9"


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def graph():
    return ControlFlowGraph(
        entry="LINE_1",
        edges=[CFGEdge("LINE_1", "PARA-X", "goto"), CFGEdge("LINE_1", "LINE_2")],
    )


class TestRenderers:
    def test_nodes_in_first_appearance_order(self, graph):
        assert graph.nodes == ["LINE_1", "PARA-X", "LINE_2"]

    def test_to_dict(self, graph):
        assert graph.to_dict() == {
            "entryPoint": "LINE_1",
            "edges": [{"from": "LINE_1", "to": "PARA-X"}, {"from": "LINE_1", "to": "LINE_2"}],
        }
        assert json.loads(graph.to_json()) == graph.to_dict()

    def test_networkx(self, graph):
        g = graph.to_networkx()
        assert isinstance(g, nx.MultiDiGraph)
        assert g.nodes["PARA-X"]["kind"] == "paragraph"
        assert g.nodes["LINE_2"]["kind"] == "line"
        assert g.graph["entry"] == "LINE_1"

    def test_dot(self, graph):
        dot = graph.to_dot("PROG")
        assert dot.startswith('digraph "CFG" {')
        assert 'label="PROG";' in dot
        assert '"LINE_1" [shape=doubleoctagon' in dot
        assert '"LINE_1" -> "PARA-X" [label="goto"' in dot

    def test_mermaid(self, graph):
        text = graph.to_mermaid()
        assert "flowchart TD" in text
        assert 'LINE_1["LINE_1\\nENTRY"]:::entry' in text
        assert 'PARA_X["PARA-X"]:::paragraph' in text
        assert 'LINE_1 -->|"goto"| PARA_X' in text
        assert "LINE_1 --> LINE_2" in text

    def test_empty_graph(self):
        cfg = ControlFlowGraph()
        assert cfg.nodes == []
        assert cfg.to_dict() == {"entryPoint": "UNKNOWN", "edges": []}
