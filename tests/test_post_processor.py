"""
Tests for PostProcessor passes.
"""
from __future__ import annotations

import copy

import pytest

from cobol_graph.models import (
    STRUCTURAL,
    CallDescriptor,
    ConditionDescriptor,
    FileDescription,
    FileOpDescriptor,
    GotoDescriptor,
    LoopDescriptor,
    PerformDescriptor,
    SourceLineMap,
    StatementKind,
    StatementNode,
)
from cobol_graph.pipeline.file_catalog import FileCatalog
from cobol_graph.pipeline.post_processor import PostProcessor, parse_condition


def node(kind: StatementKind, line: int, content: str, **kwargs) -> StatementNode:
    return StatementNode(kind=kind, expanded_line=line, content=content, **kwargs)


@pytest.fixture
def processor():
    return PostProcessor(SourceLineMap([10, 11, 12, 13, 14]))


# ─────────────────────────────────────────────────────────────────────────────
# Pass 1 – unify
# ─────────────────────────────────────────────────────────────────────────────


class TestUnify:
    def test_later_duplicates_dropped(self, processor):
        stmts = [
            node(StatementKind.MOVE, 1, "MOVE A TO B"),
            node(StatementKind.MOVE, 1, "MOVE A TO B"),
            node(StatementKind.MOVE, 2, "MOVE A TO B"),
        ]
        first = stmts[0]
        processor.unify("P", stmts)
        assert len(stmts) == 2
        assert stmts[0] is first

    def test_duplicate_inside_nested_block(self, processor):
        inner = node(StatementKind.MOVE, 2, "MOVE A TO B")
        outer = node(StatementKind.IF, 1, "IF X = Y", then=[inner, copy.copy(inner)])
        stmts = [outer, copy.copy(inner)]
        processor.unify("P", stmts)
        assert stmts == [outer]
        assert outer.then == [inner]

    def test_lines_remapped(self, processor):
        n = node(StatementKind.IF, 2, "IF A = B", then=[node(StatementKind.MOVE, 3, "MOVE 1 TO C")],
                 expanded_end_line=4)
        processor.unify("P", [n])
        assert n.line == 11
        assert n.then[0].line == 12
        assert n.end_line == 13
        assert n.expanded_line == 2

    def test_out_of_range_line_kept(self, processor):
        n = node(StatementKind.MOVE, 99, "MOVE A TO B")
        processor.unify("P", [n])
        assert n.line == 99

    def test_empty_lists_pruned(self, processor):
        n = node(StatementKind.EVALUATE, 1, "EVALUATE X", then=[], cases=[])
        processor.unify("P", [n])
        assert n.then is None
        assert n.cases is None

    def test_idempotent(self, processor):
        stmts = [
            node(StatementKind.IF, 1, "IF A = B", then=[node(StatementKind.MOVE, 2, "MOVE A TO B")],
                 else_=[], expanded_end_line=3),
            node(StatementKind.DISPLAY, 4, "DISPLAY A"),
            node(StatementKind.DISPLAY, 4, "DISPLAY A"),
        ]
        processor.unify("P", stmts)
        once = [s.to_dict() for s in stmts]
        processor.unify("P", stmts)
        assert [s.to_dict() for s in stmts] == once


# ─────────────────────────────────────────────────────────────────────────────
# Passes 2 and 3 – descriptors
# ─────────────────────────────────────────────────────────────────────────────


class TestDescriptors:
    def test_perform_thru(self, processor):
        n = node(StatementKind.PERFORM, 1, "PERFORM A THRU B",
                 attributes={"target": "A", "thru": "B", "parent": "P", "loop_level": 0})
        processor.canonicalize_metadata([n])
        assert n.descriptor == PerformDescriptor("A", "B", 0, "P")
        assert n.attributes == {}

    def test_loop(self, processor):
        n = node(StatementKind.PERFORM, 1, "PERFORM UNTIL X > 1",
                 attributes={"varying": {"until": "X > 1"}, "parent": "P", "loop_level": 2})
        processor.canonicalize_metadata([n])
        assert n.descriptor == LoopDescriptor("UNKNOWN", "UNKNOWN", "UNKNOWN", "X > 1", 2, "P")

    def test_call(self, processor):
        n = node(StatementKind.CALL, 1, "CALL 'S' USING X",
                 attributes={"program": "S", "parameters": ["X"], "parent": "P"})
        processor.canonicalize_metadata([n])
        assert n.descriptor == CallDescriptor("S", ["X"], "P")

    def test_goto(self, processor):
        n = node(StatementKind.GOTO, 1, "GO TO Z", attributes={"target": "Z", "parent": "P"})
        processor.canonicalize_metadata([n])
        assert n.descriptor == GotoDescriptor("Z", "P")

    def test_file_op(self, processor):
        fd = FileDescription(name="F")
        n = node(StatementKind.OPEN, 1, "OPEN INPUT F",
                 attributes={"file": "F", "file_description": fd, "parent": "P"})
        processor.canonicalize_metadata([n])
        assert n.descriptor == FileOpDescriptor("F", fd, "P")

    def test_nested_nodes_canonicalized(self, processor):
        inner = node(StatementKind.GOTO, 2, "GO TO Z", attributes={"target": "Z", "parent": "P"})
        outer = node(StatementKind.IF, 1, "IF A = B", then=[inner])
        processor.canonicalize_metadata([outer])
        assert isinstance(inner.descriptor, GotoDescriptor)

    def test_backfill_perform(self, processor):
        n = node(StatementKind.PERFORM, 1, "PERFORM PARA-A THRU PARA-B.",
                 pseudocode="call PARA-A thru PARA-B;")
        processor.backfill_performs([n])
        assert n.descriptor == PerformDescriptor("PARA-A", "PARA-B", 0, None)
        assert n.pseudocode == "call PARA-A thru PARA-B"

    def test_backfill_strips_one_semicolon_only(self, processor):
        n = node(StatementKind.PERFORM, 1, "PERFORM", pseudocode="call X;;")
        processor.backfill_performs([n])
        assert n.pseudocode == "call X;"
        assert n.descriptor is None


# ─────────────────────────────────────────────────────────────────────────────
# Passes 4-7
# ─────────────────────────────────────────────────────────────────────────────


class TestNormalisation:
    def test_duplicate_paragraph_first_kept(self, processor):
        first = [node(StatementKind.DISPLAY, 1, "DISPLAY 1")]
        errors = []
        kept = processor.dedupe_paragraphs(
            [("A", first), ("B", []), ("A", [node(StatementKind.DISPLAY, 2, "DISPLAY 2")])], errors,
        )
        assert list(kept) == ["A", "B"]
        assert kept["A"] is first
        assert len(errors) == 1
        assert errors[0].category == STRUCTURAL

    def test_pseudocode_whitespace(self, processor):
        n = node(StatementKind.MOVE, 1, "MOVE A TO B", pseudocode="  B  =   A; ")
        processor.normalize_pseudocode([n])
        assert n.pseudocode == "B = A;"

    @pytest.mark.parametrize("content, expected", [
        ("DISPLAY 'HI'", StatementKind.DISPLAY),
        ("STOP RUN.", StatementKind.STOP_RUN),
        ("GOBACK", StatementKind.GOBACK),
        ("DISPLAYED-X = 1", StatementKind.OTHER),
        ("INITIALIZE WS-REC", StatementKind.OTHER),
    ])
    def test_type_promotion(self, processor, content, expected):
        n = node(StatementKind.OTHER, 1, content)
        processor.promote_types([n])
        assert n.kind == expected

    def test_at_end_gets_empty_then(self, processor):
        at_end = node(StatementKind.OTHER, 1, "AT END MOVE 'Y' TO EOF")
        not_at_end = node(StatementKind.OTHER, 2, "NOT AT END ADD 1 TO N")
        outer = node(StatementKind.IF, 0, "IF X = Y", then=[at_end, not_at_end])
        processor.promote_types([outer])
        assert at_end.kind == StatementKind.AT_END
        assert at_end.then == []
        assert not_at_end.kind == StatementKind.NOT_AT_END
        assert not_at_end.then == []

    def test_condition_extracted_and_retyped(self, processor):
        n = node(StatementKind.IF, 1, "IF A = B.", block_kind="IF", then=[])
        processor.extract_conditions([n])
        assert n.kind == StatementKind.CONDITION
        assert n.descriptor == ConditionDescriptor("A", "B", "=")
        assert n.block_kind == "IF"

    def test_condition_without_operator_untouched(self, processor):
        n = node(StatementKind.IF, 1, "IF WS-EOF")
        processor.extract_conditions([n])
        assert n.kind == StatementKind.IF
        assert n.descriptor is None

    @pytest.mark.parametrize("content, expected", [
        ("IF A = B.", ("A", "B", "=")),
        ("IF WS-A > 10 THEN", ("WS-A", "10", ">")),
        ("WHEN X < 5", ("X", "5", "<")),
        ("ELSE IF Y = 'N'", ("Y", "'N'", "=")),
        # "=" is tried before "NOT=", so NOT= splits on its "="
        ("IF A NOT= B", ("A NOT", "B", "=")),
        ("IF A = B = C", None),
        ("WHEN OTHER", None),
    ])
    def test_parse_condition(self, content, expected):
        result = parse_condition(content)
        if expected is None:
            assert result is None
        else:
            assert (result.lhs, result.rhs, result.operator) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Pass 8 and the full run
# ─────────────────────────────────────────────────────────────────────────────


class TestProcess:
    def test_file_ops_repointed_to_catalog(self):
        canonical = FileDescription(name="CUST-FILE", label="STANDARD")
        catalog = FileCatalog(descriptions={"CUST-FILE": canonical})
        n = node(StatementKind.READ, 1, "READ CUST-FILE", attributes={"file": "CUST-FILE", "parent": "P"})
        result = PostProcessor(catalog=catalog).process([("P", [n])])
        assert n.descriptor.description is canonical
        assert result.file_descriptions == {"CUST-FILE": canonical}

    def test_process_runs_all_passes(self):
        stmts = [
            node(StatementKind.IF, 1, "IF A = B.", block_kind="IF", expanded_end_line=3, end_line=3,
                 then=[node(StatementKind.MOVE, 2, "MOVE X TO Y.", pseudocode="Y  = X;")]),
            node(StatementKind.OTHER, 4, "DISPLAY Y"),
        ]
        result = PostProcessor(SourceLineMap([5, 6, 7, 8]), subject="PROG").process([("_MAIN", stmts)])
        main = result.paragraphs["_MAIN"]
        assert main[0].kind == StatementKind.CONDITION
        assert main[0].line == 5
        assert main[0].end_line == 7
        assert main[0].then[0].pseudocode == "Y = X;"
        assert main[1].kind == StatementKind.DISPLAY
        assert result.control_flow.entry == "LINE_5"
        assert ("LINE_5", "LINE_7") in result.control_flow.edge_pairs()
