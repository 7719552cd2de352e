"""
Tests for CopybookResolver.
"""
from __future__ import annotations

import textwrap

import pytest

from cobol_graph.models import INCLUSION
from cobol_graph.passes.copy_resolver import DEPTH_EXCEEDED_MARKER, CopybookResolver
from cobol_graph.pipeline.config import AnalysisConfig


def _src(text: str) -> str:
    return textwrap.dedent(text).strip("\n")


# ─────────────────────────────────────────────────────────────────────────────
# Pass-through and markers
# ─────────────────────────────────────────────────────────────────────────────


class TestPassThrough:
    @pytest.fixture
    def resolver(self, tmp_path):
        return CopybookResolver(tmp_path)

    def test_no_directives_unchanged(self, resolver):
        source = "MOVE A TO B.\nDISPLAY B.\nGOBACK."
        result = resolver.resolve(source)
        assert result.expanded_text == source
        assert list(result.line_map) == [1, 2, 3]
        assert result.errors == []
        assert result.included_names == []

    def test_trailing_newline_not_a_line(self, resolver):
        result = resolver.resolve("MOVE A TO B.\n")
        assert result.expanded_lines == ["MOVE A TO B."]
        assert list(result.line_map) == [1]

    def test_copy_without_name_passed_through(self, resolver):
        result = resolver.resolve("COPY")
        assert result.expanded_lines == ["COPY"]
        assert result.errors == []

    def test_missing_copy_marker(self, resolver):
        source = _src("""
            MOVE A TO B.
            COPY NOPE.
            DISPLAY B.
        """)
        result = resolver.resolve(source, subject="PROG.cbl")
        assert result.expanded_lines == [
            "MOVE A TO B.",
            "*> #missing_copy <NOPE.*>",
            "DISPLAY B.",
        ]
        # Sibling statement lines are unaffected
        assert list(result.line_map) == [1, 2, 3]
        assert len(result.errors) == 1
        err = result.errors[0]
        assert err.category == INCLUSION
        assert err.subject == "PROG.cbl"
        assert err.line == 2

    def test_replacing_not_expanded(self, resolver, tmp_path):
        (tmp_path / "CUST.cpy").write_text("01 CUST-REC.\n")
        result = resolver.resolve("COPY CUST REPLACING ==X== BY ==Y==.")
        assert result.expanded_lines == [
            "*> #unsupported_copy_replacing <COPY CUST REPLACING ==X== BY ==Y==.>"
        ]
        assert len(result.errors) == 1
        assert result.included_names == []

    def test_inspect_replacing_untouched(self, resolver):
        source = "INSPECT WS-NAME REPLACING ALL 'A' BY 'B'."
        result = resolver.resolve(source)
        assert result.expanded_text == source
        assert result.errors == []


# ─────────────────────────────────────────────────────────────────────────────
# Expansion
# ─────────────────────────────────────────────────────────────────────────────


class TestExpansion:
    @pytest.fixture
    def resolver(self, tmp_path):
        (tmp_path / "CUST.cpy").write_text("01 CUST-REC.\n   05 CUST-ID PIC 9(5).\n")
        return CopybookResolver(tmp_path)

    def test_include_wrapped_with_markers(self, resolver):
        result = resolver.resolve("COPY CUST.\nMOVE A TO B.")
        assert result.expanded_lines == [
            "*> #include <CUST.cpy> line 1",
            "01 CUST-REC.",
            "   05 CUST-ID PIC 9(5).",
            "*> #endinclude <CUST.cpy>",
            "MOVE A TO B.",
        ]
        assert result.included_names == ["CUST.cpy"]
        assert result.errors == []

    def test_included_lines_map_inside_unit(self, resolver):
        result = resolver.resolve("COPY CUST.\nMOVE A TO B.")
        # Copybook lines map to their own position; markers to the directive.
        assert list(result.line_map) == [1, 1, 2, 1, 2]

    def test_line_map_length_matches_expanded_lines(self, resolver):
        result = resolver.resolve("DISPLAY 1.\nCOPY CUST.\nCOPY MISSING.\nDISPLAY 2.")
        assert len(result.line_map) == len(result.expanded_lines)

    def test_quoted_name_and_lowercase_directive(self, resolver):
        result = resolver.resolve("    copy 'CUST'.")
        assert result.included_names == ["CUST.cpy"]

    def test_extension_order(self, tmp_path):
        (tmp_path / "REC.cob").write_text("FROM-COB.\n")
        (tmp_path / "REC.cpy").write_text("FROM-CPY.\n")
        result = CopybookResolver(tmp_path).resolve("COPY REC.")
        assert "FROM-CPY." in result.expanded_lines
        assert "FROM-COB." not in result.expanded_lines

    def test_custom_extensions(self, tmp_path):
        (tmp_path / "REC.txt").write_text("X.\n")
        config = AnalysisConfig(copy_extensions=(".txt",))
        result = CopybookResolver(tmp_path, config).resolve("COPY REC.")
        assert result.included_names == ["REC.txt"]

    def test_content_cached_across_calls(self, resolver, tmp_path):
        resolver.resolve("COPY CUST.")
        (tmp_path / "CUST.cpy").unlink()
        result = resolver.resolve("COPY CUST.")
        assert "01 CUST-REC." in result.expanded_lines
        assert result.errors == []

    def test_no_include_dir_reports_missing(self):
        result = CopybookResolver().resolve("COPY CUST.")
        assert result.expanded_lines == ["*> #missing_copy <CUST.*>"]


# ─────────────────────────────────────────────────────────────────────────────
# Cycles and depth
# ─────────────────────────────────────────────────────────────────────────────


class TestCyclesAndDepth:
    def test_circular_chain_single_marker(self, tmp_path):
        (tmp_path / "A.cpy").write_text("COPY B.\n")
        (tmp_path / "B.cpy").write_text("COPY A.\n")
        result = CopybookResolver(tmp_path).resolve("COPY A.")
        markers = [l for l in result.expanded_lines if l.startswith("*> #circular_copy")]
        assert markers == ["*> #circular_copy <A.cpy>"]
        assert len(result.errors) == 1
        assert result.included_names == ["A.cpy", "B.cpy"]

    def test_repeated_sibling_copy_not_circular(self, tmp_path):
        (tmp_path / "A.cpy").write_text("X.\n")
        result = CopybookResolver(tmp_path).resolve("COPY A.\nCOPY A.")
        assert result.expanded_lines.count("X.") == 2
        assert not any("#circular_copy" in l for l in result.expanded_lines)
        assert result.included_names == ["A.cpy"]
        assert result.errors == []

    def test_self_include(self, tmp_path):
        (tmp_path / "SELF.cpy").write_text("COPY SELF.\n")
        result = CopybookResolver(tmp_path).resolve("COPY SELF.")
        assert "*> #circular_copy <SELF.cpy>" in result.expanded_lines
        assert len(result.errors) == 1

    def test_depth_cap(self, tmp_path):
        for i in range(5):
            (tmp_path / f"F{i}.cpy").write_text(f"COPY F{i + 1}.\n")
        (tmp_path / "F5.cpy").write_text("LEAF.\n")
        config = AnalysisConfig(max_copy_depth=2)
        result = CopybookResolver(tmp_path, config).resolve("COPY F0.")
        assert DEPTH_EXCEEDED_MARKER in result.expanded_lines
        assert "LEAF." not in result.expanded_lines
        depth_errors = [e for e in result.errors if "depth" in e.message]
        assert len(depth_errors) == 1
        assert len(result.line_map) == len(result.expanded_lines)

    def test_default_depth_allows_ten_levels(self, tmp_path):
        for i in range(9):
            (tmp_path / f"F{i}.cpy").write_text(f"COPY F{i + 1}.\n")
        (tmp_path / "F9.cpy").write_text("LEAF.\n")
        result = CopybookResolver(tmp_path).resolve("COPY F0.")
        assert "LEAF." in result.expanded_lines
        assert result.errors == []
