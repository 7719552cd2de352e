"""
BlockStructurer
===============

Rebuilds the nested block structure of one paragraph from its flat,
line-numbered statement sequence.

A control stack holds one :class:`_Frame` per open block.  Each frame
remembers which of its child lists (``then`` / ``else`` / ``cases``) is
active, so a statement that follows a nested ``END-IF`` lands back in the
branch the outer block was in.

Placement rule
--------------
A node is appended to the active child list of the frame on top of the
stack, or to the paragraph's top-level list when the stack is empty.  An
IF's ``then`` list stays active past its ELSE while it is still empty.  Block
nodes (IF, EVALUATE, PERFORM) are placed when they *close*, against the new
top; a chained ``ELSE IF`` is placed into the enclosing IF's else-list as
soon as it opens.

+-------------------+----------------------------------------------------+
| Statement         | Effect                                             |
+===================+====================================================+
| IF                | push, then-phase, complexity + 1                   |
+-------------------+----------------------------------------------------+
| ELSE IF           | nested IF in top IF's else-list, push, + 1         |
+-------------------+----------------------------------------------------+
| ELSE              | marker in top IF's else-list, else-phase           |
+-------------------+----------------------------------------------------+
| EVALUATE          | push, cases-phase, + 1                             |
+-------------------+----------------------------------------------------+
| WHEN              | leaf in top EVALUATE's cases, + 1                  |
+-------------------+----------------------------------------------------+
| PERFORM           | push, edges to targets, + 1                        |
+-------------------+----------------------------------------------------+
| END-xxx           | pop matching opener, record ``end_line``           |
+-------------------+----------------------------------------------------+
| CALL / GO TO      | leaf, one call-graph edge                          |
+-------------------+----------------------------------------------------+

Residual frames at the end of the paragraph are force-closed in LIFO order,
each with an "Unclosed" diagnostic.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..models import (
    MALFORMED_STATEMENT,
    STRUCTURAL,
    CallGraphEdge,
    FileDescription,
    Paragraph,
    ParsingError,
    RawStatementLine,
    StatementKind,
    StatementNode,
)
from ..pipeline.config import AnalysisConfig
from ..pipeline.keywords import FILE_VERBS, TERMINATORS
from .statement_classifier import ELSE_IF, StatementClassifier
from .statement_text import (
    parse_call,
    parse_file_name,
    parse_goto,
    parse_perform,
    perform_targets,
    render_pseudocode,
)

logger = logging.getLogger(__name__)

THEN = "then"
ELSE = "else"
CASES = "cases"


@dataclass
class ParagraphStructure:
    """Everything the structurer derives from one paragraph."""

    name: str
    statements: List[StatementNode] = field(default_factory=list)
    edges: List[CallGraphEdge] = field(default_factory=list)
    call_targets: List[str] = field(default_factory=list)
    perform_targets: List[str] = field(default_factory=list)
    goto_targets: List[str] = field(default_factory=list)
    complexity: int = 1
    errors: List[ParsingError] = field(default_factory=list)


@dataclass
class _Frame:
    node: StatementNode
    opener: str
    phase: str
    chained: bool = False

    def active_list(self) -> List[StatementNode]:
        if self.phase == CASES:
            if self.node.cases is None:
                self.node.cases = []
            return self.node.cases
        # A then-branch that is still empty keeps collecting, even after ELSE.
        if self.phase == THEN or not self.node.then:
            if self.node.then is None:
                self.node.then = []
            return self.node.then
        return self.else_list()

    def else_list(self) -> List[StatementNode]:
        if self.node.else_ is None:
            self.node.else_ = []
        return self.node.else_


class BlockStructurer:
    """
    Turns a :class:`~cobol_graph.models.Paragraph` into a statement tree.

    Parameters
    ----------
    config:
        Supplies the control keywords, the external-call prefix and the
        out-of-line PERFORM switch.
    file_descriptions:
        Name-keyed FDs (see :class:`~cobol_graph.pipeline.file_catalog.FileCatalog`)
        attached by reference to OPEN / READ / WRITE / CLOSE nodes.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        file_descriptions: Optional[Mapping[str, FileDescription]] = None,
    ) -> None:
        self._config = config or AnalysisConfig()
        self._classifier = StatementClassifier(self._config)
        self._file_descriptions: Mapping[str, FileDescription] = file_descriptions or {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def structure(self, paragraph: Paragraph, program_id: str = "UNKNOWN") -> ParagraphStructure:
        """
        Build the statement tree, edges, target lists and complexity of
        *paragraph*.  Never raises on malformed input; problems become
        entries in ``ParagraphStructure.errors``.
        """
        result = ParagraphStructure(name=paragraph.name)
        stack: List[_Frame] = []

        for raw in paragraph.lines:
            if not raw.text:
                continue
            self._consume(raw, paragraph.name, program_id, stack, result)

        while stack:
            frame = stack.pop()
            self._error(
                result, program_id,
                f"Unclosed {frame.opener} block opened at line {frame.node.expanded_line}",
                frame.node.expanded_line, STRUCTURAL,
            )
            if not frame.chained:
                self._place(frame.node, stack, result)

        logger.debug(
            "Paragraph %s: %d top-level statement(s), complexity %d",
            paragraph.name, len(result.statements), result.complexity,
        )
        return result

    # ------------------------------------------------------------------
    # Per-line dispatch
    # ------------------------------------------------------------------

    def _consume(
        self,
        raw: RawStatementLine,
        paragraph: str,
        program_id: str,
        stack: List[_Frame],
        result: ParagraphStructure,
    ) -> None:
        keyword = self._classifier.classify(raw.text)

        if keyword in TERMINATORS:
            self._close(keyword, raw, program_id, stack, result)
            return

        if keyword == ELSE_IF:
            self._open_else_if(raw, program_id, stack, result)
            return

        if keyword == "ELSE":
            if not stack or stack[-1].opener != "IF":
                self._error(result, program_id, "Unmatched ELSE: no open IF block",
                            raw.line, STRUCTURAL)
                return
            top = stack[-1]
            top.phase = ELSE
            top.else_list().append(self._node(StatementKind.ELSE, keyword, raw))
            return

        if keyword == "IF":
            result.complexity += 1
            node = self._node(StatementKind.IF, keyword, raw)
            self._push(node, "IF", THEN, stack)
            return

        if keyword == "EVALUATE":
            result.complexity += 1
            node = self._node(StatementKind.EVALUATE, keyword, raw)
            self._push(node, "EVALUATE", CASES, stack)
            return

        if keyword == "WHEN":
            result.complexity += 1
            if not stack or stack[-1].opener != "EVALUATE":
                self._error(result, program_id, "WHEN outside of an EVALUATE block",
                            raw.line, STRUCTURAL)
            self._place(self._node(StatementKind.WHEN, keyword, raw), stack, result)
            return

        if keyword == "PERFORM":
            self._perform(raw, paragraph, stack, result)
            return

        kind = self._classifier.kind_for(keyword)
        attrs: Dict[str, Any] = {"parent": paragraph}

        if keyword == "CALL":
            parsed = parse_call(raw.text)
            if parsed is None:
                self._error(result, program_id, f"CALL without a target: {raw.text}",
                            raw.line, MALFORMED_STATEMENT)
            else:
                program, args = parsed
                attrs["program"] = program
                attrs["parameters"] = args
                _append_unique(result.call_targets, program)
                result.edges.append(
                    CallGraphEdge(paragraph, self._config.external_call_prefix + program)
                )
        elif keyword == "GO TO":
            target = parse_goto(raw.text)
            if target is None:
                self._error(result, program_id, f"GO TO without a target: {raw.text}",
                            raw.line, MALFORMED_STATEMENT)
            else:
                attrs["target"] = target
                _append_unique(result.goto_targets, target)
                result.edges.append(CallGraphEdge(paragraph, target))
        elif keyword in FILE_VERBS:
            name = parse_file_name(keyword, raw.text)
            if name is not None:
                attrs["file"] = name
                description = self._lookup_file(keyword, name)
                if description is not None:
                    attrs["file"] = description.name
                    attrs["file_description"] = description

        self._place(self._node(kind, keyword, raw, attrs), stack, result)

    # ------------------------------------------------------------------
    # Block handling
    # ------------------------------------------------------------------

    def _perform(
        self,
        raw: RawStatementLine,
        paragraph: str,
        stack: List[_Frame],
        result: ParagraphStructure,
    ) -> None:
        result.complexity += 1
        attrs = parse_perform(raw.text)
        attrs["parent"] = paragraph
        attrs["loop_level"] = sum(1 for f in stack if f.opener == "PERFORM")

        for target in perform_targets(attrs):
            _append_unique(result.perform_targets, target)
            result.edges.append(CallGraphEdge(paragraph, target))

        node = self._node(StatementKind.PERFORM, "PERFORM", raw, attrs)
        if "target" in attrs and not self._config.out_of_line_perform_blocks:
            self._place(node, stack, result)
            return
        self._push(node, "PERFORM", THEN, stack)

    def _open_else_if(
        self,
        raw: RawStatementLine,
        program_id: str,
        stack: List[_Frame],
        result: ParagraphStructure,
    ) -> None:
        if not stack or stack[-1].opener != "IF":
            self._error(result, program_id, "Unmatched ELSE IF: no open IF block",
                        raw.line, STRUCTURAL)
            return
        result.complexity += 1
        outer = stack[-1]
        outer.phase = ELSE
        node = self._node(StatementKind.IF, ELSE_IF, raw)
        outer.else_list().append(node)
        self._push(node, "IF", THEN, stack, chained=True)

    def _close(
        self,
        terminator: str,
        raw: RawStatementLine,
        program_id: str,
        stack: List[_Frame],
        result: ParagraphStructure,
    ) -> None:
        expected = TERMINATORS[terminator]
        if not stack:
            self._error(result, program_id, f"Unmatched {terminator}: no open block",
                        raw.line, STRUCTURAL)
            return
        top = stack[-1]
        if top.opener != expected:
            self._error(
                result, program_id,
                f"Mismatched {terminator}: open block is {top.opener} "
                f"(line {top.node.expanded_line})",
                raw.line, STRUCTURAL,
            )
            return

        stack.pop()
        top.node.expanded_end_line = raw.line
        top.node.end_line = raw.line
        logger.debug("Closed %s at line %d with %s", top.opener, raw.line, terminator)
        if not top.chained:
            self._place(top.node, stack, result)

    @staticmethod
    def _push(
        node: StatementNode,
        opener: str,
        phase: str,
        stack: List[_Frame],
        chained: bool = False,
    ) -> None:
        node.block_kind = opener
        if phase == CASES:
            node.cases = []
        else:
            node.then = []
        stack.append(_Frame(node, opener, phase, chained))
        logger.debug("Opened %s at line %d (depth %d)", opener, node.expanded_line, len(stack))

    @staticmethod
    def _place(node: StatementNode, stack: List[_Frame], result: ParagraphStructure) -> None:
        if stack:
            stack[-1].active_list().append(node)
        else:
            result.statements.append(node)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _node(
        kind: StatementKind,
        keyword: Optional[str],
        raw: RawStatementLine,
        attrs: Optional[Dict[str, Any]] = None,
    ) -> StatementNode:
        attrs = attrs if attrs is not None else {}
        return StatementNode(
            kind=kind,
            expanded_line=raw.line,
            content=raw.text,
            pseudocode=render_pseudocode(keyword, raw.text, attrs),
            attributes=attrs,
        )

    def _lookup_file(self, keyword: str, name: str) -> Optional[FileDescription]:
        if name in self._file_descriptions:
            return self._file_descriptions[name]
        if keyword == "WRITE":
            for fd in self._file_descriptions.values():
                if any(r.name == name for r in fd.records):
                    return fd
        return None

    @staticmethod
    def _error(
        result: ParagraphStructure,
        subject: str,
        message: str,
        line: int,
        category: str,
    ) -> None:
        err = ParsingError(subject, f"{result.name}: {message}", line, category)
        logger.warning("%s", err)
        result.errors.append(err)


def _append_unique(items: List[str], value: str) -> None:
    if value not in items:
        items.append(value)
