"""
PostProcessor
=============

Ordered normalisation passes over the structured output of every paragraph.

Pass order:

1. **Unify / dedupe** – drop later duplicates of ``(kind, expanded_line,
   content)`` within a paragraph, remap lines through the
   :class:`~cobol_graph.models.SourceLineMap`, prune empty child lists.
2. **Metadata canonicalisation** – fold parse attributes into descriptors.
3. **Perform backfill** – give descriptor-less PERFORMs a start / end.
4. **Paragraph-level dedup** – keep the first paragraph of a given name.
5. **Pseudocode whitespace normalisation.**
6. **Type promotion** – retype OTHER by leading verb; AT END / NOT AT END.
7. **Condition extraction** – ``lhs op rhs`` out of IF / WHEN text.
8. **File-description shaping** – re-point file-op descriptors at the
   catalog's canonical :class:`~cobol_graph.models.FileDescription` objects.
9. **CFG derivation** – :class:`~cobol_graph.output.cfg_builder.CFGBuilder`.

Passes 1, 2 and 5-8 are idempotent.  Passes 6 and 7 walk whole trees.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..models import (
    STRUCTURAL,
    CallDescriptor,
    ConditionDescriptor,
    FileDescription,
    FileOpDescriptor,
    GotoDescriptor,
    LoopDescriptor,
    ParsingError,
    PerformDescriptor,
    SourceLineMap,
    StatementKind,
    StatementNode,
    walk_all,
)
from ..output.cfg_builder import CFGBuilder, ControlFlowGraph
from ..parser.statement_text import after_keyword, words
from .config import AnalysisConfig
from .file_catalog import FileCatalog
from .keywords import CONDITION_OPERATORS, PROMOTION_PREFIXES

logger = logging.getLogger(__name__)

_WS_RE = re.compile(r"\s+")
_TRAILING_THEN_RE = re.compile(r"\s+THEN$", re.IGNORECASE)

_CONSUMED_ATTRIBUTES = (
    "varying", "target", "thru", "program", "parameters", "file",
    "file_description", "parent", "loop_level",
)

ParagraphList = List[Tuple[str, List[StatementNode]]]


@dataclass
class PostProcessResult:
    """Normalised paragraphs plus everything derived from them."""

    paragraphs: Dict[str, List[StatementNode]] = field(default_factory=dict)
    file_descriptions: Dict[str, FileDescription] = field(default_factory=dict)
    control_flow: ControlFlowGraph = field(default_factory=ControlFlowGraph)
    errors: List[ParsingError] = field(default_factory=list)


class PostProcessor:
    """
    Runs passes 1-9 over a program's structured paragraphs.

    Parameters
    ----------
    line_map:
        Expanded-line → original-line map from the copy resolver.
    catalog:
        Shaped FDs for pass 8.
    config:
        Supplies the main paragraph used as CFG entry.
    subject:
        Diagnostics subject (the program id).
    """

    def __init__(
        self,
        line_map: Optional[SourceLineMap] = None,
        catalog: Optional[FileCatalog] = None,
        config: Optional[AnalysisConfig] = None,
        subject: str = "UNKNOWN",
    ) -> None:
        self.line_map = line_map if line_map is not None else SourceLineMap()
        self.catalog = catalog or FileCatalog()
        self.config = config or AnalysisConfig()
        self.subject = subject

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def process(self, paragraphs: Sequence[Tuple[str, List[StatementNode]]]) -> PostProcessResult:
        """Run every pass in order and return the normalised result."""
        result = PostProcessResult()
        paragraph_list: ParagraphList = [(name, stmts) for name, stmts in paragraphs]

        for name, stmts in paragraph_list:
            self.unify(name, stmts)
        for _, stmts in paragraph_list:
            self.canonicalize_metadata(stmts)
        for _, stmts in paragraph_list:
            self.backfill_performs(stmts)
        result.paragraphs = self.dedupe_paragraphs(paragraph_list, result.errors)
        for stmts in result.paragraphs.values():
            self.normalize_pseudocode(stmts)
            self.promote_types(stmts)
            self.extract_conditions(stmts)
        result.file_descriptions = self.shape_file_descriptions(result.paragraphs)
        result.control_flow = CFGBuilder(self.config.main_paragraph).build(result.paragraphs)

        logger.info(
            "Post-processed %d paragraph(s): %d CFG edge(s)",
            len(result.paragraphs), len(result.control_flow.edges),
        )
        return result

    # ------------------------------------------------------------------
    # Pass 1 – unify / dedupe / remap / prune
    # ------------------------------------------------------------------

    def unify(self, paragraph: str, statements: List[StatementNode]) -> None:
        seen: Set[tuple] = set()
        self._unify_list(paragraph, statements, seen)

    def _unify_list(self, paragraph: str, statements: List[StatementNode], seen: Set[tuple]) -> None:
        kept: List[StatementNode] = []
        for node in statements:
            if node.signature in seen:
                logger.debug("Skipping duplicate statement in paragraph %s: %s", paragraph, node.signature)
                continue
            seen.add(node.signature)
            node.line = self.line_map.remap(node.expanded_line)
            if node.expanded_end_line is not None:
                node.end_line = self.line_map.remap(node.expanded_end_line)
            for attr in ("then", "else_", "cases"):
                block = getattr(node, attr)
                if block is None:
                    continue
                self._unify_list(paragraph, block, seen)
                if not block:
                    setattr(node, attr, None)
            kept.append(node)
        statements[:] = kept

    # ------------------------------------------------------------------
    # Pass 2 – metadata canonicalisation
    # ------------------------------------------------------------------

    def canonicalize_metadata(self, statements: List[StatementNode]) -> None:
        for node in walk_all(statements):
            attrs = node.attributes
            if not attrs or node.descriptor is not None:
                continue
            parent = attrs.get("parent")
            loop_level = attrs.get("loop_level", 0)

            if node.kind == StatementKind.PERFORM and "target" in attrs:
                node.descriptor = PerformDescriptor(
                    start=attrs["target"], end=attrs.get("thru"),
                    loop_level=loop_level, parent=parent,
                )
            elif "varying" in attrs:
                varying = attrs["varying"]
                node.descriptor = LoopDescriptor(
                    variable=varying.get("variable", "UNKNOWN"),
                    from_=varying.get("from", "UNKNOWN"),
                    by=varying.get("by", "UNKNOWN"),
                    until=varying.get("until", "UNKNOWN"),
                    loop_level=loop_level,
                    parent=parent,
                )
            elif "program" in attrs:
                node.descriptor = CallDescriptor(
                    name=attrs["program"], args=list(attrs.get("parameters", [])), parent=parent,
                )
            elif "target" in attrs:
                node.descriptor = GotoDescriptor(destination=attrs["target"], parent=parent)
            elif "file" in attrs:
                node.descriptor = FileOpDescriptor(
                    name=attrs["file"], description=attrs.get("file_description"), parent=parent,
                )
            else:
                continue

            for key in _CONSUMED_ATTRIBUTES:
                attrs.pop(key, None)

    # ------------------------------------------------------------------
    # Pass 3 – perform backfill
    # ------------------------------------------------------------------

    def backfill_performs(self, statements: List[StatementNode]) -> None:
        for node in walk_all(statements):
            if node.kind != StatementKind.PERFORM:
                continue
            if node.pseudocode.endswith(";"):
                node.pseudocode = node.pseudocode[:-1]
            if node.descriptor is not None:
                continue
            parts = words(node.content)
            if len(parts) < 2:
                continue
            end = parts[3] if len(parts) >= 4 and parts[2] in ("THRU", "THROUGH") else None
            node.descriptor = PerformDescriptor(
                start=parts[1], end=end,
                loop_level=node.attributes.pop("loop_level", 0),
                parent=node.attributes.pop("parent", None),
            )

    # ------------------------------------------------------------------
    # Pass 4 – paragraph-level dedup
    # ------------------------------------------------------------------

    def dedupe_paragraphs(
        self,
        paragraphs: ParagraphList,
        errors: List[ParsingError],
    ) -> Dict[str, List[StatementNode]]:
        kept: Dict[str, List[StatementNode]] = {}
        for name, stmts in paragraphs:
            if name in kept:
                err = ParsingError(self.subject, f"Duplicate paragraph {name} skipped", 0, STRUCTURAL)
                logger.warning("%s", err)
                errors.append(err)
                continue
            kept[name] = stmts
        return kept

    # ------------------------------------------------------------------
    # Pass 5 – pseudocode whitespace
    # ------------------------------------------------------------------

    @staticmethod
    def normalize_pseudocode(statements: List[StatementNode]) -> None:
        for node in walk_all(statements):
            node.pseudocode = _WS_RE.sub(" ", node.pseudocode).strip()

    # ------------------------------------------------------------------
    # Pass 6 – type promotion
    # ------------------------------------------------------------------

    @staticmethod
    def promote_types(statements: List[StatementNode]) -> None:
        for node in walk_all(statements):
            content = node.content.upper()
            if _starts_with_word(content, "AT END"):
                node.kind = StatementKind.AT_END
                if node.then is None:
                    node.then = []
                continue
            if _starts_with_word(content, "NOT AT END"):
                node.kind = StatementKind.NOT_AT_END
                if node.then is None:
                    node.then = []
                continue
            if node.kind != StatementKind.OTHER:
                continue
            for prefix, kind in PROMOTION_PREFIXES:
                if _starts_with_word(content, prefix):
                    node.kind = kind
                    break

    # ------------------------------------------------------------------
    # Pass 7 – condition extraction
    # ------------------------------------------------------------------

    @staticmethod
    def extract_conditions(statements: List[StatementNode]) -> None:
        for node in walk_all(statements):
            if node.kind not in (StatementKind.IF, StatementKind.WHEN):
                continue
            if isinstance(node.descriptor, ConditionDescriptor):
                continue
            condition = parse_condition(node.content)
            if condition is not None:
                node.descriptor = condition
                node.kind = StatementKind.CONDITION

    # ------------------------------------------------------------------
    # Pass 8 – file-description shaping
    # ------------------------------------------------------------------

    def shape_file_descriptions(
        self, paragraphs: Dict[str, List[StatementNode]]
    ) -> Dict[str, FileDescription]:
        shaped = dict(self.catalog.descriptions)
        for stmts in paragraphs.values():
            for node in walk_all(stmts):
                if isinstance(node.descriptor, FileOpDescriptor):
                    canonical = shaped.get(node.descriptor.name)
                    if canonical is not None:
                        node.descriptor.description = canonical
        return shaped


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _starts_with_word(content: str, prefix: str) -> bool:
    if not content.startswith(prefix):
        return False
    rest = content[len(prefix):]
    return not rest or rest[0] in " ."


def parse_condition(content: str) -> Optional[ConditionDescriptor]:
    """
    Split ``IF lhs op rhs`` / ``WHEN lhs op rhs`` into a condition.

    The first operator of ``=``, ``>``, ``<``, ``NOT=`` contained in the text
    wins, so ``A NOT= B`` splits on ``=``.
    """
    text = content.upper().strip()
    text = after_keyword(text, "ELSE") if text.startswith("ELSE") else text
    for keyword in ("IF", "WHEN"):
        if _starts_with_word(text, keyword):
            text = after_keyword(text, keyword)
            break
    if text.endswith("."):
        text = text[:-1]
    text = _TRAILING_THEN_RE.sub("", text).strip()

    for operator in CONDITION_OPERATORS:
        if operator in text:
            sides = re.split(r"\s*" + re.escape(operator) + r"\s*", text)
            if len(sides) == 2 and sides[0].strip() and sides[1].strip():
                return ConditionDescriptor(sides[0].strip(), sides[1].strip(), operator)
            return None
    return None
