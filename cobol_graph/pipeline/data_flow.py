"""
DataFlowTracker
===============

Derives variable movements from structured statements.

For every data-moving verb the tracker splits the statement's identifiers
into the ones *read* (sources) and the ones *written* (targets), keeping only
identifiers in the declared-variable set.  Each written target yields one
:class:`~cobol_graph.models.MovementRecord`; READ, WRITE and INSPECT yield
target-less or source-less records as listed below.

==========  ===============================  ====================================
Verb        Reads                            Writes
==========  ===============================  ====================================
MOVE        before ``TO``                    after ``TO``
ADD         all operands                     after ``TO`` / ``GIVING``
SUBTRACT    all operands                     after ``FROM`` / ``GIVING``
MULTIPLY    all operands                     after ``BY`` / ``GIVING``
DIVIDE      all operands                     after ``INTO`` / ``GIVING``
COMPUTE     right of ``=``                   left of ``=``
INITIALIZE  –                                all operands
STRING      before ``INTO``                  after ``INTO``
UNSTRING    before ``INTO``                  after ``INTO``
ACCEPT      –                                first operand
READ        the file                         ``INTO`` target
WRITE       the record (and ``FROM``)        –
INSPECT     all operands                     –
CALL        each ``USING`` argument          – (one record per argument)
==========  ===============================  ====================================

Unknown identifiers are ignored silently.  The statement after an ``AT END``
or ``NOT AT END`` phrase is tracked on its own leading verb.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import MovementRecord, StatementNode, walk_all
from ..parser.statement_text import parse_call

logger = logging.getLogger(__name__)

_LITERAL_RE = re.compile(r"'[^']*'|\"[^\"]*\"")
_TOKEN_RE = re.compile(r"[A-Z0-9][A-Z0-9-]*")
_AT_END_RE = re.compile(r"(?<![\w-])(?:NOT\s+)?AT\s+END(?![\w-])")

# Verb → keyword whose right-hand side is written (GIVING always wins).
_ARITHMETIC_TARGET_WORD = {
    "ADD": "TO",
    "SUBTRACT": "FROM",
    "MULTIPLY": "BY",
    "DIVIDE": "INTO",
}


def _tokens(text: str) -> List[str]:
    return _TOKEN_RE.findall(_LITERAL_RE.sub(" ", text.upper()))


def _segments(content: str) -> List[str]:
    """Split *content* at every ``AT END`` / ``NOT AT END`` outside a literal."""
    # Blank out literals so a quoted "AT END" never splits.
    masked = _LITERAL_RE.sub(lambda m: " " * len(m.group()), content.upper())
    segments: List[str] = []
    start = 0
    for match in _AT_END_RE.finditer(masked):
        segments.append(content[start:match.start()].strip())
        start = match.end()
    segments.append(content[start:].strip())
    return segments


def _split_at(tokens: Sequence[str], word: str) -> Tuple[List[str], List[str]]:
    if word in tokens:
        i = tokens.index(word)
        return list(tokens[:i]), list(tokens[i + 1:])
    return list(tokens), []


class DataFlowTracker:
    """
    Accumulates movements and per-paragraph read/write sets.

    Parameters
    ----------
    declared_names:
        Upper-cased names of the program's declared data items.
    """

    def __init__(self, declared_names: Iterable[str]) -> None:
        self.declared = {n.upper() for n in declared_names}
        self.movements: List[MovementRecord] = []
        # dicts used as insertion-ordered sets
        self._reads: Dict[str, Dict[str, None]] = {}
        self._writes: Dict[str, Dict[str, None]] = {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def track_paragraph(self, paragraph: str, statements: Sequence[StatementNode]) -> None:
        """Walk *statements* (nested blocks included) in source order."""
        self._reads.setdefault(paragraph, {})
        self._writes.setdefault(paragraph, {})
        for node in walk_all(statements):
            self.track_statement(paragraph, node)

    def track_statement(self, paragraph: str, node: StatementNode) -> None:
        """
        Record the movements of *node*.  Statements embedded after ``AT END``
        / ``NOT AT END`` are dispatched on their own leading verb.
        """
        for segment in _segments(node.content):
            tokens = _tokens(segment)
            if not tokens:
                continue
            verb, operands = tokens[0], tokens[1:]
            handler = getattr(self, f"_on_{verb.lower()}", None)
            if handler is None:
                continue
            before = len(self.movements)
            handler(paragraph, node, operands, segment)
            if len(self.movements) > before:
                logger.debug("%s line %d: %d movement(s)", verb, node.line, len(self.movements) - before)

    @property
    def reads(self) -> Dict[str, List[str]]:
        return {p: list(names) for p, names in self._reads.items()}

    @property
    def writes(self) -> Dict[str, List[str]]:
        return {p: list(names) for p, names in self._writes.items()}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _declared(self, tokens: Iterable[str]) -> List[str]:
        seen: Dict[str, None] = {}
        for tok in tokens:
            if tok in self.declared:
                seen.setdefault(tok, None)
        return list(seen)

    def _record(
        self,
        paragraph: str,
        verb: str,
        sources: List[str],
        targets: List[str],
        line: int,
    ) -> None:
        reads = self._reads.setdefault(paragraph, {})
        writes = self._writes.setdefault(paragraph, {})
        for src in sources:
            reads.setdefault(src, None)
        for tgt in targets:
            writes.setdefault(tgt, None)
            self.movements.append(MovementRecord(verb, list(sources), tgt, line))

    def _record_targetless(self, paragraph: str, verb: str, sources: List[str], line: int) -> None:
        if not sources:
            return
        reads = self._reads.setdefault(paragraph, {})
        for src in sources:
            reads.setdefault(src, None)
        self.movements.append(MovementRecord(verb, list(sources), None, line))

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def _on_move(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        left, right = _split_at(operands, "TO")
        targets = self._declared(right)
        if targets:
            self._record(paragraph, "MOVE", self._declared(left), targets, node.line)

    def _arithmetic(self, verb: str, paragraph: str, node: StatementNode, operands: List[str]) -> None:
        if "GIVING" in operands:
            left, right = _split_at(operands, "GIVING")
            sources = self._declared(left)
            targets = self._declared(right)
        else:
            _, right = _split_at(operands, _ARITHMETIC_TARGET_WORD[verb])
            sources = self._declared(operands)
            targets = self._declared(right)
        if targets:
            self._record(paragraph, verb, sources, targets, node.line)
        else:
            self._record_targetless(paragraph, verb, sources, node.line)

    def _on_add(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._arithmetic("ADD", paragraph, node, operands)

    def _on_subtract(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._arithmetic("SUBTRACT", paragraph, node, operands)

    def _on_multiply(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._arithmetic("MULTIPLY", paragraph, node, operands)

    def _on_divide(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._arithmetic("DIVIDE", paragraph, node, operands)

    def _on_compute(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        text = text.split(None, 1)[1] if " " in text.strip() else ""
        if "=" not in text:
            return
        left, right = text.split("=", 1)
        targets = self._declared(_tokens(left))
        if targets:
            self._record(paragraph, "COMPUTE", self._declared(_tokens(right)), targets, node.line)

    def _on_initialize(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        targets = self._declared(operands)
        if targets:
            self._record(paragraph, "INITIALIZE", [], targets, node.line)

    def _on_string(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._into("STRING", paragraph, node, operands)

    def _on_unstring(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._into("UNSTRING", paragraph, node, operands)

    def _into(self, verb: str, paragraph: str, node: StatementNode, operands: List[str]) -> None:
        left, right = _split_at(operands, "INTO")
        targets = self._declared(right)
        if targets:
            self._record(paragraph, verb, self._declared(left), targets, node.line)

    def _on_accept(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        if operands and operands[0] in self.declared:
            self._record(paragraph, "ACCEPT", [], [operands[0]], node.line)

    def _on_read(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        if not operands:
            return
        file_name = operands[0]
        sources: List[str] = []
        if file_name in self.declared:
            sources = [file_name]
            self._reads.setdefault(paragraph, {}).setdefault(file_name, None)
            self.movements.append(MovementRecord("READ", [], file_name, node.line))
        _, into = _split_at(operands, "INTO")
        targets = self._declared(into[:1])
        if targets:
            self._record(paragraph, "READ", sources, targets, node.line)

    def _on_write(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        if not operands:
            return
        record, from_part = _split_at(operands, "FROM")
        self._record_targetless(
            paragraph, "WRITE", self._declared(record[:1] + from_part[:1]), node.line
        )

    def _on_inspect(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        self._record_targetless(paragraph, "INSPECT", self._declared(operands), node.line)

    def _on_call(self, paragraph: str, node: StatementNode, operands: List[str], text: str) -> None:
        parsed = parse_call(text)
        if parsed is None:
            return
        program, args = parsed
        reads = self._reads.setdefault(paragraph, {})
        for arg in self._declared(args):
            reads.setdefault(arg, None)
            self.movements.append(MovementRecord("CALL", [arg], program, node.line))
