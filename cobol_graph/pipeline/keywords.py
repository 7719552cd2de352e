"""
Standard COBOL control-keyword and verb tables.

Used by :class:`~cobol_graph.parser.statement_classifier.StatementClassifier`
to decide what a statement line *is* from its leading keyword, and by the
post-processor / data-flow tracker for their keyword sniffing.
"""
from __future__ import annotations

from typing import Dict, Tuple

from ..models import StatementKind

DEFAULT_CONTROL_KEYWORDS: frozenset[str] = frozenset(
    {
        # ── Blocks and their terminators ─────────────────────────────────
        "IF", "ELSE", "END-IF",
        "EVALUATE", "WHEN", "END-EVALUATE",
        "PERFORM", "END-PERFORM",
        # ── Control transfer ─────────────────────────────────────────────
        "CALL", "GO TO", "GOBACK", "STOP RUN",
        # ── Data movement / arithmetic ───────────────────────────────────
        "MOVE", "ADD", "SUBTRACT", "COMPUTE", "INSPECT",
        # ── File I/O ─────────────────────────────────────────────────────
        "OPEN", "CLOSE", "READ", "WRITE",
        # ── Terminal I/O ─────────────────────────────────────────────────
        "DISPLAY", "ACCEPT",
    }
)

TERMINATORS: Dict[str, str] = {
    "END-IF": "IF",
    "END-EVALUATE": "EVALUATE",
    "END-PERFORM": "PERFORM",
}

KEYWORD_KINDS: Dict[str, StatementKind] = {
    "IF": StatementKind.IF,
    "ELSE": StatementKind.ELSE,
    "EVALUATE": StatementKind.EVALUATE,
    "WHEN": StatementKind.WHEN,
    "PERFORM": StatementKind.PERFORM,
    "CALL": StatementKind.CALL,
    "GO TO": StatementKind.GOTO,
    "GOBACK": StatementKind.GOBACK,
    "STOP RUN": StatementKind.STOP_RUN,
    "MOVE": StatementKind.MOVE,
    "ADD": StatementKind.ADD,
    "SUBTRACT": StatementKind.SUBTRACT,
    "INSPECT": StatementKind.INSPECT,
    "OPEN": StatementKind.OPEN,
    "CLOSE": StatementKind.CLOSE,
    "READ": StatementKind.READ,
    "WRITE": StatementKind.WRITE,
    "DISPLAY": StatementKind.DISPLAY,
    "ACCEPT": StatementKind.ACCEPT,
}

FILE_VERBS: frozenset[str] = frozenset({"OPEN", "CLOSE", "READ", "WRITE"})

# Post-processor type promotion: OTHER nodes whose content starts with one of
# these prefixes are retyped (checked in this order).
PROMOTION_PREFIXES: Tuple[Tuple[str, StatementKind], ...] = (
    ("DISPLAY", StatementKind.DISPLAY),
    ("MOVE", StatementKind.MOVE),
    ("ADD", StatementKind.ADD),
    ("CALL", StatementKind.CALL),
    ("READ", StatementKind.READ),
    ("CLOSE", StatementKind.CLOSE),
    ("OPEN", StatementKind.OPEN),
    ("SUBTRACT", StatementKind.SUBTRACT),
    ("INSPECT", StatementKind.INSPECT),
    ("ACCEPT", StatementKind.ACCEPT),
    ("GOBACK", StatementKind.GOBACK),
    ("STOP RUN", StatementKind.STOP_RUN),
)

# Condition operators, in extraction priority order.
CONDITION_OPERATORS: Tuple[str, ...] = ("=", ">", "<", "NOT=")

OPEN_MODES: frozenset[str] = frozenset({"INPUT", "OUTPUT", "I-O", "EXTEND"})

# PERFORM words that introduce an inline loop rather than name a paragraph.
PERFORM_LOOP_WORDS: frozenset[str] = frozenset({"VARYING", "UNTIL", "WITH", "TEST"})

CALL_NOISE_WORDS: frozenset[str] = frozenset(
    {"BY", "REFERENCE", "CONTENT", "VALUE", "ADDRESS", "OF"}
)
