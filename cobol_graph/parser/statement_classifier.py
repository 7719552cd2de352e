"""
StatementClassifier
===================

Classifies a single statement line by its leading keyword.

+-------------------------+-----------------------------------------------+
| Leading keyword         | Result                                        |
+=========================+===============================================+
| ``ELSE IF``             | ``ELSE IF`` (chained conditional)             |
+-------------------------+-----------------------------------------------+
| ``END-IF`` & co.        | terminator keyword, no statement kind         |
+-------------------------+-----------------------------------------------+
| any configured keyword  | that keyword → :data:`KEYWORD_KINDS` lookup   |
+-------------------------+-----------------------------------------------+
| ``COMPUTE``             | keyword ``COMPUTE``, kind ``OTHER``           |
+-------------------------+-----------------------------------------------+
| anything else           | ``None`` → kind ``OTHER``                     |
+-------------------------+-----------------------------------------------+

A keyword only matches as a whole word: it must be followed by whitespace,
a period or the end of the text, so ``END-IF.`` is a terminator and
``DISPLAYED-COUNT`` is not a DISPLAY.
"""
from __future__ import annotations

import re
from typing import List, Optional

from ..models import StatementKind
from ..pipeline.config import AnalysisConfig
from ..pipeline.keywords import KEYWORD_KINDS, TERMINATORS

ELSE_IF = "ELSE IF"

_ELSE_IF_RE = re.compile(r"^ELSE\s+IF(?=$|[\s.(])")


class StatementClassifier:
    """Leading-keyword classifier driven by ``config.control_keywords``."""

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self._config = config or AnalysisConfig()
        # Longest keyword first so "GO TO" / "STOP RUN" beat shorter prefixes.
        keywords: List[str] = sorted(
            {k.upper() for k in self._config.control_keywords},
            key=lambda k: (-len(k), k),
        )
        self._patterns = [
            (kw, re.compile(r"^" + r"\s+".join(map(re.escape, kw.split())) + r"(?=$|[\s.])"))
            for kw in keywords
        ]

    def classify(self, text: str) -> Optional[str]:
        """Return the canonical leading keyword of *text*, or ``None``."""
        upper = text.strip().upper()
        if not upper:
            return None
        if "IF" in self._config.control_keywords and _ELSE_IF_RE.match(upper):
            return ELSE_IF
        for keyword, pattern in self._patterns:
            if pattern.match(upper):
                return keyword
        return None

    @staticmethod
    def is_terminator(keyword: Optional[str]) -> bool:
        return keyword in TERMINATORS

    @staticmethod
    def kind_for(keyword: Optional[str]) -> StatementKind:
        if keyword is None:
            return StatementKind.OTHER
        return KEYWORD_KINDS.get(keyword, StatementKind.OTHER)
