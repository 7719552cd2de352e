"""
Text-level helpers for statement sub-structure.

COBOL statement interpretation here is keyword/regex based, not grammar
based: the helpers pull PERFORM targets and loop clauses, CALL programs and
arguments, GO TO destinations and file names out of a statement's text, and
render the one-line pseudocode stored on every node.
"""
from __future__ import annotations

import re
from typing import Any, Dict, List, Optional, Tuple

from ..pipeline.keywords import CALL_NOISE_WORDS, OPEN_MODES, PERFORM_LOOP_WORDS

_VARYING_RE = re.compile(
    r"\bVARYING\s+(\S+)\s+FROM\s+(\S+)\s+BY\s+(\S+)(?:\s+UNTIL\s+(.+))?$"
)
_UNTIL_RE = re.compile(r"\bUNTIL\s+(.+)$")
_MOVE_TO_RE = re.compile(r"\s+TO\s+", re.IGNORECASE)
_QUOTES_AND_PERIODS_RE = re.compile(r"['\".]")

_CALL_ARG_STOP_WORDS = frozenset(
    {"RETURNING", "ON", "NOT", "END-CALL", "EXCEPTION", "OVERFLOW"}
)


def strip_period(token: str) -> str:
    return token.rstrip(".")


def words(text: str) -> List[str]:
    """Upper-cased whitespace tokens with sentence periods removed."""
    return [strip_period(w) for w in text.upper().split() if strip_period(w)]


def after_keyword(content: str, keyword: str) -> str:
    """Text following a leading (possibly multi-word) *keyword*."""
    pattern = r"^\s*" + r"\s+".join(map(re.escape, keyword.split())) + r"\b\s*"
    return re.sub(pattern, "", content, count=1, flags=re.IGNORECASE)


# ---------------------------------------------------------------------------
# PERFORM
# ---------------------------------------------------------------------------


def _parse_loop(clause: str) -> Optional[Dict[str, str]]:
    m = _VARYING_RE.search(clause)
    if m:
        return {
            "variable": m.group(1),
            "from": m.group(2),
            "by": m.group(3),
            "until": (m.group(4) or "UNKNOWN").strip(),
        }
    m = _UNTIL_RE.search(clause)
    if m:
        return {"until": m.group(1).strip()}
    return None


def parse_perform(content: str) -> Dict[str, Any]:
    """
    Split a PERFORM statement into ``target`` / ``thru`` / ``varying``.

    Shapes::

        PERFORM PARA-A
        PERFORM PARA-A THRU PARA-B
        PERFORM VARYING I FROM 1 BY 1 UNTIL I > 10
        PERFORM PARA-A VARYING I FROM 1 BY 1 UNTIL I > 10
        PERFORM UNTIL WS-EOF = 'Y'
    """
    tokens = words(content)[1:]
    attrs: Dict[str, Any] = {}
    if not tokens:
        return attrs

    rest: List[str]
    if tokens[0] in PERFORM_LOOP_WORDS:
        rest = tokens
    else:
        attrs["target"] = tokens[0]
        if len(tokens) >= 3 and tokens[1] in ("THRU", "THROUGH"):
            attrs["thru"] = tokens[2]
            rest = tokens[3:]
        else:
            rest = tokens[1:]

    loop = _parse_loop(" ".join(rest)) if rest else None
    if loop:
        attrs["varying"] = loop
    return attrs


def perform_targets(attrs: Dict[str, Any]) -> List[str]:
    """Paragraph names a parsed PERFORM transfers control to."""
    if "target" not in attrs:
        return []
    targets = [attrs["target"]]
    if "thru" in attrs:
        targets.append(attrs["thru"])
    return targets


# ---------------------------------------------------------------------------
# CALL / GO TO
# ---------------------------------------------------------------------------


def parse_call(content: str) -> Optional[Tuple[str, List[str]]]:
    """Return ``(program, args)`` or ``None`` when there is no target."""
    parts = content.split()
    if len(parts) < 2:
        return None
    program = _QUOTES_AND_PERIODS_RE.sub("", parts[1]).upper()
    if not program or program == "USING":
        return None

    args: List[str] = []
    upper = [p.upper() for p in parts]
    if "USING" in upper[2:]:
        for raw in parts[upper.index("USING", 2) + 1:]:
            token = _QUOTES_AND_PERIODS_RE.sub("", raw).strip(",").upper()
            if token in _CALL_ARG_STOP_WORDS:
                break
            if token and token not in CALL_NOISE_WORDS:
                args.append(token)
    return program, args


def parse_goto(content: str) -> Optional[str]:
    tokens = words(after_keyword(content, "GO TO"))
    return tokens[0] if tokens else None


# ---------------------------------------------------------------------------
# File I/O
# ---------------------------------------------------------------------------


def parse_file_name(keyword: str, content: str) -> Optional[str]:
    """
    The file (or, for WRITE, record) name operated on.

    ``OPEN`` skips its open mode: ``OPEN INPUT CUST-FILE`` → ``CUST-FILE``.
    """
    tokens = words(content)
    if len(tokens) < 2:
        return None
    if keyword == "OPEN" and tokens[1] in OPEN_MODES:
        return tokens[2] if len(tokens) > 2 else None
    return tokens[1]


# ---------------------------------------------------------------------------
# Pseudocode
# ---------------------------------------------------------------------------

_FILE_FUNCS = {
    "READ": "read_file",
    "WRITE": "write_file",
    "OPEN": "open_file",
    "CLOSE": "close_file",
}


def render_pseudocode(keyword: Optional[str], content: str, attrs: Dict[str, Any]) -> str:
    body = content.rstrip(".").strip()
    if keyword == "MOVE":
        parts = _MOVE_TO_RE.split(after_keyword(body, "MOVE"), maxsplit=1)
        if len(parts) == 2:
            return f"{parts[1]} = {parts[0]};"
    elif keyword in ("IF", "ELSE IF"):
        return f"if ({after_keyword(after_keyword(body, 'ELSE'), 'IF')}) {{"
    elif keyword == "ELSE":
        return "} else {"
    elif keyword == "PERFORM":
        varying = attrs.get("varying")
        if varying:
            if "variable" in varying:
                loop = (
                    f"{varying['variable']} FROM {varying['from']} BY {varying['by']}"
                    f" UNTIL {varying['until']}"
                )
            else:
                loop = f"UNTIL {varying['until']}"
            return f"for ({loop}) {{"
        if "thru" in attrs:
            return f"call {attrs['target']} thru {attrs['thru']};"
        return f"call {after_keyword(body, 'PERFORM')};"
    elif keyword == "CALL":
        program = attrs.get("program", "")
        params = ", ".join(f'"{p}"' for p in attrs.get("parameters", []))
        return f"call_program({program}([{params}]));"
    elif keyword in ("ADD", "SUBTRACT"):
        return f"{after_keyword(body, keyword)};"
    elif keyword in _FILE_FUNCS:
        return f"{_FILE_FUNCS[keyword]}({after_keyword(body, keyword)});"
    elif keyword == "INSPECT":
        return f"inspect({after_keyword(body, 'INSPECT')});"
    elif keyword == "EVALUATE":
        return f"switch ({after_keyword(body, 'EVALUATE')}) {{"
    elif keyword == "WHEN":
        return f"case {after_keyword(body, 'WHEN')}:"
    elif keyword == "GO TO":
        return f"goto {attrs.get('target', '')};"
    return f"{body};"
