"""
CopybookResolver
================

Expands COBOL ``COPY`` directives by inlining copybook content, recursively.

Algorithm:

1.  Lines that are not ``COPY`` directives pass through unchanged.
2.  ``COPY name REPLACING ...``    → replaced by an
    ``*> #unsupported_copy_replacing`` marker; never expanded.
3.  ``COPY name``:
    a.  Look up ``{include_dir}/{NAME}{ext}`` for each configured extension.
    b.  Not found                  → ``*> #missing_copy`` marker.
    c.  Already being expanded     → ``*> #circular_copy`` marker.
    d.  Otherwise the content (read once, cached) is expanded one level
        deeper and wrapped with ``*> #include`` / ``*> #endinclude`` markers.
4.  Past the depth limit the branch is replaced by a single
    ``*> ERROR: Maximum COPY depth exceeded`` line.

Every emitted line gets one entry in the line map.  A line taken from a
copybook maps to its own 1-based position inside that copybook; marker lines
map to the directive's line in the including unit.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..models import INCLUSION, ParsingError, SourceLineMap
from ..pipeline.config import AnalysisConfig

logger = logging.getLogger(__name__)

_COPY_RE = re.compile(r"^COPY(?:\s+|$)", re.IGNORECASE)
_REPLACING_RE = re.compile(r"\bREPLACING\b", re.IGNORECASE)
_LINE_SPLIT_RE = re.compile(r"\r?\n")

DEPTH_EXCEEDED_MARKER = "*> ERROR: Maximum COPY depth exceeded"


@dataclass
class ResolveResult:
    """Output of :meth:`CopybookResolver.resolve`."""

    expanded_text: str
    line_map: SourceLineMap
    included_names: List[str] = field(default_factory=list)
    errors: List[ParsingError] = field(default_factory=list)

    @property
    def expanded_lines(self) -> List[str]:
        return self.expanded_text.split("\n") if self.expanded_text else []


class _ResolveRun:
    """Per-call state: expansion chain, line map and diagnostics."""

    def __init__(self, subject: str) -> None:
        self.subject = subject
        self.chain: Set[str] = set()
        self.lines: List[Tuple[str, int]] = []
        self.included: Dict[str, None] = {}
        self.errors: List[ParsingError] = []

    def emit(self, text: str, line: int) -> None:
        self.lines.append((text, line))

    def error(self, message: str, line: int) -> None:
        err = ParsingError(self.subject, message, line, INCLUSION)
        logger.warning("%s", err)
        self.errors.append(err)


class CopybookResolver:
    """
    Resolves COPY directives against an include directory.

    Parameters
    ----------
    include_dir:
        Directory that holds the copybook files.  ``None`` means every COPY
        is reported missing.
    config:
        Supplies the extension candidates and the depth limit.

    The content cache lives on the instance and may be shared between
    concurrent ``resolve`` calls: an entry is written once and never changed.
    """

    def __init__(
        self,
        include_dir: Optional[str | Path] = None,
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self._include_dir = Path(include_dir) if include_dir else None
        self._config = config or AnalysisConfig()
        self._cache: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def resolve(self, source_text: str, subject: str = "<inline>") -> ResolveResult:
        """
        Expand every COPY directive in *source_text*.

        Parameters
        ----------
        source_text:
            Raw COBOL source.
        subject:
            Name used as the diagnostics subject (usually the program file).

        Returns
        -------
        ResolveResult
        """
        run = _ResolveRun(subject)
        self._expand(_split_lines(source_text), run, depth=0, origin_line=0)

        expanded = "\n".join(text for text, _ in run.lines)
        line_map = SourceLineMap(line for _, line in run.lines)
        if run.included:
            logger.info("Expanded %d copybook(s) for %s", len(run.included), subject)
        return ResolveResult(
            expanded_text=expanded,
            line_map=line_map,
            included_names=list(run.included),
            errors=run.errors,
        )

    def find_copybook(self, base_name: str) -> Optional[str]:
        """Return the first ``base_name + ext`` that exists (or is cached)."""
        for ext in self._config.copy_extensions:
            candidate = f"{base_name}{ext}"
            if candidate in self._cache:
                return candidate
            if self._include_dir is not None and (self._include_dir / candidate).exists():
                return candidate
        return None

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    def _expand(
        self,
        lines: Sequence[str],
        run: _ResolveRun,
        depth: int,
        origin_line: int,
    ) -> None:
        if depth > self._config.max_copy_depth:
            run.emit(DEPTH_EXCEEDED_MARKER, origin_line)
            run.error("Maximum COPY depth exceeded", origin_line)
            return

        for line_no, line in enumerate(lines, start=1):
            trimmed = line.strip()
            if not _COPY_RE.match(trimmed):
                run.emit(line, line_no)
                continue

            parts = trimmed.split()
            if len(parts) < 2:
                run.emit(line, line_no)
                continue

            if _REPLACING_RE.search(trimmed):
                run.emit(f"*> #unsupported_copy_replacing <{trimmed}>", line_no)
                run.error(f"Unsupported COPY REPLACING: {trimmed}", line_no)
                continue

            raw_name = parts[1].replace(".", "").strip("'\"")
            matched = self.find_copybook(raw_name)
            if matched is None:
                run.emit(f"*> #missing_copy <{raw_name}.*>", line_no)
                run.error(f"Missing copybook {raw_name}", line_no)
                continue

            if matched in run.chain:
                run.emit(f"*> #circular_copy <{matched}>", line_no)
                run.error(f"Circular COPY of {matched}", line_no)
                continue

            content = self._load(matched)
            if content is None:
                run.emit(f"*> #error_reading_copy <{matched}>", line_no)
                run.error(f"Error reading copybook {matched}", line_no)
                continue

            logger.debug("Expanding %s at line %d (depth %d)", matched, line_no, depth + 1)
            run.included.setdefault(matched, None)
            run.emit(f"*> #include <{matched}> line {line_no}", line_no)
            run.chain.add(matched)
            self._expand(_split_lines(content), run, depth + 1, line_no)
            run.chain.discard(matched)
            run.emit(f"*> #endinclude <{matched}>", line_no)

    def _load(self, name: str) -> Optional[str]:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        if self._include_dir is None:
            return None
        try:
            content = (self._include_dir / name).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.error("Failed to read copybook %s: %s", name, exc)
            return None
        return self._cache.setdefault(name, content)


def _split_lines(text: str) -> List[str]:
    if not text:
        return []
    lines = _LINE_SPLIT_RE.split(text)
    # A trailing newline does not start another line.
    if lines and lines[-1] == "":
        lines.pop()
    return lines
