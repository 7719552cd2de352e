"""
ProgramAnalysis
===============

Full COBOL program-graph pipeline.

Combines :class:`~cobol_graph.passes.copy_resolver.CopybookResolver`
(COPY expansion), :class:`~cobol_graph.parser.block_structurer.BlockStructurer`
(block reconstruction per paragraph),
:class:`~cobol_graph.pipeline.call_graph.CallGraph` (call graph and
reachability), :class:`~cobol_graph.pipeline.data_flow.DataFlowTracker`
(variable movements) and :class:`~cobol_graph.pipeline.post_processor.PostProcessor`
(normalisation and CFG derivation).

Splitting source into paragraphs and extracting declarations is done
upstream; this facade consumes :class:`~cobol_graph.models.Paragraph` objects
and a :class:`~cobol_graph.models.ProgramFacts` bundle.  Every call to
:meth:`ProgramAnalysis.analyze` owns its own stacks, line map and error list,
so one instance may serve concurrent runs.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..models import (
    FileDescription,
    MovementRecord,
    Paragraph,
    ParsingError,
    ProgramFacts,
    SourceLineMap,
    StatementNode,
)
from ..output.cfg_builder import ControlFlowGraph
from ..output.diagrams import call_graph_mermaid, data_flow_mermaid
from ..parser.block_structurer import BlockStructurer
from ..passes.copy_resolver import CopybookResolver, ResolveResult
from .call_graph import CallGraph, build_call_graph
from .config import AnalysisConfig
from .data_flow import DataFlowTracker
from .file_catalog import FileCatalog
from .post_processor import PostProcessor
from .program_identity import validate_program_id

logger = logging.getLogger(__name__)


@dataclass
class ProgramGraph:
    """Everything derived for one program."""

    program_id: str
    paragraphs: Dict[str, List[StatementNode]] = field(default_factory=dict)
    call_graph: CallGraph = field(default_factory=CallGraph)
    calls: Dict[str, List[str]] = field(default_factory=dict)
    complexity: Dict[str, int] = field(default_factory=dict)
    movements: List[MovementRecord] = field(default_factory=list)
    reads: Dict[str, List[str]] = field(default_factory=dict)
    writes: Dict[str, List[str]] = field(default_factory=dict)
    control_flow: ControlFlowGraph = field(default_factory=ControlFlowGraph)
    file_descriptions: Dict[str, FileDescription] = field(default_factory=dict)
    copybooks: List[str] = field(default_factory=list)
    errors: List[ParsingError] = field(default_factory=list)
    unreachable: List[str] = field(default_factory=list)

    @property
    def total_complexity(self) -> int:
        return self.complexity.get("total", 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "programId": self.program_id,
            "paragraphs": {
                name: [s.to_dict() for s in stmts] for name, stmts in self.paragraphs.items()
            },
            "callGraph": self.call_graph.to_mapping(),
            "calls": {k: list(v) for k, v in self.calls.items()},
            "complexity": dict(self.complexity),
            "movements": [m.to_dict() for m in self.movements],
            "reads": {k: list(v) for k, v in self.reads.items()},
            "writes": {k: list(v) for k, v in self.writes.items()},
            "controlFlow": self.control_flow.to_dict(),
            "fileDescriptions": {k: fd.to_dict() for k, fd in self.file_descriptions.items()},
            "copybooks": list(self.copybooks),
            "unreachableParagraphs": list(self.unreachable),
            "errors": [e.to_dict() for e in self.errors],
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    # ------------------------------------------------------------------
    # Diagrams
    # ------------------------------------------------------------------

    def call_graph_mermaid(self) -> str:
        """Mermaid flowchart of the paragraph call graph."""
        return call_graph_mermaid(self.call_graph)

    def data_flow_mermaid(self) -> str:
        """Mermaid flowchart of the variable movements."""
        return data_flow_mermaid(self.movements)

    def control_flow_mermaid(self) -> str:
        return self.control_flow.to_mermaid(self.program_id)


class ProgramAnalysis:
    """
    High-level facade for COBOL program-graph analysis.

    Parameters
    ----------
    config:
        Analysis configuration; defaults to :class:`AnalysisConfig()`.
    resolver:
        COPY resolver whose content cache is shared across runs.  When
        omitted, one is created over *include_dir*.
    include_dir:
        Copybook directory for the default resolver.
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        resolver: Optional[CopybookResolver] = None,
        include_dir: Optional[str | Path] = None,
    ) -> None:
        self.config = config or AnalysisConfig()
        self.resolver = resolver or CopybookResolver(include_dir, self.config)

    # ------------------------------------------------------------------
    # Primary API
    # ------------------------------------------------------------------

    def resolve(self, source_text: str, subject: str = "<inline>") -> ResolveResult:
        """Expand the COPY directives of *source_text*."""
        return self.resolver.resolve(source_text, subject)

    def analyze(
        self,
        paragraphs: Sequence[Paragraph],
        facts: Optional[ProgramFacts] = None,
        line_map: Optional[SourceLineMap] = None,
        resolved: Optional[ResolveResult] = None,
    ) -> ProgramGraph:
        """
        Build the program graph of one program.

        Parameters
        ----------
        paragraphs:
            Paragraphs in source order; line numbers in expanded coordinates.
        facts:
            Program id, declared data items and raw FD / FILE-CONTROL facts.
        line_map:
            Expanded → original line map.  Taken from *resolved* when given.
        resolved:
            The :meth:`resolve` result the paragraphs were parsed from; its
            copybook names and inclusion diagnostics are carried over.

        Returns
        -------
        ProgramGraph
        """
        facts = facts or ProgramFacts()
        errors: List[ParsingError] = []
        copybooks: List[str] = []
        if resolved is not None:
            line_map = resolved.line_map
            copybooks = list(resolved.included_names)
            errors.extend(resolved.errors)
        line_map = line_map if line_map is not None else SourceLineMap()

        names = [p.name for p in paragraphs]
        program_id, id_errors = validate_program_id(facts.program_id, names)
        errors.extend(id_errors)

        catalog = FileCatalog.build(
            facts.file_descriptions, facts.file_controls, facts.data_items, line_map,
        )
        errors.extend(catalog.errors)

        structurer = BlockStructurer(self.config, catalog.descriptions)
        structured: List[Tuple[str, List[StatementNode]]] = []
        complexity: Dict[str, int] = {}
        calls: Dict[str, List[str]] = {"call": [], "perform": [], "goto": []}
        edges = []
        for paragraph in paragraphs:
            result = structurer.structure(paragraph, program_id)
            structured.append((paragraph.name, result.statements))
            errors.extend(result.errors)
            edges.extend(result.edges)
            complexity.setdefault(paragraph.name, result.complexity)
            for key, targets in (
                ("call", result.call_targets),
                ("perform", result.perform_targets),
                ("goto", result.goto_targets),
            ):
                for target in targets:
                    if target not in calls[key]:
                        calls[key].append(target)
        # One entry path plus every decision point of every paragraph.
        complexity["total"] = 1 + sum(c - 1 for c in complexity.values())

        call_graph = build_call_graph(names, edges, self.config.external_call_prefix)

        post = PostProcessor(line_map, catalog, self.config, program_id).process(structured)
        errors.extend(post.errors)

        tracker = DataFlowTracker(facts.declared_names)
        for name, stmts in post.paragraphs.items():
            tracker.track_paragraph(name, stmts)

        unreachable = call_graph.unreachable(list(post.paragraphs), self.config.main_paragraph)

        logger.info(
            "Analysed %s: %d paragraph(s), %d movement(s), %d diagnostic(s)",
            program_id, len(post.paragraphs), len(tracker.movements), len(errors),
        )
        return ProgramGraph(
            program_id=program_id,
            paragraphs=post.paragraphs,
            call_graph=call_graph,
            calls=calls,
            complexity=complexity,
            movements=tracker.movements,
            reads=tracker.reads,
            writes=tracker.writes,
            control_flow=post.control_flow,
            file_descriptions=post.file_descriptions,
            copybooks=copybooks,
            errors=errors,
            unreachable=unreachable,
        )
