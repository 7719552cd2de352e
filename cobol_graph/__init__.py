"""
COBOL Graph
===========

Turns the parsed representation of a legacy COBOL program into a structured
program graph: nested per-paragraph statement trees, a paragraph call graph
with reachability, variable movements, a line-level control-flow graph and a
diagnostics stream.

Splitting source into paragraphs and extracting declarations is left to an
upstream parser; this package starts from ``(text, line)`` statement facts.

Quick start
-----------
>>> from cobol_graph import Paragraph, ProgramAnalysis, ProgramFacts
>>> para = Paragraph.from_pairs("_MAIN", [("IF A = B.", 1), ("MOVE X TO Y.", 2), ("END-IF.", 3)])
>>> graph = ProgramAnalysis().analyze([para], ProgramFacts.with_variables("DEMO", ["A", "B", "X", "Y"]))
>>> graph.complexity["_MAIN"]
2
"""

from .models import (
    DataItem,
    Paragraph,
    ParsingError,
    ProgramFacts,
    RawStatementLine,
    SourceLineMap,
    StatementKind,
    StatementNode,
)
from .passes.copy_resolver import CopybookResolver, ResolveResult
from .parser.block_structurer import BlockStructurer
from .parser.statement_classifier import StatementClassifier
from .pipeline.call_graph import CallGraph
from .pipeline.config import AnalysisConfig
from .pipeline.data_flow import DataFlowTracker
from .pipeline.program_analysis import ProgramAnalysis, ProgramGraph
from .output.cfg_builder import CFGBuilder, ControlFlowGraph
from .output.diagrams import call_graph_mermaid, data_flow_mermaid

__version__ = "0.1.0"
__all__ = [
    "AnalysisConfig",
    "BlockStructurer",
    "CFGBuilder",
    "CallGraph",
    "ControlFlowGraph",
    "CopybookResolver",
    "DataFlowTracker",
    "DataItem",
    "Paragraph",
    "ParsingError",
    "ProgramAnalysis",
    "ProgramFacts",
    "ProgramGraph",
    "RawStatementLine",
    "ResolveResult",
    "SourceLineMap",
    "StatementClassifier",
    "StatementKind",
    "StatementNode",
    "call_graph_mermaid",
    "data_flow_mermaid",
]
