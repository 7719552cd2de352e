"""
Core data models for the COBOL program-graph builder.

Statement trees, descriptors, call-graph edges, movement records, file
descriptions and diagnostics, as Python dataclasses.  Everything is plain
data: the structurer creates it, the post-processor mutates it in place and
the ``to_dict`` methods serialise it at the output boundary.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

_WS_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Statement kinds
# ---------------------------------------------------------------------------


class StatementKind(str, Enum):
    """Closed set of statement kinds a :class:`StatementNode` can carry."""

    IF = "IF"
    ELSE = "ELSE"
    CONDITION = "CONDITION"
    EVALUATE = "EVALUATE"
    WHEN = "WHEN"
    PERFORM = "PERFORM"
    CALL = "CALL"
    GOTO = "GOTO"
    MOVE = "MOVE"
    ADD = "ADD"
    SUBTRACT = "SUBTRACT"
    OPEN = "OPEN"
    CLOSE = "CLOSE"
    READ = "READ"
    WRITE = "WRITE"
    INSPECT = "INSPECT"
    AT_END = "AT_END"
    NOT_AT_END = "NOT_AT_END"
    DISPLAY = "DISPLAY"
    ACCEPT = "ACCEPT"
    GOBACK = "GOBACK"
    STOP_RUN = "STOP-RUN"
    OTHER = "OTHER"


# Diagnostic categories
STRUCTURAL = "structural"
REFERENTIAL = "referential"
MALFORMED_STATEMENT = "malformed-statement"
INCLUSION = "inclusion"


# ---------------------------------------------------------------------------
# Inputs supplied by the external parser
# ---------------------------------------------------------------------------


@dataclass
class RawStatementLine:
    """One statement fragment and the (expanded) line it starts on."""

    text: str
    line: int

    def __post_init__(self) -> None:
        self.text = _WS_RE.sub(" ", self.text).strip()


@dataclass
class Paragraph:
    """A named procedure paragraph and its ordered statement lines."""

    name: str
    lines: List[RawStatementLine] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip().upper()

    @classmethod
    def from_pairs(cls, name: str, pairs: Sequence[tuple]) -> "Paragraph":
        """Build a paragraph from ``(text, line)`` tuples."""
        return cls(name, [RawStatementLine(text, line) for text, line in pairs])


@dataclass
class DataItem:
    """A declared data item (WORKING-STORAGE / FILE SECTION entry)."""

    name: str
    level: str = ""
    picture: Optional[str] = None
    line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "level": self.level, "line": self.line}
        if self.picture is not None:
            d["picture"] = self.picture
        return d


class SourceLineMap(List[int]):
    """
    Expanded-line → original-line lookup produced by the copy resolver.

    Index ``i`` holds the original coordinate of expanded line ``i + 1``.
    """

    def remap(self, line: Optional[int]) -> Optional[int]:
        if line is not None and 0 < line <= len(self):
            return self[line - 1]
        return line


# ---------------------------------------------------------------------------
# Descriptors – at most one per statement node
# ---------------------------------------------------------------------------


@dataclass
class LoopDescriptor:
    variable: str = "UNKNOWN"
    from_: str = "UNKNOWN"
    by: str = "UNKNOWN"
    until: str = "UNKNOWN"
    loop_level: int = 0
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variable": self.variable,
            "from": self.from_,
            "by": self.by,
            "until": self.until,
            "loopLevel": self.loop_level,
            "parent": self.parent,
        }


@dataclass
class PerformDescriptor:
    start: str
    end: Optional[str] = None
    loop_level: int = 0
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"start": self.start}
        if self.end is not None:
            d["end"] = self.end
        d["loopLevel"] = self.loop_level
        d["parent"] = self.parent
        return d


@dataclass
class CallDescriptor:
    name: str
    args: List[str] = field(default_factory=list)
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "args": list(self.args), "parent": self.parent}


@dataclass
class GotoDescriptor:
    destination: str
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"destination": self.destination, "parent": self.parent}


@dataclass
class FileOpDescriptor:
    name: str
    description: Optional["FileDescription"] = None
    parent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            d["description"] = self.description.to_dict()
        d["parent"] = self.parent
        return d


@dataclass
class ConditionDescriptor:
    lhs: str
    rhs: str
    operator: str

    def to_dict(self) -> Dict[str, Any]:
        return {"lhs": self.lhs, "rhs": self.rhs, "operator": self.operator}


Descriptor = Union[
    LoopDescriptor,
    PerformDescriptor,
    CallDescriptor,
    GotoDescriptor,
    FileOpDescriptor,
    ConditionDescriptor,
]

_DESCRIPTOR_KEYS = {
    LoopDescriptor: "loop",
    PerformDescriptor: "perform",
    CallDescriptor: "call",
    GotoDescriptor: "goto",
    FileOpDescriptor: "fileOp",
    ConditionDescriptor: "condition",
}


# ---------------------------------------------------------------------------
# Statement node
# ---------------------------------------------------------------------------


@dataclass
class StatementNode:
    """
    One structured statement.

    ``then`` / ``else_`` / ``cases`` are only ever non-``None`` on the
    block-forming kinds (IF, EVALUATE, PERFORM, and AT_END / NOT_AT_END after
    type promotion).  ``attributes`` holds the raw facts parsed from the
    statement text until the post-processor folds them into ``descriptor``.
    """

    kind: StatementKind
    expanded_line: int
    content: str
    pseudocode: str = ""
    line: int = 0
    attributes: Dict[str, Any] = field(default_factory=dict)
    descriptor: Optional[Descriptor] = None
    then: Optional[List["StatementNode"]] = None
    else_: Optional[List["StatementNode"]] = None
    cases: Optional[List["StatementNode"]] = None
    block_kind: Optional[str] = None
    expanded_end_line: Optional[int] = None
    end_line: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.line:
            self.line = self.expanded_line

    # ------------------------------------------------------------------

    def child_lists(self) -> Iterator[List["StatementNode"]]:
        for block in (self.then, self.else_, self.cases):
            if block is not None:
                yield block

    def walk(self) -> Iterator["StatementNode"]:
        """Yield this node and every descendant in pre-order."""
        yield self
        for block in self.child_lists():
            for child in block:
                yield from child.walk()

    @property
    def signature(self) -> tuple:
        return (self.kind.value, self.expanded_line, self.content)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.kind.value,
            "line": self.line,
            "content": self.content,
            "pseudocode": self.pseudocode,
        }
        if self.then is not None:
            d["then"] = [c.to_dict() for c in self.then]
        if self.else_ is not None:
            d["else"] = [c.to_dict() for c in self.else_]
        if self.cases is not None:
            d["cases"] = [c.to_dict() for c in self.cases]
        if self.end_line is not None:
            d["endLine"] = self.end_line
        if self.descriptor is not None:
            key = _DESCRIPTOR_KEYS[type(self.descriptor)]
            d["metadata"] = {key: self.descriptor.to_dict()}
        return d

    def __repr__(self) -> str:
        return f"StatementNode(kind={self.kind.value!r}, line={self.line}, content={self.content!r})"


def walk_all(statements: Sequence[StatementNode]) -> Iterator[StatementNode]:
    for stmt in statements:
        yield from stmt.walk()


# ---------------------------------------------------------------------------
# Graph records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CallGraphEdge:
    """Directed edge from a paragraph to a paragraph or ``CALL::`` marker."""

    source: str
    target: str


@dataclass(frozen=True)
class MovementRecord:
    """A data dependency between declared variables induced by one statement."""

    operation: str
    sources: List[str]
    target: Optional[str]
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "source": list(self.sources),
            "target": self.target,
            "line": self.line,
        }


# ---------------------------------------------------------------------------
# File descriptions
# ---------------------------------------------------------------------------


@dataclass
class FileControlEntry:
    name: str
    select: str = "UNKNOWN"
    assign: Optional[str] = None
    organization: Optional[str] = None
    access_mode: Optional[str] = None
    record_key: Optional[str] = None
    line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "select": self.select, "line": self.line}
        for key, value in (
            ("assign", self.assign),
            ("organization", self.organization),
            ("accessMode", self.access_mode),
            ("recordKey", self.record_key),
        ):
            if value is not None:
                d[key] = value
        return d


@dataclass
class RecordLayout:
    name: str = "UNKNOWN"
    level: str = "UNKNOWN"
    line: int = 0
    picture: Optional[str] = None
    data_item: Optional[DataItem] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "level": self.level, "line": self.line}
        if self.picture is not None:
            d["picture"] = self.picture
        if self.data_item is not None:
            d["workingStorageRef"] = self.data_item.to_dict()
        return d


@dataclass
class FileDescription:
    name: str = "UNKNOWN"
    label: str = "OMITTED"
    line: int = 0
    records: List[RecordLayout] = field(default_factory=list)
    file_control: Optional[FileControlEntry] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "label": self.label,
            "line": self.line,
            "records": [r.to_dict() for r in self.records],
        }
        if self.file_control is not None:
            d["fileControl"] = self.file_control.to_dict()
        return d


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParsingError:
    """
    A recorded diagnostic.

    Never raised; appended to the run's error list in discovery order.
    """

    subject: str
    message: str
    line: int = 0
    category: str = STRUCTURAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file": self.subject,
            "message": self.message,
            "line": self.line,
            "category": self.category,
        }

    def __str__(self) -> str:
        where = f" (line {self.line})" if self.line else ""
        return f"[{self.category}] {self.subject}: {self.message}{where}"


# ---------------------------------------------------------------------------
# Program-level inputs
# ---------------------------------------------------------------------------


@dataclass
class ProgramFacts:
    """
    Everything the external extractors know about one program besides its
    paragraphs: the PROGRAM-ID, declared data items and raw FD /
    FILE-CONTROL attributes (mappings keyed the way the extractor emits them).
    """

    program_id: Optional[str] = None
    data_items: Dict[str, DataItem] = field(default_factory=dict)
    file_descriptions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    file_controls: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def with_variables(cls, program_id: Optional[str], names: Sequence[str]) -> "ProgramFacts":
        items = {n.upper(): DataItem(name=n.upper()) for n in names}
        return cls(program_id=program_id, data_items=items)

    @property
    def declared_names(self) -> set:
        return {name.upper() for name in self.data_items}
