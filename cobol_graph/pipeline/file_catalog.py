"""
FileCatalog
===========

Normalises the raw FILE-CONTROL and FD facts extracted upstream into
:class:`~cobol_graph.models.FileControlEntry` /
:class:`~cobol_graph.models.FileDescription` objects and cross-references
them by file name.

Raw FILE-CONTROL facts are mappings with ``name``, ``assign``,
``organization``, ``accessMode`` (or ``access_mode``), ``recordKey`` (or
``record_key``) and ``line``.  A fact may instead carry the entry's ``text``
(``SELECT CUST-FILE ASSIGN TO CUSTIN ...``); the clauses are then split out of
it.

Raw FD facts are mappings with ``name``, ``line``, an optional ``label`` and
an ordered ``records`` list of ``{name, level, line, picture}``.

Checks (all referential diagnostics):

* FILE-CONTROL entry without a file name
* FD without a matching FILE-CONTROL entry
* LABEL RECORD clause that is neither STANDARD nor OMITTED
* FD without records
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..models import (
    REFERENTIAL,
    DataItem,
    FileControlEntry,
    FileDescription,
    ParsingError,
    RecordLayout,
    SourceLineMap,
)

logger = logging.getLogger(__name__)

# Clause keyword → (field, number of words that follow it)
_SELECT_CLAUSES = {
    "ASSIGN": ("assign", 2),
    "ORGANIZATION": ("organization", 2),
    "ACCESS": ("access_mode", 3),
    "RECORD": ("record_key", 2),
}


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw[key]
    return None


def parse_select_text(text: str) -> Dict[str, Any]:
    """Split a ``SELECT ...`` FILE-CONTROL entry into its clauses."""
    parts = text.upper().split()
    facts: Dict[str, Any] = {}
    i = 0
    while i < len(parts):
        word = parts[i]
        if word == "SELECT" and i + 1 < len(parts):
            facts["name"] = parts[i + 1].replace(".", "")
            i += 2
        elif "name" in facts and word in _SELECT_CLAUSES:
            key, width = _SELECT_CLAUSES[word]
            words = parts[i + 1:i + 1 + width]
            if len(words) == width:
                facts[key] = " ".join(words).replace(".", "")
                i += 1 + width
            else:
                i += 1
        else:
            i += 1
    return facts


@dataclass
class FileCatalog:
    """Name-keyed file descriptions and FILE-CONTROL entries for one program."""

    descriptions: Dict[str, FileDescription] = field(default_factory=dict)
    file_controls: Dict[str, FileControlEntry] = field(default_factory=dict)
    errors: List[ParsingError] = field(default_factory=list)

    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        raw_fds: Optional[Mapping[str, Mapping[str, Any]]] = None,
        raw_file_controls: Optional[Mapping[str, Mapping[str, Any]]] = None,
        data_items: Optional[Mapping[str, DataItem]] = None,
        line_map: Optional[SourceLineMap] = None,
    ) -> "FileCatalog":
        """
        Shape and cross-reference the raw facts.

        Parameters
        ----------
        raw_fds / raw_file_controls:
            Raw facts keyed by file name, as extracted upstream.
        data_items:
            Declared data items; record layouts whose name matches one get a
            back-reference to it.
        line_map:
            Used to remap the raw (expanded) line numbers.
        """
        catalog = cls()
        line_map = line_map if line_map is not None else SourceLineMap()
        data_items = {k.upper(): v for k, v in (data_items or {}).items()}

        for key, raw in (raw_file_controls or {}).items():
            catalog._add_file_control(key, raw, line_map)
        for key, raw in (raw_fds or {}).items():
            catalog._add_description(key, raw, data_items, line_map)

        logger.debug(
            "File catalog: %d FD(s), %d FILE-CONTROL entr(ies), %d diagnostic(s)",
            len(catalog.descriptions), len(catalog.file_controls), len(catalog.errors),
        )
        return catalog

    def get(self, name: str) -> Optional[FileDescription]:
        return self.descriptions.get(name.upper())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _error(self, subject: str, message: str, line: int) -> None:
        err = ParsingError(subject, message, line, REFERENTIAL)
        logger.warning("%s", err)
        self.errors.append(err)

    def _add_file_control(self, key: str, raw: Mapping[str, Any], line_map: SourceLineMap) -> None:
        facts: Dict[str, Any] = dict(raw)
        if raw.get("text"):
            facts = {**parse_select_text(str(raw["text"])), **facts}
        name = str(_first(facts, "name") or key or "UNKNOWN").upper()
        line = line_map.remap(int(facts.get("line") or 0)) or 0
        if name == "UNKNOWN":
            self._error(name, "Missing file name in FILE-CONTROL entry", line)

        select_parts = [f"SELECT {name}"] if name != "UNKNOWN" else []
        entry = FileControlEntry(
            name=name,
            assign=_first(facts, "assign"),
            organization=_first(facts, "organization"),
            access_mode=_first(facts, "accessMode", "access_mode"),
            record_key=_first(facts, "recordKey", "record_key"),
            line=line,
        )
        for label, value in (
            ("ASSIGN", entry.assign),
            ("ORGANIZATION", entry.organization),
            ("ACCESS", entry.access_mode),
            ("RECORD", entry.record_key),
        ):
            if value is not None and select_parts:
                select_parts.append(f"{label} {value}")
        entry.select = " ".join(select_parts) if select_parts else "UNKNOWN"
        self.file_controls[name] = entry

    def _add_description(
        self,
        key: str,
        raw: Mapping[str, Any],
        data_items: Mapping[str, DataItem],
        line_map: SourceLineMap,
    ) -> None:
        name = str(raw.get("name") or key or "UNKNOWN").upper()
        line = line_map.remap(int(raw.get("line") or 0)) or 0

        label = str(raw.get("label") or "OMITTED").upper()
        label = label.replace("LABEL RECORDS ARE ", "").replace("LABEL RECORD IS ", "").strip()
        if "STANDARD" not in label and "OMITTED" not in label:
            self._error(name, f"Invalid LABEL RECORD clause for file {name}: {label}", line)

        records: List[RecordLayout] = []
        for raw_record in raw.get("records") or []:
            record_name = str(raw_record.get("name") or "UNKNOWN").upper()
            layout = RecordLayout(
                name=record_name,
                level=str(raw_record.get("level") or "UNKNOWN"),
                line=line_map.remap(int(raw_record.get("line") or 0)) or 0,
                picture=raw_record.get("picture"),
                data_item=data_items.get(record_name),
            )
            if layout.data_item is None:
                logger.debug("No data item backs record %s of file %s", record_name, name)
            records.append(layout)
        if not records:
            self._error(name, f"No records defined in FD for file {name}", line)

        file_control = self.file_controls.get(name)
        if file_control is None:
            self._error(name, f"No FILE-CONTROL entry found for file {name}", line)

        self.descriptions[name] = FileDescription(
            name=name,
            label=label,
            line=line,
            records=records,
            file_control=file_control,
        )
