"""
AnalysisConfig
==============

Explicit configuration threaded through the resolver, classifier, structurer
and analysis facade.  Nothing in the package reads global settings; a caller
that wants a ``config.json`` loads it with :meth:`AnalysisConfig.from_json`.

Recognised keys (camelCase or snake_case):

==========================  =================================================
Key                         Meaning
==========================  =================================================
``mainParagraph``           Entry paragraph for reachability / CFG (``_MAIN``)
``controlKeywords``         Leading keywords the classifier recognises
``copyExtensions``          Copybook file extensions tried in order
``maxCopyDepth``            Nesting limit for COPY expansion (10)
``externalCallPrefix``      Namespace for external CALL targets (``CALL::``)
``outOfLinePerformBlocks``  Whether ``PERFORM PARA`` opens a block (True)
==========================  =================================================
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, FrozenSet, Mapping, Tuple

from .keywords import DEFAULT_CONTROL_KEYWORDS

logger = logging.getLogger(__name__)

_CAMEL_KEYS = {
    "mainParagraph": "main_paragraph",
    "controlKeywords": "control_keywords",
    "copyExtensions": "copy_extensions",
    "maxCopyDepth": "max_copy_depth",
    "externalCallPrefix": "external_call_prefix",
    "outOfLinePerformBlocks": "out_of_line_perform_blocks",
}


@dataclass(frozen=True)
class AnalysisConfig:
    main_paragraph: str = "_MAIN"
    control_keywords: FrozenSet[str] = field(default=DEFAULT_CONTROL_KEYWORDS)
    copy_extensions: Tuple[str, ...] = (".cpy", ".cob", ".inc")
    max_copy_depth: int = 10
    external_call_prefix: str = "CALL::"
    out_of_line_perform_blocks: bool = True

    def __post_init__(self) -> None:
        # Paragraph names and keywords are compared upper-cased.
        object.__setattr__(self, "main_paragraph", str(self.main_paragraph).strip().upper())
        object.__setattr__(
            self, "control_keywords",
            frozenset(k.strip().upper() for k in self.control_keywords),
        )
        object.__setattr__(self, "copy_extensions", tuple(self.copy_extensions))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_KEYS.get(key, key)
            if name not in known:
                logger.debug("Ignoring unknown config key %r", key)
                continue
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_json(cls, path: str | Path) -> "AnalysisConfig":
        """Load a config file; a missing file yields the defaults."""
        config_path = Path(path)
        if not config_path.exists():
            logger.debug("No config file at %s; using defaults", config_path)
            return cls()
        data = json.loads(config_path.read_text(encoding="utf-8"))
        return cls.from_mapping(data)
