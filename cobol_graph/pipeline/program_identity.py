"""
Program-id validation.

A PROGRAM-ID is 1-31 letters, digits or hyphens.  A missing or empty id is
replaced by a generated ``UNKNOWN_<8 hex>`` placeholder so downstream output
always has a usable subject.
"""
from __future__ import annotations

import logging
import re
import uuid
from typing import Iterable, List, Optional, Tuple

from ..models import REFERENTIAL, ParsingError

logger = logging.getLogger(__name__)

_VALID_ID_RE = re.compile(r"^[A-Za-z0-9-]{1,31}$")


def _placeholder() -> str:
    return "UNKNOWN_" + uuid.uuid4().hex[:8]


def validate_program_id(
    raw: Optional[str],
    paragraph_names: Iterable[str] = (),
    line: int = 0,
) -> Tuple[str, List[ParsingError]]:
    """
    Return the program id to use and the referential diagnostics found.

    Parameters
    ----------
    raw:
        PROGRAM-ID as extracted upstream, or ``None`` when absent.
    paragraph_names:
        Upper-cased paragraph names of the program.
    line:
        Line of the PROGRAM-ID paragraph, for the diagnostics.
    """
    errors: List[ParsingError] = []

    if raw is None:
        program_id = _placeholder()
        errors.append(ParsingError("UNKNOWN", "Missing program name in PROGRAM-ID paragraph",
                                   line, REFERENTIAL))
    elif not raw.strip():
        program_id = _placeholder()
        errors.append(ParsingError("UNKNOWN", "Empty program name in PROGRAM-ID paragraph",
                                   line, REFERENTIAL))
    else:
        name = raw.strip().rstrip(".")
        program_id = name.upper()
        if not _VALID_ID_RE.match(name):
            errors.append(ParsingError(
                "UNKNOWN",
                f"Invalid program name: {name} (must be alphanumeric or hyphen, max 31 characters)",
                line, REFERENTIAL,
            ))

    if program_id in {p.upper() for p in paragraph_names}:
        errors.append(ParsingError(program_id,
                                   f"Program ID conflicts with paragraph name: {program_id}",
                                   line, REFERENTIAL))

    for err in errors:
        logger.warning("%s", err)
    return program_id, errors
