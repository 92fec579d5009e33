"""Diagnostics collected while parsing, planning and resolving a template.

Parse, planning and resolution problems never abort a generation run. They are
logged and recorded as Diagnostic entries so callers can inspect what was
degraded after the fact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    """Category of a recorded problem."""
    PARSE = "parse"
    PLANNING = "planning"
    RESOLUTION = "resolution"
    ALIAS_CYCLE = "alias_cycle"


@dataclass(frozen=True)
class Diagnostic:
    """A single non-fatal problem.

    Attributes:
        kind: Problem category.
        message: Human-readable description.
        slide_id: Template slide the problem belongs to, if known.
    """
    kind: DiagnosticKind
    message: str
    slide_id: int | None = None

    def __str__(self) -> str:
        where = f" (slide {self.slide_id})" if self.slide_id is not None else ""
        return f"[{self.kind.value}]{where} {self.message}"


def report(
    diagnostics: list[Diagnostic] | None,
    kind: DiagnosticKind,
    message: str,
    slide_id: int | None = None,
) -> Diagnostic:
    """Log a diagnostic and append it to a collection when one is given."""
    diagnostic = Diagnostic(kind=kind, message=message, slide_id=slide_id)
    logger.warning(str(diagnostic))
    if diagnostics is not None:
        diagnostics.append(diagnostic)
    return diagnostic
