"""Progress reporting for long generation runs."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProcessingPhase(str, Enum):
    """Phases of a generation run, in order."""
    TEMPLATE_ANALYSIS = "template_analysis"
    ALIAS_TRANSFORMATION = "alias_transformation"
    PLAN_GENERATION = "plan_generation"
    DATA_BINDING = "data_binding"
    FUNCTION_PROCESSING = "function_processing"
    FINALIZATION = "finalization"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


# Called as callback(phase, percentage, message)
ProgressCallback = Callable[[ProcessingPhase, int, str], None]


class ProgressReporter:
    """Forward progress to an optional callback and the log.

    Percentages are clamped to 0-100 and never go backwards within a run.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.percentage = 0

    def report(self, phase: ProcessingPhase, percentage: int, message: str = ""):
        self.percentage = max(self.percentage, min(max(int(percentage), 0), 100))
        logger.info(f"[{self.percentage:3d}%] {phase.label}{': ' + message if message else ''}")
        if self.callback is not None:
            self.callback(phase, self.percentage, message)
