"""Service layer: generation backends, pipelines and persistence."""

from .calibration import CalibrationState, VisionCreationOrchestrator
from .chapters import create_journal_with_chapter
from .results import StageResult, StageStatus

__all__ = [
    "CalibrationState",
    "StageResult",
    "StageStatus",
    "VisionCreationOrchestrator",
    "create_journal_with_chapter",
]
