"""Generation orchestration: artifact persistence, resume detection, and runs."""

from .orchestrator import (
    GenerationOptions,
    GenerationOrchestrator,
    RunnerState,
    RunPhase,
)
from .resume import ChapterStatus, ResumePoint, detect_resume_point

__all__ = [
    "ChapterStatus",
    "GenerationOptions",
    "GenerationOrchestrator",
    "ResumePoint",
    "RunPhase",
    "RunnerState",
    "detect_resume_point",
]
