"""Stage generators built on the operation runner.

Each stage is an independent request/response contract; the orchestrator
decides when a stage runs and what happens to its output.
"""

from .base import StageGenerator, StageResult
from .flashcards import FlashcardGenerator
from .outline import OutlineGenerator
from .podcast import AudioGenerator, PodcastScriptGenerator
from .quiz import QuizGenerator
from .theory import ChapterContentGenerator

__all__ = [
    "AudioGenerator",
    "ChapterContentGenerator",
    "FlashcardGenerator",
    "OutlineGenerator",
    "PodcastScriptGenerator",
    "QuizGenerator",
    "StageGenerator",
    "StageResult",
]
