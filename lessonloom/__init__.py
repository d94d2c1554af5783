"""Top-level package for Lessonloom.

Lessonloom drives a resumable, multi-stage generative pipeline that turns a
topic into chapters, flashcards, quizzes, and optional podcast audio. The main
orchestration entry point is `GenerationOrchestrator`.
"""

from .pipeline import GenerationOrchestrator

__all__ = ["GenerationOrchestrator", "__version__"]

__version__ = "0.1.0"
