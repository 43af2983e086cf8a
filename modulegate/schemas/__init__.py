"""
ModuleGate Schemas - Pydantic models for the training platform.

This module exports all schema classes for:
- Content: quiz questions, pages, modules, training paths
- Progress: learner progress state, path quiz progress and quiz results
"""

# Content schemas
from .content import (
    QuizQuestion,
    Page,
    Module,
    PathQuiz,
    TrainingPath,
)

# Progress schemas
from .progress import (
    ProgressStatus,
    ProgressState,
    PathProgress,
    QuizResult,
)

__all__ = [
    # Content
    'QuizQuestion',
    'Page',
    'Module',
    'PathQuiz',
    'TrainingPath',
    # Progress
    'ProgressStatus',
    'ProgressState',
    'PathProgress',
    'QuizResult',
]
