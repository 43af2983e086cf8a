"""
Progress tracking schemas for ModuleGate.

Defines Pydantic models for learner progress including:
- Module status tracking
- Per-module progress state (completed pages, quiz scores)
- Quiz attempt results
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProgressState(BaseModel):
    """
    Progress of one learner through one module.

    Keyed by (learner_id, module_id). `completed_pages` holds page
    ordinals, `page_scores` maps a quiz page ordinal to its most recent
    score. `overall_score` is only set once the module is completed.
    """
    learner_id: str
    module_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    completed_pages: set[int] = Field(default_factory=set)
    page_scores: dict[int, int] = Field(default_factory=dict)
    overall_score: Optional[int] = Field(default=None, ge=0, le=100)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('completed_pages')
    @classmethod
    def ordinals_non_negative(cls, v):
        if any(idx < 0 for idx in v):
            raise ValueError('Page ordinals must be >= 0')
        return v

    @field_validator('page_scores')
    @classmethod
    def scores_in_range(cls, v):
        for idx, score in v.items():
            if idx < 0:
                raise ValueError('Page ordinals must be >= 0')
            if not 0 <= score <= 100:
                raise ValueError(f'Score for page {idx} must be within 0-100, got {score}')
        return v

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED


class QuizResult(BaseModel):
    """Outcome of one quiz attempt."""
    score: int = Field(..., ge=0, le=100)
    passed: bool
    correct_count: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=1)


class PathProgress(BaseModel):
    """
    Progress of one learner on the final quiz of a training path.

    `quiz_score` is the most recent attempt. Status becomes completed on
    the first passing attempt and stays there.
    """
    learner_id: str
    path_id: str
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    quiz_score: Optional[int] = Field(default=None, ge=0, le=100)
    quiz_attempts: int = Field(default=0, ge=0)
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED
