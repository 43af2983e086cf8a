"""
Content schemas for ModuleGate.

Defines Pydantic models for training content:
- Quiz questions with multiple-choice options
- Pages, optionally gated by a quiz
- Modules (ordered pages)
- Training paths (ordered modules, optionally closed by a final quiz)

Content is read-only for the progression engine; all models are frozen.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional


# -----------------------------------------------------------------------------
# Quiz
# -----------------------------------------------------------------------------

class QuizQuestion(BaseModel):
    """Multiple-choice question; `correct` indexes into `options`."""
    model_config = ConfigDict(frozen=True)

    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=2)
    correct: int = Field(..., ge=0)
    explanation: Optional[str] = None

    @model_validator(mode='after')
    def correct_in_range(self):
        if self.correct >= len(self.options):
            raise ValueError(
                f'correct={self.correct} is out of range for {len(self.options)} options'
            )
        return self


# -----------------------------------------------------------------------------
# Pages and modules
# -----------------------------------------------------------------------------

class Page(BaseModel):
    """One screen of module content."""
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    position: int = Field(..., ge=0)
    has_quiz: bool = False
    quiz_questions: list[QuizQuestion] = Field(default_factory=list)
    content: str = ""

    @model_validator(mode='after')
    def quiz_has_questions(self):
        if self.has_quiz and not self.quiz_questions:
            raise ValueError(f'Page {self.id!r} requires a quiz but has no questions')
        return self


class Module(BaseModel):
    """
    Training module: an ordered sequence of pages.

    Pages are sorted by `position`; a page's ordinal is its index in
    `pages`, which is what progress state refers to.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    training_path_id: Optional[str] = None
    pages: list[Page] = Field(..., min_length=1)

    @field_validator('pages')
    @classmethod
    def sort_pages(cls, v):
        ids = [page.id for page in v]
        if len(ids) != len(set(ids)):
            raise ValueError('Duplicate page id in module')
        return sorted(v, key=lambda page: page.position)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def quiz_page_indices(self) -> list[int]:
        """Ordinals of pages that carry a quiz."""
        return [idx for idx, page in enumerate(self.pages) if page.has_quiz]


class PathQuiz(BaseModel):
    """Final quiz of a training path, open once every module is completed."""
    model_config = ConfigDict(frozen=True)

    questions: list[QuizQuestion] = Field(..., min_length=1)
    passing_score: int = Field(default=80, ge=0, le=100)
    max_attempts: int = Field(default=3, ge=1)


class TrainingPath(BaseModel):
    """Ordered list of modules; each unlocks when the previous one is completed."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    module_ids: list[str] = Field(..., min_length=1)
    final_quiz: Optional[PathQuiz] = None

    @field_validator('module_ids')
    @classmethod
    def unique_modules(cls, v):
        if len(v) != len(set(v)):
            raise ValueError('A module can appear only once in a training path')
        return v
