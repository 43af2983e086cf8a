"""Shared fixtures for ModuleGate tests."""

import pytest

from modulegate.classroom import EventBus, EventRecorder, InMemoryProgressStore
from modulegate.schemas import Module, Page, QuizQuestion


def make_questions(count: int, correct: int = 0) -> list[QuizQuestion]:
    """`count` two-option questions whose right answer is `correct`."""
    return [
        QuizQuestion(question=f"Question {i + 1}?", options=["A", "B"], correct=correct)
        for i in range(count)
    ]


def make_page(index: int, has_quiz: bool = False, questions: int = 2) -> Page:
    return Page(
        id=f"page-{index}",
        title=f"Page {index}",
        position=index,
        has_quiz=has_quiz,
        quiz_questions=make_questions(questions) if has_quiz else [],
    )


def make_module(quiz_flags: list[bool], questions: int = 2, module_id: str = "mod-1") -> Module:
    """Module whose page i carries a quiz when quiz_flags[i] is True."""
    return Module(
        id=module_id,
        title="Test Module",
        pages=[make_page(i, flag, questions) for i, flag in enumerate(quiz_flags)],
    )


def answers_for(correct_count: int, total: int) -> list[int]:
    """Answers to make_questions(total) with exactly `correct_count` right."""
    return [0] * correct_count + [1] * (total - correct_count)


@pytest.fixture
def store():
    return InMemoryProgressStore()


@pytest.fixture
def recorder():
    return EventRecorder()


@pytest.fixture
def bus(recorder):
    bus = EventBus()
    bus.subscribe_all(recorder)
    return bus
