"""
Quiz evaluator - Score a quiz attempt and apply the pass threshold.

Provides:
- PASS_THRESHOLD: the pass mark of every page quiz
- evaluate(): score answered questions (pure, no side effects)
- round_half_up(): rounding shared with module score aggregation
"""

from typing import Optional, Sequence

from modulegate.errors import InvalidInput
from modulegate.schemas import QuizQuestion, QuizResult


PASS_THRESHOLD = 80
NO_ANSWER = -1


def round_half_up(numerator: int, denominator: int) -> int:
    """Round numerator / denominator to the nearest integer, halves going up."""
    return (2 * numerator + denominator) // (2 * denominator)


def evaluate(
    questions: Sequence[QuizQuestion],
    answers: Sequence[Optional[int]],
    passing_score: int = PASS_THRESHOLD,
) -> QuizResult:
    """
    Score a quiz attempt.

    Args:
        questions: Ordered quiz questions
        answers: Selected option index per question; NO_ANSWER or None
            for an unanswered question, which counts as incorrect
        passing_score: Pass mark; page quizzes always use PASS_THRESHOLD

    Returns:
        QuizResult with score 0-100 and passed = score >= passing_score

    Raises:
        InvalidInput: If there are no questions, the answer count does not
            match, or an answer is not a valid option index
    """
    total = len(questions)
    if total == 0:
        raise InvalidInput("Cannot evaluate a quiz without questions")
    if len(answers) != total:
        raise InvalidInput(
            f"Expected {total} answers, got {len(answers)}",
            details={"expected": total, "received": len(answers)},
        )

    correct_count = 0
    for idx, (question, answer) in enumerate(zip(questions, answers)):
        if answer is None or answer == NO_ANSWER:
            continue
        if isinstance(answer, bool) or not isinstance(answer, int):
            raise InvalidInput(f"Answer {idx} is not an option index: {answer!r}")
        if not 0 <= answer < len(question.options):
            raise InvalidInput(
                f"Answer {idx} selects option {answer}, question has {len(question.options)}",
                details={"question_index": idx, "answer": answer},
            )
        if answer == question.correct:
            correct_count += 1

    score = round_half_up(100 * correct_count, total)
    return QuizResult(
        score=score,
        passed=score >= passing_score,
        correct_count=correct_count,
        total_questions=total,
    )
