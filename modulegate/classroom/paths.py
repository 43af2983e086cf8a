"""
Training path locking - Module-level gating within a training path.

A path is an ordered list of modules. The first module is always open;
every later module stays locked until the module before it is completed.

A path may end with a final quiz. It opens once every module of the path
is completed, is passed at the quiz's own passing score and allows a
limited number of attempts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Mapping, Optional, Sequence

from modulegate.errors import AccessDenied, InvalidInput, PersistenceError
from modulegate.schemas import PathProgress, ProgressStatus, QuizResult, TrainingPath

from .progress import PathProgressStore
from .quiz import evaluate


logger = logging.getLogger(__name__)


@dataclass
class ModuleAccess:
    """Lock state of one module within a training path."""
    module_id: str
    position: int
    is_locked: bool
    status: ProgressStatus
    previous_module_id: Optional[str] = None
    reason: Optional[str] = None


def module_availability(
    path: TrainingPath,
    statuses: Mapping[str, ProgressStatus],
    known_modules: Optional[set[str]] = None,
) -> list[ModuleAccess]:
    """
    Compute lock state for every module of a path.

    Args:
        path: Training path
        statuses: Learner status per module id (missing = not started)
        known_modules: If given, every path module must be in this set

    Raises:
        InvalidInput: If the path names a module outside `known_modules`
    """
    if known_modules is not None:
        unknown = [mid for mid in path.module_ids if mid not in known_modules]
        if unknown:
            raise InvalidInput(
                f"Training path '{path.id}' references unknown modules: {', '.join(unknown)}",
                details={"path_id": path.id, "unknown": unknown},
            )

    result = []
    previous_id: Optional[str] = None
    for position, module_id in enumerate(path.module_ids):
        status = statuses.get(module_id, ProgressStatus.NOT_STARTED)
        if previous_id is None:
            locked, reason = False, None
        elif statuses.get(previous_id) == ProgressStatus.COMPLETED:
            locked, reason = False, None
        else:
            locked, reason = True, f"Complete '{previous_id}' first"

        result.append(ModuleAccess(
            module_id=module_id,
            position=position,
            is_locked=locked,
            status=status,
            previous_module_id=previous_id,
            reason=reason,
        ))
        previous_id = module_id
    return result


def is_module_locked(
    path: TrainingPath,
    module_id: str,
    statuses: Mapping[str, ProgressStatus],
) -> bool:
    """Lock state of one module; modules outside the path count as locked."""
    for access in module_availability(path, statuses):
        if access.module_id == module_id:
            return access.is_locked
    return True


# -----------------------------------------------------------------------------
# Final quiz
# -----------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def incomplete_modules(path: TrainingPath, statuses: Mapping[str, ProgressStatus]) -> list[str]:
    """Path modules not yet completed, in path order."""
    return [mid for mid in path.module_ids if statuses.get(mid) != ProgressStatus.COMPLETED]


def attempts_remaining(path: TrainingPath, progress: Optional[PathProgress]) -> int:
    """Final quiz attempts left; 0 for paths without a final quiz."""
    if path.final_quiz is None:
        return 0
    used = progress.quiz_attempts if progress else 0
    return max(0, path.final_quiz.max_attempts - used)


async def submit_path_quiz(
    path: TrainingPath,
    learner_id: str,
    answers: Sequence[Optional[int]],
    statuses: Mapping[str, ProgressStatus],
    store: PathProgressStore,
    clock: Callable[[], datetime] = _utcnow,
) -> tuple[QuizResult, PathProgress]:
    """
    Score an attempt at the final quiz of a training path.

    Every attempt counts, pass or fail. The first pass completes the path.

    Args:
        path: Training path with a final quiz
        learner_id: Learner identifier
        answers: Selected option index per question
        statuses: Learner status per module id
        store: Store holding path quiz progress
        clock: Source of timestamps

    Returns:
        (QuizResult, updated PathProgress)

    Raises:
        InvalidInput: No final quiz, quiz already passed, or malformed answers
        AccessDenied: Modules still open, or no attempts left
        PersistenceError: If the store cannot load or save
    """
    quiz = path.final_quiz
    if quiz is None:
        raise InvalidInput(f"Training path '{path.id}' has no final quiz", details={"path_id": path.id})

    missing = incomplete_modules(path, statuses)
    if missing:
        raise AccessDenied(
            f"Complete every module of '{path.id}' before the final quiz",
            details={"path_id": path.id, "incomplete_modules": missing},
        )

    progress = await _call_store(store.load_path(learner_id, path.id), learner_id, path.id)
    if progress is None:
        progress = PathProgress(learner_id=learner_id, path_id=path.id)
    if progress.is_completed:
        raise InvalidInput(
            f"Final quiz of '{path.id}' is already passed",
            details={"path_id": path.id, "quiz_score": progress.quiz_score},
        )
    if attempts_remaining(path, progress) == 0:
        raise AccessDenied(
            f"No attempts left for the final quiz of '{path.id}'",
            details={"path_id": path.id, "max_attempts": quiz.max_attempts},
        )

    result = evaluate(quiz.questions, answers, passing_score=quiz.passing_score)

    now = clock()
    progress.quiz_attempts += 1
    progress.quiz_score = result.score
    progress.updated_at = now
    if result.passed:
        progress.status = ProgressStatus.COMPLETED
        progress.completed_at = now
    else:
        progress.status = ProgressStatus.IN_PROGRESS
    logger.info(
        "Learner %s scored %d on the final quiz of %s (attempt %d/%d, %s)",
        learner_id, result.score, path.id, progress.quiz_attempts, quiz.max_attempts,
        "passed" if result.passed else "failed",
    )

    await _call_store(store.save_path(progress), learner_id, path.id)
    return result, progress


async def _call_store(awaitable, learner_id: str, path_id: str):
    try:
        return await awaitable
    except PersistenceError:
        raise
    except Exception as e:
        logger.error("Path progress store failed for %s/%s: %s", learner_id, path_id, e)
        raise PersistenceError(
            f"Path progress store failed: {e}",
            learner_id=learner_id,
            details={"path_id": path_id},
        ) from e
