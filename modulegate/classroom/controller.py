"""
ModuleController - Drive one learner through one multi-page module.

Combines the page access rules, the quiz evaluator and a progress store:
- open(): load or create progress, reconcile it with the module
- navigate(): move the page cursor, gated by can_access()
- complete_page(): mark a plain page done
- submit_quiz(): score a quiz page, completing it on a pass

Every mutating call updates the in-memory state first and then awaits the
store. A PersistenceError therefore means "state changed here, store may
be behind"; call save() to retry.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence

from modulegate.errors import AccessDenied, InvalidInput, PersistenceError
from modulegate.schemas import Module, ProgressState, ProgressStatus, QuizResult

from .access import NavigationPage, accessible_pages, can_access, missing_quizzes, page_overview
from .events import EventBus, ModuleCompleted, PageUnlocked
from .progress import ProgressStore
from .quiz import evaluate, round_half_up


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def aggregate_score(page_scores: dict[int, int]) -> int:
    """Mean of all recorded quiz scores, rounded half up; 0 without quizzes."""
    if not page_scores:
        return 0
    return round_half_up(sum(page_scores.values()), len(page_scores))


class ModuleController:
    """
    Progression state machine for one (learner, module) pair.

    Status moves not_started -> in_progress -> completed and never back.
    Only one caller is expected to mutate a controller at a time.
    """

    def __init__(
        self,
        module: Module,
        learner_id: str,
        store: ProgressStore,
        events: Optional[EventBus] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize controller.

        Args:
            module: Module content (never modified)
            learner_id: Learner identifier
            store: Progress store used for load/save
            events: Optional bus receiving PageUnlocked / ModuleCompleted
            clock: Source of timestamps
        """
        self.module = module
        self.learner_id = learner_id
        self.store = store
        self.events = events
        self._clock = clock
        self._state: Optional[ProgressState] = None
        self.current_page_index = 0

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def pages(self):
        return self.module.pages

    @property
    def state(self) -> ProgressState:
        if self._state is None:
            raise RuntimeError("ModuleController.open() must be awaited first")
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is not None

    @property
    def status(self) -> ProgressStatus:
        return self.state.status

    def can_access(self, page_index: int) -> bool:
        """Check whether the learner may move to `page_index` now."""
        return can_access(page_index, self.pages, self.state.completed_pages, self.current_page_index)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def open(self) -> ProgressState:
        """
        Load progress for this learner and module, creating it if needed.

        New progress starts at not_started and is moved to in_progress
        straight away. Existing progress keeps its status; a completed
        module stays completed and remains viewable.

        Raises:
            PersistenceError: If the store cannot load or save
        """
        self.current_page_index = 0
        try:
            loaded = await self.store.load(self.learner_id, self.module.id)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("Progress store failed to load %s/%s: %s", self.learner_id, self.module.id, e)
            raise PersistenceError(
                f"Failed to load progress: {e}",
                learner_id=self.learner_id,
                module_id=self.module.id,
            ) from e

        if loaded is None:
            now = self._clock()
            self._state = ProgressState(learner_id=self.learner_id, module_id=self.module.id)
            self._state.status = ProgressStatus.IN_PROGRESS
            self._state.started_at = now
            logger.info("Learner %s started module %s", self.learner_id, self.module.id)
            await self._persist()
            return self._state

        loaded.learner_id = self.learner_id
        loaded.module_id = self.module.id
        self._state = loaded
        if self._reconcile():
            await self._persist()
        logger.info(
            "Learner %s opened module %s (%s, %d/%d pages)",
            self.learner_id, self.module.id, loaded.status.value,
            len(loaded.completed_pages), len(self.pages),
        )
        return self._state

    def _reconcile(self) -> bool:
        """Bring loaded progress in line with the module. Returns True if changed."""
        state = self.state
        total = len(self.pages)
        changed = False

        stray_pages = {idx for idx in state.completed_pages if idx >= total}
        stray_scores = {idx for idx in state.page_scores if idx >= total}
        if stray_pages or stray_scores:
            logger.warning(
                "Dropping progress for pages outside module %s: %s",
                self.module.id, sorted(stray_pages | stray_scores),
            )
            state.completed_pages -= stray_pages
            for idx in stray_scores:
                del state.page_scores[idx]
            changed = True

        if state.status == ProgressStatus.NOT_STARTED:
            state.status = ProgressStatus.IN_PROGRESS
            state.started_at = state.started_at or self._clock()
            changed = True

        if state.status == ProgressStatus.COMPLETED:
            if len(state.completed_pages) < total:
                # completed is terminal; content grew after completion
                logger.warning(
                    "Module %s was completed by %s before pages were added; keeping it completed",
                    self.module.id, self.learner_id,
                )
                state.completed_pages = set(range(total))
                changed = True
            if state.overall_score is None:
                state.overall_score = aggregate_score(state.page_scores)
                changed = True
        elif len(state.completed_pages) == total:
            logger.warning("Stored progress for %s/%s has every page done; completing", self.learner_id, self.module.id)
            self._finish_module()
            changed = True

        return changed

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    async def navigate(self, target_index: int) -> int:
        """
        Move the cursor to `target_index`.

        Moving forward off a plain page that is not yet complete marks it
        complete first.

        Returns:
            The new cursor position

        Raises:
            AccessDenied: If the page is locked (nothing changes)
            PersistenceError: If a completion could not be saved
        """
        state = self.state
        if not self.can_access(target_index):
            logger.info(
                "Learner %s denied page %s of module %s",
                self.learner_id, target_index, self.module.id,
            )
            raise AccessDenied(
                f"Page {target_index} of module '{self.module.id}' is locked",
                page_index=target_index,
                details={"missing_quizzes": missing_quizzes(target_index, self.pages, state.completed_pages)},
            )

        before = self._accessible()
        changed = False
        current = self.pages[self.current_page_index]
        if (
            target_index > self.current_page_index
            and not current.has_quiz
            and self.current_page_index not in state.completed_pages
        ):
            changed = self._mark_complete(self.current_page_index)

        self.current_page_index = target_index
        self._publish_unlocks(before)
        if changed:
            await self._persist()
        return self.current_page_index

    async def next_page(self) -> int:
        """Move to the page after the current one."""
        return await self.navigate(self.current_page_index + 1)

    async def previous_page(self) -> int:
        """Move to the page before the current one."""
        if self.current_page_index == 0:
            raise AccessDenied("Already on the first page", page_index=-1)
        return await self.navigate(self.current_page_index - 1)

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    async def complete_page(self, page_index: int) -> ProgressState:
        """
        Mark a page without quiz as done.

        Completing the last missing page completes the module. Calling this
        again for a page that is already done only re-saves.

        Raises:
            InvalidInput: If the page does not exist
            AccessDenied: If the page is locked, or carries a quiz not yet passed
            PersistenceError: If the store cannot save
        """
        state = self.state
        page = self._page(page_index)
        already_done = page_index in state.completed_pages

        if not already_done:
            if page.has_quiz:
                raise AccessDenied(
                    f"Page {page_index} requires passing its quiz",
                    page_index=page_index,
                )
            if not self.can_access(page_index):
                raise AccessDenied(
                    f"Page {page_index} of module '{self.module.id}' is locked",
                    page_index=page_index,
                    details={"missing_quizzes": missing_quizzes(page_index, self.pages, state.completed_pages)},
                )

        before = self._accessible()
        self._mark_complete(page_index)
        self._publish_unlocks(before)
        await self._persist()
        return state

    async def submit_quiz(self, page_index: int, answers: Sequence[Optional[int]]) -> QuizResult:
        """
        Score a quiz attempt for `page_index`.

        The score is recorded whether or not the attempt passes, so the
        latest attempt is always the score of record. A pass completes the
        page; a fail leaves the learner where they are.

        Raises:
            InvalidInput: Unknown page, page without quiz, or malformed answers
            AccessDenied: If the page is locked
            PersistenceError: If the store cannot save
        """
        state = self.state
        page = self._page(page_index)
        if not page.has_quiz:
            raise InvalidInput(f"Page {page_index} has no quiz", details={"page_index": page_index})
        if not self.can_access(page_index):
            raise AccessDenied(
                f"Page {page_index} of module '{self.module.id}' is locked",
                page_index=page_index,
            )

        result = evaluate(page.quiz_questions, answers)

        before = self._accessible()
        state.page_scores[page_index] = result.score
        if result.passed:
            self._mark_complete(page_index)
        logger.info(
            "Learner %s scored %d on page %d of module %s (%s)",
            self.learner_id, result.score, page_index, self.module.id,
            "passed" if result.passed else "failed",
        )
        self._publish_unlocks(before)
        await self._persist()
        return result

    async def save(self):
        """Persist the current state again, e.g. after a PersistenceError."""
        await self._persist()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def overview(self) -> list[NavigationPage]:
        """Per-page availability for navigation display."""
        return page_overview(self.pages, self.state.completed_pages, self.current_page_index)

    def summary(self) -> dict[str, Any]:
        """Progress summary for display."""
        state = self.state
        total = len(self.pages)
        return {
            "module_id": self.module.id,
            "status": state.status.value,
            "completed": len(state.completed_pages),
            "total_pages": total,
            "completion_percent": round(len(state.completed_pages) / total * 100, 1),
            "current_page_index": self.current_page_index,
            "page_scores": dict(sorted(state.page_scores.items())),
            "overall_score": state.overall_score,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _page(self, page_index: int):
        if not 0 <= page_index < len(self.pages):
            raise InvalidInput(
                f"Module '{self.module.id}' has no page {page_index}",
                details={"page_index": page_index, "page_count": len(self.pages)},
            )
        return self.pages[page_index]

    def _accessible(self) -> set[int]:
        return accessible_pages(self.pages, self.state.completed_pages, self.current_page_index)

    def _mark_complete(self, page_index: int) -> bool:
        """Add a page to the completed set. Returns False if it was already there."""
        state = self.state
        if page_index in state.completed_pages:
            return False
        state.completed_pages.add(page_index)
        if state.status != ProgressStatus.COMPLETED and len(state.completed_pages) == len(self.pages):
            self._finish_module()
        return True

    def _finish_module(self):
        """Transition to completed. Called once per progress state."""
        state = self.state
        state.status = ProgressStatus.COMPLETED
        state.overall_score = aggregate_score(state.page_scores)
        state.completed_at = self._clock()
        logger.info(
            "Learner %s completed module %s with score %d",
            self.learner_id, self.module.id, state.overall_score,
        )
        if self.events:
            self.events.publish(ModuleCompleted(
                learner_id=self.learner_id,
                module_id=self.module.id,
                overall_score=state.overall_score,
            ))

    def _publish_unlocks(self, before: set[int]):
        if not self.events:
            return
        for idx in sorted(self._accessible() - before):
            self.events.publish(PageUnlocked(
                learner_id=self.learner_id,
                module_id=self.module.id,
                page_index=idx,
                page_title=self.pages[idx].title,
            ))

    async def _persist(self):
        state = self.state
        state.updated_at = self._clock()
        try:
            await self.store.save(state)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error("Progress store failed for %s/%s: %s", self.learner_id, self.module.id, e)
            raise PersistenceError(
                f"Failed to save progress: {e}",
                learner_id=self.learner_id,
                module_id=self.module.id,
            ) from e
