"""
ModuleGate Classroom - Runtime components for gated module progression.

This module provides:
- ContentLoader: Load modules and training paths from YAML/JSON
- evaluate / PASS_THRESHOLD: Quiz scoring
- can_access / page_overview: Page gating rules
- ProgressStore implementations: SQLite and in-memory
- ModuleController: Navigation, completion and quiz submission
- EventBus: Page-unlocked and module-completed notifications
- module_availability: Module locking within a training path
- submit_path_quiz: Final quiz of a training path
"""

from .loader import (
    ContentLoader,
)

from .quiz import (
    PASS_THRESHOLD,
    NO_ANSWER,
    evaluate,
    round_half_up,
)

from .access import (
    PageAvailability,
    NavigationPage,
    can_access,
    accessible_pages,
    missing_quizzes,
    page_overview,
)

from .progress import (
    ProgressStore,
    PathProgressStore,
    InMemoryProgressStore,
    SQLiteProgressStore,
    progress_to_record,
    progress_from_record,
    path_progress_to_record,
    path_progress_from_record,
    DEFAULT_PROGRESS_DIR,
    DEFAULT_PROGRESS_DB,
)

from .events import (
    ProgressEvent,
    PageUnlocked,
    ModuleCompleted,
    EventBus,
    EventRecorder,
)

from .controller import (
    ModuleController,
    aggregate_score,
)

from .paths import (
    ModuleAccess,
    module_availability,
    is_module_locked,
    incomplete_modules,
    attempts_remaining,
    submit_path_quiz,
)

__all__ = [
    # Loader
    "ContentLoader",
    # Quiz
    "PASS_THRESHOLD",
    "NO_ANSWER",
    "evaluate",
    "round_half_up",
    # Access
    "PageAvailability",
    "NavigationPage",
    "can_access",
    "accessible_pages",
    "missing_quizzes",
    "page_overview",
    # Progress
    "ProgressStore",
    "PathProgressStore",
    "InMemoryProgressStore",
    "SQLiteProgressStore",
    "progress_to_record",
    "progress_from_record",
    "path_progress_to_record",
    "path_progress_from_record",
    "DEFAULT_PROGRESS_DIR",
    "DEFAULT_PROGRESS_DB",
    # Events
    "ProgressEvent",
    "PageUnlocked",
    "ModuleCompleted",
    "EventBus",
    "EventRecorder",
    # Controller
    "ModuleController",
    "aggregate_score",
    # Training paths
    "ModuleAccess",
    "module_availability",
    "is_module_locked",
    "incomplete_modules",
    "attempts_remaining",
    "submit_path_quiz",
]
