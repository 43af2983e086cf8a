"""
Progress stores - Load and save learner progress.

The progression engine depends only on the async ProgressStore protocol.
Two stores are provided:
- SQLiteProgressStore: ~/.modulegate/progress.db (one row per learner/module)
  and one row per learner/path for training path final quizzes
- InMemoryProgressStore: records kept in a dict, for tests and previews

Records are plain dicts that go through progress_to_record() /
progress_from_record(). The decoder also accepts the legacy layout where
completed pages and scores lived in a loose `metadata` blob
({"completedPages": [0, 1], "pageScores": {"0": 100}}) and migrates it
into typed fields.
"""

import asyncio
import json
import logging
import sqlite3
from datetime import datetime
from fractions import Fraction
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from modulegate.errors import PersistenceError
from modulegate.schemas import PathProgress, ProgressState, ProgressStatus

from .quiz import round_half_up


logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_DIR = Path.home() / ".modulegate"
DEFAULT_PROGRESS_DB = DEFAULT_PROGRESS_DIR / "progress.db"


class ProgressStore(Protocol):
    """Storage for ProgressState, keyed by (learner_id, module_id)."""

    async def load(self, learner_id: str, module_id: str) -> Optional[ProgressState]:
        """Return stored progress, or None when nothing is stored."""
        ...

    async def save(self, state: ProgressState) -> None:
        """Persist `state`. Raises PersistenceError on failure."""
        ...


class PathProgressStore(Protocol):
    """Storage for PathProgress, keyed by (learner_id, path_id)."""

    async def load_path(self, learner_id: str, path_id: str) -> Optional[PathProgress]:
        ...

    async def save_path(self, progress: PathProgress) -> None:
        ...


# -----------------------------------------------------------------------------
# Record codec
# -----------------------------------------------------------------------------

def progress_to_record(state: ProgressState) -> dict[str, Any]:
    """Encode progress as a flat, JSON-friendly record."""
    return {
        "learner_id": state.learner_id,
        "module_id": state.module_id,
        "status": state.status.value,
        "completed_pages": sorted(state.completed_pages),
        "page_scores": {str(idx): score for idx, score in sorted(state.page_scores.items())},
        "score": state.overall_score,
        "started_at": state.started_at.isoformat() if state.started_at else None,
        "completed_at": state.completed_at.isoformat() if state.completed_at else None,
        "updated_at": state.updated_at.isoformat() if state.updated_at else None,
    }


def progress_from_record(record: dict[str, Any]) -> ProgressState:
    """
    Decode and validate a stored record.

    Accepts both the current layout and the legacy `metadata` blob.

    Raises:
        PersistenceError: If the record cannot be turned into valid progress
    """
    learner_id = str(record.get("learner_id") or record.get("user_id") or "")
    module_id = str(record.get("module_id") or "")

    completed = record.get("completed_pages")
    scores = record.get("page_scores")

    metadata = record.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                f"Unreadable progress metadata: {e}",
                learner_id=learner_id,
                module_id=module_id,
            ) from e
    if isinstance(metadata, dict):
        if completed is None:
            completed = metadata.get("completedPages")
        if scores is None:
            scores = metadata.get("pageScores")

    try:
        return ProgressState(
            learner_id=learner_id,
            module_id=module_id,
            status=ProgressStatus(record.get("status") or ProgressStatus.NOT_STARTED.value),
            completed_pages={int(idx) for idx in (completed or [])},
            page_scores={int(idx): _legacy_score(score) for idx, score in (scores or {}).items()},
            overall_score=record.get("score"),
            started_at=_parse_timestamp(record.get("started_at")),
            completed_at=_parse_timestamp(record.get("completed_at")),
            updated_at=_parse_timestamp(record.get("updated_at")),
        )
    except (ValueError, TypeError, AttributeError, ValidationError) as e:
        raise PersistenceError(
            f"Invalid progress record: {e}",
            learner_id=learner_id,
            module_id=module_id,
        ) from e


def path_progress_to_record(progress: PathProgress) -> dict[str, Any]:
    """Encode path quiz progress as a flat record."""
    return progress.model_dump(mode="json")


def path_progress_from_record(record: dict[str, Any]) -> PathProgress:
    """
    Decode a stored path quiz record.

    Raises:
        PersistenceError: If the record is not valid path progress
    """
    try:
        return PathProgress.model_validate(record)
    except ValidationError as e:
        raise PersistenceError(
            f"Invalid path progress record: {e}",
            learner_id=str(record.get("learner_id") or ""),
            details={"path_id": record.get("path_id")},
        ) from e


def _legacy_score(value: Any) -> int:
    """Whole-number score from an int, float or numeric string, halves going up."""
    exact = Fraction(str(value))
    return round_half_up(exact.numerator, exact.denominator)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# -----------------------------------------------------------------------------
# In-memory store
# -----------------------------------------------------------------------------

class InMemoryProgressStore:
    """
    Progress store backed by a dict of encoded records.

    Records go through the same codec as the SQLite store, so a loaded
    state is never the same object the controller is mutating.
    """

    def __init__(self, records: Optional[dict[tuple[str, str], dict[str, Any]]] = None):
        self.records: dict[tuple[str, str], dict[str, Any]] = dict(records or {})
        self.path_records: dict[tuple[str, str], dict[str, Any]] = {}
        self.save_count = 0

    async def load(self, learner_id: str, module_id: str) -> Optional[ProgressState]:
        record = self.records.get((learner_id, module_id))
        if record is None:
            return None
        return progress_from_record(record)

    async def save(self, state: ProgressState) -> None:
        self.records[(state.learner_id, state.module_id)] = progress_to_record(state)
        self.save_count += 1

    async def load_path(self, learner_id: str, path_id: str) -> Optional[PathProgress]:
        record = self.path_records.get((learner_id, path_id))
        if record is None:
            return None
        return path_progress_from_record(record)

    async def save_path(self, progress: PathProgress) -> None:
        self.path_records[(progress.learner_id, progress.path_id)] = path_progress_to_record(progress)
        self.save_count += 1


# -----------------------------------------------------------------------------
# SQLite store
# -----------------------------------------------------------------------------

class SQLiteProgressStore:
    """
    Progress store in a SQLite database.

    Each call opens its own connection and runs in a worker thread, so the
    event loop is never blocked on disk I/O.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize progress store.

        Args:
            db_path: Path to progress.db (default: ~/.modulegate/progress.db)
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_PROGRESS_DB
        self._ensure_database()

    def _ensure_database(self):
        """Create database and tables if they don't exist."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open progress database {self.db_path}: {e}") from e
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS module_progress (
                    learner_id TEXT NOT NULL,
                    module_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'not_started',
                    completed_pages JSON NOT NULL DEFAULT '[]',
                    page_scores JSON NOT NULL DEFAULT '{}',
                    metadata JSON,
                    score INTEGER,
                    started_at TEXT,
                    completed_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (learner_id, module_id)
                );

                CREATE INDEX IF NOT EXISTS idx_module_progress_learner
                ON module_progress(learner_id);

                CREATE TABLE IF NOT EXISTS path_progress (
                    learner_id TEXT NOT NULL,
                    path_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'not_started',
                    quiz_score INTEGER,
                    quiz_attempts INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    updated_at TEXT,
                    PRIMARY KEY (learner_id, path_id)
                );
            """)
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot initialise progress database {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a new database connection."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    # -------------------------------------------------------------------------
    # ProgressStore protocol
    # -------------------------------------------------------------------------

    async def load(self, learner_id: str, module_id: str) -> Optional[ProgressState]:
        return await asyncio.to_thread(self.load_sync, learner_id, module_id)

    async def save(self, state: ProgressState) -> None:
        await asyncio.to_thread(self.save_sync, state)

    async def load_path(self, learner_id: str, path_id: str) -> Optional[PathProgress]:
        return await asyncio.to_thread(self.load_path_sync, learner_id, path_id)

    async def save_path(self, progress: PathProgress) -> None:
        await asyncio.to_thread(self.save_path_sync, progress)

    # -------------------------------------------------------------------------
    # Blocking implementation
    # -------------------------------------------------------------------------

    def load_sync(self, learner_id: str, module_id: str) -> Optional[ProgressState]:
        """Read one progress row."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    """SELECT learner_id, module_id, status, completed_pages, page_scores,
                              metadata, score, started_at, completed_at, updated_at
                       FROM module_progress
                       WHERE learner_id = ? AND module_id = ?""",
                    (learner_id, module_id)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Failed to load progress for %s/%s: %s", learner_id, module_id, e)
            raise PersistenceError(
                f"Failed to load progress: {e}",
                learner_id=learner_id,
                module_id=module_id,
            ) from e

        if row is None:
            return None
        try:
            record = _row_to_record(row)
        except ValueError as e:
            raise PersistenceError(
                f"Corrupt progress row: {e}",
                learner_id=learner_id,
                module_id=module_id,
            ) from e
        return progress_from_record(record)

    def save_sync(self, state: ProgressState):
        """Upsert one progress row."""
        record = progress_to_record(state)
        try:
            conn = self._get_connection()
            try:
                conn.execute(
                    """INSERT INTO module_progress (
                           learner_id, module_id, status, completed_pages, page_scores,
                           metadata, score, started_at, completed_at, updated_at
                       )
                       VALUES (?, ?, ?, ?, ?, NULL, ?, ?, ?, ?)
                       ON CONFLICT(learner_id, module_id) DO UPDATE SET
                         status = excluded.status,
                         completed_pages = excluded.completed_pages,
                         page_scores = excluded.page_scores,
                         metadata = NULL,
                         score = excluded.score,
                         started_at = COALESCE(module_progress.started_at, excluded.started_at),
                         completed_at = excluded.completed_at,
                         updated_at = excluded.updated_at""",
                    (
                        record["learner_id"],
                        record["module_id"],
                        record["status"],
                        json.dumps(record["completed_pages"]),
                        json.dumps(record["page_scores"]),
                        record["score"],
                        record["started_at"],
                        record["completed_at"],
                        record["updated_at"],
                    )
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Failed to save progress for %s/%s: %s", state.learner_id, state.module_id, e)
            raise PersistenceError(
                f"Failed to save progress: {e}",
                learner_id=state.learner_id,
                module_id=state.module_id,
            ) from e

    def get_learner_statuses(self, learner_id: str) -> dict[str, ProgressStatus]:
        """Status of every module the learner has progress for."""
        try:
            conn = self._get_connection()
            try:
                rows = conn.execute(
                    """SELECT module_id, status FROM module_progress
                       WHERE learner_id = ?""",
                    (learner_id,)
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list progress: {e}", learner_id=learner_id) from e
        return {row["module_id"]: ProgressStatus(row["status"]) for row in rows}


    def load_path_sync(self, learner_id: str, path_id: str) -> Optional[PathProgress]:
        """Read the final quiz progress of one training path."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    """SELECT learner_id, path_id, status, quiz_score, quiz_attempts,
                              completed_at, updated_at
                       FROM path_progress
                       WHERE learner_id = ? AND path_id = ?""",
                    (learner_id, path_id)
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Failed to load path progress for %s/%s: %s", learner_id, path_id, e)
            raise PersistenceError(
                f"Failed to load path progress: {e}",
                learner_id=learner_id,
                details={"path_id": path_id},
            ) from e
        return path_progress_from_record(dict(row)) if row else None

    def save_path_sync(self, progress: PathProgress):
        """Upsert the final quiz progress of one training path."""
        record = path_progress_to_record(progress)
        try:
            conn = self._get_connection()
            try:
                conn.execute(
                    """INSERT INTO path_progress (
                           learner_id, path_id, status, quiz_score, quiz_attempts,
                           completed_at, updated_at
                       )
                       VALUES (?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT(learner_id, path_id) DO UPDATE SET
                         status = excluded.status,
                         quiz_score = excluded.quiz_score,
                         quiz_attempts = excluded.quiz_attempts,
                         completed_at = excluded.completed_at,
                         updated_at = excluded.updated_at""",
                    (
                        record["learner_id"],
                        record["path_id"],
                        record["status"],
                        record["quiz_score"],
                        record["quiz_attempts"],
                        record["completed_at"],
                        record["updated_at"],
                    )
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error("Failed to save path progress for %s/%s: %s", progress.learner_id, progress.path_id, e)
            raise PersistenceError(
                f"Failed to save path progress: {e}",
                learner_id=progress.learner_id,
                details={"path_id": progress.path_id},
            ) from e

def _row_to_record(row: sqlite3.Row) -> dict[str, Any]:
    """Turn a module_progress row into a codec record."""
    record = dict(row)
    for column in ("completed_pages", "page_scores"):
        raw = record.get(column)
        record[column] = json.loads(raw) if raw else None
    # legacy rows keep their data in metadata and have empty typed columns
    if record.get("metadata") and not record["completed_pages"] and not record["page_scores"]:
        record["completed_pages"] = None
        record["page_scores"] = None
    return record
