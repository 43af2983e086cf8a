"""Progress store and record codec tests."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from modulegate.classroom import (
    InMemoryProgressStore,
    ModuleController,
    SQLiteProgressStore,
    progress_from_record,
    progress_to_record,
)
from modulegate.errors import PersistenceError
from modulegate.schemas import PathProgress, ProgressState, ProgressStatus

from conftest import answers_for, make_module


def _completed_state() -> ProgressState:
    return ProgressState(
        learner_id="u1",
        module_id="m1",
        status=ProgressStatus.COMPLETED,
        completed_pages={0, 1, 2},
        page_scores={0: 100, 1: 90},
        overall_score=95,
        started_at=datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc),
        completed_at=datetime(2024, 1, 1, 9, 45, tzinfo=timezone.utc),
        updated_at=datetime(2024, 1, 1, 9, 45, tzinfo=timezone.utc),
    )


class TestRecordCodec:
    """Encoding and decoding of stored records."""

    def test_record_layout(self):
        record = progress_to_record(_completed_state())
        assert record["status"] == "completed"
        assert record["completed_pages"] == [0, 1, 2]
        assert record["page_scores"] == {"0": 100, "1": 90}
        assert record["score"] == 95
        assert record["completed_at"] == "2024-01-01T09:45:00+00:00"
        json.dumps(record)

    def test_decode_preserves_fields(self):
        state = progress_from_record(progress_to_record(_completed_state()))
        assert state == _completed_state()

    def test_legacy_metadata_blob(self):
        record = {
            "user_id": "u1",
            "module_id": "m1",
            "status": "in_progress",
            "metadata": {"completedPages": [0, 1], "pageScores": {"0": 100, "1": 60}},
        }
        state = progress_from_record(record)
        assert state.learner_id == "u1"
        assert state.completed_pages == {0, 1}
        assert state.page_scores == {0: 100, 1: 60}
        assert state.status == ProgressStatus.IN_PROGRESS

    def test_legacy_metadata_as_json_text(self):
        record = {
            "learner_id": "u1",
            "module_id": "m1",
            "status": "in_progress",
            "metadata": json.dumps({"completedPages": [2]}),
        }
        assert progress_from_record(record).completed_pages == {2}

    def test_legacy_fractional_scores_round_half_up(self):
        record = {
            "learner_id": "u1",
            "module_id": "m1",
            "status": "in_progress",
            "metadata": {"completedPages": [0], "pageScores": {"0": 84.5, "1": "92.5", "2": 70.4}},
        }
        assert progress_from_record(record).page_scores == {0: 85, 1: 93, 2: 70}

    def test_missing_status_defaults_to_not_started(self):
        state = progress_from_record({"learner_id": "u1", "module_id": "m1"})
        assert state.status == ProgressStatus.NOT_STARTED

    def test_invalid_status(self):
        with pytest.raises(PersistenceError):
            progress_from_record({"learner_id": "u1", "module_id": "m1", "status": "archived"})

    def test_invalid_score(self):
        with pytest.raises(PersistenceError):
            progress_from_record({"learner_id": "u1", "module_id": "m1", "page_scores": {"0": 150}})

    def test_unreadable_metadata(self):
        with pytest.raises(PersistenceError):
            progress_from_record({"learner_id": "u1", "module_id": "m1", "metadata": "{not json"})


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_round_trip_returns_copy(self):
        store = InMemoryProgressStore()
        state = _completed_state()
        await store.save(state)
        loaded = await store.load("u1", "m1")
        assert loaded == state
        assert loaded is not state

    @pytest.mark.asyncio
    async def test_missing(self):
        assert await InMemoryProgressStore().load("u1", "nope") is None


class TestSQLiteStore:
    """SQLite persistence in a temporary database."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        await store.save(_completed_state())
        loaded = await store.load("u1", "m1")
        assert loaded == _completed_state()

    @pytest.mark.asyncio
    async def test_load_missing(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        assert await store.load("u1", "m1") is None

    @pytest.mark.asyncio
    async def test_upsert_keeps_started_at(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        first = ProgressState(
            learner_id="u1",
            module_id="m1",
            status=ProgressStatus.IN_PROGRESS,
            started_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        await store.save(first)
        second = first.model_copy(update={"started_at": None, "completed_pages": {0}})
        await store.save(second)
        loaded = await store.load("u1", "m1")
        assert loaded.started_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert loaded.completed_pages == {0}

    @pytest.mark.asyncio
    async def test_migrates_legacy_rows(self, tmp_path):
        db_path = tmp_path / "progress.db"
        store = SQLiteProgressStore(db_path)
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO module_progress (learner_id, module_id, status, metadata) VALUES (?, ?, ?, ?)",
            ("u1", "m1", "in_progress", json.dumps({"completedPages": [0], "pageScores": {"0": 80}})),
        )
        conn.commit()
        conn.close()

        loaded = await store.load("u1", "m1")
        assert loaded.completed_pages == {0}
        assert loaded.page_scores == {0: 80}

        await store.save(loaded)
        conn = sqlite3.connect(str(db_path))
        row = conn.execute(
            "SELECT completed_pages, page_scores, metadata FROM module_progress WHERE learner_id = 'u1'"
        ).fetchone()
        conn.close()
        assert json.loads(row[0]) == [0]
        assert json.loads(row[1]) == {"0": 80}
        assert row[2] is None

    @pytest.mark.asyncio
    async def test_corrupt_row(self, tmp_path):
        db_path = tmp_path / "progress.db"
        store = SQLiteProgressStore(db_path)
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO module_progress (learner_id, module_id, status, completed_pages) VALUES (?, ?, ?, ?)",
            ("u1", "m1", "in_progress", "[0,"),
        )
        conn.commit()
        conn.close()
        with pytest.raises(PersistenceError):
            await store.load("u1", "m1")

    @pytest.mark.asyncio
    async def test_save_failure_raises_persistence_error(self, tmp_path):
        db_path = tmp_path / "progress.db"
        store = SQLiteProgressStore(db_path)
        conn = sqlite3.connect(str(db_path))
        conn.execute("DROP TABLE module_progress")
        conn.commit()
        conn.close()
        with pytest.raises(PersistenceError) as exc:
            await store.save(_completed_state())
        assert exc.value.learner_id == "u1"

    @pytest.mark.asyncio
    async def test_path_progress_round_trip(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        assert await store.load_path("u1", "p1") is None
        progress = PathProgress(
            learner_id="u1",
            path_id="p1",
            status=ProgressStatus.IN_PROGRESS,
            quiz_score=50,
            quiz_attempts=1,
        )
        await store.save_path(progress)
        progress.quiz_attempts = 2
        progress.quiz_score = 90
        progress.status = ProgressStatus.COMPLETED
        progress.completed_at = datetime(2024, 1, 2, tzinfo=timezone.utc)
        await store.save_path(progress)

        loaded = await SQLiteProgressStore(tmp_path / "progress.db").load_path("u1", "p1")
        assert loaded == progress

    @pytest.mark.asyncio
    async def test_invalid_path_row(self, tmp_path):
        db_path = tmp_path / "progress.db"
        store = SQLiteProgressStore(db_path)
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            "INSERT INTO path_progress (learner_id, path_id, status, quiz_attempts) VALUES (?, ?, ?, ?)",
            ("u1", "p1", "in_progress", -1),
        )
        conn.commit()
        conn.close()
        with pytest.raises(PersistenceError):
            await store.load_path("u1", "p1")

    def test_learner_statuses(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        store.save_sync(_completed_state())
        store.save_sync(ProgressState(learner_id="u1", module_id="m2", status=ProgressStatus.IN_PROGRESS))
        store.save_sync(ProgressState(learner_id="u2", module_id="m1", status=ProgressStatus.IN_PROGRESS))
        assert store.get_learner_statuses("u1") == {
            "m1": ProgressStatus.COMPLETED,
            "m2": ProgressStatus.IN_PROGRESS,
        }

    @pytest.mark.asyncio
    async def test_controller_against_sqlite(self, tmp_path):
        store = SQLiteProgressStore(tmp_path / "progress.db")
        module = make_module([True, False], module_id="m1")
        ctrl = ModuleController(module, "u1", store)
        await ctrl.open()
        await ctrl.submit_quiz(0, answers_for(2, 2))
        await ctrl.navigate(1)
        await ctrl.complete_page(1)

        reloaded = await SQLiteProgressStore(tmp_path / "progress.db").load("u1", "m1")
        assert reloaded.status == ProgressStatus.COMPLETED
        assert reloaded.completed_pages == {0, 1}
        assert reloaded.overall_score == 100
