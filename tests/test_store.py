"""
Tests for the session stores.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from prepmaster.errors import BackendUnavailable, PersistenceError, QuestionAlreadyAnswered
from prepmaster.models import SessionStatus, utc_now
from prepmaster.store import (
    InMemoryStore,
    JsonFileStore,
    UnconfiguredStore,
    build_store,
)
from tests.mock_data import generate_feedback_dict


SESSION_VALUES = {
    "user_id": "user-1",
    "type": "practice",
    "title": "Practice Session",
    "duration": 30,
}


def question_rows(session_id: str, count: int = 3) -> list[dict]:
    return [
        {
            "session_id": session_id,
            "question": f"Question {i}?",
            "category": "behavioral",
            "order_index": i,
        }
        for i in range(count)
    ]


# =============================================================================
# InMemoryStore Tests
# =============================================================================


class TestSessions:
    """Session CRUD on InMemoryStore."""

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_defaults(self) -> None:
        store = InMemoryStore()

        session = await store.insert_session(SESSION_VALUES)

        assert session.id
        assert session.status == SessionStatus.SETUP
        assert session.difficulty.value == "medium"
        assert await store.get_session(session.id) == session

    @pytest.mark.asyncio
    async def test_invalid_session_is_rejected(self) -> None:
        store = InMemoryStore()

        with pytest.raises(PersistenceError):
            await store.insert_session({**SESSION_VALUES, "duration": 0})

        assert await store.list_sessions("user-1") == []

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)

        session.title = "Changed locally"

        assert (await store.get_session(session.id)).title == "Practice Session"

    @pytest.mark.asyncio
    async def test_list_newest_first_with_status_filter(self) -> None:
        store = InMemoryStore()
        older = await store.insert_session(SESSION_VALUES)
        newer = await store.insert_session(SESSION_VALUES)
        await store.update_session(older.id, {"created_at": utc_now() - timedelta(days=1)})
        await store.update_session(newer.id, {"status": SessionStatus.IN_PROGRESS})
        await store.insert_session({**SESSION_VALUES, "user_id": "user-2"})

        sessions = await store.list_sessions("user-1")
        in_progress = await store.list_sessions("user-1", status=SessionStatus.IN_PROGRESS)

        assert [s.id for s in sessions] == [newer.id, older.id]
        assert [s.id for s in in_progress] == [newer.id]

    @pytest.mark.asyncio
    async def test_update_unknown_session(self) -> None:
        store = InMemoryStore()

        with pytest.raises(PersistenceError):
            await store.update_session("missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_delete_cascades_to_questions(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        keep = await store.insert_session(SESSION_VALUES)
        await store.insert_questions(question_rows(session.id))
        await store.insert_questions(question_rows(keep.id, count=2))

        assert await store.delete_session(session.id) is True
        assert await store.delete_session(session.id) is False

        assert await store.get_session(session.id) is None
        assert await store.list_questions(session.id) == []
        assert len(await store.list_questions(keep.id)) == 2


class TestQuestions:
    """Question CRUD and the all-or-nothing answer rule."""

    @pytest.mark.asyncio
    async def test_list_is_ordered_by_index(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        await store.insert_questions(list(reversed(question_rows(session.id))))

        questions = await store.list_questions(session.id)

        assert [q.order_index for q in questions] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_batch_is_all_or_nothing(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        rows = question_rows(session.id)
        rows[2]["order_index"] = -1

        with pytest.raises(PersistenceError):
            await store.insert_questions(rows)

        assert await store.list_questions(session.id) == []

    @pytest.mark.asyncio
    async def test_unknown_session_is_rejected(self) -> None:
        store = InMemoryStore()

        with pytest.raises(PersistenceError):
            await store.insert_questions(question_rows("missing"))

    @pytest.mark.asyncio
    async def test_full_answer_update(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        question = (await store.insert_questions(question_rows(session.id, 1)))[0]

        updated = await store.update_question(
            question.id,
            {
                "answer": "My answer",
                "score": 82,
                "feedback": generate_feedback_dict(),
                "time_taken": 45,
            },
        )

        assert updated.is_answered
        assert updated.feedback.star_compliance == 85

    @pytest.mark.asyncio
    async def test_partial_answer_is_rejected(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        question = (await store.insert_questions(question_rows(session.id, 1)))[0]

        with pytest.raises(PersistenceError):
            await store.update_question(question.id, {"answer": "Only the text", "score": 70})

        stored = (await store.list_questions(session.id))[0]
        assert stored.answer is None
        assert stored.score is None

    @pytest.mark.asyncio
    async def test_answered_row_keeps_first_answer(self) -> None:
        store = InMemoryStore()
        session = await store.insert_session(SESSION_VALUES)
        question = (await store.insert_questions(question_rows(session.id, 1)))[0]
        answer = {"score": 82, "feedback": generate_feedback_dict(), "time_taken": 45}
        await store.update_question(question.id, {"answer": "First answer", **answer})

        with pytest.raises(QuestionAlreadyAnswered):
            await store.update_question(question.id, {"answer": "Second answer", **answer, "score": 40})

        stored = (await store.list_questions(session.id))[0]
        assert stored.answer == "First answer"
        assert stored.score == 82


class TestSkillsAndProfiles:
    @pytest.mark.asyncio
    async def test_skill_progress_is_unique_per_user_and_area(self) -> None:
        store = InMemoryStore()
        values = {"user_id": "user-1", "skill_area": "behavioral", "current_score": 70}
        await store.insert_skill_progress(values)

        with pytest.raises(PersistenceError):
            await store.insert_skill_progress(values)

        await store.insert_skill_progress({**values, "user_id": "user-2"})
        assert len(await store.list_skill_progress("user-1")) == 1

    @pytest.mark.asyncio
    async def test_update_missing_skill(self) -> None:
        store = InMemoryStore()

        with pytest.raises(PersistenceError):
            await store.update_skill_progress("user-1", "technical", {"current_score": 50})

    @pytest.mark.asyncio
    async def test_profile_update_touches_updated_at(self) -> None:
        store = InMemoryStore()
        profile = await store.insert_profile({"id": "user-1", "email": "a@example.com"})

        updated = await store.update_profile("user-1", {"full_name": "Ada Lovelace"})

        assert updated.full_name == "Ada Lovelace"
        assert updated.created_at == profile.created_at
        assert updated.updated_at >= profile.updated_at

        with pytest.raises(PersistenceError):
            await store.insert_profile({"id": "user-1", "email": "a@example.com"})


# =============================================================================
# UnconfiguredStore Tests
# =============================================================================


class TestUnconfiguredStore:
    @pytest.mark.asyncio
    async def test_every_call_raises(self) -> None:
        store = UnconfiguredStore()

        assert store.is_configured is False
        with pytest.raises(BackendUnavailable):
            await store.insert_session(SESSION_VALUES)
        with pytest.raises(BackendUnavailable):
            await store.list_sessions("user-1")
        with pytest.raises(BackendUnavailable):
            await store.get_profile("user-1")


# =============================================================================
# JsonFileStore Tests
# =============================================================================


class TestJsonFileStore:
    """Snapshot persistence to a JSON file."""

    @pytest.mark.asyncio
    async def test_reload_from_disk(self, tmp_path: Path) -> None:
        data_file = tmp_path / "data" / "prepmaster.json"
        store = JsonFileStore(data_file)
        session = await store.insert_session(SESSION_VALUES)
        questions = await store.insert_questions(question_rows(session.id, 2))
        await store.insert_skill_progress(
            {"user_id": "user-1", "skill_area": "behavioral", "current_score": 70}
        )
        await store.insert_profile({"id": "user-1", "email": "a@example.com"})

        reloaded = JsonFileStore(data_file)

        assert await reloaded.get_session(session.id) == session
        assert await reloaded.list_questions(session.id) == questions
        assert (await reloaded.get_skill_progress("user-1", "behavioral")).current_score == 70
        assert (await reloaded.get_profile("user-1")).email == "a@example.com"

    @pytest.mark.asyncio
    async def test_snapshot_layout(self, tmp_path: Path) -> None:
        data_file = tmp_path / "prepmaster.json"
        store = JsonFileStore(data_file)

        await store.insert_session(SESSION_VALUES)

        data = json.loads(data_file.read_text(encoding="utf-8"))
        assert set(data) == {"sessions", "questions", "skill_progress", "profiles", "_meta"}
        assert len(data["sessions"]) == 1
        assert data["_meta"]["version"] == "1.0"
        assert not (tmp_path / "prepmaster.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_delete_is_persisted(self, tmp_path: Path) -> None:
        data_file = tmp_path / "prepmaster.json"
        store = JsonFileStore(data_file)
        session = await store.insert_session(SESSION_VALUES)
        await store.insert_questions(question_rows(session.id))

        await store.delete_session(session.id)

        reloaded = JsonFileStore(data_file)
        assert await reloaded.list_sessions("user-1") == []
        assert await reloaded.list_questions(session.id) == []

    def test_corrupt_file(self, tmp_path: Path) -> None:
        data_file = tmp_path / "prepmaster.json"
        data_file.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError):
            JsonFileStore(data_file)

    def test_missing_file_starts_empty(self, tmp_path: Path) -> None:
        store = JsonFileStore(tmp_path / "new.json")

        assert store.is_configured is True
        assert not (tmp_path / "new.json").exists()


class TestBuildStore:
    def test_backends(self, tmp_path: Path) -> None:
        assert type(build_store("memory")) is InMemoryStore
        assert type(build_store("none")) is UnconfiguredStore
        assert isinstance(build_store("json", tmp_path / "store.json"), JsonFileStore)

    def test_invalid_backend(self) -> None:
        with pytest.raises(RuntimeError, match="Unknown store backend"):
            build_store("postgres")
        with pytest.raises(RuntimeError, match="data file"):
            build_store("json")
