"""
Session Store.

Persistence collaborator contract plus the stores shipped with PrepMaster:

    - InMemoryStore: process-local dictionaries (tests, demo service)
    - JsonFileStore: InMemoryStore that snapshots every write to a JSON file
    - UnconfiguredStore: reports "not configured"; every call raises
      BackendUnavailable

Records are validated on every insert and update, so a row that breaks a
model invariant (e.g. a half-answered Question) is rejected with
PersistenceError instead of being stored. Returned records are copies;
mutating them never changes stored state.

Thread Safety:
    Stores are NOT thread-safe. They are meant to be used from one asyncio
    event loop.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol, TypeVar

import aiofiles
from pydantic import BaseModel, ValidationError

from .errors import BackendUnavailable, PersistenceError, QuestionAlreadyAnswered
from .models import (
    Profile,
    Question,
    Session,
    SessionStatus,
    SkillProgressRecord,
    utc_now,
)


__all__ = [
    "SessionStore",
    "InMemoryStore",
    "JsonFileStore",
    "UnconfiguredStore",
    "build_store",
]


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class SessionStore(Protocol):
    """
    CRUD contract over sessions, questions, skill progress and profiles.

    "Not configured" (is_configured False, calls raise BackendUnavailable)
    is distinct from an empty result (None or []).
    """

    @property
    def is_configured(self) -> bool: ...

    async def insert_session(self, values: dict[str, Any]) -> Session: ...

    async def get_session(self, session_id: str) -> Optional[Session]: ...

    async def list_sessions(
        self, user_id: str, status: Optional[SessionStatus] = None
    ) -> list[Session]: ...

    async def update_session(self, session_id: str, changes: dict[str, Any]) -> Session: ...

    async def delete_session(self, session_id: str) -> bool: ...

    async def insert_questions(self, values: list[dict[str, Any]]) -> list[Question]: ...

    async def list_questions(self, session_id: str) -> list[Question]: ...

    async def update_question(self, question_id: str, changes: dict[str, Any]) -> Question: ...

    async def get_skill_progress(
        self, user_id: str, skill_area: str
    ) -> Optional[SkillProgressRecord]: ...

    async def list_skill_progress(self, user_id: str) -> list[SkillProgressRecord]: ...

    async def insert_skill_progress(self, values: dict[str, Any]) -> SkillProgressRecord: ...

    async def update_skill_progress(
        self, user_id: str, skill_area: str, changes: dict[str, Any]
    ) -> SkillProgressRecord: ...

    async def get_profile(self, user_id: str) -> Optional[Profile]: ...

    async def insert_profile(self, values: dict[str, Any]) -> Profile: ...

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> Profile: ...


def _new_id() -> str:
    return str(uuid.uuid4())


def _validate(model: type[ModelT], data: dict[str, Any]) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise PersistenceError(f"Invalid {model.__name__} record: {e}", cause=e) from e


def _merge(record: ModelT, changes: dict[str, Any]) -> ModelT:
    """Apply a field-level update and re-validate the whole record."""
    data = record.model_dump()
    data.update(changes)
    return _validate(type(record), data)


class InMemoryStore:
    """
    Dictionary-backed SessionStore.

    Example:
        >>> store = InMemoryStore()
        >>> session = await store.insert_session({
        ...     "user_id": "user-1", "type": "practice",
        ...     "title": "Practice Session", "duration": 30,
        ... })
        >>> await store.get_session(session.id)
    """

    is_configured: bool = True

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._questions: dict[str, Question] = {}
        self._skills: dict[tuple[str, str], SkillProgressRecord] = {}
        self._profiles: dict[str, Profile] = {}

    def _ensure_configured(self) -> None:
        if not self.is_configured:
            raise BackendUnavailable()

    async def _after_write(self) -> None:
        """Hook run after every successful mutation."""

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def insert_session(self, values: dict[str, Any]) -> Session:
        self._ensure_configured()
        session = _validate(Session, {**values, "id": _new_id(), "created_at": utc_now()})
        self._sessions[session.id] = session
        await self._after_write()
        logger.debug("Inserted session %s for user %s", session.id, session.user_id)
        return session.model_copy(deep=True)

    async def get_session(self, session_id: str) -> Optional[Session]:
        self._ensure_configured()
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(
        self, user_id: str, status: Optional[SessionStatus] = None
    ) -> list[Session]:
        """List a user's sessions, newest first by created_at."""
        self._ensure_configured()
        sessions = [
            s for s in self._sessions.values()
            if s.user_id == user_id and (status is None or s.status == status)
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in sessions]

    async def update_session(self, session_id: str, changes: dict[str, Any]) -> Session:
        self._ensure_configured()
        existing = self._sessions.get(session_id)
        if existing is None:
            raise PersistenceError(f"Session {session_id} does not exist")
        updated = _merge(existing, changes)
        self._sessions[session_id] = updated
        await self._after_write()
        return updated.model_copy(deep=True)

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session and, with it, all of its questions."""
        self._ensure_configured()
        if self._sessions.pop(session_id, None) is None:
            return False
        self._questions = {
            qid: q for qid, q in self._questions.items() if q.session_id != session_id
        }
        await self._after_write()
        logger.info("Deleted session %s", session_id)
        return True

    # -------------------------------------------------------------------------
    # Questions
    # -------------------------------------------------------------------------

    async def insert_questions(self, values: list[dict[str, Any]]) -> list[Question]:
        """Insert a batch of questions; nothing is stored if any row is invalid."""
        self._ensure_configured()
        questions = [
            _validate(Question, {**row, "id": _new_id(), "created_at": utc_now()})
            for row in values
        ]
        for question in questions:
            if question.session_id not in self._sessions:
                raise PersistenceError(
                    f"Question references unknown session {question.session_id}"
                )
        for question in questions:
            self._questions[question.id] = question
        await self._after_write()
        return [q.model_copy(deep=True) for q in questions]

    async def list_questions(self, session_id: str) -> list[Question]:
        self._ensure_configured()
        questions = [q for q in self._questions.values() if q.session_id == session_id]
        questions.sort(key=lambda q: q.order_index)
        return [q.model_copy(deep=True) for q in questions]

    async def update_question(self, question_id: str, changes: dict[str, Any]) -> Question:
        self._ensure_configured()
        existing = self._questions.get(question_id)
        if existing is None:
            raise PersistenceError(f"Question {question_id} does not exist")
        if existing.is_answered and "answer" in changes:
            raise QuestionAlreadyAnswered(f"Question {question_id} has already been answered")
        updated = _merge(existing, changes)
        self._questions[question_id] = updated
        await self._after_write()
        return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Skill progress
    # -------------------------------------------------------------------------

    async def get_skill_progress(
        self, user_id: str, skill_area: str
    ) -> Optional[SkillProgressRecord]:
        self._ensure_configured()
        record = self._skills.get((user_id, skill_area))
        return record.model_copy(deep=True) if record else None

    async def list_skill_progress(self, user_id: str) -> list[SkillProgressRecord]:
        self._ensure_configured()
        records = [r for (uid, _), r in self._skills.items() if uid == user_id]
        records.sort(key=lambda r: r.skill_area)
        return [r.model_copy(deep=True) for r in records]

    async def insert_skill_progress(self, values: dict[str, Any]) -> SkillProgressRecord:
        self._ensure_configured()
        record = _validate(SkillProgressRecord, values)
        key = (record.user_id, record.skill_area)
        if key in self._skills:
            raise PersistenceError(
                f"Skill progress for '{record.skill_area}' already exists for user {record.user_id}"
            )
        self._skills[key] = record
        await self._after_write()
        return record.model_copy(deep=True)

    async def update_skill_progress(
        self, user_id: str, skill_area: str, changes: dict[str, Any]
    ) -> SkillProgressRecord:
        self._ensure_configured()
        existing = self._skills.get((user_id, skill_area))
        if existing is None:
            raise PersistenceError(
                f"No skill progress for '{skill_area}' and user {user_id}"
            )
        updated = _merge(existing, changes)
        self._skills[(user_id, skill_area)] = updated
        await self._after_write()
        return updated.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        self._ensure_configured()
        profile = self._profiles.get(user_id)
        return profile.model_copy(deep=True) if profile else None

    async def insert_profile(self, values: dict[str, Any]) -> Profile:
        self._ensure_configured()
        profile = _validate(Profile, values)
        if profile.id in self._profiles:
            raise PersistenceError(f"Profile {profile.id} already exists")
        self._profiles[profile.id] = profile
        await self._after_write()
        return profile.model_copy(deep=True)

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> Profile:
        self._ensure_configured()
        existing = self._profiles.get(user_id)
        if existing is None:
            raise PersistenceError(f"Profile {user_id} does not exist")
        updated = _merge(existing, {**changes, "updated_at": utc_now()})
        self._profiles[user_id] = updated
        await self._after_write()
        return updated.model_copy(deep=True)


class UnconfiguredStore(InMemoryStore):
    """Store that reports "not configured"; every operation raises BackendUnavailable."""

    is_configured = False


def _format_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class JsonFileStore(InMemoryStore):
    """
    InMemoryStore persisted to a single JSON file.

    The file is loaded once at construction and rewritten after every
    mutation (write to a temporary sibling, then atomic replace).

    Example:
        >>> store = JsonFileStore(Path("./data/prepmaster.json"))
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to create {self.path.parent}: {e}", cause=e) from e
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug("No data file at %s, starting empty", self.path)
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read from {self.path}: {e}", cause=e) from e

        for row in data.get("sessions", []):
            session = _validate(Session, row)
            self._sessions[session.id] = session
        for row in data.get("questions", []):
            question = _validate(Question, row)
            self._questions[question.id] = question
        for row in data.get("skill_progress", []):
            record = _validate(SkillProgressRecord, row)
            self._skills[(record.user_id, record.skill_area)] = record
        for row in data.get("profiles", []):
            profile = _validate(Profile, row)
            self._profiles[profile.id] = profile

        logger.info(
            "Loaded %d sessions and %d questions from %s",
            len(self._sessions),
            len(self._questions),
            self.path,
        )

    def _snapshot(self) -> dict[str, Any]:
        return {
            "sessions": [s.model_dump(mode="json") for s in self._sessions.values()],
            "questions": [q.model_dump(mode="json") for q in self._questions.values()],
            "skill_progress": [r.model_dump(mode="json") for r in self._skills.values()],
            "profiles": [p.model_dump(mode="json") for p in self._profiles.values()],
            "_meta": {
                "written_at": _format_utc_timestamp(),
                "version": "1.0",
            },
        }

    async def _after_write(self) -> None:
        payload = json.dumps(self._snapshot(), indent=2, ensure_ascii=False)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(payload)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise PersistenceError(f"Failed to write to {self.path}: {e}", cause=e) from e
        logger.debug("Wrote store snapshot to %s", self.path)


def build_store(backend: str, data_file: Optional[Path] = None) -> SessionStore:
    """Create the store selected by configuration ("memory", "json" or "none")."""
    if backend == "memory":
        return InMemoryStore()
    if backend == "json":
        if data_file is None:
            raise RuntimeError("The json store requires a data file path.")
        return JsonFileStore(data_file)
    if backend == "none":
        logger.warning("Persistence backend not configured; session features are disabled")
        return UnconfiguredStore()
    raise RuntimeError(f"Unknown store backend '{backend}'. Use memory, json or none.")
