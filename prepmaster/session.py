"""
Session Lifecycle.

Orchestrates one interview session for one user: creation (config ->
generated questions -> persisted records), status transitions, the
current-question cursor, answer submission with AI feedback and final
score aggregation.

    setup --start_session--> in_progress --complete_session--> completed

Status never moves backwards: starting twice, starting a completed session
or completing twice raises InvalidSessionTransition and leaves the stored
session untouched.

Every operation publishes a user-visible notification on success and on
failure when a NotificationPublisher is attached.

Thread Safety:
    This class is NOT thread-safe. It may be shared by concurrent asyncio
    tasks on one event loop: a question whose answer is still being analyzed
    is held as pending, so an overlapping submission for it is rejected with
    QuestionAlreadyAnswered.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from .errors import (
    BackendUnavailable,
    InvalidAnswer,
    InvalidSessionTransition,
    NoActiveSession,
    PersistenceError,
    PrepMasterError,
    QuestionAlreadyAnswered,
    QuestionNotFound,
    SessionNotFound,
)
from .feedback import FeedbackClient
from .identity import IdentityProvider, require_user
from .models import (
    AIFeedback,
    Difficulty,
    ExperienceLevel,
    Question,
    Session,
    SessionConfig,
    SessionStatus,
    SessionType,
    UserIdentity,
    utc_now,
)
from .notifications import NotificationPublisher
from .progress import ProgressAggregator, round_half_up
from .store import SessionStore


__all__ = ["SessionLifecycle", "questions_for_duration", "MINUTES_PER_QUESTION"]


logger = logging.getLogger(__name__)

# Roughly six minutes of interview time per question
MINUTES_PER_QUESTION = 6


def questions_for_duration(duration_minutes: int) -> int:
    """Number of questions to request for a session of the given length (at least 1)."""
    return max(1, math.ceil(duration_minutes / MINUTES_PER_QUESTION))


class SessionLifecycle:
    """
    State machine for a single in-memory interview session.

    Responsibilities:
        - Create sessions and their generated questions
        - Move sessions through setup -> in_progress -> completed
        - Track the current-question cursor
        - Submit answers for AI feedback and persist the results
        - Aggregate the overall score on completion

    Example:
        >>> lifecycle = SessionLifecycle(store, feedback_client, identity)
        >>> session = await lifecycle.create_session(
        ...     SessionConfig(type="practice", title="Warm-up", duration=30)
        ... )
        >>> await lifecycle.start_session(session.id)
        >>> question = lifecycle.get_current_question()
        >>> feedback = await lifecycle.submit_answer(question.id, "In that situation...", 95)
        >>> score = await lifecycle.complete_session()
    """

    def __init__(
        self,
        store: SessionStore,
        feedback_client: FeedbackClient,
        identity: IdentityProvider,
        publisher: Optional[NotificationPublisher] = None,
        progress: Optional[ProgressAggregator] = None,
    ) -> None:
        self._store = store
        self._feedback = feedback_client
        self._identity = identity
        self._publisher = publisher
        self._progress = progress

        self._session: Optional[Session] = None
        self._questions: list[Question] = []
        self._cursor = 0
        self._pending_answers: set[str] = set()
        logger.debug("SessionLifecycle initialized")

    # -------------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------------

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    @property
    def current_question_index(self) -> int:
        return self._cursor

    @property
    def is_configured(self) -> bool:
        return self._store.is_configured

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_user(self) -> UserIdentity:
        return require_user(self._identity)

    def _require_store(self) -> None:
        if not self._store.is_configured:
            raise BackendUnavailable()

    def _require_session(self) -> Session:
        if self._session is None:
            raise NoActiveSession()
        return self._session

    async def _notify_success(self, title: str, description: str, session_id: Optional[str] = None) -> None:
        if self._publisher is None:
            return
        user = self._identity.current_user()
        await self._publisher.publish_success(
            title,
            description,
            user_id=user.user_id if user else None,
            session_id=session_id,
        )

    async def _notify_error(
        self,
        description: str,
        error: PrepMasterError,
        session_id: Optional[str] = None,
        title: str = "Error",
    ) -> None:
        if self._publisher is None:
            return
        user = self._identity.current_user()
        await self._publisher.publish_error(
            title,
            description,
            user_id=user.user_id if user else None,
            session_id=session_id,
            error_code=error.error_code,
        )

    async def _discard_session(self, session_id: str) -> None:
        """Remove a half-created session; the creation error is the one reported."""
        try:
            await self._store.delete_session(session_id)
        except PrepMasterError as e:
            logger.error("Failed to remove incomplete session %s: %s", session_id, e.message)

    def _replace_question(self, updated: Question) -> None:
        # The question list may have been replaced while the answer was analyzed
        for i, q in enumerate(self._questions):
            if q.id == updated.id:
                self._questions[i] = updated
                return

    async def _load_owned_session(self, session_id: str, user: UserIdentity) -> Session:
        session = await self._store.get_session(session_id)
        if session is None or session.user_id != user.user_id:
            raise SessionNotFound(f"Session {session_id} not found")
        return session

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def create_session(self, config: SessionConfig) -> Session:
        """
        Create a session in 'setup' with generated questions.

        Replaces any session previously held in memory and resets the cursor.

        Raises:
            AuthRequired: No authenticated user.
            BackendUnavailable: The store is not configured.
            PersistenceError: The store failed.
        """
        user = self._require_user()
        try:
            self._require_store()
        except BackendUnavailable as e:
            await self._notify_error(
                "Please configure a persistence backend to create interview sessions.",
                e,
                title="Backend Not Configured",
            )
            raise

        session: Optional[Session] = None
        try:
            session = await self._store.insert_session(
                {
                    "user_id": user.user_id,
                    "type": config.type,
                    "title": config.title,
                    "role": config.role,
                    "industry": config.industry,
                    "experience_level": config.experience_level,
                    "difficulty": config.difficulty or Difficulty.MEDIUM,
                    "duration": config.duration,
                    "job_description": config.job_description,
                    "status": SessionStatus.SETUP,
                }
            )

            generated = await self._feedback.generate_questions(
                config.role or "General",
                config.industry or "General",
                config.experience_level or ExperienceLevel.MID,
                config.difficulty or Difficulty.MEDIUM,
                questions_for_duration(config.duration),
            )

            questions = await self._store.insert_questions(
                [
                    {
                        "session_id": session.id,
                        "question": q.question,
                        "category": q.category.value,
                        "difficulty": q.difficulty,
                        "expected_structure": q.expected_structure,
                        "tips": q.tips,
                        "order_index": index,
                    }
                    for index, q in enumerate(generated)
                ]
            )
        except PrepMasterError as e:
            logger.error("Failed to create session for user %s: %s", user.user_id, e.message)
            if session is not None:
                await self._discard_session(session.id)
            await self._notify_error("Failed to create session. Please try again.", e)
            raise

        self._session = session
        self._questions = questions
        self._cursor = 0

        logger.info(
            "Created %s session %s with %d questions for user %s",
            session.type.value,
            session.id,
            len(questions),
            user.user_id,
        )
        label = "Practice" if session.type == SessionType.PRACTICE else "Mock"
        await self._notify_success("Session Created", f"{label} session ready to start!", session.id)
        return session

    async def load_session(self, session_id: str) -> Session:
        """
        Load a persisted session and its questions into memory.

        The cursor is placed on the first unanswered question (or the last
        question when all are answered).

        Raises:
            AuthRequired, BackendUnavailable
            SessionNotFound: Unknown id or owned by another user.
        """
        user = self._require_user()
        self._require_store()

        session = await self._load_owned_session(session_id, user)
        questions = await self._store.list_questions(session_id)

        self._session = session
        self._questions = questions
        self._cursor = next(
            (i for i, q in enumerate(questions) if not q.is_answered),
            max(len(questions) - 1, 0),
        )
        logger.info("Loaded session %s (%d questions)", session_id, len(questions))
        return session

    async def start_session(self, session_id: str) -> Session:
        """
        Move a session from 'setup' to 'in_progress' and stamp started_at.

        Raises:
            AuthRequired, BackendUnavailable
            SessionNotFound: Unknown id or owned by another user.
            InvalidSessionTransition: The session is not in 'setup'.
        """
        user = self._require_user()
        self._require_store()

        try:
            session = await self._load_owned_session(session_id, user)
            if session.status != SessionStatus.SETUP:
                raise InvalidSessionTransition(session.status.value, "start")

            updated = await self._store.update_session(
                session_id,
                {"status": SessionStatus.IN_PROGRESS, "started_at": utc_now()},
            )
        except PrepMasterError as e:
            logger.warning("Failed to start session %s: %s", session_id, e.message)
            await self._notify_error(e.message, e, session_id)
            raise

        if self._session is not None and self._session.id == session_id:
            self._session = updated

        logger.info("Started session %s", session_id)
        await self._notify_success("Session Started", "Good luck with your interview!", session_id)
        return updated

    async def submit_answer(self, question_id: str, answer_text: str, time_taken_seconds: int) -> AIFeedback:
        """
        Analyze an answer and persist it on its question.

        answer, score, feedback and time_taken are written in one update.
        When a ProgressAggregator is attached the skill area named by the
        question category is updated with the new score.

        Raises:
            NoActiveSession: No session loaded.
            QuestionNotFound: question_id is not part of the loaded session.
            InvalidAnswer: The answer is blank.
            QuestionAlreadyAnswered: The question already has an answer.
            InvalidSessionTransition: The session is completed.
            PersistenceError: The store failed.
        """
        session = self._require_session()

        try:
            if session.status == SessionStatus.COMPLETED:
                raise InvalidSessionTransition(session.status.value, "answer questions in")

            index = next(
                (i for i, q in enumerate(self._questions) if q.id == question_id),
                None,
            )
            if index is None:
                raise QuestionNotFound(f"Question {question_id} not found")

            question = self._questions[index]
            if question.is_answered or question_id in self._pending_answers:
                raise QuestionAlreadyAnswered()
            if not answer_text or not answer_text.strip():
                raise InvalidAnswer()

            self._pending_answers.add(question_id)
            try:
                feedback = await self._feedback.analyze_answer(
                    question.question,
                    answer_text,
                    question.category,
                )

                updated = await self._store.update_question(
                    question_id,
                    {
                        "answer": answer_text,
                        "score": feedback.score,
                        "feedback": feedback,
                        "time_taken": max(0, int(time_taken_seconds)),
                    },
                )
                self._replace_question(updated)
            finally:
                self._pending_answers.discard(question_id)
        except PrepMasterError as e:
            logger.warning("Failed to submit answer for question %s: %s", question_id, e.message)
            await self._notify_error(e.message, e, session.id)
            raise

        logger.info(
            "Answer for question %s scored %d (session %s)",
            question_id,
            feedback.score,
            session.id,
        )

        if self._progress is not None:
            await self._progress.update_skill_progress(
                session.user_id, updated.category, feedback.score
            )

        await self._notify_success("Answer Submitted", "Your answer has been analyzed!", session.id)
        return feedback

    async def complete_session(self) -> int:
        """
        Mark the loaded session completed with its overall score.

        The score is the half-up rounded mean of the answered questions'
        scores, 0 when nothing was answered.

        Raises:
            NoActiveSession: No session loaded.
            InvalidSessionTransition: The session is already completed.
            PersistenceError: The store failed.
        """
        session = self._require_session()

        scores = [q.score for q in self._questions if q.score is not None]
        overall_score = round_half_up(sum(scores) / len(scores)) if scores else 0

        try:
            if session.status == SessionStatus.COMPLETED:
                raise InvalidSessionTransition(session.status.value, "complete")

            updated = await self._store.update_session(
                session.id,
                {
                    "status": SessionStatus.COMPLETED,
                    "completed_at": utc_now(),
                    "overall_score": overall_score,
                },
            )
        except PrepMasterError as e:
            logger.warning("Failed to complete session %s: %s", session.id, e.message)
            await self._notify_error(e.message, e, session.id)
            raise

        self._session = updated
        logger.info(
            "Completed session %s: %d/%d answered, overall score %d",
            session.id,
            len(scores),
            len(self._questions),
            overall_score,
        )
        await self._notify_success("Session Completed", f"Your overall score: {overall_score}%", session.id)
        return overall_score

    async def list_sessions(self, status: Optional[SessionStatus] = None) -> list[Session]:
        """The caller's sessions, newest first."""
        user = self._require_user()
        self._require_store()
        return await self._store.list_sessions(user.user_id, status=status)

    async def delete_session(self, session_id: str) -> None:
        """
        Delete one of the caller's sessions with all its questions.

        Clears the in-memory state when the deleted session is loaded.
        """
        user = self._require_user()
        self._require_store()
        await self._load_owned_session(session_id, user)

        if not await self._store.delete_session(session_id):
            raise PersistenceError(f"Session {session_id} could not be deleted")

        if self._session is not None and self._session.id == session_id:
            self._session = None
            self._questions = []
            self._cursor = 0
        await self._notify_success("Session Deleted", "The session has been removed.", session_id)

    # -------------------------------------------------------------------------
    # Cursor
    # -------------------------------------------------------------------------

    def next_question(self) -> None:
        if self._cursor < len(self._questions) - 1:
            self._cursor += 1

    def previous_question(self) -> None:
        if self._cursor > 0:
            self._cursor -= 1

    def get_current_question(self) -> Optional[Question]:
        if not self._questions:
            return None
        return self._questions[self._cursor]

    def get_progress(self) -> float:
        """Percent position of the cursor, 0.0 with no questions."""
        if not self._questions:
            return 0.0
        return (self._cursor + 1) / len(self._questions) * 100
