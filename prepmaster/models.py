"""
Pydantic models for PrepMaster.

Defines the session/question records owned by the lifecycle, the AI payloads
exchanged with the text-completion collaborator, progress records and the
export bundle.

AI payloads and the export bundle are camelCase on the wire (aliases) and
snake_case in Python. Both spellings are accepted on input.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class SessionType(str, Enum):
    """Kind of interview session."""

    PRACTICE = "practice"
    MOCK = "mock"


class ExperienceLevel(str, Enum):
    ENTRY = "entry"
    MID = "mid"
    SENIOR = "senior"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SessionStatus(str, Enum):
    """
    Session status. Only ever moves forward:

        setup --start--> in_progress --complete--> completed
    """

    SETUP = "setup"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionCategory(str, Enum):
    """Categories a generated question may carry."""

    BEHAVIORAL = "behavioral"
    TECHNICAL = "technical"
    SITUATIONAL = "situational"
    GENERAL = "general"
    CLOSING = "closing"


_WIRE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# AI Payloads
# =============================================================================


class AIFeedback(BaseModel):
    """
    Structured feedback for one answer.

    Stored embedded in Question.feedback. The three advice lists are never
    empty; a response with an empty list is rejected as malformed.

    Example:
        >>> feedback = AIFeedback.model_validate({
        ...     "score": 82,
        ...     "starCompliance": 85,
        ...     "confidence": 80,
        ...     "clarity": 88,
        ...     "strengths": ["Clear structure"],
        ...     "improvements": ["Add metrics"],
        ...     "suggestions": ["Quantify the result"],
        ...     "detailedAnalysis": "Solid answer.",
        ... })
    """

    model_config = _WIRE_CONFIG

    score: int = Field(..., ge=0, le=100, description="Overall answer score")
    star_compliance: int = Field(..., ge=0, le=100, description="How well the STAR method was used")
    confidence: int = Field(..., ge=0, le=100, description="Confidence level in delivery")
    clarity: int = Field(..., ge=0, le=100, description="Clarity of communication")
    strengths: list[str] = Field(..., min_length=1)
    improvements: list[str] = Field(..., min_length=1)
    suggestions: list[str] = Field(..., min_length=1)
    detailed_analysis: str = Field(..., description="Comprehensive analysis of the answer")


class JobAnalysis(BaseModel):
    """Information extracted from a job description."""

    model_config = _WIRE_CONFIG

    role: str
    industry: str
    skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    experience_level: ExperienceLevel
    keyword_density: dict[str, int] = Field(default_factory=dict)


class GeneratedQuestion(BaseModel):
    """One question as produced by question generation."""

    model_config = _WIRE_CONFIG

    question: str = Field(..., min_length=1)
    category: QuestionCategory
    difficulty: Difficulty
    expected_structure: str = Field(..., description="STAR|Examples|Technical|Vision")
    tips: str


class QuestionGeneration(BaseModel):
    model_config = _WIRE_CONFIG

    questions: list[GeneratedQuestion] = Field(..., min_length=1)


# =============================================================================
# Session Records
# =============================================================================


class SessionConfig(BaseModel):
    """
    Caller-supplied configuration for a new session.

    Consumed once by SessionLifecycle.create_session; never persisted itself.
    """

    type: SessionType
    title: str = Field(..., min_length=1)
    role: Optional[str] = None
    industry: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    difficulty: Optional[Difficulty] = None
    duration: int = Field(..., ge=1, description="Planned length in minutes")
    job_description: Optional[str] = None


class Session(BaseModel):
    """
    One practice or mock interview attempt.

    Created in 'setup', moved to 'in_progress' on start and to 'completed'
    (with completed_at and overall_score) on completion. Terminal once
    completed.
    """

    id: str
    user_id: str
    type: SessionType
    title: str
    role: Optional[str] = None
    industry: Optional[str] = None
    experience_level: Optional[ExperienceLevel] = None
    difficulty: Difficulty = Difficulty.MEDIUM
    duration: int = Field(..., ge=1)
    job_description: Optional[str] = None
    status: SessionStatus = SessionStatus.SETUP
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    overall_score: Optional[int] = Field(default=None, ge=0, le=100)
    created_at: datetime = Field(default_factory=utc_now)


class Question(BaseModel):
    """
    One interview prompt within a session, with its eventual answer.

    answer, score, feedback and time_taken are all-or-nothing: either the
    question is unanswered (all None) or answered (all set).
    """

    id: str
    session_id: str
    question: str
    category: str
    difficulty: Difficulty = Difficulty.MEDIUM
    expected_structure: Optional[str] = None
    tips: Optional[str] = None
    order_index: int = Field(..., ge=0)
    answer: Optional[str] = None
    score: Optional[int] = Field(default=None, ge=0, le=100)
    feedback: Optional[AIFeedback] = None
    time_taken: Optional[int] = Field(default=None, ge=0, description="Seconds")
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def validate_answer_fields(self) -> "Question":
        answer_fields = (self.answer, self.score, self.feedback, self.time_taken)
        populated = [value is not None for value in answer_fields]
        if any(populated) and not all(populated):
            raise ValueError(
                "answer, score, feedback and time_taken must be set together"
            )
        return self

    @property
    def is_answered(self) -> bool:
        return self.answer is not None


# =============================================================================
# Progress / Profile
# =============================================================================


class SkillProgressRecord(BaseModel):
    """Per-user trend record for one skill area."""

    model_config = _WIRE_CONFIG

    user_id: str
    skill_area: str
    current_score: int = Field(..., ge=0, le=100)
    target_score: int = Field(default=85, ge=0, le=100)
    sessions_completed: int = Field(default=1, ge=1)
    improvement_rate: float = 0.0
    last_practice: Optional[datetime] = None
    achievements: list[str] = Field(default_factory=list)


class OverallStats(BaseModel):
    model_config = _WIRE_CONFIG

    total_sessions: int = 0
    average_score: int = 0
    hours_spent: int = 0
    streak_days: int = 0
    improvement_rate: int = 0


class Profile(BaseModel):
    model_config = _WIRE_CONFIG

    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class UserIdentity(BaseModel):
    """Stable identity of the current caller."""

    user_id: str = Field(..., min_length=1)
    email: str = ""


class ExportBundle(BaseModel):
    """
    User data export.

    Serialized as {profile, skillProgress, overallStats, exportDate}.
    """

    model_config = _WIRE_CONFIG

    profile: Optional[Profile] = None
    skill_progress: list[SkillProgressRecord] = Field(default_factory=list)
    overall_stats: OverallStats = Field(default_factory=OverallStats)
    export_date: datetime = Field(default_factory=utc_now)

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready camelCase representation."""
        return self.model_dump(mode="json", by_alias=True)
