"""
PrepMaster Interview Practice Package.

Session lifecycle, AI feedback orchestration, audio capture and progress
tracking for interview preparation.

Components:
    - SessionLifecycle: Session/question state machine and answer submission
    - FeedbackClient: AI feedback requests with deterministic fallback
    - AudioCapture: Microphone recording with best-effort transcription
    - ProgressAggregator: Overall stats and per-skill trend records
    - SessionStore implementations: in-memory, JSON file, unconfigured
    - DataExportWriter: User data export bundles
    - NotificationPublisher: User-visible success/error feed
    - Models: Pydantic models for sessions, questions and AI payloads

Example:
    >>> from prepmaster import FeedbackClient, InMemoryStore, SessionLifecycle
    >>> from prepmaster import SessionConfig, StaticIdentity, UserIdentity
    >>>
    >>> lifecycle = SessionLifecycle(
    ...     InMemoryStore(),
    ...     FeedbackClient(),  # offline fallback without a key
    ...     StaticIdentity(UserIdentity(user_id="user-1", email="a@example.com")),
    ... )
    >>> session = await lifecycle.create_session(
    ...     SessionConfig(type="practice", title="Warm-up", duration=30)
    ... )
    >>> print(f"{len(lifecycle.questions)} questions ready")

Last Grunted: 10/19/2026
"""

from .errors import (
    PrepMasterError,
    AuthRequired,
    BackendUnavailable,
    PersistenceError,
    SessionNotFound,
    CredentialMissing,
    RequestFailed,
    MalformedResponse,
    NoActiveSession,
    QuestionNotFound,
    QuestionAlreadyAnswered,
    InvalidAnswer,
    InvalidSessionTransition,
    AudioCaptureError,
    AlreadyRecording,
    NotRecording,
    PermissionDenied,
    DeviceUnavailable,
    TranscriptionError,
)

from .models import (
    SessionType,
    ExperienceLevel,
    Difficulty,
    SessionStatus,
    QuestionCategory,
    AIFeedback,
    JobAnalysis,
    GeneratedQuestion,
    QuestionGeneration,
    SessionConfig,
    Session,
    Question,
    SkillProgressRecord,
    OverallStats,
    Profile,
    UserIdentity,
    ExportBundle,
)

from .settings import (
    FeedbackClientConfig,
    ServiceConfig,
    load_feedback_config,
    load_service_config,
)

from .identity import IdentityProvider, StaticIdentity, require_user

from .store import (
    SessionStore,
    InMemoryStore,
    JsonFileStore,
    UnconfiguredStore,
    build_store,
)

from .notifications import Notification, NotificationPublisher, NotificationType

from .feedback import AgentsTextCompleter, FeedbackClient, TextCompleter

from .audio import (
    AudioCapture,
    AudioInput,
    RecognitionResult,
    RecordingResult,
    SoundDeviceInput,
    SpeechRecognizer,
    WhisperRecognizer,
    record_for,
)

from .progress import ProgressAggregator

from .session import SessionLifecycle

from .profile import get_or_create_profile, update_profile

from .export import DataExportWriter, OutputReadError, OutputWriteError, build_bundle


__all__ = [
    # Errors
    "PrepMasterError",
    "AuthRequired",
    "BackendUnavailable",
    "PersistenceError",
    "SessionNotFound",
    "CredentialMissing",
    "RequestFailed",
    "MalformedResponse",
    "NoActiveSession",
    "QuestionNotFound",
    "QuestionAlreadyAnswered",
    "InvalidAnswer",
    "InvalidSessionTransition",
    "AudioCaptureError",
    "AlreadyRecording",
    "NotRecording",
    "PermissionDenied",
    "DeviceUnavailable",
    "TranscriptionError",
    # Models
    "SessionType",
    "ExperienceLevel",
    "Difficulty",
    "SessionStatus",
    "QuestionCategory",
    "AIFeedback",
    "JobAnalysis",
    "GeneratedQuestion",
    "QuestionGeneration",
    "SessionConfig",
    "Session",
    "Question",
    "SkillProgressRecord",
    "OverallStats",
    "Profile",
    "UserIdentity",
    "ExportBundle",
    # Configuration
    "FeedbackClientConfig",
    "ServiceConfig",
    "load_feedback_config",
    "load_service_config",
    # Identity / storage
    "IdentityProvider",
    "StaticIdentity",
    "require_user",
    "SessionStore",
    "InMemoryStore",
    "JsonFileStore",
    "UnconfiguredStore",
    "build_store",
    # Notifications
    "Notification",
    "NotificationPublisher",
    "NotificationType",
    # AI feedback
    "AgentsTextCompleter",
    "FeedbackClient",
    "TextCompleter",
    # Audio
    "AudioCapture",
    "AudioInput",
    "RecognitionResult",
    "RecordingResult",
    "SoundDeviceInput",
    "SpeechRecognizer",
    "WhisperRecognizer",
    "record_for",
    # Lifecycle / progress
    "ProgressAggregator",
    "SessionLifecycle",
    "get_or_create_profile",
    "update_profile",
    # Export
    "DataExportWriter",
    "OutputReadError",
    "OutputWriteError",
    "build_bundle",
]

__version__ = "0.1.0"
