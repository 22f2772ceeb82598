"""
PrepMaster Practice Service

HTTP surface over the PrepMaster core: session lifecycle, AI feedback,
progress tracking, profile and data export. The caller is identified by the
X-User-Id / X-User-Email headers; each user gets their own SessionLifecycle.
At most ServiceConfig.max_lifecycles are kept, least recently used first
out. An evicted user keeps their stored sessions and can load them again.

Endpoints:
    GET    /health                        - Health check
    GET    /ai/status                     - AI backend configuration
    PUT    /ai/credential                 - Set the AI API key
    DELETE /ai/credential                 - Remove the AI API key
    POST   /ai/check                      - Test the AI connection (no fallback)
    POST   /ai/analyze-job                - Analyze a job description
    POST   /sessions                      - Create a session with questions
    GET    /sessions                      - List the caller's sessions
    GET    /sessions/current              - Loaded session, questions, cursor
    POST   /sessions/current/next         - Move cursor forward
    POST   /sessions/current/previous     - Move cursor back
    POST   /sessions/current/answers      - Submit an answer for feedback
    POST   /sessions/current/complete     - Complete the loaded session
    POST   /sessions/{id}/load            - Load a persisted session
    POST   /sessions/{id}/start           - Start a session
    DELETE /sessions/{id}                 - Delete a session and its questions
    GET    /progress                      - Skill progress and overall stats
    POST   /progress/achievements         - Add an achievement to a skill
    GET    /profile                       - Read (or create) the caller's profile
    PATCH  /profile                       - Update name/avatar
    GET    /export                        - Download the data export bundle
    GET    /notifications                 - Caller's notification history

Internal binding: configured by PREPMASTER_HOST/PREPMASTER_PORT (default 0.0.0.0:8770)
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Annotated, Any, AsyncIterator, Optional, TypedDict

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from prepmaster import __version__
from prepmaster.errors import (
    AudioCaptureError,
    AuthRequired,
    BackendUnavailable,
    CredentialMissing,
    InvalidAnswer,
    InvalidSessionTransition,
    MalformedResponse,
    NoActiveSession,
    PersistenceError,
    PrepMasterError,
    QuestionAlreadyAnswered,
    QuestionNotFound,
    RequestFailed,
    SessionNotFound,
)
from prepmaster.export import DataExportWriter, OutputWriteError, build_bundle, export_filename
from prepmaster.feedback import FeedbackClient
from prepmaster.identity import StaticIdentity, require_user
from prepmaster.models import (
    AIFeedback,
    JobAnalysis,
    OverallStats,
    Profile,
    Question,
    Session,
    SessionConfig,
    SessionStatus,
    SkillProgressRecord,
    UserIdentity,
)
from prepmaster.notifications import NotificationPublisher
from prepmaster.profile import get_or_create_profile, update_profile
from prepmaster.progress import ProgressAggregator
from prepmaster.session import SessionLifecycle
from prepmaster.settings import (
    FeedbackClientConfig,
    ServiceConfig,
    load_feedback_config,
    load_service_config,
)
from prepmaster.store import SessionStore, build_store

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "PrepMaster Practice Service"


def _format_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Request Models
# =============================================================================


class CredentialRequest(BaseModel):
    api_key: str = Field(..., min_length=1, description="AI provider API key")


class JobAnalysisRequest(BaseModel):
    job_description: str = Field(..., min_length=1, description="Full job description text")


class AnswerRequest(BaseModel):
    """Answer submission for a question of the loaded session."""

    question_id: str = Field(..., description="Question being answered")
    answer: str = Field(..., description="Typed answer or recording transcript")
    time_taken: int = Field(default=0, ge=0, description="Seconds spent answering")


class AchievementRequest(BaseModel):
    skill_area: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, description="Display name")
    avatar_url: Optional[str] = Field(default=None, description="Avatar image URL")


# =============================================================================
# Response Models
# =============================================================================


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    ok: bool = Field(..., description="Whether the operation succeeded")
    message: str | None = Field(default=None, description="Optional status message")


class ErrorResponse(BaseModel):
    """Standard error response."""

    ok: bool = Field(default=False)
    error: str = Field(..., description="Error description")
    error_code: str | None = Field(default=None, description="Machine-readable error code")


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Current server timestamp")
    store_configured: bool = Field(..., description="Whether persistence is configured")
    ai_configured: bool = Field(..., description="Whether an AI credential is set")


class AIStatusResponse(BaseModel):
    has_credential: bool
    provider: str
    model: str
    strict_credentials: bool
    timeout_seconds: float


class JobAnalysisResponse(BaseResponse):
    analysis: JobAnalysis


class SessionStateResponse(BaseResponse):
    """Loaded session, its questions and the cursor."""

    session: Optional[Session] = None
    questions: list[Question] = Field(default_factory=list)
    current_index: int = 0
    current_question: Optional[Question] = None
    progress: float = 0.0


class SessionListResponse(BaseResponse):
    sessions: list[Session]


class AnswerResponse(BaseResponse):
    feedback: AIFeedback
    question: Question


class CompleteResponse(BaseResponse):
    overall_score: int
    session: Session


class ProgressResponse(BaseResponse):
    skill_progress: list[SkillProgressRecord]
    overall_stats: OverallStats


class SkillResponse(BaseResponse):
    skill: SkillProgressRecord


class ProfileResponse(BaseResponse):
    profile: Profile


class NotificationListResponse(BaseResponse):
    notifications: list[dict[str, Any]]


# =============================================================================
# Application State (Type-safe Lifespan State)
# =============================================================================


class AppState(TypedDict):
    """Type-safe application state managed by lifespan."""

    service_config: ServiceConfig
    store: SessionStore
    feedback_client: FeedbackClient
    publisher: NotificationPublisher
    aggregator: ProgressAggregator
    export_writer: DataExportWriter
    lifecycles: OrderedDict[str, SessionLifecycle]


# =============================================================================
# Error Mapping
# =============================================================================

# Looked up along the exception MRO, so subclasses inherit their base status
ERROR_STATUS: dict[type[Exception], int] = {
    AuthRequired: status.HTTP_401_UNAUTHORIZED,
    BackendUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    PersistenceError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    CredentialMissing: status.HTTP_400_BAD_REQUEST,
    RequestFailed: status.HTTP_502_BAD_GATEWAY,
    MalformedResponse: status.HTTP_502_BAD_GATEWAY,
    NoActiveSession: status.HTTP_409_CONFLICT,
    QuestionNotFound: status.HTTP_404_NOT_FOUND,
    QuestionAlreadyAnswered: status.HTTP_409_CONFLICT,
    InvalidAnswer: status.HTTP_400_BAD_REQUEST,
    InvalidSessionTransition: status.HTTP_409_CONFLICT,
    AudioCaptureError: status.HTTP_400_BAD_REQUEST,
}


def status_for_error(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def prepmaster_error_handler(request: Request, exc: PrepMasterError) -> JSONResponse:
    """Map core errors to their HTTP status and the standard error body."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error("%s: %s", exc.error_code, exc.message)
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(ok=False, error=exc.message, error_code=exc.error_code).model_dump(),
    )


async def export_error_handler(request: Request, exc: OutputWriteError) -> JSONResponse:
    logger.error("Export failed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(ok=False, error=str(exc), error_code=exc.error_code).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            ok=False,
            error="Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


# =============================================================================
# Dependencies
# =============================================================================


def get_app_state(request: Request) -> AppState:
    """
    Dependency to retrieve application state from request.

    Raises:
        RuntimeError: If state is not properly initialized.
    """
    state = getattr(request, "state", None)
    if state is None or not hasattr(state, "store"):
        raise RuntimeError("Application state not initialized")
    return AppState(
        service_config=state.service_config,
        store=state.store,
        feedback_client=state.feedback_client,
        publisher=state.publisher,
        aggregator=state.aggregator,
        export_writer=state.export_writer,
        lifecycles=state.lifecycles,
    )


AppStateDep = Annotated[AppState, Depends(get_app_state)]


def get_identity(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> StaticIdentity:
    """Caller identity from request headers; anonymous when X-User-Id is absent."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        return StaticIdentity(None)
    return StaticIdentity(UserIdentity(user_id=user_id, email=(x_user_email or "").strip()))


IdentityDep = Annotated[StaticIdentity, Depends(get_identity)]


def get_lifecycle(state: AppStateDep, identity: IdentityDep) -> SessionLifecycle:
    """The caller's SessionLifecycle, created on first use."""
    user = require_user(identity)
    lifecycles = state["lifecycles"]
    lifecycle = lifecycles.get(user.user_id)
    if lifecycle is not None:
        lifecycles.move_to_end(user.user_id)
    else:
        lifecycle = SessionLifecycle(
            state["store"],
            state["feedback_client"],
            StaticIdentity(user),
            publisher=state["publisher"],
            progress=state["aggregator"],
        )
        lifecycles[user.user_id] = lifecycle
        logger.info("Created session lifecycle for user %s", user.user_id)
        while len(lifecycles) > state["service_config"].max_lifecycles:
            evicted, _ = lifecycles.popitem(last=False)
            logger.info("Evicted session lifecycle for user %s", evicted)
    return lifecycle


LifecycleDep = Annotated[SessionLifecycle, Depends(get_lifecycle)]


def _session_state(lifecycle: SessionLifecycle, message: str | None = None) -> SessionStateResponse:
    return SessionStateResponse(
        ok=True,
        message=message,
        session=lifecycle.current_session,
        questions=lifecycle.questions,
        current_index=lifecycle.current_question_index,
        current_question=lifecycle.get_current_question(),
        progress=lifecycle.get_progress(),
    )


# =============================================================================
# Endpoints
# =============================================================================

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(state: AppStateDep) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        service=SERVICE_NAME,
        version=__version__,
        timestamp=_format_utc_timestamp(),
        store_configured=state["store"].is_configured,
        ai_configured=state["feedback_client"].has_credential,
    )


@router.get("/ai/status", response_model=AIStatusResponse)
async def ai_status(state: AppStateDep) -> AIStatusResponse:
    config = state["feedback_client"].config
    return AIStatusResponse(
        has_credential=config.has_credential,
        provider=config.provider,
        model=config.model,
        strict_credentials=config.strict_credentials,
        timeout_seconds=config.timeout_seconds,
    )


@router.put("/ai/credential", response_model=BaseResponse)
async def set_ai_credential(request: CredentialRequest, state: AppStateDep) -> BaseResponse:
    state["feedback_client"].set_api_credential(request.api_key)
    await state["publisher"].publish_success(
        "API Key Saved", "Your AI API key has been configured successfully."
    )
    return BaseResponse(ok=True, message="API key saved")


@router.delete("/ai/credential", response_model=BaseResponse)
async def clear_ai_credential(state: AppStateDep) -> BaseResponse:
    state["feedback_client"].clear_api_credential()
    await state["publisher"].publish_info(
        "API Key Removed", "AI features will use mock data until a new key is configured."
    )
    return BaseResponse(ok=True, message="API key removed")


@router.post("/ai/check", response_model=BaseResponse)
async def check_ai_connection(state: AppStateDep) -> BaseResponse:
    """Single real request; errors are reported instead of falling back."""
    try:
        await state["feedback_client"].check_connection()
    except PrepMasterError as e:
        await state["publisher"].publish_error(
            "Connection Failed",
            "Please check your API key and try again.",
            error_code=e.error_code,
        )
        raise
    await state["publisher"].publish_success(
        "Connection Successful", "AI service is working correctly!"
    )
    return BaseResponse(ok=True, message="AI connection working")


@router.post("/ai/analyze-job", response_model=JobAnalysisResponse)
async def analyze_job(request: JobAnalysisRequest, state: AppStateDep) -> JobAnalysisResponse:
    analysis = await state["feedback_client"].analyze_job_description(request.job_description)
    return JobAnalysisResponse(ok=True, analysis=analysis)


@router.post("/sessions", response_model=SessionStateResponse, status_code=status.HTTP_201_CREATED)
async def create_session(config: SessionConfig, lifecycle: LifecycleDep) -> SessionStateResponse:
    await lifecycle.create_session(config)
    return _session_state(lifecycle, "Session created")


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    lifecycle: LifecycleDep,
    session_status: Annotated[Optional[SessionStatus], Query(alias="status")] = None,
) -> SessionListResponse:
    sessions = await lifecycle.list_sessions(status=session_status)
    return SessionListResponse(ok=True, sessions=sessions)


@router.get("/sessions/current", response_model=SessionStateResponse)
async def current_session(lifecycle: LifecycleDep) -> SessionStateResponse:
    return _session_state(lifecycle)


@router.post("/sessions/current/next", response_model=SessionStateResponse)
async def next_question(lifecycle: LifecycleDep) -> SessionStateResponse:
    lifecycle.next_question()
    return _session_state(lifecycle)


@router.post("/sessions/current/previous", response_model=SessionStateResponse)
async def previous_question(lifecycle: LifecycleDep) -> SessionStateResponse:
    lifecycle.previous_question()
    return _session_state(lifecycle)


@router.post("/sessions/current/answers", response_model=AnswerResponse)
async def submit_answer(request: AnswerRequest, lifecycle: LifecycleDep) -> AnswerResponse:
    feedback = await lifecycle.submit_answer(request.question_id, request.answer, request.time_taken)
    question = next(q for q in lifecycle.questions if q.id == request.question_id)
    return AnswerResponse(ok=True, message="Your answer has been analyzed!", feedback=feedback, question=question)


@router.post("/sessions/current/complete", response_model=CompleteResponse)
async def complete_session(lifecycle: LifecycleDep) -> CompleteResponse:
    overall_score = await lifecycle.complete_session()
    return CompleteResponse(
        ok=True,
        message=f"Your overall score: {overall_score}%",
        overall_score=overall_score,
        session=lifecycle.current_session,
    )


@router.post("/sessions/{session_id}/load", response_model=SessionStateResponse)
async def load_session(session_id: str, lifecycle: LifecycleDep) -> SessionStateResponse:
    await lifecycle.load_session(session_id)
    return _session_state(lifecycle, "Session loaded")


@router.post("/sessions/{session_id}/start", response_model=SessionStateResponse)
async def start_session(session_id: str, lifecycle: LifecycleDep) -> SessionStateResponse:
    await lifecycle.start_session(session_id)
    return _session_state(lifecycle, "Session started")


@router.delete("/sessions/{session_id}", response_model=BaseResponse)
async def delete_session(session_id: str, lifecycle: LifecycleDep) -> BaseResponse:
    await lifecycle.delete_session(session_id)
    return BaseResponse(ok=True, message="Session deleted")


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(state: AppStateDep, identity: IdentityDep) -> ProgressResponse:
    user = require_user(identity)
    aggregator = state["aggregator"]
    return ProgressResponse(
        ok=True,
        skill_progress=await aggregator.list_skill_progress(user.user_id),
        overall_stats=await aggregator.overall_stats_for(user.user_id),
    )


@router.post("/progress/achievements", response_model=SkillResponse)
async def add_achievement(
    request: AchievementRequest,
    state: AppStateDep,
    identity: IdentityDep,
) -> SkillResponse | JSONResponse:
    user = require_user(identity)
    record = await state["aggregator"].add_achievement(user.user_id, request.skill_area, request.label)
    if record is None:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content=ErrorResponse(
                ok=False,
                error=f"No progress tracked for skill '{request.skill_area}'",
                error_code="SKILL_NOT_FOUND",
            ).model_dump(),
        )
    return SkillResponse(ok=True, skill=record)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(state: AppStateDep, identity: IdentityDep) -> ProfileResponse:
    profile = await get_or_create_profile(state["store"], identity)
    return ProfileResponse(ok=True, profile=profile)


@router.patch("/profile", response_model=ProfileResponse)
async def patch_profile(
    request: ProfileUpdateRequest,
    state: AppStateDep,
    identity: IdentityDep,
) -> ProfileResponse:
    profile = await update_profile(state["store"], identity, request.model_dump(exclude_unset=True))
    return ProfileResponse(ok=True, message="Profile updated", profile=profile)


@router.get("/export")
async def export_data(
    state: AppStateDep,
    identity: IdentityDep,
    save: bool = False,
) -> JSONResponse:
    """Download {profile, skillProgress, overallStats, exportDate}; save=true also writes it to disk."""
    user = require_user(identity)
    aggregator = state["aggregator"]
    bundle = build_bundle(
        await get_or_create_profile(state["store"], identity),
        await aggregator.list_skill_progress(user.user_id),
        await aggregator.overall_stats_for(user.user_id),
    )
    filename = export_filename(bundle.export_date)
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    if save:
        path = state["export_writer"].write_bundle(bundle)
        headers["X-Export-Path"] = str(path)
    return JSONResponse(content=bundle.to_wire(), headers=headers)


@router.get("/notifications", response_model=NotificationListResponse)
async def list_notifications(state: AppStateDep, identity: IdentityDep) -> NotificationListResponse:
    user = require_user(identity)
    history = await state["publisher"].get_history()
    return NotificationListResponse(
        ok=True,
        notifications=[n.to_dict() for n in history if n.user_id in (None, user.user_id)],
    )


# =============================================================================
# FastAPI App Lifespan / Factory
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
    """
    Build the shared collaborators on startup.

    Yields:
        Dictionary of application state attached to requests.
    """
    service_config: ServiceConfig = app.state.service_config
    feedback_config: FeedbackClientConfig = app.state.feedback_config

    logger.info("Starting %s v%s", SERVICE_NAME, __version__)
    logger.info(
        "Runtime: store=%s host=%s port=%d ai_configured=%s",
        service_config.store_backend,
        service_config.host,
        service_config.port,
        feedback_config.has_credential,
    )

    store = build_store(service_config.store_backend, service_config.data_file)
    feedback_client = FeedbackClient(feedback_config)
    publisher = NotificationPublisher()
    aggregator = ProgressAggregator(store)
    export_writer = DataExportWriter(service_config.export_dir)
    logger.info("Data export directory: %s", service_config.export_dir)

    yield {
        "service_config": service_config,
        "store": store,
        "feedback_client": feedback_client,
        "publisher": publisher,
        "aggregator": aggregator,
        "export_writer": export_writer,
        "lifecycles": OrderedDict(),
    }

    logger.info("Shutting down...")


def create_app(
    service_config: Optional[ServiceConfig] = None,
    feedback_config: Optional[FeedbackClientConfig] = None,
) -> FastAPI:
    """Create the service; configs default to the environment."""
    service_config = service_config or load_service_config()
    feedback_config = feedback_config or load_feedback_config()

    app = FastAPI(
        title=SERVICE_NAME,
        version=__version__,
        description="Interview practice sessions with AI feedback and progress tracking",
        lifespan=lifespan,
    )
    app.state.service_config = service_config
    app.state.feedback_config = feedback_config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(service_config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-User-Id", "X-User-Email"],
        max_age=3600,
    )

    app.add_exception_handler(PrepMasterError, prepmaster_error_handler)
    app.add_exception_handler(OutputWriteError, export_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(router)
    return app


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    config = load_service_config()
    app = create_app(service_config=config)

    logger.info("=" * 60)
    logger.info(SERVICE_NAME)
    logger.info("=" * 60)
    logger.info("Binding to: http://%s:%d", config.host, config.port)
    logger.info("Store backend: %s", config.store_backend)
    logger.info("Export directory: %s", config.export_dir)
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level="info",
    )
