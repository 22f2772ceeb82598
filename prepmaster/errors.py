"""
Error taxonomy for PrepMaster.

Every error raised by the core derives from PrepMasterError and carries a
machine-readable error_code so outer surfaces (HTTP service, CLI) can report
it without string matching.

Last Grunted: 10/19/2026
"""

from __future__ import annotations


__all__ = [
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
]


class PrepMasterError(Exception):
    """Base exception for all PrepMaster errors."""

    error_code: str = "PREPMASTER_ERROR"
    default_message: str = "PrepMaster operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# =============================================================================
# Identity / Persistence
# =============================================================================


class AuthRequired(PrepMasterError):
    """Raised when an operation needs an authenticated user and none is present."""

    error_code = "AUTH_REQUIRED"
    default_message = "User not authenticated"


class BackendUnavailable(PrepMasterError):
    """Raised when the persistence collaborator is not configured."""

    error_code = "BACKEND_UNAVAILABLE"
    default_message = "Persistence backend is not configured"


class PersistenceError(PrepMasterError):
    """Raised when the persistence collaborator fails to read or write."""

    error_code = "PERSISTENCE_ERROR"
    default_message = "Storage operation failed"

    def __init__(self, message: str | None = None, cause: Exception | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class SessionNotFound(PersistenceError):
    """Raised when a session id does not resolve to a session owned by the caller."""

    error_code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


# =============================================================================
# Text Completion
# =============================================================================


class CredentialMissing(PrepMasterError):
    """Raised when a network-backed AI call needs a credential that is not set."""

    error_code = "CREDENTIAL_MISSING"
    default_message = "AI API key not configured"


class RequestFailed(PrepMasterError):
    """Raised when the completion request fails (network, HTTP status, timeout)."""

    error_code = "REQUEST_FAILED"
    default_message = "AI request failed"


class MalformedResponse(PrepMasterError):
    """Raised when the completion text is not JSON or does not match the schema."""

    error_code = "MALFORMED_RESPONSE"
    default_message = "AI response could not be parsed"


# =============================================================================
# Session Lifecycle
# =============================================================================


class NoActiveSession(PrepMasterError):
    """Raised when an operation requires a session loaded in memory."""

    error_code = "NO_ACTIVE_SESSION"
    default_message = "No active session"


class QuestionNotFound(PrepMasterError):
    """Raised when a question id is not part of the active session."""

    error_code = "QUESTION_NOT_FOUND"
    default_message = "Question not found"


class QuestionAlreadyAnswered(PrepMasterError):
    """Raised when submitting a second answer for the same question."""

    error_code = "QUESTION_ALREADY_ANSWERED"
    default_message = "Question has already been answered"


class InvalidAnswer(PrepMasterError):
    """Raised when the submitted answer is blank."""

    error_code = "INVALID_ANSWER"
    default_message = "Please provide an answer before submitting"


class InvalidSessionTransition(PrepMasterError):
    """Raised when a status change would not move a session forward."""

    error_code = "INVALID_SESSION_TRANSITION"
    default_message = "Session cannot move to the requested status"

    def __init__(self, current_status: str, action: str) -> None:
        self.current_status = current_status
        self.action = action
        super().__init__(f"Cannot {action} a session in status '{current_status}'")


# =============================================================================
# Audio Capture
# =============================================================================


class AudioCaptureError(PrepMasterError):
    """Base class for microphone capture errors."""

    error_code = "AUDIO_CAPTURE_ERROR"
    default_message = "Audio capture failed"


class AlreadyRecording(AudioCaptureError):
    error_code = "ALREADY_RECORDING"
    default_message = "Already recording"


class NotRecording(AudioCaptureError):
    error_code = "NOT_RECORDING"
    default_message = "Not currently recording"


class PermissionDenied(AudioCaptureError):
    error_code = "PERMISSION_DENIED"
    default_message = "Microphone access was denied"


class DeviceUnavailable(AudioCaptureError):
    error_code = "DEVICE_UNAVAILABLE"
    default_message = "Failed to access microphone"


class TranscriptionError(AudioCaptureError):
    """Raised by speech recognizers; never fatal to a recording."""

    error_code = "TRANSCRIPTION_ERROR"
    default_message = "Speech recognition failed"
