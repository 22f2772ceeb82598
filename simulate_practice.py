#!/usr/bin/env python3
"""
Practice Session Simulator.

Drives the PrepMaster practice service through a complete session, the same
way the web client does: create, start, answer every question, complete,
then print progress and optionally save the data export.

Answers come from a scripted answer set, or from the microphone with
--voice (recorded with AudioCapture, transcribed when an OpenAI key is set).

Usage:
    # Start the service first:
    uv run python prep_service.py

    # In another terminal, run the simulator:
    uv run python simulate_practice.py

    # With custom options:
    uv run python simulate_practice.py --service-url http://localhost:8770 --duration 18 --type mock
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Final, Optional

import httpx

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS: Final[int] = 0
EXIT_CONNECTION_ERROR: Final[int] = 1
EXIT_SERVICE_UNHEALTHY: Final[int] = 2
EXIT_SESSION_ERROR: Final[int] = 3
EXIT_AUDIO_ERROR: Final[int] = 4
EXIT_INTERRUPTED: Final[int] = 130  # Standard SIGINT exit code


# =============================================================================
# Configuration
# =============================================================================

DEFAULT_SERVICE_URL: Final[str] = "http://127.0.0.1:8770"
DEFAULT_USER_ID: Final[str] = "practice-user"
DEFAULT_USER_EMAIL: Final[str] = "practice@example.com"
DEFAULT_DURATION_MINUTES: Final[int] = 30
DEFAULT_MAX_RECORDING_SECONDS: Final[int] = 120

# Scripted answers, cycled across questions. Half use STAR wording.
SCRIPTED_ANSWERS: Final[tuple[str, ...]] = (
    "I'm a backend engineer with six years of experience building payment systems. "
    "Most recently I led a team of four migrating our settlement pipeline to an event-driven design.",
    "The situation was a data migration that was three weeks behind. My task was to recover the schedule. "
    "The action I took was to split the work into parallel tracks and automate validation. "
    "The result was delivery one day early with zero data loss.",
    "My greatest strength is turning ambiguous problems into clear plans. For example, I wrote the design "
    "doc that aligned three teams on a shared API, which cut integration bugs by half.",
    "In one situation two engineers disagreed on a database choice. I set up a benchmark so the decision "
    "rested on data, and the result was a choice both could support.",
    "In five years I want to be leading a platform team, mentoring engineers and owning the reliability "
    "of systems that customers depend on every day.",
)


def _headers(user_id: str, user_email: str) -> dict[str, str]:
    return {"X-User-Id": user_id, "X-User-Email": user_email}


def _record_voice_answer(capture: Any, max_seconds: int) -> tuple[str, int]:
    """Blocking microphone take; returns (transcript, seconds)."""
    from prepmaster.audio import record_for

    logger.info("Recording for up to %ds...", max_seconds)
    result = record_for(capture, max_duration=max_seconds)
    logger.info("Recorded %ds: %s", result.duration_seconds, result.transcript)
    return result.transcript, result.duration_seconds


# =============================================================================
# Simulation Runner
# =============================================================================

async def run_simulation(
    service_url: str,
    user_id: str = DEFAULT_USER_ID,
    user_email: str = DEFAULT_USER_EMAIL,
    session_type: str = "practice",
    duration: int = DEFAULT_DURATION_MINUTES,
    role: Optional[str] = None,
    industry: Optional[str] = None,
    voice: bool = False,
    max_recording_seconds: int = DEFAULT_MAX_RECORDING_SECONDS,
    export_path: Optional[Path] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """
    Run one practice session against the service.

    Args:
        service_url: Base URL of the practice service.
        user_id: Value sent as X-User-Id.
        user_email: Value sent as X-User-Email.
        session_type: "practice" or "mock".
        duration: Planned session length in minutes.
        role: Optional target role.
        industry: Optional target industry.
        voice: Answer from the microphone instead of the scripted set.
        max_recording_seconds: Auto-stop limit per spoken answer.
        export_path: Where to save the data export, if given.
        transport: Optional httpx transport (used to run in-process).

    Returns:
        Exit code indicating success or failure.
    """
    capture = None
    if voice:
        from prepmaster.audio import AudioCapture
        from prepmaster.settings import load_feedback_config

        capture = AudioCapture.from_config(load_feedback_config())
        if not capture.is_supported():
            logger.error("No usable microphone found")
            return EXIT_AUDIO_ERROR
        if not capture.is_transcription_supported():
            logger.warning("Speech recognition unavailable; answers will use the fallback transcript")

    async with httpx.AsyncClient(
        base_url=service_url,
        headers=_headers(user_id, user_email),
        timeout=60.0,
        transport=transport,
    ) as client:
        # Check if service is running
        logger.info("Checking practice service health...")
        try:
            resp = await client.get("/health")
            if resp.status_code != 200:
                logger.error("Service not healthy: %d", resp.status_code)
                return EXIT_SERVICE_UNHEALTHY
            logger.info("Service healthy: %s", resp.json())
        except httpx.ConnectError:
            logger.error("Cannot connect to service at %s. Is it running?", service_url)
            logger.error("Start it with: uv run python prep_service.py")
            return EXIT_CONNECTION_ERROR

        # Create session
        config: dict[str, Any] = {
            "type": session_type,
            "title": f"{session_type.capitalize()} Session",
            "duration": duration,
        }
        if role:
            config["role"] = role
        if industry:
            config["industry"] = industry

        try:
            resp = await client.post("/sessions", json=config)
        except httpx.RequestError as exc:
            logger.error("Failed to create session: %s", exc)
            return EXIT_SESSION_ERROR

        if resp.status_code != 201:
            logger.error("Failed to create session: %s", resp.text)
            return EXIT_SESSION_ERROR

        state: dict[str, Any] = resp.json()
        session_id = state["session"]["id"]
        questions: list[dict[str, Any]] = state["questions"]
        logger.info("\n%s", "=" * 60)
        logger.info("Session %s created with %d questions", session_id, len(questions))
        logger.info("%s\n", "=" * 60)

        resp = await client.post(f"/sessions/{session_id}/start")
        if resp.status_code != 200:
            logger.error("Failed to start session: %s", resp.text)
            return EXIT_SESSION_ERROR
        logger.info("Session started. Good luck!")

        # Answer every question in order
        for i, question in enumerate(questions):
            logger.info("\n[%d/%d] (%s) %s", i + 1, len(questions), question["category"], question["question"])
            if question.get("tips"):
                logger.info("Tip: %s", question["tips"])

            if capture is not None:
                answer, time_taken = await asyncio.to_thread(
                    _record_voice_answer, capture, max_recording_seconds
                )
            else:
                answer = SCRIPTED_ANSWERS[i % len(SCRIPTED_ANSWERS)]
                time_taken = 60 + 15 * i

            resp = await client.post(
                "/sessions/current/answers",
                json={"question_id": question["id"], "answer": answer, "time_taken": time_taken},
            )
            if resp.status_code != 200:
                logger.error("Failed to submit answer: %s", resp.text)
                return EXIT_SESSION_ERROR

            feedback: dict[str, Any] = resp.json()["feedback"]
            logger.info(
                "Score %s | STAR %s | confidence %s | clarity %s",
                feedback["score"],
                feedback["starCompliance"],
                feedback["confidence"],
                feedback["clarity"],
            )
            for strength in feedback["strengths"][:2]:
                logger.info("  + %s", strength)
            for suggestion in feedback["suggestions"][:2]:
                logger.info("  > %s", suggestion)

            await client.post("/sessions/current/next")

        # Complete
        resp = await client.post("/sessions/current/complete")
        if resp.status_code != 200:
            logger.error("Failed to complete session: %s", resp.text)
            return EXIT_SESSION_ERROR

        overall_score = resp.json()["overall_score"]
        logger.info("\n%s", "=" * 60)
        logger.info("Session complete! Overall score: %d%%", overall_score)
        logger.info("%s", "=" * 60)

        progress_resp = await client.get("/progress")
        if progress_resp.status_code == 200:
            progress: dict[str, Any] = progress_resp.json()
            stats = progress["overall_stats"]
            logger.info(
                "Sessions: %s | Average: %s%% | Hours: %s | Streak: %s days | Improvement: %s%%",
                stats["totalSessions"],
                stats["averageScore"],
                stats["hoursSpent"],
                stats["streakDays"],
                stats["improvementRate"],
            )
            for skill in progress["skill_progress"]:
                logger.info(
                    "  %s: %s/%s (%s sessions)",
                    skill["skillArea"],
                    skill["currentScore"],
                    skill["targetScore"],
                    skill["sessionsCompleted"],
                )

        if export_path is not None:
            export_resp = await client.get("/export")
            if export_resp.status_code == 200:
                export_path.parent.mkdir(parents=True, exist_ok=True)
                export_path.write_text(export_resp.text, encoding="utf-8")
                logger.info("Data export saved to %s", export_path)
            else:
                logger.warning("Export failed: %s", export_resp.text)

    return EXIT_SUCCESS


def main(
    service_url: str | None = None,
    user_id: str | None = None,
    session_type: str = "practice",
    duration: int = DEFAULT_DURATION_MINUTES,
    role: str | None = None,
    industry: str | None = None,
    voice: bool = False,
    max_recording_seconds: int = DEFAULT_MAX_RECORDING_SECONDS,
    export_path: Path | None = None,
) -> int:
    """
    Main entry point for the practice simulator.

    Returns:
        Exit code indicating success or failure.
    """
    resolved_url = service_url or os.environ.get("PREPMASTER_URL", DEFAULT_SERVICE_URL)
    resolved_user = user_id or os.environ.get("PREPMASTER_USER_ID", DEFAULT_USER_ID)

    logger.info("=" * 60)
    logger.info("PrepMaster Practice Simulator")
    logger.info("=" * 60)
    logger.info("Target: %s", resolved_url)
    logger.info("User: %s", resolved_user)
    logger.info("Mode: %s (%s)", session_type, "voice" if voice else "scripted")
    logger.info("")

    try:
        return asyncio.run(
            run_simulation(
                service_url=resolved_url,
                user_id=resolved_user,
                session_type=session_type,
                duration=duration,
                role=role,
                industry=industry,
                voice=voice,
                max_recording_seconds=max_recording_seconds,
                export_path=export_path,
            )
        )
    except KeyboardInterrupt:
        logger.info("\nSimulation interrupted")
        return EXIT_INTERRUPTED


def cli() -> None:
    """Command-line interface entry point with argument parsing."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Run a full practice session against the PrepMaster service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run with defaults (scripted answers)
    uv run python simulate_practice.py

    # Mock interview for a specific role, saving the export
    uv run python simulate_practice.py --type mock --role "Data Scientist" --export exports/me.json

    # Answer out loud
    uv run python simulate_practice.py --voice --max-recording 90

Environment Variables:
    PREPMASTER_URL       Service URL (default: http://127.0.0.1:8770)
    PREPMASTER_USER_ID   User id sent as X-User-Id
        """,
    )

    parser.add_argument("--service-url", type=str, default=None, help=f"Service URL (default: {DEFAULT_SERVICE_URL})")
    parser.add_argument("--user-id", type=str, default=None, help=f"User id (default: {DEFAULT_USER_ID})")
    parser.add_argument(
        "--type",
        choices=("practice", "mock"),
        default="practice",
        dest="session_type",
        help="Session type (default: practice)",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=DEFAULT_DURATION_MINUTES,
        help=f"Session length in minutes; one question per 6 minutes (default: {DEFAULT_DURATION_MINUTES})",
    )
    parser.add_argument("--role", type=str, default=None, help="Target role")
    parser.add_argument("--industry", type=str, default=None, help="Target industry")
    parser.add_argument("--voice", action="store_true", help="Answer from the microphone")
    parser.add_argument(
        "--max-recording",
        type=int,
        default=DEFAULT_MAX_RECORDING_SECONDS,
        help=f"Auto-stop per spoken answer in seconds (default: {DEFAULT_MAX_RECORDING_SECONDS})",
    )
    parser.add_argument("--export", type=Path, default=None, help="Save the data export to this path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    exit_code = main(
        service_url=args.service_url,
        user_id=args.user_id,
        session_type=args.session_type,
        duration=args.duration,
        role=args.role,
        industry=args.industry,
        voice=args.voice,
        max_recording_seconds=args.max_recording,
        export_path=args.export,
    )
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
