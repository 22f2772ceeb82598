"""
Configuration for PrepMaster.

Values come from environment variables, optionally loaded from a .env file
next to the project root. Loading validates strictly and raises RuntimeError
with an actionable message on bad input.

Supports both OpenAI and Azure OpenAI backends:
  - OpenAI: Set OPENAI_API_KEY
  - Azure OpenAI: Set AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, AZURE_OPENAI_DEPLOYMENT

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


# Load environment variables from .env file
_env_path = Path(__file__).parent.parent / ".env"
load_dotenv(_env_path)

logger = logging.getLogger(__name__)


__all__ = [
    "FeedbackClientConfig",
    "ServiceConfig",
    "StoreBackend",
    "load_feedback_config",
    "load_service_config",
]


DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_AZURE_API_VERSION = "2024-08-01-preview"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_TRANSCRIBE_MODEL = "whisper-1"

StoreBackend = Literal["memory", "json", "none"]


class FeedbackClientConfig(BaseModel):
    """
    Explicit configuration for FeedbackClient.

    Owned by the application's startup phase and passed into the client
    constructor. api_key=None puts the client in offline/demo mode where
    every call is answered by the deterministic fallback generators.
    """

    model_config = {"frozen": True}

    provider: Literal["openai", "azure"] = "openai"
    api_key: Optional[str] = Field(default=None, repr=False)
    model: str = DEFAULT_MODEL
    azure_endpoint: Optional[str] = None
    azure_api_version: str = DEFAULT_AZURE_API_VERSION
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    strict_credentials: bool = False
    question_bank_path: Optional[Path] = None
    transcribe_model: str = DEFAULT_TRANSCRIBE_MODEL

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


def _env_flag(name: str, default: bool = False) -> bool:
    raw = (os.environ.get(name) or "").strip().lower()
    if not raw:
        return default
    if raw in {"1", "true", "yes", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise RuntimeError(f"{name} must be a boolean flag (1/0, true/false). Got: {raw}")


def load_feedback_config() -> FeedbackClientConfig:
    """
    Determine FeedbackClient configuration based on environment variables.

    Azure OpenAI requires:
        - AZURE_OPENAI_ENDPOINT: The endpoint URL
        - AZURE_OPENAI_KEY: The API key
        - AZURE_OPENAI_DEPLOYMENT: The deployment name (used as model)

    Standard OpenAI uses:
        - OPENAI_API_KEY: The API key (optional; offline fallback without it)
        - OPENAI_MODEL (optional): Model name, defaults to gpt-4o-mini
    """
    azure_endpoint = os.environ.get("AZURE_OPENAI_ENDPOINT")
    azure_key = os.environ.get("AZURE_OPENAI_KEY")
    azure_deployment = os.environ.get("AZURE_OPENAI_DEPLOYMENT")
    api_type = os.environ.get("OPENAI_API_TYPE", "").lower()

    timeout_raw = (os.environ.get("PREPMASTER_AI_TIMEOUT") or "").strip()
    try:
        timeout_seconds = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT_SECONDS
    except ValueError as exc:
        raise RuntimeError(
            f"PREPMASTER_AI_TIMEOUT must be a number of seconds. Got: {timeout_raw}"
        ) from exc
    if timeout_seconds <= 0:
        raise RuntimeError(f"PREPMASTER_AI_TIMEOUT must be positive. Got: {timeout_seconds}")

    bank_raw = (os.environ.get("PREPMASTER_QUESTION_BANK") or "").strip()
    question_bank_path = Path(bank_raw).expanduser() if bank_raw else None

    common = {
        "timeout_seconds": timeout_seconds,
        "strict_credentials": _env_flag("PREPMASTER_STRICT_CREDENTIALS"),
        "question_bank_path": question_bank_path,
        "transcribe_model": os.environ.get("PREPMASTER_TRANSCRIBE_MODEL", DEFAULT_TRANSCRIBE_MODEL),
    }

    # Check if Azure OpenAI is configured
    if api_type == "azure" or (azure_endpoint and azure_key and azure_deployment):
        if not all([azure_endpoint, azure_key, azure_deployment]):
            raise RuntimeError(
                "Azure OpenAI requires AZURE_OPENAI_ENDPOINT, AZURE_OPENAI_KEY, "
                "and AZURE_OPENAI_DEPLOYMENT environment variables"
            )
        logger.info("Using Azure OpenAI: %s, deployment: %s", azure_endpoint, azure_deployment)
        return FeedbackClientConfig(
            provider="azure",
            api_key=azure_key,
            model=azure_deployment,
            azure_endpoint=azure_endpoint,
            azure_api_version=os.environ.get("AZURE_OPENAI_API_VERSION", DEFAULT_AZURE_API_VERSION),
            **common,
        )

    api_key = os.environ.get("OPENAI_API_KEY") or None
    model = os.environ.get("OPENAI_MODEL", DEFAULT_MODEL)
    if api_key:
        logger.info("Using OpenAI: model %s", model)
    else:
        logger.warning(
            "No OpenAI credentials configured. AI feedback will use offline fallback "
            "responses until a key is set."
        )
    return FeedbackClientConfig(api_key=api_key, model=model, **common)


@dataclass(frozen=True)
class ServiceConfig:
    """Runtime config for the HTTP service."""

    host: str = "0.0.0.0"
    port: int = 8770
    store_backend: StoreBackend = "memory"
    data_file: Path = Path("data") / "prepmaster.json"
    export_dir: Path = Path("exports")
    # Least recently used per-user lifecycles beyond this are dropped
    max_lifecycles: int = 1000
    cors_origins: tuple[str, ...] = (
        "http://localhost:5173",  # Vite dev server
        "http://localhost:3000",
    )


def load_service_config() -> ServiceConfig:
    """Load service config from environment with strict validation."""
    host = (os.environ.get("PREPMASTER_HOST", "0.0.0.0") or "").strip()
    if not host:
        raise RuntimeError("PREPMASTER_HOST resolved to empty value.")

    port_raw = (os.environ.get("PREPMASTER_PORT", "8770") or "").strip()
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise RuntimeError(f"PREPMASTER_PORT must be an integer. Got: {port_raw}") from exc
    if port < 1 or port > 65535:
        raise RuntimeError(f"PREPMASTER_PORT must be in range 1-65535. Got: {port}.")

    store_backend = (os.environ.get("PREPMASTER_STORE", "memory") or "").strip().lower()
    if store_backend not in ("memory", "json", "none"):
        raise RuntimeError(
            f"PREPMASTER_STORE must be one of memory, json, none. Got: {store_backend}"
        )

    data_file = Path(
        os.environ.get("PREPMASTER_DATA_FILE") or Path("data") / "prepmaster.json"
    ).expanduser()
    export_dir = Path(os.environ.get("PREPMASTER_EXPORT_DIR") or "exports").expanduser()

    max_raw = (os.environ.get("PREPMASTER_MAX_LIFECYCLES", "1000") or "").strip()
    try:
        max_lifecycles = int(max_raw)
    except ValueError as exc:
        raise RuntimeError(f"PREPMASTER_MAX_LIFECYCLES must be an integer. Got: {max_raw}") from exc
    if max_lifecycles < 1:
        raise RuntimeError(f"PREPMASTER_MAX_LIFECYCLES must be positive. Got: {max_lifecycles}")

    origins_raw = (os.environ.get("PREPMASTER_CORS_ORIGINS") or "").strip()
    cors_origins = (
        tuple(origin.strip() for origin in origins_raw.split(",") if origin.strip())
        if origins_raw
        else ServiceConfig.cors_origins
    )

    return ServiceConfig(
        host=host,
        port=port,
        store_backend=store_backend,  # type: ignore[arg-type]
        data_file=data_file,
        export_dir=export_dir,
        max_lifecycles=max_lifecycles,
        cors_origins=cors_origins,
    )
