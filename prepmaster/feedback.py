"""
AI Feedback Client.

Turns three request shapes (job-description analysis, question generation,
answer analysis) into text-completion calls, validates the JSON reply with
pydantic and falls back to the deterministic mock generators whenever the
backend is unconfigured, unreachable or returns something unusable.

The default TextCompleter runs an openai-agents Agent on an OpenAI or Azure
OpenAI chat-completions model. Any object with a compatible async
`complete(...)` method can replace it (tests use scripted fakes).

Fallback policy:
    - No credential: generate_questions always falls back. analyze_job_description
      and analyze_answer fall back too, unless strict_credentials is set, in
      which case they raise CredentialMissing.
    - RequestFailed / MalformedResponse: all three calls fall back.
    - check_connection never falls back.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Optional, Protocol, TypeVar

from agents import Agent, ModelSettings, OpenAIChatCompletionsModel, RunConfig, Runner
from agents.exceptions import AgentsException
from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError

from .errors import CredentialMissing, MalformedResponse, RequestFailed
from .fallback import mock_feedback, mock_job_analysis, mock_questions
from .models import (
    AIFeedback,
    Difficulty,
    ExperienceLevel,
    GeneratedQuestion,
    JobAnalysis,
    QuestionGeneration,
)
from .question_bank import load_question_bank
from .settings import FeedbackClientConfig


__all__ = ["TextCompleter", "AgentsTextCompleter", "FeedbackClient"]


logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


# =============================================================================
# Prompts
# =============================================================================

JOB_ANALYSIS_INSTRUCTIONS = """You are an expert career coach analyzing job descriptions. Extract key information and return it as JSON with the following structure:
{
  "role": "specific job title",
  "industry": "industry sector",
  "skills": ["skill1", "skill2", ...],
  "requirements": ["requirement1", "requirement2", ...],
  "experienceLevel": "entry|mid|senior",
  "keywordDensity": {"keyword": count, ...}
}
Return only the JSON object."""

QUESTION_GENERATION_INSTRUCTIONS = """You are an expert interview coach. Generate interview questions for a {experience_level} level {role} position in the {industry} industry.
Return JSON with this structure:
{{
  "questions": [
    {{
      "question": "the interview question",
      "category": "behavioral|technical|situational|general|closing",
      "difficulty": "easy|medium|hard",
      "expectedStructure": "STAR|Examples|Technical|Vision",
      "tips": "specific tips for answering this question"
    }}
  ]
}}

Include a mix of behavioral, technical, and situational questions appropriate for the {difficulty} difficulty level.
Return only the JSON object."""

ANSWER_ANALYSIS_INSTRUCTIONS = """You are an expert interview coach providing detailed feedback on interview answers.
Return JSON with this structure:
{
  "score": number (0-100),
  "starCompliance": number (0-100, how well they used STAR method),
  "confidence": number (0-100, confidence level in delivery),
  "clarity": number (0-100, clarity of communication),
  "strengths": ["strength1", "strength2", ...],
  "improvements": ["improvement1", "improvement2", ...],
  "suggestions": ["suggestion1", "suggestion2", ...],
  "detailedAnalysis": "comprehensive analysis of the answer"
}
Every list must contain at least one entry. Return only the JSON object."""


# =============================================================================
# Text Completion Collaborator
# =============================================================================

class TextCompleter(Protocol):
    """Single-shot text completion: system + user prompt in, raw text out."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> str: ...


class AgentsTextCompleter:
    """
    TextCompleter backed by the OpenAI Agents SDK.

    Builds one AsyncOpenAI (or AsyncAzureOpenAI) client per credential and
    runs a throwaway Agent per request so each call carries its own
    instructions and sampling settings.
    """

    def __init__(self, config: FeedbackClientConfig) -> None:
        if not config.has_credential:
            raise CredentialMissing()

        if config.provider == "azure":
            client = AsyncAzureOpenAI(
                azure_endpoint=config.azure_endpoint,
                api_key=config.api_key,
                api_version=config.azure_api_version,
            )
        else:
            client = AsyncOpenAI(api_key=config.api_key)

        self._model = OpenAIChatCompletionsModel(model=config.model, openai_client=client)
        self._run_config = RunConfig(tracing_disabled=True)
        logger.info(
            "AgentsTextCompleter initialized with %s, model: %s",
            "Azure OpenAI" if config.provider == "azure" else "OpenAI",
            config.model,
        )

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> str:
        agent = Agent(
            name="PrepMaster Coach",
            instructions=system_prompt,
            model=self._model,
            model_settings=ModelSettings(temperature=temperature, max_tokens=max_tokens),
        )
        try:
            result = await Runner.run(agent, user_prompt, run_config=self._run_config)
        except (OpenAIError, AgentsException) as e:
            raise RequestFailed(f"Completion request failed: {e}") from e
        return str(result.final_output)


# =============================================================================
# Feedback Client
# =============================================================================

def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def _parse_payload(raw: str, model: type[PayloadT]) -> PayloadT:
    """Parse a completion body into `model`, or raise MalformedResponse."""
    try:
        data = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise MalformedResponse(f"Response is not valid JSON: {e}") from e

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Response does not match {model.__name__}: {e}") from e


class FeedbackClient:
    """
    AI feedback orchestration with deterministic fallback.

    Example:
        >>> client = FeedbackClient(FeedbackClientConfig(api_key=None))
        >>> feedback = await client.analyze_answer(
        ...     "Describe a challenging project.",
        ...     "The situation was tight deadlines...",
        ...     "behavioral",
        ... )
        >>> feedback.star_compliance
        85
    """

    def __init__(
        self,
        config: Optional[FeedbackClientConfig] = None,
        completer: Optional[TextCompleter] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Args:
            config: Credential, model and timeout settings. Defaults to an
                offline config (no credential).
            completer: Explicit TextCompleter. When omitted, an
                AgentsTextCompleter is built lazily from the credential.
            rng: Random source for the fallback generators.
        """
        self._config = config or FeedbackClientConfig()
        self._completer = completer
        self._owns_completer = completer is None
        self._rng = rng or random.Random()
        self._question_pool = load_question_bank(self._config.question_bank_path)

    @property
    def config(self) -> FeedbackClientConfig:
        return self._config

    @property
    def has_credential(self) -> bool:
        return self._config.has_credential

    def set_api_credential(self, key: str) -> None:
        """Replace the credential for the lifetime of this client."""
        key = (key or "").strip()
        if not key:
            raise CredentialMissing("API key must not be empty")
        self._config = self._config.model_copy(update={"api_key": key})
        if self._owns_completer:
            self._completer = None
        logger.info("AI API credential updated")

    def clear_api_credential(self) -> None:
        self._config = self._config.model_copy(update={"api_key": None})
        if self._owns_completer:
            self._completer = None
        logger.info("AI API credential removed")

    def _get_completer(self) -> TextCompleter:
        if self._completer is None:
            self._completer = AgentsTextCompleter(self._config)
        return self._completer

    async def _request(
        self,
        system_prompt: str,
        user_prompt: str,
        model: type[PayloadT],
        *,
        temperature: float,
        max_tokens: int,
    ) -> PayloadT:
        """One bounded completion request parsed into `model`."""
        if not self.has_credential:
            raise CredentialMissing()

        completer = self._get_completer()
        try:
            raw = await asyncio.wait_for(
                completer.complete(
                    system_prompt,
                    user_prompt,
                    temperature=temperature,
                    max_tokens=max_tokens,
                ),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise RequestFailed(
                f"Completion timed out after {self._config.timeout_seconds:g}s"
            ) from e
        return _parse_payload(raw, model)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def analyze_job_description(self, text: str) -> JobAnalysis:
        """
        Extract role, industry, skills and requirements from a job description.

        Raises:
            CredentialMissing: No credential and strict_credentials is set.
        """
        if not self.has_credential:
            if self._config.strict_credentials:
                raise CredentialMissing()
            logger.info("No AI credential configured, using fallback job analysis")
            return mock_job_analysis(self._rng)

        try:
            return await self._request(
                JOB_ANALYSIS_INSTRUCTIONS,
                f"Analyze this job description: {text}",
                JobAnalysis,
                temperature=0.3,
                max_tokens=1000,
            )
        except (RequestFailed, MalformedResponse) as e:
            logger.warning("Job analysis failed (%s), using fallback: %s", e.error_code, e.message)
            return mock_job_analysis(self._rng)

    async def generate_questions(
        self,
        role: str,
        industry: str,
        experience_level: ExperienceLevel | str,
        difficulty: Difficulty | str,
        count: int = 5,
    ) -> list[GeneratedQuestion]:
        """
        Generate `count` interview questions.

        Never raises for AI problems: without a credential, or on any failed
        or malformed reply, the first `count` questions of the fallback pool
        are returned (truncated, never padded).
        """
        level = ExperienceLevel(experience_level).value
        difficulty_value = Difficulty(difficulty).value

        if not self.has_credential:
            logger.info("No AI credential configured, using fallback question pool")
            return list(mock_questions(self._question_pool, count).questions)

        system_prompt = QUESTION_GENERATION_INSTRUCTIONS.format(
            experience_level=level,
            role=role,
            industry=industry,
            difficulty=difficulty_value,
        )
        user_prompt = (
            f"Generate {count} interview questions for: Role: {role}, Industry: {industry}, "
            f"Experience: {level}, Difficulty: {difficulty_value}"
        )
        try:
            generation = await self._request(
                system_prompt,
                user_prompt,
                QuestionGeneration,
                temperature=0.7,
                max_tokens=2000,
            )
        except (RequestFailed, MalformedResponse) as e:
            logger.warning(
                "Question generation failed (%s), using fallback pool: %s",
                e.error_code,
                e.message,
            )
            return list(mock_questions(self._question_pool, count).questions)

        logger.info("Generated %d questions for %s (%s)", len(generation.questions), role, industry)
        return list(generation.questions)

    async def analyze_answer(self, question: str, answer: str, category: str) -> AIFeedback:
        """
        Score one answer.

        Raises:
            CredentialMissing: No credential and strict_credentials is set.
        """
        if not self.has_credential:
            if self._config.strict_credentials:
                raise CredentialMissing()
            logger.info("No AI credential configured, using fallback feedback")
            return mock_feedback(answer, self._rng)

        user_prompt = (
            "Analyze this interview answer:\n"
            f"Question: {question}\n"
            f"Category: {category}\n"
            f"Answer: {answer}"
        )
        try:
            return await self._request(
                ANSWER_ANALYSIS_INSTRUCTIONS,
                user_prompt,
                AIFeedback,
                temperature=0.3,
                max_tokens=1500,
            )
        except (RequestFailed, MalformedResponse) as e:
            logger.warning("Answer analysis failed (%s), using fallback: %s", e.error_code, e.message)
            return mock_feedback(answer, self._rng)

    async def check_connection(self) -> JobAnalysis:
        """
        Make one real request with no fallback.

        Used to verify a freshly entered credential.

        Raises:
            CredentialMissing, RequestFailed, MalformedResponse
        """
        return await self._request(
            JOB_ANALYSIS_INSTRUCTIONS,
            "Analyze this job description: Software Engineer position at a tech company",
            JobAnalysis,
            temperature=0.3,
            max_tokens=1000,
        )
