"""
Deterministic mock generators used when the AI backend is unavailable.

Random draws go through an injected random.Random so tests can seed them.
"""

from __future__ import annotations

import random
from typing import Sequence

from .models import (
    AIFeedback,
    ExperienceLevel,
    GeneratedQuestion,
    JobAnalysis,
    QuestionGeneration,
)


__all__ = [
    "FALLBACK_ROLES",
    "FALLBACK_INDUSTRIES",
    "FALLBACK_SKILLS",
    "STAR_KEYWORDS",
    "mock_job_analysis",
    "mock_questions",
    "mock_feedback",
]


FALLBACK_ROLES = (
    "Software Engineer",
    "Product Manager",
    "Data Scientist",
    "UX Designer",
    "Marketing Manager",
)
FALLBACK_INDUSTRIES = ("Technology", "Finance", "Healthcare", "E-commerce", "Education")
FALLBACK_SKILLS = (
    "JavaScript",
    "React",
    "Python",
    "SQL",
    "Communication",
    "Leadership",
    "Problem Solving",
    "Analytics",
)
FALLBACK_REQUIREMENTS = (
    "Bachelor's degree in relevant field",
    "3+ years of experience",
    "Strong communication skills",
    "Experience with agile methodologies",
)
FALLBACK_KEYWORD_DENSITY = {"experience": 3, "team": 2, "leadership": 1, "technical": 4}

STAR_KEYWORDS = ("situation", "task", "action", "result")

FALLBACK_STRENGTHS = (
    "Good structure and flow",
    "Relevant examples provided",
    "Clear communication",
)
FALLBACK_IMPROVEMENTS = (
    "Could include more specific metrics",
    "Consider using the STAR method more explicitly",
    "Expand on the impact of your actions",
)
FALLBACK_SUGGESTIONS = (
    "Try to quantify your achievements with numbers",
    "Include the outcome or result of your actions",
    "Practice speaking with more confidence",
)
FALLBACK_ANALYSIS = (
    "Your answer demonstrates good understanding of the question and provides "
    "relevant information. The structure is clear and easy to follow. Consider "
    "incorporating more specific metrics and outcomes to strengthen your response."
)


def mock_job_analysis(rng: random.Random) -> JobAnalysis:
    """Random role/industry/level with 3-6 leading skills and fixed requirements."""
    return JobAnalysis(
        role=rng.choice(FALLBACK_ROLES),
        industry=rng.choice(FALLBACK_INDUSTRIES),
        skills=list(FALLBACK_SKILLS[: rng.randint(3, 6)]),
        requirements=list(FALLBACK_REQUIREMENTS),
        experience_level=rng.choice(list(ExperienceLevel)),
        keyword_density=dict(FALLBACK_KEYWORD_DENSITY),
    )


def mock_questions(pool: Sequence[GeneratedQuestion], count: int) -> QuestionGeneration:
    """
    First `count` questions of the pool.

    Truncates, never pads: asking for more than the pool holds returns the
    whole pool.
    """
    selected = [q.model_copy() for q in pool[: max(count, 0)]]
    return QuestionGeneration.model_construct(questions=selected)


def mock_feedback(answer: str, rng: random.Random) -> AIFeedback:
    lowered = answer.lower()
    has_star = any(keyword in lowered for keyword in STAR_KEYWORDS)
    return AIFeedback(
        score=rng.randrange(70, 100),
        star_compliance=85 if has_star else 45,
        confidence=rng.randrange(75, 95),
        clarity=rng.randrange(80, 95),
        strengths=list(FALLBACK_STRENGTHS),
        improvements=list(FALLBACK_IMPROVEMENTS),
        suggestions=list(FALLBACK_SUGGESTIONS),
        detailed_analysis=FALLBACK_ANALYSIS,
    )
