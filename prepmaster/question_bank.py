"""
Fallback question bank.

The pool of questions served when question generation cannot reach the AI
backend. A JSON file (PREPMASTER_QUESTION_BANK) may replace the built-in
pool; it is validated strictly when loaded.

File format:
    {"questions": [{"question": "...", "category": "general",
                    "difficulty": "easy", "expectedStructure": "STAR",
                    "tips": "..."}]}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import Difficulty, GeneratedQuestion, QuestionCategory, QuestionGeneration


__all__ = ["DEFAULT_QUESTION_POOL", "load_question_bank"]


DEFAULT_QUESTION_POOL: tuple[GeneratedQuestion, ...] = (
    GeneratedQuestion(
        question="Tell me about yourself and your background.",
        category=QuestionCategory.GENERAL,
        difficulty=Difficulty.EASY,
        expected_structure="STAR",
        tips="Focus on relevant experience and skills that align with the role.",
    ),
    GeneratedQuestion(
        question="Describe a challenging project you worked on. How did you handle it?",
        category=QuestionCategory.BEHAVIORAL,
        difficulty=Difficulty.MEDIUM,
        expected_structure="STAR",
        tips="Use the STAR method: Situation, Task, Action, Result.",
    ),
    GeneratedQuestion(
        question="What are your greatest strengths and how do they apply to this role?",
        category=QuestionCategory.GENERAL,
        difficulty=Difficulty.EASY,
        expected_structure="Examples",
        tips="Provide specific examples that demonstrate your strengths in action.",
    ),
    GeneratedQuestion(
        question="How do you handle conflict in a team setting?",
        category=QuestionCategory.BEHAVIORAL,
        difficulty=Difficulty.MEDIUM,
        expected_structure="STAR",
        tips="Focus on resolution and positive outcomes.",
    ),
    GeneratedQuestion(
        question="Where do you see yourself in 5 years?",
        category=QuestionCategory.GENERAL,
        difficulty=Difficulty.MEDIUM,
        expected_structure="Vision",
        tips="Show ambition while staying relevant to the role and company.",
    ),
)


def load_question_bank(path: Optional[Path] = None) -> tuple[GeneratedQuestion, ...]:
    """Load the fallback pool from JSON, or return the built-in pool when path is None."""
    if path is None:
        return DEFAULT_QUESTION_POOL

    resolved_path = Path(path).expanduser().resolve()
    if not resolved_path.exists():
        raise RuntimeError(
            f"Question bank file not found at '{resolved_path}'. "
            "Set PREPMASTER_QUESTION_BANK to a valid JSON file or unset it."
        )

    try:
        with open(resolved_path, "r", encoding="utf-8") as bank_file:
            raw_bank = json.load(bank_file)
    except OSError as exc:
        raise RuntimeError(f"Failed to read question bank '{resolved_path}': {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(
            f"Question bank at '{resolved_path}' is not valid JSON: {exc}"
        ) from exc

    try:
        return tuple(QuestionGeneration.model_validate(raw_bank).questions)
    except ValidationError as exc:
        raise RuntimeError(
            f"Question bank validation failed for '{resolved_path}': {exc}"
        ) from exc
