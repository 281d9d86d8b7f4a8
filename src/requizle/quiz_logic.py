"""
Pure quiz logic: mastery percentages, queue generation, answer checking.

Every function here is total: degenerate inputs (no questions, missing
progress, malformed answers) produce a defined result instead of raising.
"""
from __future__ import annotations

import random
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from loguru import logger

from src.requizle.models import (
    Question,
    QuestionProgress,
    StudyMode,
    Subject,
    Topic,
)
from src.requizle.questions import get_handler


FlatProgress = Mapping[str, QuestionProgress]


# =============================================================================
# Mastery
# =============================================================================

def calculate_mastery(questions: Sequence[Question], progress: FlatProgress | None) -> int:
    """
    Percentage of questions currently mastered.

    Args:
        questions: Questions to score
        progress: question ID -> QuestionProgress (may be None or partial)

    Returns:
        Integer 0-100, rounded half up. 0 when there are no questions.
    """
    total = len(questions)
    if total == 0:
        return 0
    progress = progress or {}
    mastered = sum(1 for q in questions if _is_mastered(progress.get(q.id)))
    # round-half-up on integers: floor(100 * m / t + 0.5)
    return (200 * mastered + total) // (2 * total)


def _is_mastered(record: QuestionProgress | None) -> bool:
    return record is not None and record.mastered is True


def flatten_progress(
    subject_progress: Mapping[str, Mapping[str, QuestionProgress]] | None,
) -> dict[str, QuestionProgress]:
    """Merge a subject's topic -> question maps into question ID -> progress."""
    flat: dict[str, QuestionProgress] = {}
    if not subject_progress:
        return flat
    for topic_progress in subject_progress.values():
        flat.update(topic_progress)
    return flat


def calculate_topic_mastery(
    topic: Topic,
    subject_progress: Mapping[str, Mapping[str, QuestionProgress]] | None,
) -> int:
    """Mastery percentage for one topic."""
    topic_progress = (subject_progress or {}).get(topic.id, {})
    return calculate_mastery(topic.questions, topic_progress)


def calculate_subject_mastery(
    subject: Subject,
    subject_progress: Mapping[str, Mapping[str, QuestionProgress]] | None,
) -> int:
    """Mastery percentage across every question of a subject."""
    questions = [q for t in subject.topics for q in t.questions]
    return calculate_mastery(questions, flatten_progress(subject_progress))


# =============================================================================
# Queue
# =============================================================================

def get_active_questions(subject: Subject | None, selected_topic_ids: Iterable[str]) -> list[Question]:
    """
    Questions of the selected topics, in topic order then question order.

    An empty selection means every topic is active.
    """
    if subject is None:
        return []
    selected = set(selected_topic_ids)
    return [
        q
        for t in subject.topics
        if not selected or t.id in selected
        for q in t.questions
    ]


def generate_queue(
    questions: Sequence[Question],
    progress: FlatProgress | None,
    mode: StudyMode | str,
    include_mastered: bool,
    rng: random.Random | None = None,
) -> list[str]:
    """
    Build an ordered list of question IDs to study.

    Args:
        questions: Active questions, already in topic order
        progress: question ID -> QuestionProgress
        mode: 'random' shuffles, 'topic_order' keeps input order
        include_mastered: Keep mastered questions in the pool
        rng: Random source (defaults to the module RNG)

    Returns:
        Question IDs; empty when nothing is left to study
    """
    progress = progress or {}
    pool = list(questions)
    if not include_mastered:
        pool = [q for q in pool if not _is_mastered(progress.get(q.id))]

    if not pool:
        return []

    # Anything but 'random' keeps the caller's order
    if mode == StudyMode.RANDOM.value:
        _fisher_yates(pool, rng or random)

    return [q.id for q in pool]


def _fisher_yates(items: list, rng: random.Random) -> None:
    """In-place unbiased shuffle."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]


# =============================================================================
# Answers
# =============================================================================

def check_answer(question: Any, answer: Any) -> bool:
    """
    Grade a raw answer against a question.

    Returns False for unknown question types and malformed answers.
    """
    handler = get_handler(getattr(question, "type", None))
    if handler is None:
        logger.debug(f"No handler for question type {getattr(question, 'type', None)!r}")
        return False
    try:
        return bool(handler.check(question, answer))
    except (TypeError, ValueError, AttributeError) as e:
        logger.debug(f"Malformed answer for question {getattr(question, 'id', '?')}: {e}")
        return False
