"""
ReQuizle study engine.

Turns a library of questions plus per-question mastery history into a
study queue, drills missed questions again a few turns later, and keeps
independent profiles with their own library, progress and session.
"""

from src.requizle.errors import ImportValidationError, MediaLoadError, MigrationError, StorageError
from src.requizle.models import (
    PersistedState,
    Profile,
    QuestionProgress,
    QuestionType,
    SessionState,
    StudyMode,
    Subject,
    Topic,
)
from src.requizle.profile_store import ProfileStore
from src.requizle.quiz_logic import calculate_mastery, check_answer, generate_queue
from src.requizle.session import QuizSession, SubmitResult

__all__ = [
    "ImportValidationError",
    "MediaLoadError",
    "MigrationError",
    "PersistedState",
    "Profile",
    "ProfileStore",
    "QuestionProgress",
    "QuestionType",
    "QuizSession",
    "SessionState",
    "StudyMode",
    "StorageError",
    "Subject",
    "SubmitResult",
    "Topic",
    "calculate_mastery",
    "check_answer",
    "generate_queue",
]
