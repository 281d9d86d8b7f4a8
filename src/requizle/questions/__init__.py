"""
Question type handlers for ReQuizle study sessions.

Each question type has its own module with:
- validate(): Check raw import data for the type's required fields
- check(): Grade a raw answer
- present(): Display the question to the user
- get_input(): Read the user's answer in the shape check() expects
- reveal(): Describe the correct answer
"""

from typing import TYPE_CHECKING

from src.requizle.models import QuestionType

if TYPE_CHECKING:
    from .base import QuestionHandler


# Handler registry - populated by @register decorator
HANDLERS: dict[QuestionType, "QuestionHandler"] = {}


def register(question_type: QuestionType):
    """Decorator to register a question handler."""
    def decorator(cls):
        HANDLERS[question_type] = cls()
        return cls
    return decorator


def get_handler(question_type: "str | QuestionType | None") -> "QuestionHandler | None":
    """Get the handler for a question type."""
    if isinstance(question_type, str) and not isinstance(question_type, QuestionType):
        try:
            question_type = QuestionType(question_type)
        except ValueError:
            return None
    if question_type is None:
        return None
    return HANDLERS.get(question_type)


# Import handlers to trigger registration
from . import multiple_choice
from . import multiple_answer
from . import true_false
from . import keywords
from . import matching
from . import word_bank

__all__ = [
    "QuestionType",
    "HANDLERS",
    "get_handler",
    "register",
]
