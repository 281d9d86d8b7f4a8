"""
Base protocol and shared helpers for question handlers.
"""

from typing import Any, Protocol

from rich.console import Console

from src.requizle.errors import ImportValidationError


class QuestionHandler(Protocol):
    """Protocol for question type handlers."""

    def validate(self, raw: dict, where: str) -> None:
        """Check raw import data for this type. Raises ImportValidationError."""
        ...

    def check(self, question: Any, answer: Any) -> bool:
        """Grade a raw answer. Never raises; malformed answers are wrong."""
        ...

    def present(self, question: Any, console: Console) -> None:
        """Display the question to the user."""
        ...

    def get_input(self, question: Any, console: Console) -> Any:
        """Get user's answer in the shape check() expects."""
        ...

    def reveal(self, question: Any) -> str:
        """Human-readable correct answer."""
        ...


# Special inputs for skipping from the terminal
SKIP_INPUTS = {"s", "skip", "?"}


def is_skip(user_input: str) -> bool:
    """Check if input asks to skip the question."""
    return user_input.strip().lower() in SKIP_INPUTS


def is_index(value: Any) -> bool:
    """True for real ints (bool is excluded)."""
    return isinstance(value, int) and not isinstance(value, bool)


def fail(type_name: str, where: str, reason: str) -> ImportValidationError:
    """Build a validation error naming the question and the problem."""
    return ImportValidationError(f"Invalid {type_name} {where}: {reason}")


def require_choices(raw: dict, type_name: str, where: str) -> list:
    choices = raw.get("choices")
    if not isinstance(choices, list) or not choices:
        raise fail(type_name, where, 'Missing or invalid "choices" array')
    if not all(isinstance(c, str) for c in choices):
        raise fail(type_name, where, '"choices" must be an array of strings')
    return choices


def require_string_list(raw: dict, key: str, type_name: str, where: str) -> list[str]:
    values = raw.get(key)
    if not isinstance(values, list) or not values:
        raise fail(type_name, where, f'Missing or invalid "{key}" array')
    if not all(isinstance(v, str) for v in values):
        raise fail(type_name, where, f'"{key}" must be an array of strings')
    return values
