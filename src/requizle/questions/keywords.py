"""
Keywords question handler.

Free-text answer matched against one or more acceptable answers.
Input is trimmed; matching is case-insensitive unless the question sets
caseSensitive.
"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from src.requizle.models import KeywordsQuestion, QuestionType

from . import register
from .base import fail, is_skip


@register(QuestionType.KEYWORDS)
class KeywordsHandler:
    """Handler for typed keyword answers."""

    def validate(self, raw: dict, where: str) -> None:
        answer = raw.get("answer")
        if isinstance(answer, str):
            if not answer.strip():
                raise fail("keywords", where, '"answer" cannot be empty')
        elif not isinstance(answer, list):
            raise fail("keywords", where, 'Missing or invalid "answer" (must be string or array of strings)')
        elif not answer:
            raise fail("keywords", where, '"answer" array cannot be empty')
        elif not all(isinstance(a, str) for a in answer):
            raise fail("keywords", where, '"answer" must contain only strings')
        if "caseSensitive" in raw and not isinstance(raw["caseSensitive"], bool):
            raise fail("keywords", where, '"caseSensitive" must be boolean')

    def check(self, question: KeywordsQuestion, answer: Any) -> bool:
        if not isinstance(answer, str):
            return False
        return self._grade(answer, question.accepted_answers, question.case_sensitive)

    def present(self, question: KeywordsQuestion, console: Console) -> None:
        console.print(Panel(
            question.prompt,
            title="[bold cyan]KEYWORDS[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))

    def get_input(self, question: KeywordsQuestion, console: Console) -> Any:
        console.print("[dim]Type your answer. 's'=skip[/dim]")
        user_input = Prompt.ask("[answer]")
        if is_skip(user_input):
            return None
        return user_input

    def reveal(self, question: KeywordsQuestion) -> str:
        return " / ".join(question.accepted_answers)

    def _grade(self, user_answer: str, accepted: list[str], case_sensitive: bool) -> bool:
        given = user_answer.strip()
        if case_sensitive:
            return any(a.strip() == given for a in accepted)
        given = given.casefold()
        return any(a.strip().casefold() == given for a in accepted)
