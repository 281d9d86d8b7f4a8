"""
True/False question handler.

Binary choice questions. User responds T/F to a statement.
"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from src.requizle.models import QuestionType, TrueFalseQuestion

from . import register
from .base import fail, is_skip


@register(QuestionType.TRUE_FALSE)
class TrueFalseHandler:
    """Handler for true/false questions."""

    def validate(self, raw: dict, where: str) -> None:
        if not isinstance(raw.get("answer"), bool):
            raise fail("true_false", where, 'Missing or invalid "answer" (must be boolean)')

    def check(self, question: TrueFalseQuestion, answer: Any) -> bool:
        return isinstance(answer, bool) and answer is question.answer

    def present(self, question: TrueFalseQuestion, console: Console) -> None:
        console.print(Panel(
            question.prompt,
            title="[bold cyan]TRUE OR FALSE[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))

    def get_input(self, question: TrueFalseQuestion, console: Console) -> Any:
        console.print("[dim]T/F or 's' to skip[/dim]")
        while True:
            response = Prompt.ask("[T/F]", default="").strip().lower()
            if is_skip(response):
                return None
            if response in ("t", "true"):
                return True
            if response in ("f", "false"):
                return False
            console.print("[yellow]Please enter T, F, or s (skip)[/yellow]")

    def reveal(self, question: TrueFalseQuestion) -> str:
        return "True" if question.answer else "False"
