"""
Multiple choice question handler.

- Presents a prompt with several choices.
- User selects exactly one choice; correct iff it is the answer index.
"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from src.requizle.models import MultipleChoiceQuestion, QuestionType

from . import register
from .base import fail, is_index, is_skip, require_choices


@register(QuestionType.MULTIPLE_CHOICE)
class MultipleChoiceHandler:
    """Handler for single-answer multiple choice questions."""

    def validate(self, raw: dict, where: str) -> None:
        choices = require_choices(raw, "multiple_choice", where)
        index = raw.get("answerIndex")
        if not is_index(index) or not 0 <= index < len(choices):
            raise fail("multiple_choice", where, 'Missing or invalid "answerIndex"')

    def check(self, question: MultipleChoiceQuestion, answer: Any) -> bool:
        """Strict equality on the choice index."""
        return is_index(answer) and answer == question.answer_index

    def present(self, question: MultipleChoiceQuestion, console: Console) -> None:
        table = Table(box=box.MINIMAL, show_header=False)
        table.add_column("Index", style="cyan", justify="right", width=4)
        table.add_column("Choice", style="white")
        for i, choice in enumerate(question.choices):
            table.add_row(f"[{i + 1}]", choice)

        console.print(Panel(
            question.prompt,
            title="[bold cyan]MULTIPLE CHOICE[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))
        console.print(table)

    def get_input(self, question: MultipleChoiceQuestion, console: Console) -> Any:
        console.print("[dim]Enter choice (e.g., 1). 's'=skip[/dim]")
        choice = Prompt.ask(f"[1-{len(question.choices)}]")
        if is_skip(choice):
            return None
        if not choice.strip().isdigit():
            return choice
        return int(choice) - 1

    def reveal(self, question: MultipleChoiceQuestion) -> str:
        return question.choices[question.answer_index]
