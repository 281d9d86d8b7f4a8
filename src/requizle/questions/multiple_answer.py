"""
Multiple answer question handler.

User selects every correct choice. Graded as a set: same size and same
membership, order does not matter.
"""

from collections.abc import Collection
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from src.requizle.models import MultipleAnswerQuestion, QuestionType

from . import register
from .base import fail, is_index, is_skip, require_choices


@register(QuestionType.MULTIPLE_ANSWER)
class MultipleAnswerHandler:
    """Handler for select-all-that-apply questions."""

    def validate(self, raw: dict, where: str) -> None:
        choices = require_choices(raw, "multiple_answer", where)
        indices = raw.get("answerIndices")
        if not isinstance(indices, list) or not indices:
            raise fail("multiple_answer", where, 'Missing or invalid "answerIndices" array')
        if not all(is_index(i) and 0 <= i < len(choices) for i in indices):
            raise fail("multiple_answer", where, '"answerIndices" contains invalid values')

    def check(self, question: MultipleAnswerQuestion, answer: Any) -> bool:
        if isinstance(answer, (str, bytes)) or not isinstance(answer, Collection):
            return False
        selected = list(answer)
        if not all(is_index(i) for i in selected):
            return False
        return (
            len(selected) == len(question.answer_indices)
            and set(selected) == set(question.answer_indices)
        )

    def present(self, question: MultipleAnswerQuestion, console: Console) -> None:
        table = Table(box=box.MINIMAL, show_header=False)
        table.add_column("Index", style="cyan", justify="right", width=4)
        table.add_column("Choice", style="white")
        for i, choice in enumerate(question.choices):
            table.add_row(f"[{i + 1}]", choice)

        console.print(Panel(
            question.prompt,
            title="[bold cyan]SELECT ALL THAT APPLY[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))
        console.print(table)

    def get_input(self, question: MultipleAnswerQuestion, console: Console) -> Any:
        console.print("[dim]Enter choices (e.g., 1 3). 's'=skip[/dim]")
        choice = Prompt.ask("Select")
        if is_skip(choice):
            return None
        parts = choice.replace(",", " ").split()
        return [int(p) - 1 for p in parts if p.isdigit()]

    def reveal(self, question: MultipleAnswerQuestion) -> str:
        return ", ".join(question.choices[i] for i in sorted(question.answer_indices))
