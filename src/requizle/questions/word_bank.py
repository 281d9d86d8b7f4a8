"""
Word bank question handler.

A sentence with blanks (one per underscore) is filled from a pool of
candidate words. The answer is the ordered list of filled words.
"""

from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from src.requizle.models import QuestionType, WordBankQuestion, count_blanks

from . import register
from .base import fail, is_skip, require_string_list


@register(QuestionType.WORD_BANK)
class WordBankHandler:
    """Handler for word bank questions."""

    def validate(self, raw: dict, where: str) -> None:
        sentence = raw.get("sentence")
        if not isinstance(sentence, str) or not sentence:
            raise fail("word_bank", where, 'Missing or invalid "sentence"')
        require_string_list(raw, "wordBank", "word_bank", where)
        answers = require_string_list(raw, "answers", "word_bank", where)
        blanks = count_blanks(sentence)
        if len(answers) != blanks:
            raise fail(
                "word_bank", where,
                f'"answers" array length ({len(answers)}) doesn\'t match '
                f"number of blanks in sentence ({blanks})",
            )

    def check(self, question: WordBankQuestion, answer: Any) -> bool:
        if not isinstance(answer, (list, tuple)):
            return False
        if len(answer) != len(question.answers):
            return False
        return all(given == expected for given, expected in zip(answer, question.answers))

    def present(self, question: WordBankQuestion, console: Console) -> None:
        sentence = question.sentence.replace("_", "[bold yellow][____][/bold yellow]")
        console.print(Panel(
            f"{question.prompt}\n\n{sentence}",
            title="[bold cyan]WORD BANK[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))
        console.print("[bold cyan]Words:[/bold cyan] " + "  ".join(
            f"[{i + 1}] {w}" for i, w in enumerate(question.word_bank)
        ))

    def get_input(self, question: WordBankQuestion, console: Console) -> Any:
        console.print(f"[dim]Enter {question.blank_count} word numbers in order. 's'=skip[/dim]")
        user_input = Prompt.ask("Words")
        if is_skip(user_input):
            return None
        filled = []
        for token in user_input.replace(",", " ").split():
            if token.isdigit() and 1 <= int(token) <= len(question.word_bank):
                filled.append(question.word_bank[int(token) - 1])
            else:
                filled.append(token)
        return filled

    def reveal(self, question: WordBankQuestion) -> str:
        return ", ".join(question.answers)
