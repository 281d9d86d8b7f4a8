"""
Matching question handler.

User maps each left item to a right item. Rights are shuffled for
display; the answer is a {left: right} mapping. Extra keys in the mapping
are tolerated; only the declared pairs are checked.
"""

import random
from collections.abc import Mapping
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich import box
from rich.prompt import Prompt

from src.requizle.models import MatchingQuestion, QuestionType

from . import register
from .base import fail, is_skip


@register(QuestionType.MATCHING)
class MatchingHandler:
    """Handler for matching questions."""

    def validate(self, raw: dict, where: str) -> None:
        pairs = raw.get("pairs")
        if not isinstance(pairs, list) or not pairs:
            raise fail("matching", where, 'Missing or invalid "pairs" array')
        if not all(
            isinstance(p, dict) and isinstance(p.get("left"), str) and isinstance(p.get("right"), str)
            for p in pairs
        ):
            raise fail(
                "matching", where,
                '"pairs" must be an array of objects with "left" and "right" strings',
            )

    def check(self, question: MatchingQuestion, answer: Any) -> bool:
        if not isinstance(answer, Mapping):
            return False
        return all(answer.get(pair.left) == pair.right for pair in question.pairs)

    def present(self, question: MatchingQuestion, console: Console) -> None:
        console.print(Panel(
            question.prompt,
            title="[bold cyan]MATCH PAIRS[/bold cyan]",
            border_style="cyan",
            box=box.HEAVY,
            padding=(1, 2),
        ))

    def get_input(self, question: MatchingQuestion, console: Console) -> Any:
        lefts = [p.left for p in question.pairs]
        rights = [p.right for p in question.pairs]
        random.shuffle(rights)

        console.print("\n[bold cyan]ITEMS:[/bold cyan]")
        for i, left in enumerate(lefts, 1):
            console.print(f"  [{i}] {left}")
        console.print("\n[bold cyan]MATCHES:[/bold cyan]")
        for i, right in enumerate(rights):
            console.print(f"  ({chr(65 + i)}) {right}")

        console.print("\n[dim]Match items (e.g., 1A 2B 3C). 's'=skip[/dim]")
        user_input = Prompt.ask("Pairs", default="").strip()
        if is_skip(user_input):
            return None

        mapping: dict[str, str] = {}
        for token in user_input.upper().split():
            number, letter = token[:-1], token[-1:]
            if not number.isdigit() or not letter.isalpha():
                continue
            left_idx = int(number) - 1
            right_idx = ord(letter) - ord("A")
            if 0 <= left_idx < len(lefts) and 0 <= right_idx < len(rights):
                mapping[lefts[left_idx]] = rights[right_idx]
        return mapping

    def reveal(self, question: MatchingQuestion) -> str:
        return "\n".join(f"{p.left} -> {p.right}" for p in question.pairs)
