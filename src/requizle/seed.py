"""Sample library loaded on first run."""

from __future__ import annotations

from src.requizle.importer import validate_subjects
from src.requizle.models import Subject


SAMPLE_SUBJECTS_RAW = [
    {
        "id": "feature-showcase",
        "name": "ReQuizle Features",
        "topics": [
            {
                "id": "all-types",
                "name": "All Question Types",
                "questions": [
                    {
                        "id": "q-mc",
                        "type": "multiple_choice",
                        "prompt": "Which of these is a Python web framework?",
                        "choices": ["Laravel", "Rails", "Django", "Spring"],
                        "answerIndex": 2,
                        "explanation": "Django is a batteries-included Python web framework.",
                    },
                    {
                        "id": "q-ma",
                        "type": "multiple_answer",
                        "prompt": "Select all prime numbers.",
                        "choices": ["2", "4", "5", "9", "11"],
                        "answerIndices": [0, 2, 4],
                        "explanation": "2, 5, and 11 are prime. 4 and 9 are composite.",
                    },
                    {
                        "id": "q-tf",
                        "type": "true_false",
                        "prompt": "Python lists are mutable.",
                        "answer": True,
                        "explanation": "Lists can be changed in place; tuples cannot.",
                    },
                    {
                        "id": "q-sa",
                        "type": "short_answer",
                        "prompt": "What is the capital of France?",
                        "answer": "Paris",
                        "caseSensitive": False,
                        "explanation": "Paris is the capital city of France.",
                    },
                    {
                        "id": "q-matching",
                        "type": "matching",
                        "prompt": "Match the language to its file extension.",
                        "pairs": [
                            {"left": "Python", "right": ".py"},
                            {"left": "JavaScript", "right": ".js"},
                            {"left": "TypeScript", "right": ".ts"},
                            {"left": "Java", "right": ".java"},
                        ],
                    },
                    {
                        "id": "q-wb",
                        "type": "word_bank",
                        "prompt": "Complete the sentence about Python.",
                        "sentence": "Python uses _ to delimit _ blocks.",
                        "wordBank": ["indentation", "braces", "code", "network", "database"],
                        "answers": ["indentation", "code"],
                    },
                ],
            }
        ],
    }
]


def sample_subjects() -> list[Subject]:
    """Fresh copies of the sample library."""
    return validate_subjects(SAMPLE_SUBJECTS_RAW)
