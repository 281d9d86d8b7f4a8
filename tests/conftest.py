"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import random
import sys
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.requizle.importer import validate_subjects  # noqa: E402
from src.requizle.models import Profile, StudyMode, Subject  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (store + persistence)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def rng():
    """Deterministic random source."""
    return random.Random(1234)


@pytest.fixture
def raw_geography():
    """Import-shaped subject covering every question type."""
    return {
        "id": "geo",
        "name": "Geography",
        "topics": [
            {
                "id": "capitals",
                "name": "Capitals",
                "questions": [
                    {
                        "id": "q-mc",
                        "type": "multiple_choice",
                        "prompt": "Capital of Italy?",
                        "choices": ["Milan", "Rome", "Turin"],
                        "answerIndex": 1,
                        "explanation": "Rome has been the capital since 1871.",
                    },
                    {
                        "id": "q-kw",
                        "type": "keywords",
                        "question": "Capital of France?",
                        "answer": "Paris",
                    },
                    {
                        "id": "q-tf",
                        "type": "true_false",
                        "prompt": "Canberra is the capital of Australia.",
                        "answer": True,
                    },
                ],
            },
            {
                "id": "rivers",
                "name": "Rivers",
                "questions": [
                    {
                        "id": "q-ma",
                        "type": "multiple_answer",
                        "prompt": "Which rivers flow through Europe?",
                        "choices": ["Danube", "Nile", "Rhine", "Amazon"],
                        "answerIndices": [0, 2],
                    },
                    {
                        "id": "q-match",
                        "type": "matching",
                        "prompt": "Match river to country.",
                        "pairs": [
                            {"left": "Thames", "right": "UK"},
                            {"left": "Seine", "right": "France"},
                        ],
                    },
                    {
                        "id": "q-wb",
                        "type": "word_bank",
                        "prompt": "Fill in the blanks.",
                        "sentence": "The _ flows into the _ Sea.",
                        "wordBank": ["Danube", "Black", "Red", "Nile"],
                        "answers": ["Danube", "Black"],
                    },
                ],
            },
        ],
    }


@pytest.fixture
def geography(raw_geography) -> Subject:
    """Validated Geography subject (topics 'capitals' and 'rivers')."""
    return validate_subjects(raw_geography)[0]


@pytest.fixture
def make_subject():
    """Factory for a subject of true/false questions with predictable IDs."""

    def _make(subject_id: str = "s", topics: int = 2, per_topic: int = 5) -> Subject:
        return Subject.model_validate({
            "id": subject_id,
            "name": f"Subject {subject_id}",
            "topics": [
                {
                    "id": f"t{t}",
                    "name": f"Topic {t}",
                    "questions": [
                        {
                            "id": f"q{t}-{q}",
                            "type": "true_false",
                            "topicId": f"t{t}",
                            "prompt": f"Statement {t}.{q}",
                            "answer": True,
                        }
                        for q in range(per_topic)
                    ],
                }
                for t in range(topics)
            ],
        })

    return _make


@pytest.fixture
def profile(geography, make_subject) -> Profile:
    """Profile holding Geography and a 10-question subject 's'."""
    return Profile(id="p1", name="Tester", subjects=[geography, make_subject()])


@pytest.fixture
def topic_order_profile(profile) -> Profile:
    """Same profile, studying in topic order for deterministic queues."""
    profile.session.mode = StudyMode.TOPIC_ORDER
    return profile
