"""
Unit tests for mastery, queue generation and answer checking.
"""

import random

import pytest

from src.requizle.models import QuestionProgress, StudyMode
from src.requizle.quiz_logic import (
    calculate_mastery,
    calculate_subject_mastery,
    calculate_topic_mastery,
    check_answer,
    flatten_progress,
    generate_queue,
    get_active_questions,
)


def mastered(*ids):
    return {qid: QuestionProgress(id=qid, attempts=1, correct_streak=1, mastered=True) for qid in ids}


@pytest.fixture
def questions(make_subject):
    subject = make_subject(topics=2, per_topic=3)
    return [q for t in subject.topics for q in t.questions]


class TestMastery:
    """Tests for mastery percentages."""

    def test_empty_question_list_is_zero(self):
        assert calculate_mastery([], mastered("x")) == 0

    def test_no_progress_is_zero(self, questions):
        assert calculate_mastery(questions, None) == 0

    def test_rounds_to_integer(self, questions):
        # 1 of 6 -> 16.67 -> 17
        assert calculate_mastery(questions, mastered("q0-0")) == 17
        # 3 of 6 -> 50
        assert calculate_mastery(questions, mastered("q0-0", "q0-1", "q0-2")) == 50

    def test_half_rounds_up(self, make_subject):
        subject = make_subject(topics=1, per_topic=8)
        # 1 of 8 -> 12.5 -> 13
        assert calculate_mastery(subject.topics[0].questions, mastered("q0-0")) == 13

    def test_unmastered_records_do_not_count(self, questions):
        progress = {"q0-0": QuestionProgress(id="q0-0", attempts=3, mastered=False)}

        assert calculate_mastery(questions, progress) == 0

    def test_monotonic_as_questions_are_mastered(self, questions):
        ids = [q.id for q in questions]
        scores = [calculate_mastery(questions, mastered(*ids[:n])) for n in range(len(ids) + 1)]

        assert scores == sorted(scores)
        assert scores[0] == 0
        assert scores[-1] == 100

    def test_topic_and_subject_mastery(self, make_subject):
        subject = make_subject(topics=2, per_topic=2)
        subject_progress = {"t0": mastered("q0-0", "q0-1")}

        assert calculate_topic_mastery(subject.topics[0], subject_progress) == 100
        assert calculate_topic_mastery(subject.topics[1], subject_progress) == 0
        assert calculate_subject_mastery(subject, subject_progress) == 50
        assert calculate_subject_mastery(subject, None) == 0

    def test_flatten_progress(self):
        flat = flatten_progress({"t0": mastered("a"), "t1": mastered("b")})

        assert set(flat) == {"a", "b"}
        assert flatten_progress(None) == {}


class TestActiveQuestions:
    """Tests for topic selection."""

    def test_empty_selection_means_all(self, make_subject):
        subject = make_subject(topics=2, per_topic=2)

        assert [q.id for q in get_active_questions(subject, [])] == ["q0-0", "q0-1", "q1-0", "q1-1"]

    def test_selection_keeps_subject_order(self, make_subject):
        subject = make_subject(topics=3, per_topic=1)

        assert [q.id for q in get_active_questions(subject, ["t2", "t0"])] == ["q0-0", "q2-0"]

    def test_no_subject(self):
        assert get_active_questions(None, []) == []


class TestGenerateQueue:
    """Tests for queue generation."""

    def test_topic_order_preserves_input(self, questions):
        queue = generate_queue(questions, {}, StudyMode.TOPIC_ORDER, False)

        assert queue == [q.id for q in questions]

    def test_topic_order_is_idempotent(self, questions):
        progress = mastered("q0-1")
        first = generate_queue(questions, progress, "topic_order", False)
        second = generate_queue(questions, progress, "topic_order", False)

        assert first == second == ["q0-0", "q0-2", "q1-0", "q1-1", "q1-2"]

    def test_random_is_permutation(self, questions):
        queue = generate_queue(questions, {}, StudyMode.RANDOM, False, rng=random.Random(7))

        assert sorted(queue) == sorted(q.id for q in questions)

    def test_random_uses_rng(self, questions):
        a = generate_queue(questions, {}, "random", False, rng=random.Random(99))
        b = generate_queue(questions, {}, "random", False, rng=random.Random(99))

        assert a == b

    def test_random_covers_every_position(self, make_subject):
        """Each question can land first; a biased shuffle tends to miss some."""
        pool = make_subject(topics=1, per_topic=4).topics[0].questions
        rng = random.Random(3)
        firsts = {generate_queue(pool, {}, "random", False, rng=rng)[0] for _ in range(200)}

        assert firsts == {q.id for q in pool}

    def test_excludes_mastered(self, questions):
        queue = generate_queue(questions, mastered("q0-0", "q1-2"), "topic_order", False)

        assert "q0-0" not in queue
        assert "q1-2" not in queue
        assert len(queue) == 4

    def test_include_mastered(self, questions):
        queue = generate_queue(questions, mastered("q0-0"), "topic_order", True)

        assert queue[0] == "q0-0"

    def test_all_mastered_is_empty(self, questions):
        ids = [q.id for q in questions]

        assert generate_queue(questions, mastered(*ids), "random", False) == []

    def test_no_questions(self):
        assert generate_queue([], None, "random", False) == []

    def test_unknown_mode_keeps_order(self, questions):
        assert generate_queue(questions, {}, "spiral", False) == [q.id for q in questions]


class TestCheckAnswer:
    """Tests for answer dispatch."""

    def test_round_trip_every_type(self, geography):
        answers = {
            "q-mc": 1,
            "q-kw": "Paris",
            "q-tf": True,
            "q-ma": [0, 2],
            "q-match": {"Thames": "UK", "Seine": "France"},
            "q-wb": ["Danube", "Black"],
        }
        for topic in geography.topics:
            for question in topic.questions:
                assert check_answer(question, answers[question.id]) is True, question.id

    def test_malformed_answers_are_wrong(self, geography):
        for topic in geography.topics:
            for question in topic.questions:
                assert check_answer(question, object()) is False
                assert check_answer(question, None) is False

    def test_unknown_type_is_wrong(self):
        class Stub:
            id = "x"
            type = "essay"

        assert check_answer(Stub(), "anything") is False

    def test_missing_type_is_wrong(self):
        assert check_answer(object(), 1) is False
