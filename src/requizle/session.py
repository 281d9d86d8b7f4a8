"""
Quiz session state machine.

Owns the study flow for one profile: subject/topic selection, the
presentation queue, the current question and mastery updates.

States are implicit in SessionState:
- NoSubject: subject_id is None
- Active: subject set, a current question is presented
- Exhausted: subject set, no current question, empty queue

Every public transition is a no-op on a missing subject or question and
never raises. Each transition builds new session/progress values from a
snapshot and commits them in one assignment.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from src.requizle.models import (
    Profile,
    ProgressMap,
    Question,
    QuestionProgress,
    SessionState,
    StudyMode,
    Subject,
)
from src.requizle.quiz_logic import (
    check_answer,
    flatten_progress,
    generate_queue,
    get_active_questions,
)


DEFAULT_REQUEUE_OFFSETS = (4, 6)


@dataclass
class SubmitResult:
    """Outcome of submitting an answer."""
    correct: bool
    explanation: str | None = None


class QuizSession:
    """
    Session state machine bound to a single profile.

    The profile is mutated in place; callers observe it through
    ``state`` / ``current_question`` after each call.
    """

    def __init__(
        self,
        profile: Profile,
        rng: random.Random | None = None,
        requeue_offsets: tuple[int, int] = DEFAULT_REQUEUE_OFFSETS,
        on_change: Callable[[], None] | None = None,
    ):
        """
        Args:
            profile: Profile whose library, progress and session are driven
            rng: Random source for shuffles and requeue offsets
            requeue_offsets: Inclusive (min, max) distance from the queue
                head at which a missed question is reinserted
            on_change: Called after every committed transition
        """
        self.profile = profile
        self._rng = rng or random.Random()
        self._requeue_offsets = requeue_offsets
        self._on_change = on_change

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self.profile.session

    @property
    def subject(self) -> Subject | None:
        return self.profile.get_subject(self.state.subject_id)

    @property
    def current_question(self) -> Question | None:
        subject = self.subject
        current_id = self.state.current_question_id
        if subject is None or current_id is None:
            return None
        found = subject.find_question(current_id)
        return found[1] if found else None

    @property
    def is_exhausted(self) -> bool:
        """Subject chosen but nothing left to present."""
        return (
            self.state.subject_id is not None
            and self.state.current_question_id is None
            and not self.state.queue
        )

    # =========================================================================
    # Selection transitions
    # =========================================================================

    def start_session(self, subject_id: str) -> None:
        """Select a subject, reset topics to 'all' and build a fresh queue."""
        subject = self.profile.get_subject(subject_id)
        if subject is None:
            logger.debug(f"start_session: unknown subject {subject_id!r}")
            return

        session = self.state.model_copy(update={
            "subject_id": subject_id,
            "selected_topic_ids": [],
            "queue": [],
            "current_question_id": None,
        })
        session = self._regenerated(session, subject, self.profile.progress)
        logger.info(f"Started session on '{subject.name}' with {self._presented(session)} question(s)")
        self._commit(session=session)

    def toggle_topic(self, topic_id: str) -> None:
        """Flip a topic in the selection and rebuild the queue."""
        subject = self.subject
        if subject is None or topic_id not in subject.topic_ids:
            return

        selected = set(self.state.selected_topic_ids)
        selected ^= {topic_id}
        # Ordered by the subject; the full set collapses back to "all"
        ordered = [tid for tid in subject.topic_ids if tid in selected]
        if len(ordered) == len(subject.topics):
            ordered = []

        session = self.state.model_copy(update={"selected_topic_ids": ordered})
        self._commit(session=self._regenerated(session, subject, self.profile.progress))

    def set_mode(self, mode: StudyMode | str) -> None:
        """Change study mode; rebuilds the queue when a subject is active."""
        try:
            mode = StudyMode(mode)
        except ValueError:
            logger.debug(f"set_mode: unknown mode {mode!r}")
            return

        session = self.state.model_copy(update={"mode": mode})
        subject = self.subject
        if subject is not None:
            session = self._regenerated(session, subject, self.profile.progress)
        self._commit(session=session)

    def set_include_mastered(self, include: bool) -> None:
        """
        Store the include-mastered flag.

        Does not rebuild the queue; the flag applies on the next
        restart_queue(), set_mode() or toggle_topic().
        """
        self._commit(session=self.state.model_copy(update={"include_mastered": bool(include)}))

    def restart_queue(self) -> None:
        """Rebuild the queue from the current selection and progress."""
        subject = self.subject
        if subject is None:
            return
        self._commit(session=self._regenerated(self.state, subject, self.profile.progress))

    # =========================================================================
    # Answer transitions
    # =========================================================================

    def submit_answer(self, answer: Any) -> SubmitResult:
        """
        Grade the current question and record the attempt.

        A wrong answer reinserts the question a few positions down the
        queue. The current question stays current until next_question().
        """
        located = self._locate_current()
        if located is None:
            return SubmitResult(correct=False)
        subject, topic_id, question = located

        correct = check_answer(question, answer)
        progress = self._record_attempt(subject.id, topic_id, question.id, correct)

        queue = list(self.state.queue)
        if not correct:
            queue = self._requeued(queue, question.id)

        self._commit(
            session=self.state.model_copy(update={"queue": queue}),
            progress=progress,
        )
        return SubmitResult(correct=correct, explanation=question.explanation)

    def skip_question(self) -> None:
        """Count the current question as missed, requeue it and advance."""
        located = self._locate_current()
        if located is None:
            return
        subject, topic_id, question = located

        progress = self._record_attempt(subject.id, topic_id, question.id, False)
        queue = self._requeued(list(self.state.queue), question.id)
        current = queue.pop(0) if queue else None

        self._commit(
            session=self.state.model_copy(update={
                "queue": queue,
                "current_question_id": current,
                "turn": self.state.turn + 1,
            }),
            progress=progress,
        )

    def next_question(self) -> None:
        """Advance to the queue head (None when the queue is empty)."""
        queue = list(self.state.queue)
        current = queue.pop(0) if queue else None
        self._commit(session=self.state.model_copy(update={
            "queue": queue,
            "current_question_id": current,
            "turn": self.state.turn + 1,
        }))

    def reset_subject_progress(self, subject_id: str) -> None:
        """Forget all progress for a subject; rebuild the queue if it is active."""
        progress = {sid: topics for sid, topics in self.profile.progress.items() if sid != subject_id}

        session = self.state
        if session.subject_id == subject_id:
            subject = self.profile.get_subject(subject_id)
            if subject is not None:
                session = self._regenerated(session, subject, {})

        logger.info(f"Reset progress for subject {subject_id!r}")
        self._commit(session=session, progress=progress)

    # =========================================================================
    # Internals
    # =========================================================================

    def _locate_current(self) -> tuple[Subject, str, Question] | None:
        subject = self.subject
        current_id = self.state.current_question_id
        if subject is None or current_id is None:
            return None
        found = subject.find_question(current_id)
        if found is None:
            return None
        topic, question = found
        return subject, topic.id, question

    def _record_attempt(self, subject_id: str, topic_id: str, question_id: str, correct: bool) -> ProgressMap:
        """Return a new progress map with one attempt applied."""
        subject_progress = self.profile.progress.get(subject_id, {})
        topic_progress = subject_progress.get(topic_id, {})
        record = topic_progress.get(question_id) or QuestionProgress(id=question_id)

        updated = QuestionProgress(
            id=question_id,
            attempts=record.attempts + 1,
            correct_streak=record.correct_streak + 1 if correct else 0,
            mastered=correct,
        )
        return {
            **self.profile.progress,
            subject_id: {
                **subject_progress,
                topic_id: {**topic_progress, question_id: updated},
            },
        }

    def _requeued(self, queue: list[str], question_id: str) -> list[str]:
        low, high = self._requeue_offsets
        offset = self._rng.randint(low, high)
        index = min(offset, len(queue))
        queue.insert(index, question_id)
        logger.debug(f"Requeued {question_id} at position {index}")
        return queue

    def _regenerated(self, session: SessionState, subject: Subject, progress: ProgressMap) -> SessionState:
        questions = get_active_questions(subject, session.selected_topic_ids)
        queue = generate_queue(
            questions,
            flatten_progress(progress.get(subject.id)),
            session.mode,
            session.include_mastered,
            rng=self._rng,
        )
        return session.model_copy(update={
            "queue": queue[1:],
            "current_question_id": queue[0] if queue else None,
            "turn": session.turn + 1,
        })

    @staticmethod
    def _presented(session: SessionState) -> int:
        return len(session.queue) + (1 if session.current_question_id else 0)

    def _commit(self, session: SessionState | None = None, progress: ProgressMap | None = None) -> None:
        if progress is not None:
            self.profile.progress = progress
        if session is not None:
            self.profile.session = session
        if self._on_change is not None:
            self._on_change()
