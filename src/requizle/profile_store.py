"""
Profile store.

A keyed collection of independent profiles, each with its own subject
library, progress and session. Exactly one profile is active; the
QuizSession returned by ``session`` drives that profile.

Every mutation ends by calling ``on_change`` so a persistence layer can
mirror the store without the store knowing about storage.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from typing import Any, Literal

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from src.requizle.errors import ImportValidationError
from src.requizle.importer import generate_id, validate_subjects
from src.requizle.migrations import CURRENT_VERSION
from src.requizle.models import (
    DEFAULT_PROFILE_ID,
    AppSettings,
    PersistedState,
    Profile,
    ProgressMap,
    SessionState,
    Subject,
    Topic,
    new_default_profile,
)
from src.requizle.session import DEFAULT_REQUEUE_OFFSETS, QuizSession


_progress_adapter: TypeAdapter[ProgressMap] = TypeAdapter(ProgressMap)


# =============================================================================
# Merge helpers
# =============================================================================

def merge_subjects(existing: list[Subject], incoming: list[Subject]) -> list[Subject]:
    """
    Deep-merge subjects by ID.

    Unknown IDs are appended. Known subjects and topics take the incoming
    name and merge their children; known questions are replaced whole.
    """
    merged = list(existing)
    index = {s.id: i for i, s in enumerate(merged)}
    for subject in incoming:
        if subject.id not in index:
            index[subject.id] = len(merged)
            merged.append(subject)
            continue
        current = merged[index[subject.id]]
        merged[index[subject.id]] = current.model_copy(update={
            "name": subject.name,
            "topics": _merge_topics(current.topics, subject.topics),
        })
    return merged


def _merge_topics(existing: list[Topic], incoming: list[Topic]) -> list[Topic]:
    merged = list(existing)
    index = {t.id: i for i, t in enumerate(merged)}
    for topic in incoming:
        if topic.id not in index:
            index[topic.id] = len(merged)
            merged.append(topic)
            continue
        current = merged[index[topic.id]]
        questions = list(current.questions)
        q_index = {q.id: i for i, q in enumerate(questions)}
        for question in topic.questions:
            if question.id in q_index:
                questions[q_index[question.id]] = question
            else:
                q_index[question.id] = len(questions)
                questions.append(question)
        merged[index[topic.id]] = current.model_copy(update={"name": topic.name, "questions": questions})
    return merged


def merge_progress(existing: ProgressMap, incoming: ProgressMap) -> ProgressMap:
    """Overlay incoming progress; question-level entries win on conflict."""
    merged: ProgressMap = {sid: {tid: dict(q) for tid, q in topics.items()} for sid, topics in existing.items()}
    for subject_id, topics in incoming.items():
        subject_progress = merged.setdefault(subject_id, {})
        for topic_id, questions in topics.items():
            subject_progress.setdefault(topic_id, {}).update(questions)
    return merged


# =============================================================================
# Store
# =============================================================================

class ProfileStore:
    """In-memory profile collection with a single active profile."""

    def __init__(
        self,
        state: PersistedState | None = None,
        rng: random.Random | None = None,
        requeue_offsets: tuple[int, int] = DEFAULT_REQUEUE_OFFSETS,
        on_change: Callable[[], None] | None = None,
    ):
        """
        Args:
            state: Initial persisted state (a single empty default profile if omitted)
            rng: Random source shared with every session
            requeue_offsets: Passed through to QuizSession
            on_change: Called after every mutation
        """
        self._state = state or PersistedState()
        self._rng = rng or random.Random()
        self._requeue_offsets = requeue_offsets
        self.on_change = on_change
        self._session: QuizSession | None = None
        self._ensure_active()

    # =========================================================================
    # Read access
    # =========================================================================

    @property
    def profiles(self) -> dict[str, Profile]:
        return self._state.profiles

    @property
    def active_profile_id(self) -> str:
        return self._state.active_profile_id

    @property
    def active_profile(self) -> Profile:
        return self._state.profiles[self._state.active_profile_id]

    @property
    def settings(self) -> AppSettings:
        return self._state.settings

    @property
    def session(self) -> QuizSession:
        """Session state machine for the active profile."""
        if self._session is None or self._session.profile is not self.active_profile:
            self._session = QuizSession(
                self.active_profile,
                rng=self._rng,
                requeue_offsets=self._requeue_offsets,
                on_change=self._changed,
            )
        return self._session

    def list_profiles(self) -> list[Profile]:
        """Profiles ordered newest first; ties go to the later-inserted profile."""
        return sorted(
            reversed(list(self._state.profiles.values())),
            key=lambda p: p.created_at,
            reverse=True,
        )

    # =========================================================================
    # Profiles
    # =========================================================================

    def create_profile(self, name: str) -> Profile:
        """Create an empty profile and make it active."""
        profile_id = generate_id("profile")
        while profile_id in self._state.profiles:
            profile_id = generate_id("profile")

        profile = new_default_profile(profile_id, name)
        self._state.profiles[profile_id] = profile
        self._state.active_profile_id = profile_id
        logger.info(f"Created profile '{name}' ({profile_id})")
        self._changed()
        return profile

    def switch_profile(self, profile_id: str) -> None:
        if profile_id not in self._state.profiles:
            logger.debug(f"switch_profile: unknown profile {profile_id!r}")
            return
        self._state.active_profile_id = profile_id
        self._changed()

    def delete_profile(self, profile_id: str) -> None:
        """
        Remove a profile.

        Deleting the only profile replaces it with a fresh default profile.
        Deleting the active profile activates the newest remaining one.
        """
        profiles = self._state.profiles
        if profile_id not in profiles:
            return

        if len(profiles) == 1:
            self._state.profiles = {DEFAULT_PROFILE_ID: new_default_profile()}
            self._state.active_profile_id = DEFAULT_PROFILE_ID
            logger.info(f"Deleted last profile {profile_id!r}; reset to default")
            self._changed()
            return

        del profiles[profile_id]
        if self._state.active_profile_id == profile_id:
            self._state.active_profile_id = self.list_profiles()[0].id
        logger.info(f"Deleted profile {profile_id!r}")
        self._changed()

    def rename_profile(self, profile_id: str, name: str) -> None:
        profile = self._state.profiles.get(profile_id)
        if profile is None or not name.strip():
            return
        profile.name = name.strip()
        self._changed()

    def export_profile(self, profile_id: str) -> dict[str, Any] | None:
        """JSON-ready copy of a profile, accepted by import_profile."""
        profile = self._state.profiles.get(profile_id)
        return profile.to_wire() if profile is not None else None

    def import_profile(self, data: Any) -> Profile:
        """
        Import an exported profile.

        A known profile ID merges subjects and overlays progress; an unknown
        ID is added as a new profile with a fresh session.

        Raises:
            ImportValidationError: If the data is not a valid profile export
        """
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("id"), str)
            or not isinstance(data.get("name"), str)
            or not isinstance(data.get("subjects"), list)
        ):
            raise ImportValidationError("Invalid profile format: expected id, name and subjects")

        subjects = validate_subjects(data["subjects"])
        try:
            progress = _progress_adapter.validate_python(data.get("progress") or {})
        except ValidationError as e:
            raise ImportValidationError(f"Invalid profile progress: {e.errors()[0]['msg']}") from e

        existing = self._state.profiles.get(data["id"])
        if existing is not None:
            existing.subjects = merge_subjects(existing.subjects, subjects)
            existing.progress = merge_progress(existing.progress, progress)
            profile = existing
            logger.info(f"Merged profile import into '{existing.name}'")
        else:
            profile = Profile(id=data["id"], name=data["name"], subjects=subjects, progress=progress)
            created_at = data.get("createdAt")
            if isinstance(created_at, int) and not isinstance(created_at, bool):
                profile.created_at = created_at
            self._state.profiles[profile.id] = profile
            logger.info(f"Imported new profile '{profile.name}'")

        self._changed()
        return profile

    def reset_all_data(self) -> None:
        """Drop every profile and settings; back to one empty default profile."""
        self._state = PersistedState(profiles={DEFAULT_PROFILE_ID: new_default_profile()})
        self._session = None
        logger.info("Reset all data")
        self._changed()

    # =========================================================================
    # Library (active profile)
    # =========================================================================

    def set_subjects(self, subjects: list[Subject]) -> None:
        """Replace the active profile's library."""
        self.active_profile.subjects = list(subjects)
        self._changed()

    def import_subjects(self, subjects: list[Subject]) -> None:
        """Merge subjects into the active profile's library."""
        profile = self.active_profile
        profile.subjects = merge_subjects(profile.subjects, subjects)
        logger.info(f"Imported {len(subjects)} subject(s) into '{profile.name}'")
        self._changed()

    def delete_subject(self, subject_id: str) -> None:
        """Remove a subject with its progress; clears the session if it was active."""
        profile = self.active_profile
        if profile.get_subject(subject_id) is None:
            return
        profile.subjects = [s for s in profile.subjects if s.id != subject_id]
        profile.progress = {sid: p for sid, p in profile.progress.items() if sid != subject_id}
        if profile.session.subject_id == subject_id:
            profile.session = SessionState(
                mode=profile.session.mode,
                include_mastered=profile.session.include_mastered,
                turn=profile.session.turn + 1,
            )
        logger.info(f"Deleted subject {subject_id!r}")
        self._changed()

    def set_theme(self, theme: Literal["light", "dark"]) -> None:
        self._state.settings = AppSettings(theme=theme)
        self._changed()

    def seed_if_empty(self, subjects: list[Subject]) -> bool:
        """Load ``subjects`` into the active profile when its library is empty."""
        if self.active_profile.subjects:
            return False
        self.set_subjects(subjects)
        logger.info(f"Seeded {len(subjects)} sample subject(s)")
        return True

    # =========================================================================
    # Serialization
    # =========================================================================

    def to_state(self) -> PersistedState:
        return self._state

    def to_document(self) -> dict[str, Any]:
        """Versioned persisted document."""
        return {"version": CURRENT_VERSION, "state": self._state.to_wire()}

    @classmethod
    def from_state(cls, state: dict[str, Any] | PersistedState, **kwargs: Any) -> ProfileStore:
        """
        Build a store from a current-version state.

        Raises:
            pydantic.ValidationError: If the state does not match the model
        """
        if not isinstance(state, PersistedState):
            state = PersistedState.model_validate(state)
        return cls(state, **kwargs)

    # =========================================================================
    # Internals
    # =========================================================================

    def _ensure_active(self) -> None:
        if not self._state.profiles:
            self._state.profiles = {DEFAULT_PROFILE_ID: new_default_profile()}
        if self._state.active_profile_id not in self._state.profiles:
            self._state.active_profile_id = self.list_profiles()[0].id

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()
