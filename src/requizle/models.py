"""
Data model for subjects, questions, progress and profiles.

Pydantic models mirror the persisted/import JSON: field names are
snake_case in Python and camelCase on the wire (``answerIndex``,
``topicId``, ``currentQuestionId``...). Dump with ``by_alias=True``.

Questions are a discriminated union keyed by ``type``.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)
from pydantic.alias_generators import to_camel


DEFAULT_PROFILE_ID = "default"
DEFAULT_PROFILE_NAME = "Default"


class QuestionType(str, Enum):
    """Supported question types."""
    MULTIPLE_CHOICE = "multiple_choice"
    MULTIPLE_ANSWER = "multiple_answer"
    TRUE_FALSE = "true_false"
    KEYWORDS = "keywords"
    MATCHING = "matching"
    WORD_BANK = "word_bank"


# Older sample data used this tag for keyword questions
LEGACY_TYPE_ALIASES = {"short_answer": QuestionType.KEYWORDS.value}


class StudyMode(str, Enum):
    """Order in which the queue presents questions."""
    RANDOM = "random"
    TOPIC_ORDER = "topic_order"


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Questions
# =============================================================================


class BaseQuestion(WireModel):
    id: str
    prompt: str
    topic_id: str = ""
    explanation: str | None = None
    media: str | None = None


class MultipleChoiceQuestion(BaseQuestion):
    type: Literal["multiple_choice"] = "multiple_choice"
    choices: list[str]
    answer_index: int


class MultipleAnswerQuestion(BaseQuestion):
    type: Literal["multiple_answer"] = "multiple_answer"
    choices: list[str]
    answer_indices: list[int]


class TrueFalseQuestion(BaseQuestion):
    type: Literal["true_false"] = "true_false"
    answer: bool


class KeywordsQuestion(BaseQuestion):
    type: Literal["keywords"] = "keywords"
    answer: str | list[str]
    case_sensitive: bool = False

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("type") in LEGACY_TYPE_ALIASES:
            data = {**data, "type": LEGACY_TYPE_ALIASES[data["type"]]}
        return data

    @property
    def accepted_answers(self) -> list[str]:
        """Acceptable answers as a list (a single string is one answer)."""
        if isinstance(self.answer, str):
            return [self.answer]
        return list(self.answer)


class MatchingPair(WireModel):
    left: str
    right: str


class MatchingQuestion(BaseQuestion):
    type: Literal["matching"] = "matching"
    pairs: list[MatchingPair]


class WordBankQuestion(BaseQuestion):
    type: Literal["word_bank"] = "word_bank"
    sentence: str
    word_bank: list[str]
    answers: list[str]

    @property
    def blank_count(self) -> int:
        return count_blanks(self.sentence)


BLANK_MARKER = "_"


def count_blanks(sentence: str) -> int:
    """Number of blanks in a word bank sentence (one per underscore)."""
    return sentence.count(BLANK_MARKER)


def _question_tag(value: Any) -> str | None:
    if isinstance(value, dict):
        tag = value.get("type")
    else:
        tag = getattr(value, "type", None)
    if isinstance(tag, Enum):
        tag = tag.value
    return LEGACY_TYPE_ALIASES.get(tag, tag)


Question = Annotated[
    Union[
        Annotated[MultipleChoiceQuestion, Tag("multiple_choice")],
        Annotated[MultipleAnswerQuestion, Tag("multiple_answer")],
        Annotated[TrueFalseQuestion, Tag("true_false")],
        Annotated[KeywordsQuestion, Tag("keywords")],
        Annotated[MatchingQuestion, Tag("matching")],
        Annotated[WordBankQuestion, Tag("word_bank")],
    ],
    Discriminator(_question_tag),
]


# =============================================================================
# Library
# =============================================================================


class Topic(WireModel):
    id: str
    name: str
    questions: list[Question] = Field(default_factory=list)


class Subject(WireModel):
    id: str
    name: str
    topics: list[Topic] = Field(default_factory=list)

    def find_question(self, question_id: str) -> tuple[Topic, Question] | None:
        """Locate a question and its owning topic by ID."""
        for topic in self.topics:
            for question in topic.questions:
                if question.id == question_id:
                    return topic, question
        return None

    @property
    def topic_ids(self) -> list[str]:
        return [t.id for t in self.topics]


# =============================================================================
# Progress & Session
# =============================================================================


class QuestionProgress(WireModel):
    id: str
    correct_streak: int = 0
    attempts: int = 0
    mastered: bool = False


# subject ID -> topic ID -> question ID -> QuestionProgress
ProgressMap = dict[str, dict[str, dict[str, QuestionProgress]]]


class SessionState(WireModel):
    subject_id: str | None = None
    # Empty means "all topics"
    selected_topic_ids: list[str] = Field(default_factory=list)
    mode: StudyMode = StudyMode.RANDOM
    include_mastered: bool = False
    queue: list[str] = Field(default_factory=list)
    current_question_id: str | None = None
    # Older documents call this turnCounter
    turn: int = Field(default=0, validation_alias=AliasChoices("turn", "turnCounter"))

    def to_wire(self) -> dict[str, Any]:
        # Nullable IDs are meaningful on the wire
        return self.model_dump(mode="json", by_alias=True)


class Profile(WireModel):
    id: str
    name: str
    subjects: list[Subject] = Field(default_factory=list)
    progress: ProgressMap = Field(default_factory=dict)
    session: SessionState = Field(default_factory=SessionState)
    created_at: int = Field(default_factory=lambda: now_ms())

    def get_subject(self, subject_id: str | None) -> Subject | None:
        if subject_id is None:
            return None
        return next((s for s in self.subjects if s.id == subject_id), None)

    def to_wire(self) -> dict[str, Any]:
        data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        data["session"] = self.session.to_wire()
        return data


class AppSettings(WireModel):
    theme: Literal["light", "dark"] = "light"


class PersistedState(WireModel):
    profiles: dict[str, Profile] = Field(default_factory=dict)
    active_profile_id: str = DEFAULT_PROFILE_ID
    settings: AppSettings = Field(default_factory=AppSettings)

    def to_wire(self) -> dict[str, Any]:
        return {
            "profiles": {pid: p.to_wire() for pid, p in self.profiles.items()},
            "activeProfileId": self.active_profile_id,
            "settings": self.settings.to_wire(),
        }


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def new_default_profile(
    profile_id: str = DEFAULT_PROFILE_ID,
    name: str = DEFAULT_PROFILE_NAME,
) -> Profile:
    """Create an empty profile."""
    return Profile(id=profile_id, name=name)
