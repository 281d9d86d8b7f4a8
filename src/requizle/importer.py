"""
Import validation for user-authored quiz JSON.

Accepts an array of subjects or a single subject object. Each level may
carry its own ``id`` (kept as-is) or gets a generated one. Questions accept
``prompt`` or ``question`` for the prompt text and inherit ``topicId`` from
their parent topic.

Validation is all-or-nothing: the first problem raises
ImportValidationError with a message naming the subject, topic and
question, and nothing is returned.

Also provides media reference helpers used while importing: finding
local file references, grouping them by filename and rewriting them once
uploaded files have been stored.
"""

from __future__ import annotations

import base64
import itertools
import json
import mimetypes
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import TypeAdapter, ValidationError

from src.requizle.errors import ImportValidationError
from src.requizle.models import (
    LEGACY_TYPE_ALIASES,
    Question,
    QuestionType,
    Subject,
    Topic,
    now_ms,
)
from src.requizle.questions import get_handler

if TYPE_CHECKING:
    from src.requizle.media import MediaStore


VALID_TYPES = [t.value for t in QuestionType]

_question_adapter: TypeAdapter[Question] = TypeAdapter(Question)
_id_counter = itertools.count()


def generate_id(prefix: str) -> str:
    """Unique ID of the form '<prefix>-<epoch ms>-<counter>'."""
    return f"{prefix}-{now_ms()}-{next(_id_counter)}"


def _given_id(raw: dict) -> str | None:
    value = raw.get("id")
    return value if isinstance(value, str) and value else None


# =============================================================================
# Validation
# =============================================================================

def parse_import_json(text: str) -> list[Subject]:
    """Parse and validate an import document."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ImportValidationError(f"Invalid JSON: {e.msg} (line {e.lineno}, column {e.colno})") from e
    return validate_subjects(data)


def validate_subjects(data: Any) -> list[Subject]:
    """
    Validate raw import data and build Subjects.

    Args:
        data: Parsed JSON (list of subjects or one subject object)

    Returns:
        Validated subjects with every ID filled in

    Raises:
        ImportValidationError: On the first invalid subject, topic or question
    """
    if isinstance(data, list):
        raw_subjects = data
    elif isinstance(data, dict):
        raw_subjects = [data]
    else:
        raise ImportValidationError("Invalid format: Expected an object or array of subjects")

    subjects = [_validate_subject(s, i) for i, s in enumerate(raw_subjects)]
    logger.debug(
        f"Validated {len(subjects)} subject(s), "
        f"{sum(len(t.questions) for s in subjects for t in s.topics)} question(s)"
    )
    return subjects


def _validate_subject(raw: Any, index: int) -> Subject:
    if not isinstance(raw, dict):
        raise ImportValidationError(f"Invalid subject {index + 1}: Must be an object")

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ImportValidationError(f'Invalid subject {index + 1}: Missing or invalid "name"')

    topics = raw.get("topics")
    if not isinstance(topics, list):
        raise ImportValidationError(f'Invalid subject "{name}": Missing or invalid "topics" array')

    return Subject(
        id=_given_id(raw) or generate_id("subject"),
        name=name,
        topics=[_validate_topic(t, i, name) for i, t in enumerate(topics)],
    )


def _validate_topic(raw: Any, index: int, subject_name: str) -> Topic:
    if not isinstance(raw, dict):
        raise ImportValidationError(
            f'Invalid topic {index + 1} in subject "{subject_name}": Must be an object'
        )

    name = raw.get("name")
    if not isinstance(name, str) or not name:
        raise ImportValidationError(
            f'Invalid topic {index + 1} in subject "{subject_name}": Missing or invalid "name"'
        )

    questions = raw.get("questions")
    if not isinstance(questions, list):
        raise ImportValidationError(
            f'Invalid topic "{name}" in subject "{subject_name}": Missing or invalid "questions" array'
        )

    topic_id = _given_id(raw) or generate_id("topic")
    return Topic(
        id=topic_id,
        name=name,
        questions=[
            _validate_question(q, i, topic_id, name, subject_name)
            for i, q in enumerate(questions)
        ],
    )


def _validate_question(
    raw: Any,
    index: int,
    topic_id: str,
    topic_name: str,
    subject_name: str,
) -> Question:
    where = f'question {index + 1} in topic "{topic_name}" (subject "{subject_name}")'

    if not isinstance(raw, dict):
        raise ImportValidationError(f"Invalid {where}: Must be an object")

    qtype = raw.get("type")
    qtype = LEGACY_TYPE_ALIASES.get(qtype, qtype) if isinstance(qtype, str) else qtype
    handler = get_handler(qtype) if isinstance(qtype, str) else None
    if handler is None:
        raise ImportValidationError(
            f'Invalid {where}: Missing or invalid "type" (must be one of: {", ".join(VALID_TYPES)})'
        )

    prompt = raw.get("prompt") or raw.get("question")
    if not isinstance(prompt, str) or not prompt:
        raise ImportValidationError(f'Invalid {where}: Missing or invalid "question" or "prompt"')

    for optional in ("explanation", "media"):
        if raw.get(optional) is not None and not isinstance(raw[optional], str):
            raise ImportValidationError(f'Invalid {where}: "{optional}" must be a string')

    handler.validate(raw, where)

    normalized = {k: v for k, v in raw.items() if k != "question"}
    normalized.update(
        id=_given_id(raw) or generate_id("q"),
        type=qtype,
        prompt=prompt,
        topicId=topic_id,
    )
    try:
        return _question_adapter.validate_python(normalized)
    except ValidationError as e:
        raise ImportValidationError(f"Invalid {where}: {e.errors()[0]['msg']}") from e


# =============================================================================
# Media references
# =============================================================================

REMOTE_OR_STORED_PREFIXES = ("http://", "https://", "data:", "idb:")


@dataclass
class MediaReference:
    """A media path found in import data, with where it is used."""
    path: str
    filename: str
    subject_name: str
    topic_name: str


@dataclass
class MediaGroup:
    """References sharing one filename."""
    filename: str
    references: list[MediaReference] = field(default_factory=list)
    is_conflict: bool = False  # same filename, different paths
    uploaded: bool = False


def is_remote_or_stored_media(media: str) -> bool:
    """True for URLs, data URIs and blob-store references."""
    return media.startswith(REMOTE_OR_STORED_PREFIXES)


def get_filename(path: str) -> str:
    """Last path component, splitting on / and \\."""
    return re.split(r"[/\\]", path)[-1]


def _raw_subject_list(data: Any) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if isinstance(data.get("subjects"), list):
            # A profile export
            return data["subjects"]
        if "topics" in data:
            return [data]
    return []


def extract_media_references(data: Any) -> list[MediaReference]:
    """Collect every question ``media`` string from raw import data."""
    refs: list[MediaReference] = []
    for subject in _raw_subject_list(data):
        if not isinstance(subject, dict):
            continue
        subject_name = subject.get("name") if isinstance(subject.get("name"), str) else "Unknown Subject"
        for topic in subject.get("topics") or []:
            if not isinstance(topic, dict):
                continue
            topic_name = topic.get("name") if isinstance(topic.get("name"), str) else "Unknown Topic"
            for question in topic.get("questions") or []:
                if isinstance(question, dict) and isinstance(question.get("media"), str) and question["media"]:
                    refs.append(MediaReference(
                        path=question["media"],
                        filename=get_filename(question["media"]),
                        subject_name=subject_name,
                        topic_name=topic_name,
                    ))
    return refs


def get_local_media_refs(refs: list[MediaReference]) -> list[MediaReference]:
    """References that need a local file (not URLs, data URIs or stored media)."""
    return [r for r in refs if not is_remote_or_stored_media(r.path)]


def group_media_by_filename(refs: list[MediaReference]) -> list[MediaGroup]:
    """Group references by filename, flagging filenames used with several paths."""
    groups: dict[str, list[MediaReference]] = {}
    for ref in refs:
        groups.setdefault(ref.filename, []).append(ref)
    return [
        MediaGroup(
            filename=filename,
            references=references,
            is_conflict=len({r.path for r in references}) > 1,
        )
        for filename, references in groups.items()
    ]


def replace_media_by_path(data: Any, media_map: Mapping[str, str]) -> Any:
    """
    Return a copy of ``data`` with ``media`` fields rewritten.

    Tries the full path first, then the bare filename; unresolved paths
    are left as literal strings.
    """
    if isinstance(data, list):
        return [replace_media_by_path(item, media_map) for item in data]
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if key == "media" and isinstance(value, str):
                result[key] = media_map.get(value) or media_map.get(get_filename(value)) or value
            else:
                result[key] = replace_media_by_path(value, media_map)
        return result
    return data


def to_data_uri(content: bytes, filename: str) -> str:
    """Encode file bytes as a base64 data URI."""
    mime_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"


async def resolve_local_media(
    data: Any,
    files: Mapping[str, bytes | str],
    media_store: MediaStore,
) -> Any:
    """
    Store uploaded files and point matching media references at them.

    Args:
        data: Raw import data
        files: Uploaded files keyed by path or filename; values are bytes
            or ready-made data URIs
        media_store: Blob store receiving the files

    Returns:
        Raw import data with resolved ``media`` fields as ``idb:<id>``
    """
    from src.requizle.media import create_media_ref

    media_map: dict[str, str] = {}
    for name, content in files.items():
        data_uri = content if isinstance(content, str) else to_data_uri(content, name)
        media_id = await media_store.store(data_uri, get_filename(name))
        media_map[name] = create_media_ref(media_id)
        media_map.setdefault(get_filename(name), media_map[name])

    unresolved = [
        r.path for r in get_local_media_refs(extract_media_references(data))
        if r.path not in media_map and r.filename not in media_map
    ]
    if unresolved:
        logger.warning(f"{len(unresolved)} media reference(s) left unresolved: {unresolved[:5]}")

    return replace_media_by_path(data, media_map)
