"""
Versioned schema for the persisted document.

Versions:
    0: legacy flat state ``{subjects, progress, session}``
    1: ``{profiles, activeProfileId}``; legacy data lands in the ``default`` profile
    2: adds ``settings`` and ``session.turn``

Each step is a pure function from one version's ``state`` dict to the
next; ``migrate`` chains them.
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

from loguru import logger

from src.requizle.errors import MigrationError
from src.requizle.models import DEFAULT_PROFILE_ID, DEFAULT_PROFILE_NAME, now_ms


CURRENT_VERSION = 2

_EMPTY_SESSION = {
    "subjectId": None,
    "selectedTopicIds": [],
    "mode": "random",
    "includeMastered": False,
    "queue": [],
    "currentQuestionId": None,
}


def migrate_v0_to_v1(state: dict[str, Any]) -> dict[str, Any]:
    """Wrap legacy flat state into a single default profile."""
    profile = {
        "id": DEFAULT_PROFILE_ID,
        "name": DEFAULT_PROFILE_NAME,
        "subjects": copy.deepcopy(state.get("subjects") or []),
        "progress": copy.deepcopy(state.get("progress") or {}),
        "session": copy.deepcopy(state.get("session") or _EMPTY_SESSION),
        "createdAt": now_ms(),
    }
    return {
        "profiles": {DEFAULT_PROFILE_ID: profile},
        "activeProfileId": DEFAULT_PROFILE_ID,
    }


def migrate_v1_to_v2(state: dict[str, Any]) -> dict[str, Any]:
    """Add app settings and a turn counter to every profile session."""
    result = copy.deepcopy(state)
    result.setdefault("settings", {"theme": "light"})
    for profile in (result.get("profiles") or {}).values():
        if not isinstance(profile, dict):
            continue
        session = profile.setdefault("session", dict(_EMPTY_SESSION))
        counter = session.pop("turnCounter", 0)
        session.setdefault("turn", counter)
    return result


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    0: migrate_v0_to_v1,
    1: migrate_v1_to_v2,
}


def detect_version(state: dict[str, Any]) -> int:
    """Guess the version of an unversioned document."""
    return 0 if "profiles" not in state else 1


def migrate(state: dict[str, Any], from_version: int) -> dict[str, Any]:
    """
    Bring a persisted state up to CURRENT_VERSION.

    Args:
        state: The ``state`` part of the persisted document
        from_version: Version the state was written with

    Returns:
        A new state dict at CURRENT_VERSION (the input is not modified)

    Raises:
        MigrationError: If the version is unknown or newer than supported
    """
    if not isinstance(from_version, int) or isinstance(from_version, bool) or from_version < 0:
        raise MigrationError(f"Invalid document version: {from_version!r}")
    if from_version > CURRENT_VERSION:
        raise MigrationError(
            f"Document version {from_version} is newer than supported version {CURRENT_VERSION}"
        )

    version = from_version
    result = copy.deepcopy(state)
    while version < CURRENT_VERSION:
        result = MIGRATIONS[version](result)
        version += 1
        logger.info(f"Migrated persisted state to version {version}")
    return result
