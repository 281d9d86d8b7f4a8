"""
Exception types shared across the ReQuizle engine.

The session state machine never raises; these surface only at the
import, migration and storage boundaries.
"""


class ImportValidationError(ValueError):
    """Raised when imported quiz data fails validation.

    The message is shown to the user verbatim and names the offending
    subject, topic or question.
    """


class MigrationError(Exception):
    """Raised when a persisted document cannot be migrated."""


class StorageError(Exception):
    """Raised by a concrete key-value or media store on I/O failure."""


class MediaLoadError(Exception):
    """Raised inside the media loader when a single attempt fails."""
