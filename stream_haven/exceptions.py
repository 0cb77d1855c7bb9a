# stream_haven/exceptions.py
# Error taxonomy shared by the store, repositories and session manager.


class StreamHavenError(Exception):
    """Base class for every error raised inside Stream Haven."""


class NotReady(StreamHavenError):
    """The record store was used before it finished opening."""


class WriteError(StreamHavenError):
    """A write could not be applied to the database."""


class ConstraintViolation(WriteError):
    """Uniqueness, foreign-key or CHECK constraint rejected a write."""


class QueryError(StreamHavenError):
    """A read could not be executed (e.g. a parameter SQLite cannot bind)."""


class ValidationError(StreamHavenError):
    """Input rejected before touching the store."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message)
        self.field = field


class NotFound(StreamHavenError):
    """A targeted record does not exist (or is not visible to the caller)."""


class PersistenceWarning(UserWarning):
    """
    Snapshot write to local storage failed. Emitted with warnings.warn and
    logged; the in-memory write that triggered it is kept.
    """
