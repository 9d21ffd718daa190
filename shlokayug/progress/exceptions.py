"""Progress tracking errors.

Every error carries a machine-readable ``code`` that the HTTP layer maps
to a status code in ``dependencies.handle_progress_error``.
"""


class ProgressError(Exception):
    """Base progress error."""

    def __init__(self, message: str, code: str = "progress_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(ProgressError):
    """Referenced unit, lesson, lecture or aggregate does not exist."""

    def __init__(self, message: str = "Progress record not found"):
        super().__init__(message, "progress_not_found")


class InvalidStateError(ProgressError):
    """Requested change would break a progress tree invariant."""

    def __init__(self, message: str = "Invalid progress state transition"):
        super().__init__(message, "invalid_state")


class ValidationError(ProgressError):
    """Annotation or rating payload out of the accepted range."""

    def __init__(self, message: str = "Invalid progress data"):
        super().__init__(message, "validation_error")


class NotEnrolledError(ProgressError):
    """User has no active enrollment for the course."""

    def __init__(self, message: str = "You do not have access to this course"):
        super().__init__(message, "not_enrolled")


class PersistenceError(ProgressError):
    """Progress store failed to load or save an aggregate."""

    def __init__(
        self,
        message: str = "Progress store unavailable",
        code: str = "persistence_error",
    ):
        super().__init__(message, code)


class ConcurrentModificationError(PersistenceError):
    """Aggregate was saved by another writer since it was loaded."""

    def __init__(self, message: str = "Progress was modified concurrently"):
        super().__init__(message, "concurrent_modification")
