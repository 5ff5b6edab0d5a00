class JournalError(ValueError):
    pass


class ValidationError(JournalError):
    """Input rejected before anything was written."""


class CapacityExceededError(JournalError):
    pass


class NotFoundError(JournalError):
    pass


class ConflictError(JournalError):
    """The store refused a write (uniqueness, foreign key or check)."""
