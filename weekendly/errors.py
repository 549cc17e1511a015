from __future__ import annotations


class WeekendlyError(Exception):
    """Base class for planner errors."""


class InvalidFormat(WeekendlyError, ValueError):
    """Time text does not match HH:MM."""


class PayloadValidationError(WeekendlyError, ValueError):
    """An untrusted payload (drag data, catalog item, import) has the wrong shape."""


class ConflictError(WeekendlyError):
    def __init__(self, candidate, conflicting=None):
        self.candidate = candidate
        self.conflicting = conflicting
        title = getattr(candidate, "title", None) or "activity"
        super().__init__(f"{title} overlaps with another activity")


class NotFoundError(WeekendlyError, LookupError):
    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class BackendUnavailable(WeekendlyError):
    """The structured backend could not be opened."""


class StorageWriteFailure(WeekendlyError):
    """A write to the active backend failed after the in-memory state changed."""

    def __init__(self, message: str, committed=None):
        self.committed = committed
        super().__init__(message)
