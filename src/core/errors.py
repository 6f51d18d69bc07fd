"""Business hour error taxonomy.

Every error carries a stable machine-readable ``code`` that the API layer
translates for end users; the message is for logs only.
"""

from __future__ import annotations


class BusinessHourError(Exception):
    """Base class for all business hour errors."""

    code = "error-business-hour"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class InvalidWindowOrder(BusinessHourError):
    """An open day's finish is not strictly after its start."""

    code = "error-business-hour-invalid-window-order"


class FinishBeforeStart(InvalidWindowOrder):
    code = "error-business-hour-finish-time-before-start-time"


class FinishEqualsStart(InvalidWindowOrder):
    code = "error-business-hour-finish-time-equals-start-time"


class InvalidWindowFormat(BusinessHourError):
    """Unparseable weekday, clock time or timezone name."""

    code = "error-business-hour-invalid-format"


class DuplicateWindowDay(BusinessHourError):
    code = "error-business-hour-duplicate-day"


class NotFoundError(BusinessHourError):
    code = "error-business-hour-not-found"


class ScheduleNotFound(NotFoundError):
    code = "error-business-hour-schedule-not-found"


class AgentNotFound(NotFoundError):
    code = "error-business-hour-agent-not-found"


class DefaultScheduleRemovalError(BusinessHourError):
    code = "error-business-hour-default-cannot-be-removed"


class DefaultScheduleConflict(BusinessHourError):
    """Another schedule already is the default."""

    code = "error-business-hour-default-already-exists"


class RepositoryUnavailable(BusinessHourError):
    """Transient persistence failure; callers retry the whole operation."""

    code = "error-business-hour-repository-unavailable"