"""Exceptions raised by the calendar client and credential provider."""


class CalendarSyncError(Exception):
    """Base class for calendar sync failures."""


class AuthError(CalendarSyncError):
    """No usable bearer credential for the user."""


class RemoteCalendarError(CalendarSyncError):
    """The remote calendar service rejected or failed a request."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class TransportError(RemoteCalendarError):
    """Network failure or unexpected error response."""


class CursorExpiredError(RemoteCalendarError):
    """The stored sync cursor is no longer accepted by the service."""


class RemoteNotFoundError(RemoteCalendarError):
    """The remote event does not exist."""


class EventNotFoundError(CalendarSyncError):
    """The local event does not exist or belongs to another user."""
