"""Data models for calendar reconciliation."""
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


NO_LOCATION = 'No Location'
NO_NOTIFICATION = 'No Notification'
UNTITLED_EVENT = 'Untitled Event'

REMOTE_CANCELLED = 'cancelled'


class SyncStatus(str, Enum):
    """Sync state of a local event."""
    PENDING = 'pending'
    SYNCED = 'synced'
    FAILED = 'failed'


class Winner(str, Enum):
    """Side chosen by conflict resolution."""
    LOCAL = 'local'
    REMOTE = 'remote'


@dataclass
class LocalEvent:
    """Event owned by the local store."""
    event_id: str
    user_id: str
    title: str
    start_time: datetime
    end_time: datetime
    updated_at: datetime
    location: Optional[str] = NO_LOCATION
    description: Optional[str] = None
    notification: Optional[str] = NO_NOTIFICATION
    remote_id: Optional[str] = None
    sync_status: SyncStatus = SyncStatus.PENDING
    last_synced_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class RemoteTime:
    """Start or end of a remote event; whole-day events carry only a date."""
    date_time: Optional[datetime] = None
    day: Optional[date] = None

    @property
    def is_whole_day(self) -> bool:
        return self.date_time is None and self.day is not None


@dataclass
class RemoteEvent:
    """Event as returned by the remote calendar service."""
    remote_id: str
    title: Optional[str] = None
    start: Optional[RemoteTime] = None
    end: Optional[RemoteTime] = None
    description: Optional[str] = None
    location: Optional[str] = None
    last_modified: Optional[datetime] = None
    created: Optional[datetime] = None
    status: str = 'confirmed'

    @property
    def is_cancelled(self) -> bool:
        return self.status == REMOTE_CANCELLED


@dataclass
class RemoteEventDraft:
    """Request body for creating or updating a remote event."""
    title: str
    start_time: datetime
    end_time: datetime
    time_zone: str
    description: str = ''
    location: Optional[str] = None
    reminder_minutes: Optional[int] = None

    def to_body(self) -> Dict[str, Any]:
        """Render the draft as a Google Calendar event resource."""
        body = {
            'summary': self.title,
            'description': self.description,
            'start': {
                'dateTime': self.start_time.isoformat(),
                'timeZone': self.time_zone,
            },
            'end': {
                'dateTime': self.end_time.isoformat(),
                'timeZone': self.time_zone,
            },
            'reminders': {
                'useDefault': False,
                'overrides': [],
            },
        }
        if self.location is not None:
            body['location'] = self.location
        if self.reminder_minutes is not None:
            body['reminders']['overrides'].append(
                {'method': 'popup', 'minutes': self.reminder_minutes}
            )
        return body


@dataclass
class LocalEventDraft:
    """Local fields derived from a remote event."""
    user_id: str
    remote_id: str
    title: str
    start_time: datetime
    end_time: datetime
    description: str
    location: str


@dataclass
class ListPage:
    """One page of an incremental list call."""
    items: List[Dict[str, Any]]
    next_page_token: Optional[str] = None
    next_cursor: Optional[str] = None


@dataclass
class ReconciliationResult:
    """Result of a reconcile call."""
    pushed_to_remote: int = 0
    pulled_from_remote: int = 0
    deleted_locally: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class ConnectionStatus:
    """Calendar connection state of a user."""
    connected: bool
    has_cursor: bool
