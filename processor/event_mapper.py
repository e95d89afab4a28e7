"""Translation between local events and remote calendar events."""
import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Optional

from processor.models import (
    NO_LOCATION,
    NO_NOTIFICATION,
    UNTITLED_EVENT,
    LocalEvent,
    LocalEventDraft,
    RemoteEvent,
    RemoteEventDraft,
    RemoteTime,
)

logger = logging.getLogger(__name__)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp into a timezone-aware datetime.

    Accepts a trailing 'Z'. Values without an offset are taken as UTC.

    Args:
        value: ISO 8601 string, or None

    Returns:
        Timezone-aware datetime, or None for an empty value

    Raises:
        ValueError: If the value is not an ISO 8601 timestamp
    """
    if not value:
        return None

    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class EventMapper:
    """Pure mapping between local and remote event shapes."""

    DEFAULT_REMINDER_MINUTES = 5
    DEFAULT_DURATION = timedelta(hours=1)

    REMINDER_PATTERN = re.compile(
        r'(\d+)\s*(minutes?|mins?|m|hours?|hrs?|h|days?|d)\b',
        re.IGNORECASE
    )
    UNIT_MINUTES = {
        'm': 1,
        'h': 60,
        'd': 24 * 60,
    }

    def __init__(self, time_zone: str = 'UTC'):
        """
        Initialize the mapper.

        Args:
            time_zone: IANA time zone name sent with pushed events
        """
        self.time_zone = time_zone

    def to_remote_shape(self, local: LocalEvent) -> RemoteEventDraft:
        """
        Convert a local event into a remote event draft.

        Args:
            local: Local event to push

        Returns:
            RemoteEventDraft ready for create or update
        """
        location = local.location
        if not location or location == NO_LOCATION:
            location = None

        reminder_minutes = None
        if local.notification and local.notification != NO_NOTIFICATION:
            reminder_minutes = self.parse_reminder_minutes(local.notification)

        return RemoteEventDraft(
            title=local.title,
            start_time=local.start_time,
            end_time=local.end_time,
            time_zone=self.time_zone,
            description=local.description or '',
            location=location,
            reminder_minutes=reminder_minutes
        )

    def from_remote_shape(self, remote: RemoteEvent, user_id: str) -> LocalEventDraft:
        """
        Convert a remote event into local event fields.

        Whole-day events use the UTC date boundary as their instant. A
        missing end defaults to one hour after the start.

        Args:
            remote: Remote event pulled from the service
            user_id: Owner of the local event

        Returns:
            LocalEventDraft with the fields to store locally
        """
        start_time = self._to_instant(remote.start)
        if start_time is None:
            raise ValueError(f"Remote event {remote.remote_id} has no start")

        end_time = self._to_instant(remote.end)
        if end_time is None:
            end_time = start_time + self.DEFAULT_DURATION

        return LocalEventDraft(
            user_id=user_id,
            remote_id=remote.remote_id,
            title=remote.title or UNTITLED_EVENT,
            start_time=start_time,
            end_time=end_time,
            description=remote.description or '',
            location=remote.location or NO_LOCATION
        )

    def parse_remote_item(self, item: Dict[str, Any]) -> RemoteEvent:
        """
        Parse a raw event resource from a list page.

        Args:
            item: Event resource dictionary

        Returns:
            RemoteEvent

        Raises:
            ValueError: If the item has no id or carries malformed timestamps
        """
        remote_id = item.get('id')
        if not remote_id:
            raise ValueError("Remote event is missing an id")

        return RemoteEvent(
            remote_id=remote_id,
            title=item.get('summary'),
            start=self._parse_remote_time(item.get('start')),
            end=self._parse_remote_time(item.get('end')),
            description=item.get('description'),
            location=item.get('location'),
            last_modified=parse_timestamp(item.get('updated')),
            created=parse_timestamp(item.get('created')),
            status=item.get('status', 'confirmed')
        )

    def parse_reminder_minutes(self, notification: str) -> int:
        """
        Parse a reminder such as "15 minutes before" into minutes.

        Args:
            notification: Human readable reminder text

        Returns:
            Offset in minutes, or the default when the text is unparsable
        """
        match = self.REMINDER_PATTERN.search(notification or '')
        if not match:
            logger.debug(f"Unparsable reminder '{notification}', using default")
            return self.DEFAULT_REMINDER_MINUTES

        value = int(match.group(1))
        unit = match.group(2)[0].lower()
        return value * self.UNIT_MINUTES[unit]

    def _parse_remote_time(self, value: Optional[Dict[str, str]]) -> Optional[RemoteTime]:
        if not value:
            return None

        if value.get('dateTime'):
            return RemoteTime(date_time=parse_timestamp(value['dateTime']))
        if value.get('date'):
            return RemoteTime(day=date.fromisoformat(value['date']))
        return None

    @staticmethod
    def _to_instant(value: Optional[RemoteTime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.is_whole_day:
            return datetime.combine(value.day, time.min, tzinfo=timezone.utc)
        return value.date_time
