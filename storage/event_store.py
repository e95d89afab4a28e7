"""DynamoDB store for local calendar events."""
import logging
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from processor.event_mapper import parse_timestamp
from processor.models import LocalEvent, SyncStatus

logger = logging.getLogger(__name__)


class DynamoDBEventStore:
    """Persisted collection of local events."""

    USER_INDEX = 'user-index'
    REMOTE_ID_INDEX = 'user-remote-index'

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the events table
            region_name: AWS region, defaults to the environment's region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def get(self, event_id: str) -> Optional[LocalEvent]:
        """Fetch a single event by id."""
        try:
            response = self.table.get_item(Key={'event_id': event_id})
        except ClientError as e:
            logger.error(f"Error reading event {event_id}: {e}")
            raise

        item = response.get('Item')
        return self._item_to_event(item) if item else None

    def list_for_user(self, user_id: str) -> List[LocalEvent]:
        """Return all events owned by a user, ordered by start time."""
        return self._query(
            IndexName=self.USER_INDEX,
            KeyConditionExpression=Key('user_id').eq(user_id)
        )

    def find_pending_or_unsynced(self, user_id: str) -> List[LocalEvent]:
        """
        Return events that still need to be pushed to the remote calendar.

        Args:
            user_id: Owner of the events

        Returns:
            Events that are pending, failed, or have no remote id
        """
        return self._query(
            IndexName=self.USER_INDEX,
            KeyConditionExpression=Key('user_id').eq(user_id),
            FilterExpression=(
                Attr('sync_status').is_in([SyncStatus.PENDING.value, SyncStatus.FAILED.value])
                | Attr('remote_id').not_exists()
            )
        )

    def find_by_remote_id(self, user_id: str, remote_id: str) -> Optional[LocalEvent]:
        """
        Find the local event correlated with a remote event.

        Args:
            user_id: Owner of the event
            remote_id: Remote correlation id

        Returns:
            The correlated event, or None
        """
        events = self._query(
            IndexName=self.REMOTE_ID_INDEX,
            KeyConditionExpression=Key('user_id').eq(user_id) & Key('remote_id').eq(remote_id)
        )
        if not events:
            return None

        if len(events) > 1:
            logger.warning(
                f"{len(events)} local events share remote id {remote_id} "
                f"for user {user_id}, using the most recently updated"
            )
        return max(events, key=lambda event: event.updated_at)

    def upsert(self, event: LocalEvent) -> None:
        """Insert or replace an event."""
        try:
            self.table.put_item(Item=self._event_to_item(event))
        except ClientError as e:
            logger.error(f"Error writing event {event.event_id}: {e}")
            raise

    def delete(self, event_id: str) -> None:
        """Delete an event. Deleting an absent event is a no-op."""
        try:
            self.table.delete_item(Key={'event_id': event_id})
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise

    def _query(self, **kwargs) -> List[LocalEvent]:
        try:
            response = self.table.query(**kwargs)
            items = response.get('Items', [])

            # Handle pagination
            while 'LastEvaluatedKey' in response:
                response = self.table.query(
                    ExclusiveStartKey=response['LastEvaluatedKey'],
                    **kwargs
                )
                items.extend(response.get('Items', []))
        except ClientError as e:
            logger.error(f"Error querying DynamoDB table {self.table_name}: {e}")
            raise

        return [self._item_to_event(item) for item in items]

    def _item_to_event(self, item: dict) -> LocalEvent:
        """
        Convert DynamoDB item to LocalEvent object.

        Args:
            item: DynamoDB item dictionary

        Returns:
            LocalEvent object

        Raises:
            ValueError: If the item is missing fields or holds malformed values
        """
        try:
            return LocalEvent(
                event_id=item['event_id'],
                user_id=item['user_id'],
                title=item['title'],
                start_time=parse_timestamp(item['start_time']),
                end_time=parse_timestamp(item['end_time']),
                updated_at=parse_timestamp(item['updated_at']),
                location=item.get('location'),
                description=item.get('description'),
                notification=item.get('notification'),
                remote_id=item.get('remote_id'),
                sync_status=SyncStatus(item.get('sync_status', SyncStatus.PENDING.value)),
                last_synced_at=parse_timestamp(item.get('last_synced_at')),
                created_at=parse_timestamp(item.get('created_at'))
            )
        except (KeyError, ValueError) as e:
            logger.error(f"Failed to convert item {item.get('event_id')} to LocalEvent: {e}")
            raise ValueError(f"Malformed event item {item.get('event_id')}: {e}") from e

    def _event_to_item(self, event: LocalEvent) -> dict:
        """
        Convert LocalEvent object to DynamoDB item.

        Args:
            event: LocalEvent object

        Returns:
            DynamoDB item dictionary
        """
        item = {
            'event_id': event.event_id,
            'user_id': event.user_id,
            'title': event.title,
            'start_time': event.start_time.isoformat(),
            'end_time': event.end_time.isoformat(),
            'updated_at': event.updated_at.isoformat(),
            'sync_status': SyncStatus(event.sync_status).value
        }

        # Add optional fields if present
        if event.location:
            item['location'] = event.location
        if event.description:
            item['description'] = event.description
        if event.notification:
            item['notification'] = event.notification
        if event.remote_id:
            item['remote_id'] = event.remote_id
        if event.last_synced_at:
            item['last_synced_at'] = event.last_synced_at.isoformat()
        if event.created_at:
            item['created_at'] = event.created_at.isoformat()

        return item
