"""DynamoDB store for user calendar profiles and sync cursors."""
import logging
from typing import Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class DynamoDBUserStore:
    """Calendar connection state and sync cursor, one item per user."""

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize DynamoDB client and table reference.

        Args:
            table_name: Name of the users table
            region_name: AWS region, defaults to the environment's region
        """
        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBUserStore for table: {table_name}")

    def get_profile(self, user_id: str) -> Optional[dict]:
        """Return the raw profile item, or None if the user is unknown."""
        try:
            response = self.table.get_item(Key={'user_id': user_id})
        except ClientError as e:
            logger.error(f"Error reading profile for user {user_id}: {e}")
            raise
        return response.get('Item')

    def get(self, user_id: str) -> Optional[str]:
        """Return the stored sync cursor, or None."""
        profile = self.get_profile(user_id)
        if not profile:
            return None
        return profile.get('sync_cursor') or None

    def set(self, user_id: str, cursor: str) -> None:
        """Store a new sync cursor."""
        self._update(
            user_id,
            'SET sync_cursor = :cursor',
            {':cursor': cursor}
        )

    def clear(self, user_id: str) -> None:
        """Remove the stored sync cursor."""
        self._update(user_id, 'REMOVE sync_cursor')

    def connect(self, user_id: str, refresh_token: str) -> None:
        """Store a refresh token and enable calendar sync."""
        self._update(
            user_id,
            'SET calendar_refresh_token = :token, calendar_enabled = :enabled',
            {':token': refresh_token, ':enabled': True}
        )

    def save_access_token(self, user_id: str, access_token: str) -> None:
        self._update(
            user_id,
            'SET calendar_access_token = :token',
            {':token': access_token}
        )

    def disconnect(self, user_id: str) -> None:
        """Remove tokens and cursor and disable calendar sync."""
        self._update(
            user_id,
            'SET calendar_enabled = :enabled '
            'REMOVE calendar_access_token, calendar_refresh_token, sync_cursor',
            {':enabled': False}
        )

    def _update(self, user_id: str, expression: str, values: Optional[dict] = None) -> None:
        kwargs = {
            'Key': {'user_id': user_id},
            'UpdateExpression': expression,
        }
        if values:
            kwargs['ExpressionAttributeValues'] = values

        try:
            self.table.update_item(**kwargs)
        except ClientError as e:
            logger.error(f"Error updating profile for user {user_id}: {e}")
            raise
