"""OAuth credential refresh for the calendar service."""
import logging

import requests

from calendar_client.errors import AuthError
from storage.user_store import DynamoDBUserStore

logger = logging.getLogger(__name__)


class OAuthCredentialProvider:
    """Exchanges a stored refresh token for a fresh access token."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        user_store: DynamoDBUserStore,
        client_id: str,
        client_secret: str,
        timeout: int = 30
    ):
        self.user_store = user_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    def get_valid_token(self, user_id: str) -> str:
        """
        Return a usable bearer token for the user.

        Args:
            user_id: User whose calendar is being synced

        Returns:
            Access token string

        Raises:
            AuthError: If the calendar is not connected or the refresh fails
        """
        profile = self.user_store.get_profile(user_id)
        if (
            not profile
            or not profile.get('calendar_enabled')
            or not profile.get('calendar_refresh_token')
        ):
            raise AuthError("Calendar not connected for this user")

        try:
            response = requests.post(
                self.TOKEN_URL,
                data={
                    'client_id': self.client_id,
                    'client_secret': self.client_secret,
                    'refresh_token': profile['calendar_refresh_token'],
                    'grant_type': 'refresh_token',
                },
                timeout=self.timeout
            )
            response.raise_for_status()
            access_token = response.json().get('access_token')
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error refreshing access token for user {user_id}: {e}")
            raise AuthError("Failed to refresh calendar access token") from e

        if not access_token:
            raise AuthError("Token endpoint returned no access token")

        if access_token != profile.get('calendar_access_token'):
            self.user_store.save_access_token(user_id, access_token)

        return access_token
