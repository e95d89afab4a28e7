"""Google Calendar REST client used by the sync orchestrator."""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import requests

from calendar_client.errors import (
    AuthError,
    CursorExpiredError,
    RemoteNotFoundError,
    TransportError,
)
from processor.models import ListPage, RemoteEventDraft

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncrementalQuery:
    """List changes since a previously returned cursor."""
    cursor: str

    def params(self) -> Dict[str, str]:
        return {'syncToken': self.cursor}


@dataclass(frozen=True)
class WindowQuery:
    """List everything modified inside a lookback window, ordered by modification."""
    window_start: datetime

    def params(self) -> Dict[str, str]:
        return {
            'timeMin': self.window_start.isoformat(),
            'orderBy': 'updated',
        }


ListQuery = Union[IncrementalQuery, WindowQuery]


class GoogleCalendarClient:
    """Thin transport wrapper over the Google Calendar v3 events API."""

    BASE_URL = "https://www.googleapis.com/calendar/v3"
    PAGE_SIZE = 250
    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(self, token: str, calendar_id: str = 'primary', timeout: int = 30):
        """
        Initialize the client.

        Args:
            token: OAuth bearer token
            calendar_id: Calendar to operate on (default: primary)
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({'Authorization': f'Bearer {token}'})

    @property
    def events_url(self) -> str:
        return f"{self.BASE_URL}/calendars/{quote(self.calendar_id, safe='')}/events"

    def create(self, draft: RemoteEventDraft) -> str:
        """
        Create a remote event.

        Args:
            draft: Event body to create

        Returns:
            Remote id assigned by the service
        """
        data = self._request('POST', self.events_url, json=draft.to_body())
        return data['id']

    def update(self, remote_id: str, draft: RemoteEventDraft) -> str:
        """
        Replace an existing remote event.

        Args:
            remote_id: Id of the remote event
            draft: New event body

        Returns:
            Remote id returned by the service
        """
        url = f"{self.events_url}/{quote(remote_id, safe='')}"
        data = self._request('PUT', url, json=draft.to_body())
        return data.get('id') or remote_id

    def delete(self, remote_id: str) -> None:
        """
        Delete a remote event. An event that is already gone counts as deleted.

        Args:
            remote_id: Id of the remote event
        """
        url = f"{self.events_url}/{quote(remote_id, safe='')}"
        try:
            self._request('DELETE', url)
        except RemoteNotFoundError:
            logger.info(f"Remote event {remote_id} already deleted")

    def list_events(self, query: ListQuery, page_token: Optional[str] = None) -> ListPage:
        """
        Fetch one page of changed events.

        Args:
            query: IncrementalQuery or WindowQuery
            page_token: Token of the page to fetch, None for the first page

        Returns:
            ListPage with raw event items and continuation tokens

        Raises:
            CursorExpiredError: If the cursor in an IncrementalQuery is no longer valid
        """
        params = {
            'maxResults': self.PAGE_SIZE,
            'singleEvents': 'true',
        }
        params.update(query.params())
        if page_token:
            params['pageToken'] = page_token

        data = self._request('GET', self.events_url, params=params)
        return ListPage(
            items=data.get('items', []),
            next_page_token=data.get('nextPageToken'),
            next_cursor=data.get('nextSyncToken')
        )

    def list_calendars(self) -> List[Dict[str, Any]]:
        """
        List the calendars visible to the user.

        Returns:
            Calendar list entries across all pages
        """
        url = f"{self.BASE_URL}/users/me/calendarList"
        calendars = []
        page_token = None

        while True:
            params = {'pageToken': page_token} if page_token else None
            data = self._request('GET', url, params=params)
            calendars.extend(data.get('items', []))
            page_token = data.get('nextPageToken')
            if not page_token:
                break

        return calendars

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request with retry logic for transient failures.

        Connection errors, timeouts, 429 and 5xx responses are retried with
        exponential backoff. Other error responses are mapped to the client
        exception types immediately.

        Returns:
            Decoded JSON body, or an empty dict for empty responses

        Raises:
            AuthError: On 401 or 403
            RemoteNotFoundError: On 404 or 410 for a single event
            CursorExpiredError: When the sync token is rejected
            TransportError: When all retry attempts fail or on other errors
        """
        for attempt in range(self.MAX_RETRIES):
            try:
                response = self.session.request(
                    method,
                    url,
                    timeout=self.timeout,
                    **kwargs
                )
            except requests.RequestException as e:
                if self._should_retry(attempt, f"{method} {url} failed: {e}"):
                    continue
                raise TransportError(f"{method} {url} failed: {e}") from e

            status = response.status_code
            if status == 429 or status >= 500:
                if self._should_retry(attempt, f"{method} {url} returned {status}"):
                    continue
                raise TransportError(
                    f"{method} {url} returned {status}: {response.text}",
                    status_code=status
                )

            if status >= 400:
                self._raise_for_status(method, url, response)

            if not response.content:
                return {}
            return response.json()

    def _should_retry(self, attempt: int, message: str) -> bool:
        if attempt < self.MAX_RETRIES - 1:
            delay = self.BASE_DELAY * (2 ** attempt)
            logger.warning(
                f"{message} (attempt {attempt + 1}/{self.MAX_RETRIES}). "
                f"Retrying in {delay} seconds..."
            )
            time.sleep(delay)
            return True

        logger.error(f"All {self.MAX_RETRIES} retry attempts failed. Last error: {message}")
        return False

    def _raise_for_status(self, method: str, url: str, response: requests.Response) -> None:
        status = response.status_code
        message = f"{method} {url} returned {status}: {response.text}"

        if status in (401, 403):
            raise AuthError(message)
        if status == 410 and method == 'GET':
            raise CursorExpiredError(message, status_code=status)
        if status == 400 and 'sync token' in response.text.lower():
            raise CursorExpiredError(message, status_code=status)
        if status in (404, 410):
            raise RemoteNotFoundError(message, status_code=status)
        raise TransportError(message, status_code=status)
