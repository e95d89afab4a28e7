"""Bidirectional reconciliation between the local event store and the remote calendar."""
import logging
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

from calendar_client.errors import (
    AuthError,
    CursorExpiredError,
    EventNotFoundError,
    RemoteCalendarError,
)
from calendar_client.google_calendar import (
    GoogleCalendarClient,
    IncrementalQuery,
    ListQuery,
    WindowQuery,
)
from processor.conflict_resolver import resolve
from processor.event_mapper import EventMapper
from processor.models import (
    ConnectionStatus,
    LocalEvent,
    LocalEventDraft,
    ReconciliationResult,
    SyncStatus,
    Winner,
)
from storage.event_store import DynamoDBEventStore
from storage.user_store import DynamoDBUserStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GoogleCalendarClient]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _UserLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class SyncOrchestrator:
    """
    Keeps a user's local events consistent with their remote calendar.

    Each reconcile call pushes locally pending events first, then pulls
    remote changes page by page from the stored cursor (or a lookback
    window when there is none). Calls for the same user are serialized
    with a per-user lock; different users run independently.
    """

    LOOKBACK_DAYS = 30

    def __init__(
        self,
        event_store: DynamoDBEventStore,
        user_store: DynamoDBUserStore,
        credential_provider,
        client_factory: Optional[ClientFactory] = None,
        mapper: Optional[EventMapper] = None,
        lookback_days: int = LOOKBACK_DAYS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            event_store: Local event persistence
            user_store: User profiles, also holding the sync cursor
            credential_provider: Object with get_valid_token(user_id)
            client_factory: Builds a calendar client from a bearer token
            mapper: Event shape mapper
            lookback_days: Window used when no cursor is stored
            clock: Returns the current UTC time
        """
        self.event_store = event_store
        self.user_store = user_store
        self.credential_provider = credential_provider
        self.client_factory = client_factory or GoogleCalendarClient
        self.mapper = mapper or EventMapper()
        self.lookback_days = lookback_days
        self.clock = clock or _utcnow

        self._locks: Dict[str, _UserLock] = {}
        self._locks_guard = threading.Lock()

    def reconcile(self, user_id: str) -> ReconciliationResult:
        """
        Push pending local events, then pull remote changes.

        Per-item failures are collected in the result's error list.

        Args:
            user_id: User to reconcile

        Returns:
            ReconciliationResult with push and pull counts

        Raises:
            AuthError: If no valid credential is available for the user
        """
        with self._lock_for(user_id):
            client = self._connect(user_id)
            result = ReconciliationResult()

            logger.info(f"Starting reconciliation for user {user_id}")
            self._push_phase(user_id, client, result)
            self._pull_phase(user_id, client, result)

            logger.info(
                f"Reconciliation complete for user {user_id}: "
                f"{result.pushed_to_remote} pushed, {result.pulled_from_remote} pulled, "
                f"{result.deleted_locally} deleted, {len(result.errors)} errors"
            )
            return result

    def push_event(self, user_id: str, event_id: str) -> str:
        """
        Push a single local event right away.

        Args:
            user_id: Owner of the event
            event_id: Local event id

        Returns:
            Remote id of the pushed event

        Raises:
            EventNotFoundError: If the event does not exist for this user
        """
        with self._lock_for(user_id):
            event = self._get_owned_event(user_id, event_id)
            if event is None:
                raise EventNotFoundError(f"Event {event_id} not found")

            client = self._connect(user_id)
            return self._push_one(client, event)

    def delete_event(self, user_id: str, event_id: str) -> bool:
        """
        Delete a local event and its remote counterpart.

        The local event is kept if the remote deletion fails.

        Args:
            user_id: Owner of the event
            event_id: Local event id

        Returns:
            True if an event was deleted, False if there was nothing to delete
        """
        with self._lock_for(user_id):
            event = self._get_owned_event(user_id, event_id)
            if event is None:
                return False

            if event.remote_id:
                client = self._connect(user_id)
                client.delete(event.remote_id)

            self.event_store.delete(event.event_id)
            logger.info(f"Deleted event {event_id} for user {user_id}")
            return True

    def status(self, user_id: str) -> ConnectionStatus:
        profile = self.user_store.get_profile(user_id) or {}
        return ConnectionStatus(
            connected=bool(profile.get('calendar_enabled')),
            has_cursor=bool(profile.get('sync_cursor'))
        )

    def disconnect(self, user_id: str) -> None:
        with self._lock_for(user_id):
            self.user_store.disconnect(user_id)
            logger.info(f"Disconnected calendar for user {user_id}")

    def list_calendars(self, user_id: str) -> List[Dict[str, Any]]:
        return self._connect(user_id).list_calendars()

    def _connect(self, user_id: str) -> GoogleCalendarClient:
        token = self.credential_provider.get_valid_token(user_id)
        return self.client_factory(token)

    @contextmanager
    def _lock_for(self, user_id: str) -> Iterator[None]:
        """Hold the user's lock, dropping it from the registry once no caller needs it."""
        with self._locks_guard:
            entry = self._locks.setdefault(user_id, _UserLock())
            entry.holders += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[user_id]

    def _get_owned_event(self, user_id: str, event_id: str) -> Optional[LocalEvent]:
        event = self.event_store.get(event_id)
        if event is None or event.user_id != user_id:
            return None
        return event

    # Push phase

    def _push_phase(self, user_id: str, client: GoogleCalendarClient, result: ReconciliationResult) -> None:
        pending = self.event_store.find_pending_or_unsynced(user_id)
        logger.info(f"Pushing {len(pending)} pending events for user {user_id}")

        for event in pending:
            try:
                self._push_one(client, event)
                result.pushed_to_remote += 1
            except AuthError:
                raise
            except Exception as e:
                logger.warning(f"Failed to push event {event.event_id}: {e}")
                result.errors.append(
                    f"Failed to sync event \"{event.title}\" ({event.event_id}): {e}"
                )

    def _push_one(self, client: GoogleCalendarClient, event: LocalEvent) -> str:
        draft = self.mapper.to_remote_shape(event)

        try:
            if event.remote_id:
                remote_id = client.update(event.remote_id, draft)
            else:
                remote_id = client.create(draft)
        except Exception:
            self._save(event, sync_status=SyncStatus.FAILED)
            raise

        self._save(
            event,
            remote_id=remote_id,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=self.clock()
        )
        return remote_id

    # Pull phase

    def _pull_phase(self, user_id: str, client: GoogleCalendarClient, result: ReconciliationResult) -> None:
        cursor = self.user_store.get(user_id)
        recovered = False

        while True:
            query = self._build_query(cursor)
            try:
                new_cursor = self._pull_pages(user_id, client, query, result)
                break
            except CursorExpiredError as e:
                if recovered:
                    logger.error(f"Sync cursor rejected again for user {user_id}: {e}")
                    result.errors.append(f"Sync cursor rejected after reset, pull aborted: {e}")
                    return

                logger.info(f"Sync cursor expired for user {user_id}, pulling lookback window")
                self.user_store.clear(user_id)
                cursor = None
                recovered = True
            except RemoteCalendarError as e:
                logger.error(f"Failed to pull remote changes for user {user_id}: {e}")
                result.errors.append(f"Failed to pull remote changes: {e}")
                return

        if new_cursor:
            self.user_store.set(user_id, new_cursor)

    def _build_query(self, cursor: Optional[str]) -> ListQuery:
        if cursor:
            return IncrementalQuery(cursor)
        return WindowQuery(self.clock() - timedelta(days=self.lookback_days))

    def _pull_pages(
        self,
        user_id: str,
        client: GoogleCalendarClient,
        query: ListQuery,
        result: ReconciliationResult
    ) -> Optional[str]:
        page_token = None

        while True:
            page = client.list_events(query, page_token=page_token)
            logger.info(f"Pulled page with {len(page.items)} remote changes for user {user_id}")

            for item in page.items:
                self._apply_remote_item(user_id, item, result)

            page_token = page.next_page_token
            if not page_token:
                return page.next_cursor

    def _apply_remote_item(self, user_id: str, item: Dict[str, Any], result: ReconciliationResult) -> None:
        try:
            remote = self.mapper.parse_remote_item(item)
            local = self.event_store.find_by_remote_id(user_id, remote.remote_id)

            if remote.is_cancelled:
                if local is not None:
                    self.event_store.delete(local.event_id)
                    result.deleted_locally += 1
                return

            if local is None:
                draft = self.mapper.from_remote_shape(remote, user_id)
                self.event_store.upsert(self._new_local_event(draft))
                result.pulled_from_remote += 1
            elif resolve(local, remote) is Winner.REMOTE:
                draft = self.mapper.from_remote_shape(remote, user_id)
                self._save(
                    local,
                    title=draft.title,
                    start_time=draft.start_time,
                    end_time=draft.end_time,
                    description=draft.description,
                    location=draft.location,
                    sync_status=SyncStatus.SYNCED,
                    last_synced_at=self.clock()
                )
                result.pulled_from_remote += 1
        except AuthError:
            raise
        except Exception as e:
            label = item.get('summary') or item.get('id')
            logger.warning(f"Failed to apply remote event {item.get('id')}: {e}")
            result.errors.append(f"Failed to sync remote event \"{label}\": {e}")

    def _new_local_event(self, draft: LocalEventDraft) -> LocalEvent:
        now = self.clock()
        return LocalEvent(
            event_id=uuid.uuid4().hex,
            user_id=draft.user_id,
            title=draft.title,
            start_time=draft.start_time,
            end_time=draft.end_time,
            updated_at=now,
            location=draft.location,
            description=draft.description,
            remote_id=draft.remote_id,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=now,
            created_at=now
        )

    def _save(self, event: LocalEvent, **changes) -> LocalEvent:
        """Write changed fields of a local event, stamping updated_at."""
        updated = replace(event, updated_at=self.clock(), **changes)
        self.event_store.upsert(updated)
        return updated
