"""Shared fixtures for calendar sync tests."""
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import boto3
import pytest
from moto import mock_aws

from processor.models import ListPage, LocalEvent, SyncStatus
from storage.event_store import DynamoDBEventStore
from storage.user_store import DynamoDBUserStore
from sync.orchestrator import SyncOrchestrator

EVENTS_TABLE = 'test-study-group-events'
USERS_TABLE = 'test-study-group-users'
REGION = 'us-east-1'
USER_ID = 'student-1'
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class FakeCalendarClient:
    """In-memory stand-in for GoogleCalendarClient.

    List responses are scripted: each entry of ``responses`` is a ListPage
    or an exception, consumed in order. Once exhausted, list_events
    returns an empty page carrying ``idle_cursor``.
    """

    def __init__(self):
        self.created = []
        self.updated = []
        self.deleted = []
        self.list_calls = []
        self.responses = []
        self.failures = {}
        self.idle_cursor = 'cursor-idle'
        self._next_id = 0

    def create(self, draft):
        if draft.title in self.failures:
            raise self.failures[draft.title]
        self._next_id += 1
        self.created.append(draft)
        return f'remote-{self._next_id}'

    def update(self, remote_id, draft):
        if draft.title in self.failures:
            raise self.failures[draft.title]
        self.updated.append((remote_id, draft))
        return remote_id

    def delete(self, remote_id):
        self.deleted.append(remote_id)

    def list_events(self, query, page_token=None):
        self.list_calls.append((query, page_token))
        if not self.responses:
            return ListPage(items=[], next_cursor=self.idle_cursor)

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def list_calendars(self):
        return [{'id': 'primary', 'summary': 'Study'}]


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Keep boto3 away from real AWS credentials."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', REGION)


@pytest.fixture
def dynamodb_tables():
    """Create mock events and users tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name=REGION)

        events_table = dynamodb.create_table(
            TableName=EVENTS_TABLE,
            KeySchema=[
                {'AttributeName': 'event_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'event_id', 'AttributeType': 'S'},
                {'AttributeName': 'user_id', 'AttributeType': 'S'},
                {'AttributeName': 'start_time', 'AttributeType': 'S'},
                {'AttributeName': 'remote_id', 'AttributeType': 'S'}
            ],
            GlobalSecondaryIndexes=[
                {
                    'IndexName': DynamoDBEventStore.USER_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'user_id', 'KeyType': 'HASH'},
                        {'AttributeName': 'start_time', 'KeyType': 'RANGE'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                },
                {
                    'IndexName': DynamoDBEventStore.REMOTE_ID_INDEX,
                    'KeySchema': [
                        {'AttributeName': 'user_id', 'KeyType': 'HASH'},
                        {'AttributeName': 'remote_id', 'KeyType': 'RANGE'}
                    ],
                    'Projection': {'ProjectionType': 'ALL'}
                }
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        users_table = dynamodb.create_table(
            TableName=USERS_TABLE,
            KeySchema=[
                {'AttributeName': 'user_id', 'KeyType': 'HASH'}
            ],
            AttributeDefinitions=[
                {'AttributeName': 'user_id', 'AttributeType': 'S'}
            ],
            BillingMode='PAY_PER_REQUEST'
        )

        yield events_table, users_table


@pytest.fixture
def event_store(dynamodb_tables):
    return DynamoDBEventStore(EVENTS_TABLE, region_name=REGION)


@pytest.fixture
def user_store(dynamodb_tables):
    store = DynamoDBUserStore(USERS_TABLE, region_name=REGION)
    store.connect(USER_ID, 'refresh-token')
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeCalendarClient()


@pytest.fixture
def credential_provider():
    provider = Mock()
    provider.get_valid_token.return_value = 'access-token'
    return provider


@pytest.fixture
def orchestrator(event_store, user_store, credential_provider, fake_client, clock):
    return SyncOrchestrator(
        event_store,
        user_store,
        credential_provider,
        client_factory=lambda token: fake_client,
        clock=clock
    )


@pytest.fixture
def make_local_event():
    """Factory for LocalEvent objects with sensible defaults."""
    def _make(**overrides):
        fields = {
            'event_id': uuid.uuid4().hex,
            'user_id': USER_ID,
            'title': 'Linear Algebra Review',
            'start_time': NOW + timedelta(days=1),
            'end_time': NOW + timedelta(days=1, hours=2),
            'updated_at': NOW - timedelta(hours=1),
            'location': 'Library Room 3',
            'description': 'Chapters 4-6',
            'notification': '15 minutes before',
            'remote_id': None,
            'sync_status': SyncStatus.PENDING,
        }
        fields.update(overrides)
        return LocalEvent(**fields)
    return _make


@pytest.fixture
def make_remote_item():
    """Factory for raw remote event resources."""
    def _make(remote_id, summary='Remote Study Session', updated=NOW, **overrides):
        item = {
            'id': remote_id,
            'summary': summary,
            'status': 'confirmed',
            'start': {'dateTime': '2024-01-20T14:00:00+00:00'},
            'end': {'dateTime': '2024-01-20T16:00:00+00:00'},
            'updated': updated.isoformat().replace('+00:00', 'Z'),
            'created': (updated - timedelta(days=1)).isoformat().replace('+00:00', 'Z'),
        }
        item.update(overrides)
        return item
    return _make
