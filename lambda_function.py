"""AWS Lambda handler for study group calendar sync."""
import json
import logging
import os
import time
from typing import Dict, Any

from calendar_client.credentials import OAuthCredentialProvider
from calendar_client.errors import AuthError, EventNotFoundError
from calendar_client.google_calendar import GoogleCalendarClient
from processor.event_mapper import EventMapper
from storage.event_store import DynamoDBEventStore
from storage.user_store import DynamoDBUserStore
from sync.orchestrator import SyncOrchestrator


ACTIONS = ('sync', 'push_event', 'delete_event', 'status', 'disconnect', 'list_calendars')
EVENT_ACTIONS = ('push_event', 'delete_event')


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_orchestrator() -> SyncOrchestrator:
    """
    Wire the orchestrator from environment configuration.

    Returns:
        SyncOrchestrator backed by DynamoDB and the Google Calendar API
    """
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'study-group-events')
    users_table = os.environ.get('USERS_TABLE_NAME', 'study-group-users')
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    lookback_days = int(os.environ.get('LOOKBACK_DAYS', '30'))
    calendar_id = os.environ.get('CALENDAR_ID', 'primary')
    time_zone = os.environ.get('EVENT_TIME_ZONE', 'UTC')

    event_store = DynamoDBEventStore(table_name=events_table)
    user_store = DynamoDBUserStore(table_name=users_table)
    credential_provider = OAuthCredentialProvider(
        user_store,
        client_id=os.environ.get('GOOGLE_CLIENT_ID', ''),
        client_secret=os.environ.get('GOOGLE_CLIENT_SECRET', ''),
        timeout=timeout_seconds
    )

    def client_factory(token: str) -> GoogleCalendarClient:
        return GoogleCalendarClient(token, calendar_id=calendar_id, timeout=timeout_seconds)

    return SyncOrchestrator(
        event_store,
        user_store,
        credential_provider,
        client_factory=client_factory,
        mapper=EventMapper(time_zone=time_zone),
        lookback_days=lookback_days
    )


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'body': json.dumps(body)
    }


def _error_response(status_code: int, message: str, error: Exception, start_time: float) -> Dict[str, Any]:
    return _response(status_code, {
        'message': message,
        'error': str(error),
        'error_type': type(error).__name__,
        'duration_seconds': round(time.time() - start_time, 2)
    })


def _run_action(orchestrator: SyncOrchestrator, action: str, user_id: str, event_id: str) -> Dict[str, Any]:
    if action == 'sync':
        result = orchestrator.reconcile(user_id)
        return {
            'message': 'Sync completed successfully',
            'statistics': {
                'pushed_to_remote': result.pushed_to_remote,
                'pulled_from_remote': result.pulled_from_remote,
                'deleted_locally': result.deleted_locally
            },
            'errors': result.errors
        }

    if action == 'push_event':
        remote_id = orchestrator.push_event(user_id, event_id)
        return {'message': 'Event pushed', 'remote_id': remote_id}

    if action == 'delete_event':
        deleted = orchestrator.delete_event(user_id, event_id)
        return {'message': 'Event deleted' if deleted else 'Event not found', 'deleted': deleted}

    if action == 'status':
        status = orchestrator.status(user_id)
        return {'connected': status.connected, 'has_cursor': status.has_cursor}

    if action == 'disconnect':
        orchestrator.disconnect(user_id)
        return {'message': 'Calendar disconnected successfully'}

    return {'calendars': orchestrator.list_calendars(user_id)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for calendar sync.

    Args:
        event: Invocation payload with 'action', 'user_id' and optional 'event_id'
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = event.get('action', 'sync')
    user_id = event.get('user_id')
    event_id = event.get('event_id')

    logger.info(
        f"Lambda execution started",
        extra={'action': action, 'user_id': user_id}
    )

    if action not in ACTIONS:
        return _response(400, {'message': f"Unknown action: {action}"})
    if not user_id:
        return _response(400, {'message': 'Missing user_id'})
    if action in EVENT_ACTIONS and not event_id:
        return _response(400, {'message': 'Missing event_id'})

    try:
        orchestrator = build_orchestrator()
        body = _run_action(orchestrator, action, user_id, event_id)

    except AuthError as e:
        logger.error(
            f"Calendar credentials unavailable for user {user_id}: {str(e)}",
            extra={'error_type': type(e).__name__}
        )
        return _error_response(401, 'Calendar not connected. Please connect first.', e, start_time)

    except EventNotFoundError as e:
        logger.warning(f"Event not found: {str(e)}")
        return _error_response(404, 'Event not found', e, start_time)

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={'error_type': type(e).__name__},
            exc_info=True
        )
        return _error_response(500, f"Action '{action}' failed", e, start_time)

    duration = time.time() - start_time
    body['duration_seconds'] = round(duration, 2)

    logger.info(
        f"Lambda execution completed successfully",
        extra={'action': action, 'duration_seconds': round(duration, 2)}
    )

    return _response(200, body)
