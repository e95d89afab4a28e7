"""Unit tests for last-writer-wins conflict resolution."""
from datetime import datetime, timedelta, timezone

from processor.conflict_resolver import EPOCH, remote_modified_at, resolve
from processor.models import LocalEvent, RemoteEvent, Winner

T = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def local_updated_at(updated_at: datetime) -> LocalEvent:
    return LocalEvent(
        event_id='evt-1',
        user_id='student-1',
        title='Biology Review',
        start_time=T,
        end_time=T + timedelta(hours=1),
        updated_at=updated_at,
        remote_id='r-1'
    )


class TestResolve:
    """Test cases for resolve."""

    def test_exact_tie_favors_local(self):
        remote = RemoteEvent(remote_id='r-1', last_modified=T)

        assert resolve(local_updated_at(T), remote) is Winner.LOCAL

    def test_newer_remote_wins(self):
        remote = RemoteEvent(remote_id='r-1', last_modified=T + timedelta(seconds=1))

        assert resolve(local_updated_at(T), remote) is Winner.REMOTE

    def test_newer_local_wins(self):
        remote = RemoteEvent(remote_id='r-1', last_modified=T - timedelta(seconds=1))

        assert resolve(local_updated_at(T), remote) is Winner.LOCAL

    def test_falls_back_to_created(self):
        remote = RemoteEvent(remote_id='r-1', created=T + timedelta(minutes=5))

        assert remote_modified_at(remote) == T + timedelta(minutes=5)
        assert resolve(local_updated_at(T), remote) is Winner.REMOTE

    def test_last_modified_preferred_over_created(self):
        remote = RemoteEvent(
            remote_id='r-1',
            last_modified=T - timedelta(minutes=5),
            created=T + timedelta(minutes=5)
        )

        assert resolve(local_updated_at(T), remote) is Winner.LOCAL

    def test_missing_timestamps_lose_to_local(self):
        remote = RemoteEvent(remote_id='r-1')

        assert remote_modified_at(remote) == EPOCH
        assert resolve(local_updated_at(T), remote) is Winner.LOCAL
