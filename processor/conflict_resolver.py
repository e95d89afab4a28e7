"""Last-writer-wins conflict resolution between local and remote events."""
from datetime import datetime, timezone

from processor.models import LocalEvent, RemoteEvent, Winner

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def remote_modified_at(remote: RemoteEvent) -> datetime:
    """Return the remote modification time, falling back to creation, then epoch."""
    if remote.last_modified is not None:
        return remote.last_modified
    if remote.created is not None:
        return remote.created
    return EPOCH


def resolve(local: LocalEvent, remote: RemoteEvent) -> Winner:
    """
    Decide which version of a correlated event wins.

    The strictly later timestamp wins. Ties go to the local event.

    Args:
        local: Correlated local event
        remote: Remote version of the same event

    Returns:
        Winner.REMOTE if the remote change is newer, otherwise Winner.LOCAL
    """
    if remote_modified_at(remote) > local.updated_at:
        return Winner.REMOTE
    return Winner.LOCAL
