"""
ReplyMate: Ensure we have a valid access token for a user's Google connection.
Refreshes the token if expired and persists the refreshed credential.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from ..errors import ReauthRequired
from ..review_models import GoogleConnection
from .google_auth import refresh_access_token

logger = logging.getLogger(__name__)

# One lock per connection id so concurrent requests in this process refresh once
_refresh_locks: Dict[str, threading.Lock] = {}
_refresh_locks_guard = threading.Lock()


def _lock_for(connection_id: str) -> threading.Lock:
    with _refresh_locks_guard:
        lock = _refresh_locks.get(connection_id)
        if lock is None:
            lock = _refresh_locks[connection_id] = threading.Lock()
        return lock


def _is_fresh(connection: GoogleConnection, now: datetime) -> bool:
    expires_at = connection.expires_at
    if expires_at is None:
        return True
    if expires_at.tzinfo is None or expires_at.tzinfo.utcoffset(expires_at) is None:
        # Naive datetime: treat as UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at > now


def ensure_fresh_token(
    store,
    connection: GoogleConnection,
    now: Optional[datetime] = None,
) -> Tuple[str, GoogleConnection]:
    """
    Return (access_token, connection) with a non-expired access token.
    A connection without expires_at is treated as valid. Raises ReauthRequired when a
    refresh is needed but impossible (no refresh token, or Google says invalid_grant),
    ConfigurationError when the OAuth client is not configured.
    """
    now = now or datetime.now(timezone.utc)
    if _is_fresh(connection, now):
        return connection.access_token, connection
    if not connection.refresh_token:
        raise ReauthRequired("Google token expired and no refresh token available. Please reconnect your Google account.")

    with _lock_for(connection.id):
        # Another request may have refreshed while we waited
        current = store.get_google_connection()
        if current is not None and current.id == connection.id:
            if _is_fresh(current, now):
                return current.access_token, current
            connection = current
            if not connection.refresh_token:
                raise ReauthRequired()

        grant = refresh_access_token(connection.refresh_token)
        refresh_token = grant.refresh_token or connection.refresh_token
        store.update_connection_tokens(connection.id, grant.access_token, refresh_token, grant.expires_at)
        logger.info("Refreshed Google access token for connection %s", connection.id)
        refreshed = connection.model_copy(update={
            "access_token": grant.access_token,
            "refresh_token": refresh_token,
            "expires_at": grant.expires_at,
        })
        return grant.access_token, refreshed
