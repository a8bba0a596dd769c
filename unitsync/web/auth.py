"""Authentication for the unitsync web API.

Two kinds of callers:
- Interactive users log in with env-configured credentials and get a
  session cookie (sessions live in Redis, in memory when Redis is down).
- Automated importers send the shared secret in the ``X-API-Token`` header.
"""

from __future__ import annotations

import json
import logging
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
import redis
from fastapi import Cookie, Header, HTTPException

from unitsync.config import get_config
from unitsync.models import Caller, CallerKind

logger = logging.getLogger(__name__)

AUTOMATED_USERNAME = "api-token"
DISABLED_AUTH_USERNAME = "default_user"

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}

# Cache for bcrypt password hash (expensive to compute)
_password_hash_cache: bytes | None = None


def get_redis_client() -> redis.Redis:
    """Get Redis client for session storage."""
    return redis.from_url(get_config().auth.redis_url, decode_responses=True)


def _get_password_hash() -> bytes:
    """Get or create bcrypt password hash from the configured password."""
    global _password_hash_cache

    if _password_hash_cache is not None:
        return _password_hash_cache

    password = get_config().auth.password
    if not password:
        # For development only - MUST set in production
        password = "changeme"
        logger.warning(
            "Using default password 'changeme'. Set UNITSYNC_PASSWORD environment variable!"
        )

    _password_hash_cache = bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12))
    return _password_hash_cache


def reset_password_cache() -> None:
    global _password_hash_cache
    _password_hash_cache = None


def verify_credentials(username: str, password: str) -> bool:
    """Verify username and password using bcrypt (constant-time comparison)."""
    password_matches = bcrypt.checkpw(password.encode(), _get_password_hash())
    return secrets.compare_digest(username, get_config().auth.username) and password_matches


def create_session(username: str) -> str:
    """Create a new session for an authenticated user.

    Returns:
        str: Session token
    """
    session_token = secrets.token_urlsafe(32)
    expiry_hours = get_config().auth.session_expiry_hours
    now = datetime.now(timezone.utc)

    session_data = {
        "username": username,
        "created_at": now.isoformat(),
        "expires_at": (now + timedelta(hours=expiry_hours)).isoformat(),
    }

    try:
        get_redis_client().setex(
            f"session:{session_token}", expiry_hours * 3600, json.dumps(session_data)
        )
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        logger.warning("Redis unavailable, using in-memory session storage")
        _memory_sessions[session_token] = session_data

    return session_token


def _is_expired(session_data: dict) -> bool:
    expires_at = datetime.fromisoformat(session_data["expires_at"])
    return datetime.now(timezone.utc) > expires_at


def validate_session(session_token: str | None) -> dict | None:
    """Session data if the token is valid and unexpired, None otherwise."""
    if not session_token:
        return None

    try:
        redis_client = get_redis_client()
        session_data_str = redis_client.get(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        session_data = _memory_sessions.get(session_token)
        if session_data is None:
            return None
        if _is_expired(session_data):
            del _memory_sessions[session_token]
            return None
        return session_data

    if not session_data_str:
        return None

    try:
        session_data = json.loads(session_data_str)
        if _is_expired(session_data):
            redis_client.delete(f"session:{session_token}")
            return None
        return session_data
    except (json.JSONDecodeError, KeyError, ValueError):
        redis_client.delete(f"session:{session_token}")
        return None


def logout(session_token: str | None) -> None:
    """Invalidate a session."""
    if not session_token:
        return
    try:
        get_redis_client().delete(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        _memory_sessions.pop(session_token, None)


def verify_api_token(token: str | None) -> bool:
    """Check the automated-import shared secret.

    No configured token means automated imports are disabled.
    """
    expected = get_config().auth.api_token
    if not token or not expected:
        return False
    return secrets.compare_digest(token.encode(), expected.encode())


def require_auth(session: str | None = Cookie(default=None)) -> str:
    """Dependency: interactive session required.

    Returns:
        str: Username of the authenticated user

    Raises:
        HTTPException: 401 if not authenticated
    """
    if get_config().auth.auth_disabled:
        return DISABLED_AUTH_USERNAME

    session_data = validate_session(session)
    if not session_data:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return session_data["username"]


def get_import_caller(
    x_api_token: str | None = Header(default=None),
    session: str | None = Cookie(default=None),
) -> Caller:
    """Dependency: who is calling the import endpoint.

    A valid X-API-Token header makes an automated caller; a valid session
    cookie makes an interactive one.

    Raises:
        HTTPException: 401 if neither credential is valid
    """
    if x_api_token is not None:
        if verify_api_token(x_api_token):
            return Caller(kind=CallerKind.AUTOMATED, username=AUTOMATED_USERNAME)
        raise HTTPException(status_code=401, detail="Invalid API token")

    if get_config().auth.auth_disabled:
        return Caller(kind=CallerKind.INTERACTIVE, username=DISABLED_AUTH_USERNAME)

    session_data = validate_session(session)
    if not session_data:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return Caller(kind=CallerKind.INTERACTIVE, username=session_data["username"])
