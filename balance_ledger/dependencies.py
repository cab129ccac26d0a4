"""FastAPI dependency injection helpers."""

from __future__ import annotations

import threading
import time
from typing import Any

from fastapi import Depends, Header, Request

from balance_ledger.config import settings
from balance_ledger.services.notifier import BalanceNotifier
from balance_ledger.utils.errors import ForbiddenError, UnauthorizedError
from balance_ledger.utils.supabase_client import get_service_client, get_supabase_client
from supabase import Client

AUTH_TOKEN_CACHE_TTL_SECONDS = 15
AUTH_TOKEN_CACHE_MAX_ENTRIES = 1024


class _TokenCache:
    """Short-lived map of access token to Supabase user, oldest evicted first."""

    def __init__(self, ttl_seconds: float, max_entries: int) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, token: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            expires_at, user = entry
            if expires_at <= time.monotonic():
                del self._entries[token]
                return None
            return user

    def put(self, token: str, user: Any) -> None:
        with self._lock:
            while len(self._entries) >= self.max_entries:
                self._entries.pop(next(iter(self._entries)))
            self._entries[token] = (time.monotonic() + self.ttl_seconds, user)


_token_cache = _TokenCache(AUTH_TOKEN_CACHE_TTL_SECONDS, AUTH_TOKEN_CACHE_MAX_ENTRIES)


def get_current_user(authorization: str = Header(None)) -> Any:
    """Extract and validate a Supabase JWT from the Authorization header.

    Raises:
        UnauthorizedError: 401 if the header is missing, malformed, or
            the token cannot be validated.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing authorization header")

    token = authorization.split(" ", 1)[1]
    cached_user = _token_cache.get(token)
    if cached_user is not None:
        return cached_user

    supabase = get_supabase_client()

    try:
        response = supabase.auth.get_user(token)
        if not response or not response.user:
            raise UnauthorizedError("Invalid token")
        _token_cache.put(token, response.user)
        return response.user
    except UnauthorizedError:
        raise
    except Exception as exc:
        raise UnauthorizedError("Invalid or expired token") from exc


def get_current_user_id(user: Any) -> str:
    """Return the ledger owner key for a user: their normalized email."""
    raw_email = getattr(user, "email", None)
    if not isinstance(raw_email, str) or not raw_email.strip():
        raise UnauthorizedError("Authenticated user email is required")
    return raw_email.strip().lower()


def get_admin_user(user: Any = Depends(get_current_user)) -> Any:
    """Return the authenticated user when they are a ledger operator."""
    if get_current_user_id(user) not in settings.admin_email_set:
        raise ForbiddenError("Operator access required")
    return user


def get_db_client() -> Client:
    """Return the privileged Supabase client used by backend services."""
    return get_service_client()


def get_notifier(request: Request) -> BalanceNotifier:
    """Return the application-wide balance notifier."""
    return request.app.state.notifier
