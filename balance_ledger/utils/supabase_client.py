"""Supabase client factories for the ledger store."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

import httpx
from supabase.lib.client_options import SyncClientOptions

from balance_ledger.config import settings
from supabase import Client, create_client

ClientRole = Literal["anon", "service"]


def _http_client(timeout_seconds: int) -> httpx.Client:
    max_connections = max(10, settings.supabase_http_max_connections)
    keepalive = min(max_connections, settings.supabase_http_max_keepalive_connections)
    return httpx.Client(
        timeout=httpx.Timeout(timeout_seconds),
        limits=httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max(5, keepalive),
        ),
    )


@lru_cache(maxsize=2)
def _client_for(role: ClientRole) -> Client:
    timeout_seconds = max(1, settings.supabase_postgrest_timeout_seconds)
    key = settings.supabase_service_key if role == "service" else settings.supabase_anon_key
    options = SyncClientOptions(
        auto_refresh_token=False,
        persist_session=False,
        postgrest_client_timeout=timeout_seconds,
        storage_client_timeout=timeout_seconds,
        function_client_timeout=min(timeout_seconds, 30),
        httpx_client=_http_client(timeout_seconds),
    )
    return create_client(settings.supabase_url, key, options=options)


def get_supabase_client() -> Client:
    """Return the anon-key client used to validate user access tokens."""
    return _client_for("anon")


def get_service_client() -> Client:
    """Return the service-role client (bypasses RLS).

    Ledger tables are written only through this client: request handlers,
    scheduled accrual jobs and the operator CLI.
    """
    return _client_for("service")
