"""
Dependency wiring for the FastAPI app.

The Firebase clients are imported on first use so the in-memory backends
run without the Firebase SDK installed.
"""

from __future__ import annotations

import threading

from safetravel.config import get_settings
from safetravel.db import DbClient, InMemoryDbClient
from safetravel.identity import IdentityClient, InMemoryIdentityClient
from safetravel.notifications import LoggingResetCodeNotifier, ResetCodeNotifier

_db_client: DbClient | None = None
_identity_client: IdentityClient | None = None
_reset_notifier: ResetCodeNotifier | None = None

# Sync handlers run in a threadpool; first requests may race to build a client.
_clients_lock = threading.Lock()


def get_db_client() -> DbClient:
    """
    Return a singleton document store client shared by all requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    with _clients_lock:
        if _db_client:
            return _db_client
        settings = get_settings()
        if settings.use_in_memory_backends:
            _db_client = InMemoryDbClient()
        else:
            from safetravel.firebase import FirestoreDbClient, get_firebase_app

            _db_client = FirestoreDbClient(get_firebase_app(settings))
        return _db_client


def get_identity_client() -> IdentityClient:
    """
    Return a singleton identity provider client shared by all requests.
    """
    global _identity_client
    if _identity_client:
        return _identity_client

    with _clients_lock:
        if _identity_client:
            return _identity_client
        settings = get_settings()
        if settings.use_in_memory_backends:
            _identity_client = InMemoryIdentityClient()
        else:
            from safetravel.firebase import FirebaseIdentityClient, get_firebase_app

            _identity_client = FirebaseIdentityClient(
                app=get_firebase_app(settings),
                api_key=settings.firebase_api_key,
                sign_in_url=settings.identity_toolkit_url,
                timeout=settings.request_timeout_seconds,
            )
        return _identity_client


def get_reset_notifier() -> ResetCodeNotifier:
    global _reset_notifier
    if _reset_notifier:
        return _reset_notifier
    with _clients_lock:
        if _reset_notifier is None:
            _reset_notifier = LoggingResetCodeNotifier()
        return _reset_notifier
