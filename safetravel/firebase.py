"""
Firebase-backed identity and document store clients.

The Firebase app handle is process-wide: it is created lazily on first use
and reused afterwards, so several requests (or a warm serverless instance
importing this module again) never initialise Firebase a second time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import firebase_admin
import requests
from firebase_admin import auth, credentials, firestore
from firebase_admin import exceptions as firebase_exceptions

from safetravel.config import Settings, get_settings
from safetravel.db import (
    PASSWORD_RESETS_COLLECTION,
    TESTIMONIES_COLLECTION,
    USERS_COLLECTION,
    PasswordResetRecord,
)
from safetravel.identity import (
    EmailAlreadyExistsError,
    IdentityProviderError,
    InvalidCredentialsError,
    InvalidIdentityInputError,
    InvalidTokenError,
    SignInResult,
)

logger = logging.getLogger(__name__)

_app_lock = threading.Lock()


def _build_credential(settings: Settings) -> credentials.Base:
    if settings.has_service_account:
        return credentials.Certificate(
            {
                "type": "service_account",
                "project_id": settings.firebase_project_id,
                "client_email": settings.firebase_client_email,
                "private_key": settings.firebase_private_key_pem,
                "token_uri": "https://oauth2.googleapis.com/token",
            }
        )
    # Falls back to GOOGLE_APPLICATION_CREDENTIALS or the metadata server.
    return credentials.ApplicationDefault()


def get_firebase_app(settings: Settings | None = None) -> firebase_admin.App:
    """Return the default Firebase app, initialising it exactly once."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    with _app_lock:
        try:
            return firebase_admin.get_app()
        except ValueError:
            settings = settings or get_settings()
            options = {}
            if settings.firebase_project_id:
                options["projectId"] = settings.firebase_project_id
            app = firebase_admin.initialize_app(
                _build_credential(settings), options or None
            )
            logger.info(
                "Initialized Firebase app for project %s",
                settings.firebase_project_id or "<default>",
            )
            return app


@dataclass
class FirebaseIdentityClient:
    """
    Firebase Authentication via the Admin SDK, plus the Identity Toolkit REST
    endpoint for email/password sign-in (the Admin SDK cannot check passwords).
    """

    app: firebase_admin.App
    api_key: Optional[str]
    sign_in_url: str
    timeout: float = 30.0

    def create_user(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> str:
        try:
            record = auth.create_user(
                email=email,
                password=password,
                display_name=display_name,
                app=self.app,
            )
        except auth.EmailAlreadyExistsError as e:
            raise EmailAlreadyExistsError(str(e)) from e
        except ValueError as e:
            # The SDK validates email and password locally before the call.
            raise InvalidIdentityInputError(str(e)) from e
        except firebase_exceptions.InvalidArgumentError as e:
            raise InvalidIdentityInputError(str(e)) from e
        except firebase_exceptions.FirebaseError as e:
            raise IdentityProviderError(str(e)) from e
        return record.uid

    def create_custom_token(self, uid: str) -> str:
        try:
            token = auth.create_custom_token(uid, app=self.app)
        except (auth.TokenSignError, firebase_exceptions.FirebaseError) as e:
            raise IdentityProviderError(str(e)) from e
        if isinstance(token, bytes):
            return token.decode("utf-8")
        return token

    def verify_id_token(self, token: str) -> dict:
        try:
            return auth.verify_id_token(token, app=self.app)
        except (
            auth.InvalidIdTokenError,
            auth.CertificateFetchError,
            auth.UserDisabledError,
            ValueError,
        ) as e:
            raise InvalidTokenError(str(e)) from e

    def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        if not self.api_key:
            raise IdentityProviderError("FIREBASE_API_KEY is not configured")
        try:
            response = requests.post(
                self.sign_in_url,
                params={"key": self.api_key},
                json={"email": email, "password": password, "returnSecureToken": True},
                timeout=self.timeout,
            )
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise IdentityProviderError(f"Sign-in request failed: {e}") from e

        if "error" in data:
            error = data["error"] or {}
            message = error.get("message", "UNKNOWN") if isinstance(error, dict) else str(error)
            if response.status_code >= 500:
                raise IdentityProviderError(message)
            raise InvalidCredentialsError(message)

        try:
            expires_in = int(data["expiresIn"]) if data.get("expiresIn") else None
            return SignInResult(
                uid=data["localId"],
                id_token=data["idToken"],
                email=data.get("email", email),
                refresh_token=data.get("refreshToken"),
                expires_in=expires_in,
            )
        except (KeyError, ValueError) as e:
            raise IdentityProviderError(f"Unexpected sign-in response: {e}") from e

    def get_uid_by_email(self, email: str) -> Optional[str]:
        try:
            return auth.get_user_by_email(email, app=self.app).uid
        except auth.UserNotFoundError:
            return None
        except ValueError as e:
            raise InvalidIdentityInputError(str(e)) from e
        except firebase_exceptions.FirebaseError as e:
            raise IdentityProviderError(str(e)) from e

    def update_password(self, uid: str, password: str) -> None:
        try:
            auth.update_user(uid, password=password, app=self.app)
        except ValueError as e:
            raise InvalidIdentityInputError(str(e)) from e
        except firebase_exceptions.InvalidArgumentError as e:
            raise InvalidIdentityInputError(str(e)) from e
        except firebase_exceptions.FirebaseError as e:
            raise IdentityProviderError(str(e)) from e


class FirestoreDbClient:
    """
    Firestore-backed implementation. One document per user, testimony and
    pending password reset.
    """

    def __init__(self, app: firebase_admin.App, client: Any = None):
        self.db = client or firestore.client(app)

    def save_user_profile(self, uid: str, profile: dict) -> None:
        self.db.collection(USERS_COLLECTION).document(uid).set(profile)

    def get_user_profile(self, uid: str) -> Optional[dict]:
        snapshot = self.db.collection(USERS_COLLECTION).document(uid).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    def add_testimony(self, testimony: dict) -> str:
        _, doc_ref = self.db.collection(TESTIMONIES_COLLECTION).add(testimony)
        return doc_ref.id

    def list_testimonies(self) -> list[tuple[str, dict]]:
        return [
            (snapshot.id, snapshot.to_dict() or {})
            for snapshot in self.db.collection(TESTIMONIES_COLLECTION).stream()
        ]

    def save_password_reset(self, uid: str, reset: PasswordResetRecord) -> None:
        self.db.collection(PASSWORD_RESETS_COLLECTION).document(uid).set(
            reset.as_dict()
        )

    def get_password_reset(self, uid: str) -> Optional[PasswordResetRecord]:
        snapshot = self.db.collection(PASSWORD_RESETS_COLLECTION).document(uid).get()
        if not snapshot.exists:
            return None
        return PasswordResetRecord.from_dict(snapshot.to_dict())

    def delete_password_reset(self, uid: str) -> None:
        self.db.collection(PASSWORD_RESETS_COLLECTION).document(uid).delete()
