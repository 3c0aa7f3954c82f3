"""
Identity provider interface and an in-memory implementation.

The in-memory client keeps passwords in process memory and exists for
development and tests only. The Firebase client in ``safetravel.firebase``
leaves credentials entirely to the provider.
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol

MIN_PASSWORD_LENGTH = 6


class IdentityError(Exception):
    """Base class for identity provider failures."""


class EmailAlreadyExistsError(IdentityError):
    pass


class InvalidCredentialsError(IdentityError):
    pass


class InvalidTokenError(IdentityError):
    pass


class InvalidIdentityInputError(IdentityError):
    """The provider rejected an email or password as malformed."""


class IdentityProviderError(IdentityError):
    """Unexpected provider or transport failure."""


@dataclass
class SignInResult:
    uid: str
    id_token: str
    email: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


class IdentityClient(Protocol):
    """Operations the API needs from the identity provider."""

    def create_user(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> str:
        ...

    def create_custom_token(self, uid: str) -> str:
        ...

    def verify_id_token(self, token: str) -> dict:
        ...

    def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        ...

    def get_uid_by_email(self, email: str) -> Optional[str]:
        ...

    def update_password(self, uid: str, password: str) -> None:
        ...


@dataclass
class _InMemoryAccount:
    uid: str
    email: str
    password: str
    display_name: Optional[str] = None


@dataclass
class InMemoryIdentityClient:
    """Test double mimicking Firebase Authentication semantics."""

    accounts: dict = field(default_factory=dict)
    id_tokens: dict = field(default_factory=dict)
    custom_tokens: dict = field(default_factory=dict)

    def reset(self) -> None:
        """Clear all accounts and issued tokens (useful in tests)."""
        self.accounts.clear()
        self.id_tokens.clear()
        self.custom_tokens.clear()

    def _find(self, email: str) -> Optional[_InMemoryAccount]:
        normalized = email.strip().lower()
        for account in self.accounts.values():
            if account.email == normalized:
                return account
        return None

    def _check_password(self, password: str) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidIdentityInputError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long."
            )

    def create_user(
        self, email: str, password: str, display_name: Optional[str] = None
    ) -> str:
        if "@" not in email:
            raise InvalidIdentityInputError(f"Malformed email address: {email}")
        self._check_password(password)
        if self._find(email):
            raise EmailAlreadyExistsError(
                "The email address is already in use by another account."
            )
        uid = uuid.uuid4().hex[:28]
        self.accounts[uid] = _InMemoryAccount(
            uid=uid,
            email=email.strip().lower(),
            password=password,
            display_name=display_name,
        )
        return uid

    def create_custom_token(self, uid: str) -> str:
        token = f"custom-{secrets.token_urlsafe(24)}"
        self.custom_tokens[token] = uid
        return token

    def verify_id_token(self, token: str) -> dict:
        uid = self.id_tokens.get(token)
        if uid is None or uid not in self.accounts:
            raise InvalidTokenError("Invalid ID token")
        return {"uid": uid, "email": self.accounts[uid].email}

    def sign_in_with_password(self, email: str, password: str) -> SignInResult:
        account = self._find(email)
        if account is None:
            raise InvalidCredentialsError("EMAIL_NOT_FOUND")
        if not secrets.compare_digest(
            account.password.encode("utf-8"), password.encode("utf-8")
        ):
            raise InvalidCredentialsError("INVALID_PASSWORD")
        token = f"id-{secrets.token_urlsafe(24)}"
        self.id_tokens[token] = account.uid
        return SignInResult(
            uid=account.uid, id_token=token, email=account.email, expires_in=3600
        )

    def get_uid_by_email(self, email: str) -> Optional[str]:
        account = self._find(email)
        return account.uid if account else None

    def update_password(self, uid: str, password: str) -> None:
        account = self.accounts.get(uid)
        if account is None:
            raise IdentityProviderError(f"No user record found for uid {uid}")
        self._check_password(password)
        account.password = password
