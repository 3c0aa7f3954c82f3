"""
Document store interface and an in-memory test implementation.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Protocol

USERS_COLLECTION = "users"
TESTIMONIES_COLLECTION = "testimonies"
PASSWORD_RESETS_COLLECTION = "password_resets"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DbClient(Protocol):
    """Interface for document store access."""

    def save_user_profile(self, uid: str, profile: dict) -> None:
        ...

    def get_user_profile(self, uid: str) -> Optional[dict]:
        ...

    def add_testimony(self, testimony: dict) -> str:
        ...

    def list_testimonies(self) -> list[tuple[str, dict]]:
        ...

    def save_password_reset(self, uid: str, reset: "PasswordResetRecord") -> None:
        ...

    def get_password_reset(self, uid: str) -> Optional["PasswordResetRecord"]:
        ...

    def delete_password_reset(self, uid: str) -> None:
        ...


@dataclass
class PasswordResetRecord:
    code: str
    email: str
    created_at: datetime
    expires_at: datetime

    @classmethod
    def issue(
        cls, code: str, email: str, ttl: timedelta, now: Optional[datetime] = None
    ) -> "PasswordResetRecord":
        created_at = now or utc_now()
        return cls(
            code=code, email=email, created_at=created_at, expires_at=created_at + ttl
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= _as_aware(self.expires_at)

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "email": self.email,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PasswordResetRecord":
        return cls(
            code=str(data["code"]),
            email=data.get("email", ""),
            created_at=_as_aware(data["createdAt"]),
            expires_at=_as_aware(data["expiresAt"]),
        )


def _as_aware(value: datetime) -> datetime:
    # Firestore returns aware datetimes; naive values are assumed UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class InMemoryDbClient:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.users: Dict[str, dict] = {}
        self.testimonies: Dict[str, dict] = {}
        self.password_resets: Dict[str, dict] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.users.clear()
        self.testimonies.clear()
        self.password_resets.clear()

    def save_user_profile(self, uid: str, profile: dict) -> None:
        self.users[uid] = copy.deepcopy(profile)

    def get_user_profile(self, uid: str) -> Optional[dict]:
        profile = self.users.get(uid)
        return copy.deepcopy(profile) if profile is not None else None

    def add_testimony(self, testimony: dict) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.testimonies[doc_id] = copy.deepcopy(testimony)
        return doc_id

    def list_testimonies(self) -> list[tuple[str, dict]]:
        return [
            (doc_id, copy.deepcopy(data)) for doc_id, data in self.testimonies.items()
        ]

    def save_password_reset(self, uid: str, reset: PasswordResetRecord) -> None:
        self.password_resets[uid] = reset.as_dict()

    def get_password_reset(self, uid: str) -> Optional[PasswordResetRecord]:
        data = self.password_resets.get(uid)
        return PasswordResetRecord.from_dict(data) if data else None

    def delete_password_reset(self, uid: str) -> None:
        self.password_resets.pop(uid, None)
