"""FastAPI dependency that authenticates requests with Firebase ID tokens."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from safetravel.dependencies import get_identity_client
from safetravel.errors import InternalError, UnauthorizedError
from safetravel.identity import IdentityClient, InvalidTokenError

logger = logging.getLogger(__name__)

# auto_error=False so a missing header goes through our own 401 response.
security = HTTPBearer(auto_error=False)

INVALID_TOKEN_MESSAGE = "Invalid or missing token"


@dataclass
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: IdentityClient = Depends(get_identity_client),
) -> AuthenticatedUser:
    """Resolve the bearer token to a verified identity.

    Missing and invalid tokens get the same response so callers cannot tell
    them apart.
    """
    if not credentials or not credentials.credentials:
        raise UnauthorizedError(INVALID_TOKEN_MESSAGE)

    try:
        claims = identity.verify_id_token(credentials.credentials)
    except InvalidTokenError as e:
        logger.info("Rejected bearer token: %s", e)
        raise UnauthorizedError(INVALID_TOKEN_MESSAGE)
    except Exception:
        logger.exception("Token verification failed unexpectedly")
        raise InternalError()

    uid = claims.get("uid") or claims.get("sub")
    if not uid:
        raise UnauthorizedError(INVALID_TOKEN_MESSAGE)
    return AuthenticatedUser(uid=uid, email=claims.get("email"), claims=claims)
