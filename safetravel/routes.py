"""
HTTP routes for the Safetravel API.

Every handler validates its own input, talks to the identity provider and
the document store, and turns any failure into an ``ApiError``. Unexpected
exceptions are logged here and reported as a generic 500.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from safetravel.auth import AuthenticatedUser, get_current_user
from safetravel.config import Settings, get_settings
from safetravel.db import DbClient, PasswordResetRecord, utc_now
from safetravel.dependencies import (
    get_db_client,
    get_identity_client,
    get_reset_notifier,
)
from safetravel.errors import (
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from safetravel.identity import (
    EmailAlreadyExistsError,
    IdentityClient,
    InvalidCredentialsError,
    InvalidIdentityInputError,
)
from safetravel.notifications import ResetCodeNotifier
from safetravel.schemas import (
    CreateTestimonyResponse,
    ForgotPasswordRequest,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    SignupResponse,
    TestimonyRecord,
    TestimonyRequest,
    UserProfileResponse,
)
from safetravel.testimonies import build_testimony, select_testimonies

logger = logging.getLogger(__name__)

router = APIRouter()

PROFILE_FIELDS = ("surname", "phone", "originCountry", "residenceCountry", "birthdate")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _require(message: str, *values) -> None:
    if any(not value for value in values):
        raise BadRequestError(message)


def generate_reset_code() -> str:
    """Six-digit code, uniform over 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/signup", response_model=SignupResponse, status_code=201)
def signup(
    payload: SignupRequest,
    identity: IdentityClient = Depends(get_identity_client),
    db: DbClient = Depends(get_db_client),
):
    """
    Create the account with the identity provider, then the profile document.

    The two writes are independent: if the profile write fails the account
    is kept and GET /user reports 404 until a profile exists.
    """
    email = _clean(payload.email)
    name = _clean(payload.name)
    _require("Champs manquants : email, password et name sont requis", email, payload.password, name)

    surname = _clean(payload.surname)
    display_name = " ".join(part for part in (name, surname) if part)

    try:
        uid = identity.create_user(email, payload.password, display_name)
    except EmailAlreadyExistsError as e:
        logger.info("Signup rejected for %s: email already in use", email)
        raise ConflictError(str(e) or "Cette adresse email est déjà utilisée")
    except InvalidIdentityInputError as e:
        logger.info("Signup rejected for %s: %s", email, e)
        raise BadRequestError(str(e))
    except Exception:
        logger.exception("Signup failed creating account for %s", email)
        raise InternalError()

    profile = {"uid": uid, "email": email, "name": name}
    for key in PROFILE_FIELDS:
        profile[key] = _clean(getattr(payload, key))
    profile["createdAt"] = utc_now()

    try:
        db.save_user_profile(uid, profile)
    except Exception:
        logger.exception(
            "Signup created account %s for %s but the profile write failed", uid, email
        )
        raise InternalError()

    try:
        token = identity.create_custom_token(uid)
    except Exception:
        logger.exception("Signup failed minting a custom token for %s", uid)
        raise InternalError()

    return SignupResponse(message="Inscription réussie", uid=uid, token=token)


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    identity: IdentityClient = Depends(get_identity_client),
):
    email = _clean(payload.email)
    _require("Email et mot de passe requis", email, payload.password)

    try:
        result = identity.sign_in_with_password(email, payload.password)
    except InvalidCredentialsError as e:
        # Provider reasons (EMAIL_NOT_FOUND, INVALID_PASSWORD...) stay in the log.
        logger.info("Login failed for %s: %s", email, e)
        raise UnauthorizedError("Identifiants invalides")
    except Exception:
        logger.exception("Login failed for %s", email)
        raise InternalError()

    return LoginResponse(
        message="Connexion réussie",
        token=result.id_token,
        uid=result.uid,
        email=result.email,
    )


@router.get("/user", response_model=UserProfileResponse)
def get_user(
    user: AuthenticatedUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    try:
        profile = db.get_user_profile(user.uid)
    except Exception:
        logger.exception("Failed loading profile for %s", user.uid)
        raise InternalError()

    if profile is None:
        raise NotFoundError("Utilisateur non trouvé")
    return {**profile, "uid": user.uid}


@router.post("/testimonies", response_model=CreateTestimonyResponse, status_code=201)
def create_testimony(
    payload: TestimonyRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: DbClient = Depends(get_db_client),
):
    _require(
        "Le pays visité et le témoignage sont obligatoires",
        _clean(payload.countryVisited),
        _clean(payload.temoignage),
    )

    record = build_testimony(payload.model_dump(), uid=user.uid, created_at=utc_now())
    try:
        doc_id = db.add_testimony(record)
    except Exception:
        logger.exception("Failed saving testimony for %s", user.uid)
        raise InternalError()

    return CreateTestimonyResponse(
        id=doc_id,
        message="Témoignage enregistré",
        data=TestimonyRecord(**record),
    )


@router.get("/testimonies")
def list_testimonies(
    country: Optional[str] = Query(None, description="Exact country name, any case"),
    db: DbClient = Depends(get_db_client),
):
    try:
        return select_testimonies(db.list_testimonies(), country)
    except Exception:
        logger.exception("Failed listing testimonies (country=%r)", country)
        raise InternalError()


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    identity: IdentityClient = Depends(get_identity_client),
    db: DbClient = Depends(get_db_client),
    notifier: ResetCodeNotifier = Depends(get_reset_notifier),
    settings: Settings = Depends(get_settings),
):
    email = _clean(payload.email)
    _require("Email requis", email)

    try:
        uid = identity.get_uid_by_email(email)
    except InvalidIdentityInputError as e:
        raise BadRequestError(str(e))
    except Exception:
        logger.exception("Forgot-password lookup failed for %s", email)
        raise InternalError()
    if uid is None:
        raise NotFoundError("Aucun compte associé à cet email")

    reset = PasswordResetRecord.issue(
        code=generate_reset_code(),
        email=email,
        ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
    )
    try:
        db.save_password_reset(uid, reset)
        notifier.send_reset_code(email, reset.code)
    except Exception:
        logger.exception("Forgot-password failed storing or sending code for %s", uid)
        raise InternalError()

    return MessageResponse(message="Code de réinitialisation envoyé")


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest,
    identity: IdentityClient = Depends(get_identity_client),
    db: DbClient = Depends(get_db_client),
):
    """
    Check the pending code and change the password.

    The lookup and the final delete are not atomic; two concurrent resets
    for the same account may both pass the check.
    """
    email = _clean(payload.email)
    code = _clean(str(payload.code)) if payload.code is not None else None
    _require("Email, code et nouveau mot de passe requis", email, code, payload.newPassword)

    try:
        uid = identity.get_uid_by_email(email)
    except InvalidIdentityInputError as e:
        raise BadRequestError(str(e))
    except Exception:
        logger.exception("Reset-password lookup failed for %s", email)
        raise InternalError()
    if uid is None:
        raise NotFoundError("Aucun compte associé à cet email")

    try:
        reset = db.get_password_reset(uid)
    except Exception:
        logger.exception("Reset-password failed loading request for %s", uid)
        raise InternalError()
    if reset is None:
        raise NotFoundError("Aucune demande de réinitialisation en cours")

    if not secrets.compare_digest(reset.code.encode("utf-8"), code.encode("utf-8")):
        logger.info("Reset-password code mismatch for %s", uid)
        raise BadRequestError("Code invalide")
    if reset.is_expired():
        logger.info("Reset-password code expired for %s", uid)
        raise BadRequestError("Code expiré")

    try:
        identity.update_password(uid, payload.newPassword)
    except InvalidIdentityInputError as e:
        raise BadRequestError(str(e))
    except Exception:
        logger.exception("Reset-password failed updating password for %s", uid)
        raise InternalError()

    try:
        db.delete_password_reset(uid)
    except Exception:
        logger.exception("Password changed for %s but the reset request was not deleted", uid)
        raise InternalError()

    return MessageResponse(message="Mot de passe réinitialisé avec succès")
