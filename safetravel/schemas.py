"""
Pydantic schemas for the Safetravel API.

Field names follow the camelCase keys used by the mobile client and stored
in Firestore. Required fields are declared optional here and checked in the
route handlers so that a missing or blank value yields a 400 with a readable
message.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class SignupRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    surname: Optional[str] = None
    phone: Optional[str] = None
    originCountry: Optional[str] = None
    residenceCountry: Optional[str] = None
    birthdate: Optional[str] = None


class SignupResponse(BaseModel):
    message: str
    uid: str
    token: str


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(BaseModel):
    message: str
    token: str
    uid: str
    email: str


class UserProfileResponse(BaseModel):
    # Older profile documents hold whatever the client sent, numbers included.
    model_config = ConfigDict(extra="allow")

    uid: str
    email: Optional[Any] = None
    name: Optional[Any] = None
    surname: Optional[Any] = None
    phone: Optional[Any] = None
    originCountry: Optional[Any] = None
    residenceCountry: Optional[Any] = None
    birthdate: Optional[Any] = None
    createdAt: Optional[Any] = None


class TestimonyRequest(BaseModel):
    # Client-supplied author ids are dropped; the token decides the author.
    model_config = ConfigDict(extra="ignore")

    countryVisited: Optional[str] = None
    temoignage: Optional[str] = None
    villes: Optional[Union[str, list[str]]] = None
    securityRating: Optional[Union[int, float, str]] = None
    observedDiscrimination: Optional[str] = None
    contextDiscrimination: Optional[str] = None
    ethnie: Optional[str] = None
    nationalite: Optional[str] = None
    communaute: Optional[str] = None
    dateVoyage: Optional[str] = None
    recommande: Optional[str] = None
    anonyme: Optional[str] = None
    profil: Optional[list[str]] = None
    frequence: Optional[list[str]] = None


class TestimonyRecord(BaseModel):
    model_config = ConfigDict(extra="allow")

    uid: str
    countryVisited: str
    temoignage: str
    villes: Optional[Union[str, list[str]]] = None
    securityRating: Optional[Union[int, float, str]] = None
    observedDiscrimination: str = "Non"
    contextDiscrimination: Optional[str] = None
    ethnie: Optional[str] = None
    nationalite: Optional[str] = None
    communaute: Optional[str] = None
    dateVoyage: Optional[str] = None
    recommande: Optional[str] = None
    anonyme: str = "Non"
    profil: list[str] = Field(default_factory=list)
    frequence: list[str] = Field(default_factory=list)
    createdAt: datetime


class CreateTestimonyResponse(BaseModel):
    id: str
    message: str
    data: TestimonyRecord


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None
    code: Optional[Union[str, int]] = None
    newPassword: Optional[str] = None


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
