"""Signed, purpose-tagged claims (PyJWT): registration invites and access tokens.

Every token minted here carries its purpose inside the signed payload. Decoders for one
purpose reject tokens minted for any other, even though all of them share the signing key.
"""
import enum
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from pydantic import BaseModel
from sqlalchemy.orm import Session

from clientgate.config import get_settings
from clientgate.errors import (
    AlreadyUsedError,
    ExpiredTokenError,
    InvalidSignatureError,
    TokenMismatchError,
    WrongPurposeError,
)
from clientgate.models.consultation import ConsultationStatus
from clientgate.services import store


class TokenPurpose(str, enum.Enum):
    client_registration = "client_registration"
    access = "access"
    password_reset = "password_reset"


class RegistrationClaim(BaseModel):
    consultation_id: int
    email: str
    purpose: TokenPurpose = TokenPurpose.client_registration
    expires_at: datetime
    issued_at: datetime | None = None
    nonce: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "RegistrationClaim":
        if payload.get("purpose") != TokenPurpose.client_registration.value:
            raise WrongPurposeError(f"token purpose is {payload.get('purpose')!r}")
        try:
            consultation_id = int(payload["sub"])
            email = str(payload["email"])
        except (KeyError, TypeError, ValueError):
            raise TokenMismatchError("registration claim is missing its subject or email")
        iat = payload.get("iat")
        return cls(
            consultation_id=consultation_id,
            email=email,
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc) if iat is not None else None,
            nonce=payload.get("jti"),
        )


def encode_claim(
    purpose: TokenPurpose,
    subject: str | int,
    email: str,
    ttl: timedelta,
    **extra: Any,
) -> tuple[str, datetime]:
    """Sign a claim; returns (token, expires_at). exp has second precision, so expires_at does too."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expires_at = now + ttl
    if expires_at.microsecond:
        # Round up so the link never lives shorter than ttl
        expires_at = expires_at.replace(microsecond=0) + timedelta(seconds=1)
    # PyJWT expects "sub" to be a string
    payload = {
        "sub": str(subject),
        "email": email,
        "purpose": purpose.value,
        "iat": now,
        "exp": expires_at,
        # iat alone has one-second resolution; the nonce keeps same-second issues distinct
        "jti": secrets.token_urlsafe(16),
        **extra,
    }
    raw = jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    token = raw if isinstance(raw, str) else raw.decode("utf-8")
    return token, expires_at


def decode_claim(token: str) -> dict[str, Any]:
    """Verify signature and expiry; purpose is checked by the caller."""
    settings = get_settings()
    token = (token or "").strip()
    if not token:
        raise InvalidSignatureError("empty token")
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise ExpiredTokenError(str(e)) from e
    except jwt.PyJWTError as e:
        raise InvalidSignatureError(str(e)) from e


def issue_registration_token(consultation_id: int, email: str, ttl: timedelta) -> tuple[str, datetime]:
    """Mint the single-purpose invite that lets one consultation register one account."""
    if ttl.total_seconds() <= 0:
        raise ValueError("ttl must be positive")
    return encode_claim(TokenPurpose.client_registration, consultation_id, email, ttl)


def validate_registration_token(db: Session, token: str) -> RegistrationClaim:
    """Full validation of a presented invite. Read-only: never mutates the store.

    Order: signature, expiry, purpose, then the stored copy, which is authoritative.
    """
    token = (token or "").strip()
    claim = RegistrationClaim.from_payload(decode_claim(token))
    consultation = store.get_consultation(db, claim.consultation_id)
    if consultation is None:
        raise TokenMismatchError(f"consultation {claim.consultation_id} does not exist")
    if consultation.token_used:
        raise AlreadyUsedError(f"consultation {consultation.id} already registered")
    stored = consultation.registration_token or ""
    if not hmac.compare_digest(stored.encode("utf-8"), token.encode("utf-8")):
        raise TokenMismatchError(f"token is not the current invite for consultation {consultation.id}")
    if consultation.email != claim.email:
        raise TokenMismatchError(f"claim email does not match consultation {consultation.id}")
    if consultation.status != ConsultationStatus.approved:
        raise TokenMismatchError(f"consultation {consultation.id} is {consultation.status.value}, not approved")
    return claim
