"""Registration token issuance and validation."""
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from clientgate.errors import (
    AlreadyUsedError,
    ExpiredTokenError,
    InvalidSignatureError,
    TokenMismatchError,
    WrongPurposeError,
)
from clientgate.models.consultation import ConsultationRequest, ConsultationStatus
from clientgate.services import lifecycle
from clientgate.services.auth import create_access_token
from clientgate.services.tokens import (
    TokenPurpose,
    decode_claim,
    encode_claim,
    issue_registration_token,
    validate_registration_token,
)
from tests.conftest import make_intake


def _approved(db, **intake_overrides) -> ConsultationRequest:
    consultation = lifecycle.submit(db, make_intake(**intake_overrides))
    return lifecycle.approve(db, consultation.id, "Strong candidate")


def test_issued_claim_carries_binding_fields():
    token, expires_at = issue_registration_token(42, "a@x.com", timedelta(days=7))

    payload = decode_claim(token)
    assert payload["sub"] == "42"
    assert payload["email"] == "a@x.com"
    assert payload["purpose"] == "client_registration"
    assert payload["exp"] == int(expires_at.timestamp())
    assert "iat" in payload and payload["jti"]


@pytest.mark.parametrize("ttl", [timedelta(seconds=1), timedelta(milliseconds=1500), timedelta(hours=1)])
def test_expiry_is_never_shorter_than_ttl(ttl):
    for _ in range(20):
        before = datetime.now(timezone.utc)
        _, expires_at = encode_claim(TokenPurpose.client_registration, 1, "a@x.com", ttl)
        assert expires_at.microsecond == 0
        assert ttl <= expires_at - before < ttl + timedelta(seconds=1, milliseconds=100)


def test_identical_inputs_in_same_second_give_distinct_tokens():
    tokens = {issue_registration_token(7, "a@x.com", timedelta(days=7))[0] for _ in range(25)}
    assert len(tokens) == 25


@pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-1)])
def test_issuer_rejects_non_positive_ttl(ttl):
    with pytest.raises(ValueError):
        issue_registration_token(1, "a@x.com", ttl)


@pytest.mark.parametrize("count", [2, 5, 10])
def test_tokens_for_distinct_consultations_are_pairwise_distinct(db, count):
    approved = [_approved(db, email=f"prospect{i}@example.com") for i in range(count)]

    tokens = [c.registration_token for c in approved]
    assert len(set(tokens)) == count
    for consultation in approved:
        claim = validate_registration_token(db, consultation.registration_token)
        assert claim.consultation_id == consultation.id
        assert claim.email == consultation.email


def test_validate_accepts_current_invite(db):
    consultation = _approved(db)

    claim = validate_registration_token(db, consultation.registration_token)

    assert claim.consultation_id == consultation.id
    assert claim.purpose == TokenPurpose.client_registration
    assert claim.nonce


@pytest.mark.parametrize("garbage", ["", "   ", "not-a-jwt", "a.b.c"])
def test_malformed_tokens_fail_signature_check(db, garbage):
    with pytest.raises(InvalidSignatureError):
        validate_registration_token(db, garbage)


def test_tampered_payload_fails_signature_check(db):
    consultation = _approved(db)
    header, payload, signature = consultation.registration_token.split(".")
    forged = jwt.encode(
        {"sub": str(consultation.id), "email": "attacker@example.com", "purpose": "client_registration", "exp": 9999999999},
        "some-other-secret",
        algorithm="HS256",
    )
    tampered = ".".join([header, forged.split(".")[1], signature])

    with pytest.raises(InvalidSignatureError):
        validate_registration_token(db, tampered)
    with pytest.raises(InvalidSignatureError):
        validate_registration_token(db, forged)


def test_expired_token_is_rejected_even_if_stored_and_unused(db):
    consultation = lifecycle.submit(db, make_intake())
    token, expires_at = encode_claim(
        TokenPurpose.client_registration, consultation.id, consultation.email, timedelta(seconds=-5)
    )
    consultation.status = ConsultationStatus.approved
    consultation.registration_token = token
    consultation.token_expires_at = expires_at
    db.commit()

    with pytest.raises(ExpiredTokenError):
        validate_registration_token(db, token)


@pytest.mark.parametrize("purpose", [TokenPurpose.access, TokenPurpose.password_reset])
def test_well_signed_token_for_other_purpose_is_rejected(db, purpose):
    consultation = _approved(db)
    other, _ = encode_claim(purpose, consultation.id, consultation.email, timedelta(hours=1))

    with pytest.raises(WrongPurposeError):
        validate_registration_token(db, other)


def test_token_without_purpose_is_rejected(db):
    consultation = _approved(db)
    bare = jwt.encode(
        {"sub": str(consultation.id), "email": consultation.email, "exp": 9999999999},
        "test-secret-key-for-testing-only",
        algorithm="HS256",
    )

    with pytest.raises(WrongPurposeError):
        validate_registration_token(db, bare)


def test_access_token_of_real_account_is_not_a_registration_token(db, admin):
    with pytest.raises(WrongPurposeError):
        validate_registration_token(db, create_access_token(admin))


def test_unknown_consultation_is_a_mismatch(db):
    token, _ = issue_registration_token(999_999, "ghost@example.com", timedelta(days=1))

    with pytest.raises(TokenMismatchError):
        validate_registration_token(db, token)


def test_validly_signed_token_not_matching_stored_copy_is_rejected(db):
    consultation = _approved(db)
    # Same consultation, same email, same key - but not the token the store handed out
    rogue, _ = issue_registration_token(consultation.id, consultation.email, timedelta(days=7))

    with pytest.raises(TokenMismatchError):
        validate_registration_token(db, rogue)


def test_used_token_is_rejected(db):
    consultation = _approved(db)
    lifecycle.complete_registration(db, consultation.registration_token, "Sup3rSecret!")

    with pytest.raises(AlreadyUsedError):
        validate_registration_token(db, consultation.registration_token)


def test_validation_never_mutates_the_record(db):
    consultation = _approved(db)
    before = (consultation.status, consultation.token_used, consultation.registration_token, consultation.version)

    validate_registration_token(db, consultation.registration_token)
    with pytest.raises(WrongPurposeError):
        validate_registration_token(db, encode_claim(TokenPurpose.access, consultation.id, consultation.email, timedelta(hours=1))[0])
    db.expire_all()

    refreshed = db.get(ConsultationRequest, consultation.id)
    assert (refreshed.status, refreshed.token_used, refreshed.registration_token, refreshed.version) == before
