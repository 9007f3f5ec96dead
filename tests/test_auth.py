from datetime import timedelta

import pytest

from clientgate.errors import ValidationError
from clientgate.services.auth import (
    authenticate,
    create_access_token,
    decode_access_token,
    get_password_hash,
    validate_password_policy,
    verify_password,
)
from clientgate.services.tokens import TokenPurpose, encode_claim, issue_registration_token


def test_hash_roundtrip():
    hashed = get_password_hash("Sup3rSecret!")

    assert hashed != "Sup3rSecret!"
    assert verify_password("Sup3rSecret!", hashed)
    assert not verify_password("sup3rsecret!", hashed)


def test_verify_against_garbage_hash_is_false():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_passwords_beyond_72_bytes_are_truncated_consistently():
    base = "x" * 72
    hashed = get_password_hash(base + "tail-one")
    assert verify_password(base + "tail-two", hashed)


@pytest.mark.parametrize("password", [None, "", "   ", "1234567"])
def test_password_policy_rejects(password):
    with pytest.raises(ValidationError):
        validate_password_policy(password)


def test_password_policy_follows_settings(settings):
    settings.password_min_length = 12
    with pytest.raises(ValidationError):
        validate_password_policy("elevenchars")
    assert validate_password_policy("twelve-chars") == "twelve-chars"


def test_access_token_roundtrip(admin):
    payload = decode_access_token(create_access_token(admin))

    assert payload["sub"] == str(admin.id)
    assert payload["role"] == "admin"
    assert payload["purpose"] == "access"


def test_registration_and_reset_tokens_are_not_access_tokens():
    invite, _ = issue_registration_token(1, "a@x.com", timedelta(hours=1))
    reset, _ = encode_claim(TokenPurpose.password_reset, 1, "a@x.com", timedelta(hours=1))

    assert decode_access_token(invite) is None
    assert decode_access_token(reset) is None
    assert decode_access_token("garbage") is None


def test_authenticate(db, admin):
    assert authenticate(db, " ADMIN@example.com ", "AdminPass123!").id == admin.id
    assert admin.last_login_at is not None
    assert authenticate(db, "admin@example.com", "nope") is None
    assert authenticate(db, "nobody@example.com", "AdminPass123!") is None


def test_inactive_accounts_cannot_authenticate(db, admin):
    admin.is_active = False
    db.commit()

    assert authenticate(db, "admin@example.com", "AdminPass123!") is None
