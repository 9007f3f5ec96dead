"""Auth service: credential hashing (bcrypt) and access tokens (JWT)."""
from datetime import datetime, timedelta, timezone

import bcrypt
from sqlalchemy.orm import Session

from clientgate.config import get_settings
from clientgate.errors import TokenError, ValidationError
from clientgate.models.account import Account
from clientgate.services.tokens import TokenPurpose, decode_claim, encode_claim


def _pwd_bytes(password: str, max_len: int = 72) -> bytes:
    return password.encode("utf-8")[:max_len]


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(_pwd_bytes(plain), hashed.encode("utf-8"))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    rounds = get_settings().bcrypt_rounds
    return bcrypt.hashpw(_pwd_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def validate_password_policy(password: str | None) -> str:
    min_len = get_settings().password_min_length
    if not password or not password.strip():
        raise ValidationError("Password is required.")
    if len(password) < min_len:
        raise ValidationError(f"Password must be at least {min_len} characters long.")
    return password


def create_access_token(account: Account) -> str:
    ttl = timedelta(minutes=get_settings().jwt_access_token_expire_minutes)
    token, _ = encode_claim(TokenPurpose.access, account.id, account.email, ttl, role=account.role.value)
    return token


def decode_access_token(token: str) -> dict | None:
    """Decode an access token; None for anything invalid, expired or minted for another purpose."""
    try:
        payload = decode_claim(token)
    except TokenError:
        return None
    if payload.get("purpose") != TokenPurpose.access.value:
        return None
    return payload


def authenticate(db: Session, email: str, password: str) -> Account | None:
    email = (email or "").strip().lower()
    account = db.query(Account).filter(Account.email == email).first()
    if not account or not account.is_active or not verify_password(password, account.hashed_password):
        return None
    account.last_login_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(account)
    return account
