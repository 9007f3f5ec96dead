"""Client provisioner: turns a validated registration claim into an Account row."""
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clientgate.errors import DuplicateAccountError
from clientgate.models.account import Account, AccountRole
from clientgate.services.auth import get_password_hash
from clientgate.services.tokens import RegistrationClaim


def email_taken(db: Session, email: str) -> bool:
    return db.query(Account.id).filter(Account.email == email).first() is not None


def provision(
    db: Session,
    claim: RegistrationClaim,
    raw_credential: str,
    full_name: str | None = None,
) -> Account:
    """Create the client account bound to claim.email.

    Flushes inside the caller's transaction; the row is durable once the caller commits.
    The raw credential only ever reaches bcrypt.
    """
    if email_taken(db, claim.email):
        raise DuplicateAccountError(f"An account already exists for {claim.email}")
    account = Account(
        email=claim.email,
        hashed_password=get_password_hash(raw_credential),
        full_name=full_name,
        role=AccountRole.client,
        is_active=True,
        source_consultation_id=claim.consultation_id,
    )
    db.add(account)
    try:
        db.flush()
    except IntegrityError as e:
        # Lost a race on the UNIQUE(email) index; the caller rolls the whole unit back.
        raise DuplicateAccountError(f"An account already exists for {claim.email}") from e
    return account
