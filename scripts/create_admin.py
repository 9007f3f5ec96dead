"""
Create (or re-activate) an admin account so someone can review consultations.

Run from project root:
  python scripts/create_admin.py --email admin@example.com --password 'Str0ngPass!'
  python scripts/create_admin.py --email admin@example.com --password 'Str0ngPass!' --reset-password

Admin accounts never come from a consultation; client accounts are only created by registration.
"""
import os
import sys
import argparse

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy.orm import Session

from clientgate.database import Base, SessionLocal, engine
from clientgate.errors import ValidationError
from clientgate.models.account import Account, AccountRole
from clientgate.services.auth import get_password_hash, validate_password_policy


def create_admin(db: Session, email: str, password: str, full_name: str | None = None, reset_password: bool = False) -> tuple[Account, bool]:
    """Returns (account, created)."""
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    validate_password_policy(password)

    account = db.query(Account).filter(Account.email == email).first()
    if account:
        if account.role != AccountRole.admin:
            raise ValidationError(f"{email} belongs to a client account; use another email for the admin.")
        account.is_active = True
        if reset_password:
            account.hashed_password = get_password_hash(password)
        if full_name:
            account.full_name = full_name
        db.commit()
        return account, False

    account = Account(
        email=email,
        hashed_password=get_password_hash(password),
        full_name=full_name,
        role=AccountRole.admin,
        is_active=True,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account, True


def main():
    parser = argparse.ArgumentParser(description="Create or re-activate an admin account")
    parser.add_argument("--email", required=True, help="Admin email")
    parser.add_argument("--password", required=True, help="Admin password")
    parser.add_argument("--full-name", default="Admin", help="Display name")
    parser.add_argument("--reset-password", action="store_true", help="Overwrite the password of an existing admin")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        account, created = create_admin(db, args.email, args.password, args.full_name, args.reset_password)
        print(f"{'Created' if created else 'Updated'} admin: {account.email}")
    except ValidationError as e:
        print(f"Error: {e.message}")
        return 1
    finally:
        db.close()

    print("  → Log in via POST /auth/login")
    return 0


if __name__ == "__main__":
    sys.exit(main())
