import importlib.util
from pathlib import Path

import pytest

from clientgate.errors import ValidationError
from clientgate.models.account import Account, AccountRole
from clientgate.services.auth import authenticate

_path = Path(__file__).resolve().parent.parent / "scripts" / "create_admin.py"
_spec = importlib.util.spec_from_file_location("create_admin", _path)
create_admin_script = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(create_admin_script)


def test_creates_admin(db):
    account, created = create_admin_script.create_admin(db, " Boss@Example.com ", "Str0ngPass!", "Boss")

    assert created is True
    assert account.email == "boss@example.com"
    assert account.role == AccountRole.admin
    assert authenticate(db, "boss@example.com", "Str0ngPass!") is not None


def test_existing_admin_is_reactivated_and_optionally_reset(db, admin):
    admin.is_active = False
    db.commit()

    _, created = create_admin_script.create_admin(db, "admin@example.com", "Different1!")
    assert created is False
    assert authenticate(db, "admin@example.com", "AdminPass123!") is not None

    create_admin_script.create_admin(db, "admin@example.com", "Different1!", reset_password=True)
    assert authenticate(db, "admin@example.com", "Different1!") is not None
    assert db.query(Account).count() == 1


def test_client_email_cannot_become_admin(db):
    db.add(Account(email="client@example.com", hashed_password="x", role=AccountRole.client))
    db.commit()

    with pytest.raises(ValidationError):
        create_admin_script.create_admin(db, "client@example.com", "Str0ngPass!")


@pytest.mark.parametrize("email, password", [("", "Str0ngPass!"), ("no-at-sign", "Str0ngPass!"), ("x@example.com", "short")])
def test_rejects_bad_input(db, email, password):
    with pytest.raises(ValidationError):
        create_admin_script.create_admin(db, email, password)
