"""Races against a real file-backed database, one session per thread."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from clientgate.errors import AlreadyUsedError
from clientgate.models.account import Account
from clientgate.models.consultation import ConsultationRequest, ConsultationStatus
from clientgate.services import lifecycle
from clientgate.services.tokens import validate_registration_token
from tests.conftest import make_intake

PASSWORD = "Sup3rSecret!"


@pytest.mark.parametrize("contenders", [2, 8])
def test_token_is_consumed_exactly_once(file_session_factory, contenders):
    setup = file_session_factory()
    consultation = lifecycle.submit(setup, make_intake())
    consultation = lifecycle.approve(setup, consultation.id)
    consultation_id, token = consultation.id, consultation.registration_token
    setup.close()

    barrier = threading.Barrier(contenders)

    def attempt(_):
        session = file_session_factory()
        try:
            barrier.wait()
            account = lifecycle.complete_registration(session, token, PASSWORD)
            return ("ok", account.id)
        except AlreadyUsedError:
            return ("already_used", None)
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=contenders) as pool:
        outcomes = list(pool.map(attempt, range(contenders)))

    winners = [account_id for outcome, account_id in outcomes if outcome == "ok"]
    assert len(winners) == 1
    assert sum(1 for outcome, _ in outcomes if outcome == "already_used") == contenders - 1

    check = file_session_factory()
    try:
        assert check.query(Account).count() == 1
        stored = check.get(ConsultationRequest, consultation_id)
        assert stored.token_used is True
        assert stored.status == ConsultationStatus.registered
        assert stored.registered_user_id == winners[0]
    finally:
        check.close()


def test_concurrent_approvals_issue_distinct_tokens(file_session_factory):
    count = 6
    setup = file_session_factory()
    ids = [lifecycle.submit(setup, make_intake(email=f"race{i}@example.com")).id for i in range(count)]
    setup.close()

    barrier = threading.Barrier(count)

    def approve(consultation_id):
        session = file_session_factory()
        try:
            barrier.wait()
            return lifecycle.approve(session, consultation_id).registration_token
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=count) as pool:
        tokens = list(pool.map(approve, ids))

    assert len(set(tokens)) == count
    check = file_session_factory()
    try:
        for consultation_id, token in zip(ids, tokens):
            assert validate_registration_token(check, token).consultation_id == consultation_id
    finally:
        check.close()
