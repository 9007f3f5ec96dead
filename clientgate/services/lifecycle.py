"""Lifecycle coordinator: consultation state machine and prospect -> client conversion.

Each operation is one unit of work: status, token fields, account row and audit entry are
committed together or not at all. Notifications go out only after the commit.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clientgate.config import get_settings
from clientgate.database import store_errors
from clientgate.errors import (
    AlreadyUsedError,
    InvalidStateError,
    TokenError,
    TokenMismatchError,
    ValidationError,
)
from clientgate.logger import log_event, token_fingerprint
from clientgate.models.account import Account
from clientgate.models.consultation import ConsultationRequest, ConsultationStatus
from clientgate.schemas.consultation import ConsultationIntake
from clientgate.services import store
from clientgate.services.audit_log import (
    CATEGORY_ACCOUNT_CREATED,
    CATEGORY_FAILED_ATTEMPT,
    CATEGORY_STATUS_CHANGE,
    create_log,
)
from clientgate.services.auth import validate_password_policy
from clientgate.services.notifications import (
    CLIENT_REGISTERED,
    CONSULTATION_APPROVED,
    INVITE_REISSUED,
    NotificationDispatcher,
    NotificationEvent,
    emit,
    registration_url,
)
from clientgate.services.provisioning import provision
from clientgate.services.tokens import RegistrationClaim, issue_registration_token, validate_registration_token

S = ConsultationStatus

ALLOWED_TRANSITIONS: dict[ConsultationStatus, frozenset[ConsultationStatus]] = {
    S.pending: frozenset({S.under_review, S.approved, S.rejected, S.cancelled}),
    S.under_review: frozenset({S.approved, S.rejected, S.cancelled}),
    S.approved: frozenset({S.registered}),
    S.registered: frozenset({S.scheduled}),
    S.scheduled: frozenset({S.completed}),
    S.rejected: frozenset(),
    S.cancelled: frozenset(),
    S.completed: frozenset(),
}

# Timestamp column stamped when a record enters each status
_STAMP_FOR_STATUS = {
    S.under_review: "reviewed_at",
    S.approved: "approved_at",
    S.rejected: "rejected_at",
    S.cancelled: "cancelled_at",
    S.completed: "completed_at",
}


@dataclass
class Actor:
    """Who triggered an operation, for the audit trail."""
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def can_transition(current: ConsultationStatus, target: ConsultationStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(consultation: ConsultationRequest, target: ConsultationStatus, action: str) -> None:
    if not can_transition(consultation.status, target):
        raise InvalidStateError(
            f"Cannot {action} consultation {consultation.id}: status is {consultation.status.value}"
        )


@contextmanager
def _transaction(db: Session, operation: str):
    with store_errors(db, operation):
        try:
            yield
            db.commit()
        except Exception:
            db.rollback()
            raise


def _audit(db: Session, category: str, title: str, message: str, actor: Actor | None, **kwargs: Any) -> None:
    actor = actor or Actor()
    create_log(
        db,
        category,
        title,
        message,
        actor_email=actor.email,
        ip_address=actor.ip_address,
        user_agent=actor.user_agent,
        **kwargs,
    )


def _apply_transition(
    db: Session,
    consultation: ConsultationRequest,
    target: ConsultationStatus,
    action: str,
    actor: Actor | None,
    admin_notes: str | None = None,
    meta: dict[str, Any] | None = None,
) -> None:
    ensure_transition(consultation, target, action)
    old = consultation.status
    store.set_status(consultation, target)
    if admin_notes is not None:
        consultation.admin_notes = admin_notes
    stamp = _STAMP_FOR_STATUS.get(target)
    if stamp:
        setattr(consultation, stamp, _utcnow())
    _audit(
        db,
        CATEGORY_STATUS_CHANGE,
        f"Consultation {action}",
        f"Consultation {consultation.id} moved from {old.value} to {target.value}.",
        actor,
        consultation_id=consultation.id,
        meta={"old_status": old, "new_status": target, **(meta or {})},
    )
    log_event("lifecycle", action, consultation_id=consultation.id, old_status=old.value, new_status=target.value)


def _record_token_failure(db: Session, error: TokenError, token: str | None, operation: str, actor: Actor | None) -> None:
    """Full detail server-side; the caller only ever sees error.public_message."""
    log_event(
        "tokens",
        "rejected",
        logging.WARNING,
        operation=operation,
        reason=error.reason,
        detail=error.message,
        token=token_fingerprint(token),
    )
    try:
        _audit(
            db,
            CATEGORY_FAILED_ATTEMPT,
            "Registration link rejected",
            f"{operation}: {error.reason} ({error.message})",
            actor,
            meta={"reason": error.reason, "operation": operation, "token": token_fingerprint(token)},
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log_event("audit", "write_failed", logging.ERROR, operation=operation, error=type(e).__name__)


def _invite_ttl(ttl: timedelta | None) -> timedelta:
    if ttl is None:
        return timedelta(hours=get_settings().registration_token_ttl_hours)
    if ttl.total_seconds() <= 0:
        raise ValidationError("Invite ttl must be positive.")
    return ttl


def _reload(db: Session, instance: Any, operation: str) -> None:
    # Runs after commit: the change is durable even if this read fails
    with store_errors(db, operation):
        db.refresh(instance)


def _invite_event(name: str, consultation: ConsultationRequest) -> NotificationEvent:
    return NotificationEvent(
        name=name,
        consultation_id=consultation.id,
        email=consultation.email,
        full_name=consultation.full_name,
        extra={
            "registration_url": registration_url(consultation.registration_token),
            "expires_at": consultation.token_expires_at.isoformat() if consultation.token_expires_at else None,
        },
    )


# ---------------------------------------------------------------------------
# Intake and admin review
# ---------------------------------------------------------------------------

def submit(db: Session, intake: ConsultationIntake | dict[str, Any], actor: Actor | None = None) -> ConsultationRequest:
    if not isinstance(intake, ConsultationIntake):
        try:
            intake = ConsultationIntake.model_validate(intake)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(p) for p in first.get("loc", ())) or "intake"
            raise ValidationError(f"{field}: {first.get('msg', 'invalid value')}") from e
    with _transaction(db, "submit"):
        consultation = store.create_consultation(db, intake)
        _audit(
            db,
            CATEGORY_STATUS_CHANGE,
            "Consultation submitted",
            f"Consultation {consultation.id} received from {intake.email}.",
            actor,
            consultation_id=consultation.id,
            meta={"new_status": ConsultationStatus.pending},
        )
    _reload(db, consultation, "submit")
    log_event("lifecycle", "submit", consultation_id=consultation.id)
    return consultation


def get_consultation(db: Session, consultation_id: int) -> ConsultationRequest:
    with store_errors(db, "get_consultation"):
        return store.require_consultation(db, consultation_id)


def list_consultations(
    db: Session,
    status: ConsultationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ConsultationRequest]:
    with store_errors(db, "list_consultations"):
        return store.list_consultations(db, status=status, limit=limit, offset=offset)


def mark_under_review(db: Session, consultation_id: int, admin_notes: str | None = None, actor: Actor | None = None) -> ConsultationRequest:
    with _transaction(db, "mark_under_review"):
        consultation = store.require_consultation(db, consultation_id)
        _apply_transition(db, consultation, S.under_review, "review", actor, admin_notes)
    _reload(db, consultation, "mark_under_review")
    return consultation


def approve(
    db: Session,
    consultation_id: int,
    admin_notes: str | None = None,
    ttl: timedelta | None = None,
    actor: Actor | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> ConsultationRequest:
    """Approve and invite. Retrying an approval that already happened (same or no notes) is a no-op."""
    ttl = _invite_ttl(ttl)
    issued = False
    with _transaction(db, "approve"):
        consultation = store.require_consultation(db, consultation_id)
        already_done = consultation.status == S.approved and admin_notes in (None, consultation.admin_notes)
        if not already_done:
            ensure_transition(consultation, S.approved, "approve")
            token, expires_at = issue_registration_token(consultation.id, consultation.email, ttl)
            consultation.registration_token = token
            consultation.token_expires_at = expires_at
            consultation.token_used = False
            _apply_transition(
                db,
                consultation,
                S.approved,
                "approve",
                actor,
                admin_notes,
                meta={"token_expires_at": expires_at, "token": token_fingerprint(token)},
            )
            issued = True
    _reload(db, consultation, "approve")
    if issued:
        emit(_invite_event(CONSULTATION_APPROVED, consultation), dispatcher)
    return consultation


def reject(db: Session, consultation_id: int, admin_notes: str | None = None, actor: Actor | None = None) -> ConsultationRequest:
    # Approved records are not revocable here: an issued invite stays valid until used or expired.
    with _transaction(db, "reject"):
        consultation = store.require_consultation(db, consultation_id)
        _apply_transition(db, consultation, S.rejected, "reject", actor, admin_notes)
    _reload(db, consultation, "reject")
    return consultation


def cancel(db: Session, consultation_id: int, reason: str | None = None, actor: Actor | None = None) -> ConsultationRequest:
    with _transaction(db, "cancel"):
        consultation = store.require_consultation(db, consultation_id)
        _apply_transition(db, consultation, S.cancelled, "cancel", actor, reason, meta={"reason": reason})
    _reload(db, consultation, "cancel")
    return consultation


def confirm_payment(
    db: Session,
    consultation_id: int,
    amount: Decimal | str | float,
    method: str,
    reference: str | None = None,
    actor: Actor | None = None,
) -> ConsultationRequest:
    try:
        amount = Decimal(str(amount)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError("Payment amount must be a number.") from e
    if amount <= 0:
        raise ValidationError("Payment amount must be positive.")
    method = (method or "").strip()
    if not method:
        raise ValidationError("Payment method is required.")
    reference = (reference or "").strip() or None

    with _transaction(db, "confirm_payment"):
        consultation = store.require_consultation(db, consultation_id)
        if consultation.status != S.approved or consultation.token_used:
            raise InvalidStateError(
                f"Cannot confirm payment for consultation {consultation.id}: status is {consultation.status.value}"
            )
        if consultation.payment_received:
            if consultation.payment_reference == reference and consultation.payment_amount == amount:
                return consultation
            raise InvalidStateError(f"Payment for consultation {consultation.id} was already confirmed")
        consultation.payment_received = True
        consultation.payment_amount = amount
        consultation.payment_method = method
        consultation.payment_reference = reference
        consultation.payment_confirmed_at = _utcnow()
        _audit(
            db,
            CATEGORY_STATUS_CHANGE,
            "Payment confirmed",
            f"Payment of {amount} via {method} recorded for consultation {consultation.id}.",
            actor,
            consultation_id=consultation.id,
            meta={"amount": amount, "method": method, "reference": reference},
        )
    _reload(db, consultation, "confirm_payment")
    log_event("lifecycle", "confirm_payment", consultation_id=consultation.id)
    return consultation


def reissue_invite(
    db: Session,
    consultation_id: int,
    ttl: timedelta | None = None,
    actor: Actor | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> ConsultationRequest:
    """Replace the stored invite; the previous token stops matching immediately."""
    ttl = _invite_ttl(ttl)
    with _transaction(db, "reissue_invite"):
        consultation = store.require_consultation(db, consultation_id)
        if consultation.status != S.approved or consultation.token_used:
            raise InvalidStateError(
                f"Cannot reissue invite for consultation {consultation.id}: status is {consultation.status.value}"
            )
        previous = consultation.registration_token
        token, expires_at = issue_registration_token(consultation.id, consultation.email, ttl)
        consultation.registration_token = token
        consultation.token_expires_at = expires_at
        _audit(
            db,
            CATEGORY_STATUS_CHANGE,
            "Registration invite reissued",
            f"New registration link issued for consultation {consultation.id}.",
            actor,
            consultation_id=consultation.id,
            meta={"previous_token": token_fingerprint(previous), "token": token_fingerprint(token), "token_expires_at": expires_at},
        )
    _reload(db, consultation, "reissue_invite")
    log_event("lifecycle", "reissue_invite", consultation_id=consultation.id)
    emit(_invite_event(INVITE_REISSUED, consultation), dispatcher)
    return consultation


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

def inspect_registration_token(
    db: Session, token: str, actor: Actor | None = None
) -> tuple[RegistrationClaim, ConsultationRequest]:
    """Read-only preview for the registration page."""
    try:
        with store_errors(db, "inspect_registration_token"):
            claim = validate_registration_token(db, token)
            consultation = store.require_consultation(db, claim.consultation_id)
    except TokenError as e:
        db.rollback()
        _record_token_failure(db, e, token, "inspect_registration_token", actor)
        raise
    return claim, consultation


def _lost_race(db: Session, consultation_id: int) -> TokenError:
    current = store.get_consultation(db, consultation_id)
    if current is not None and current.token_used:
        return AlreadyUsedError(f"consultation {consultation_id} was registered by a concurrent request")
    return TokenMismatchError(f"invite for consultation {consultation_id} changed during registration")


def complete_registration(
    db: Session,
    token: str,
    credential: str,
    full_name: str | None = None,
    actor: Actor | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> Account:
    """Exchange a registration invite for a client account, exactly once."""
    validate_password_policy(credential)
    token = (token or "").strip()
    try:
        with store_errors(db, "complete_registration"):
            claim = validate_registration_token(db, token)
            consultation = store.require_consultation(db, claim.consultation_id)
            if get_settings().require_payment_for_registration and not consultation.payment_received:
                raise InvalidStateError(f"Payment has not been confirmed for consultation {consultation.id}")
            consultation_id = consultation.id
            name = (full_name or "").strip() or consultation.full_name

            if not store.claim_registration_token(db, consultation_id, token, _utcnow()):
                db.rollback()
                raise _lost_race(db, consultation_id)
            account = provision(db, claim, credential, name)
            store.link_registered_account(db, consultation_id, account.id)
            _audit(
                db,
                CATEGORY_ACCOUNT_CREATED,
                "Client registered",
                f"Account {account.id} created for {account.email} from consultation {consultation_id}.",
                actor,
                consultation_id=consultation_id,
                account_id=account.id,
                meta={"old_status": S.approved, "new_status": S.registered},
            )
            db.commit()
    except TokenError as e:
        db.rollback()
        _record_token_failure(db, e, token, "complete_registration", actor)
        raise
    except Exception:
        db.rollback()
        raise

    with store_errors(db, "complete_registration"):
        db.refresh(account)
        consultation = store.get_consultation(db, consultation_id)
    log_event("lifecycle", "register", consultation_id=consultation_id, account_id=account.id)
    emit(
        NotificationEvent(
            name=CLIENT_REGISTERED,
            consultation_id=consultation_id,
            email=account.email,
            full_name=consultation.full_name if consultation else (account.full_name or ""),
            extra={"account_id": account.id},
        ),
        dispatcher,
    )
    return account


# ---------------------------------------------------------------------------
# Post-registration scheduling
# ---------------------------------------------------------------------------

def schedule(
    db: Session,
    consultation_id: int,
    scheduled_at: datetime,
    meeting_link: str | None = None,
    actor: Actor | None = None,
) -> ConsultationRequest:
    with _transaction(db, "schedule"):
        consultation = store.require_consultation(db, consultation_id)
        ensure_transition(consultation, S.scheduled, "schedule")
        consultation.scheduled_at = scheduled_at
        consultation.meeting_link = (meeting_link or "").strip() or None
        _apply_transition(db, consultation, S.scheduled, "schedule", actor, meta={"scheduled_at": scheduled_at})
    _reload(db, consultation, "schedule")
    return consultation


def mark_completed(db: Session, consultation_id: int, actor: Actor | None = None) -> ConsultationRequest:
    with _transaction(db, "mark_completed"):
        consultation = store.require_consultation(db, consultation_id)
        _apply_transition(db, consultation, S.completed, "complete", actor)
    _reload(db, consultation, "mark_completed")
    return consultation
