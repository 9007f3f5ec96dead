"""Consultation store: the only code that reads or writes consultation_requests rows.

Single-row conditional updates give the lifecycle its compare-and-set guarantees; nothing
here commits, so the caller decides the transaction boundary.
"""
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from clientgate.errors import NotFoundError
from clientgate.models.consultation import (
    PIPELINE_FOR_STATUS,
    ConsultationRequest,
    ConsultationStatus,
)
from clientgate.schemas.consultation import ConsultationIntake

MAX_PAGE_SIZE = 200


def create_consultation(db: Session, intake: ConsultationIntake) -> ConsultationRequest:
    consultation = ConsultationRequest(
        status=ConsultationStatus.pending,
        pipeline_status=PIPELINE_FOR_STATUS[ConsultationStatus.pending],
        email=intake.email,
        full_name=intake.full_name,
        phone=intake.phone,
        locale=intake.locale,
        intake=intake.intake_payload(),
        token_used=False,
    )
    db.add(consultation)
    db.flush()
    return consultation


def get_consultation(db: Session, consultation_id: int) -> ConsultationRequest | None:
    return db.query(ConsultationRequest).filter(ConsultationRequest.id == consultation_id).first()


def require_consultation(db: Session, consultation_id: int) -> ConsultationRequest:
    consultation = get_consultation(db, consultation_id)
    if consultation is None:
        raise NotFoundError(f"Consultation request {consultation_id} not found")
    return consultation


def list_consultations(
    db: Session,
    status: ConsultationStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ConsultationRequest]:
    q = db.query(ConsultationRequest)
    if status is not None:
        q = q.filter(ConsultationRequest.status == status)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    return q.order_by(ConsultationRequest.created_at.desc(), ConsultationRequest.id.desc()).offset(max(0, offset)).limit(limit).all()


def set_status(consultation: ConsultationRequest, status: ConsultationStatus) -> None:
    """Status and its pipeline view always move together."""
    consultation.status = status
    consultation.pipeline_status = PIPELINE_FOR_STATUS[status]


def claim_registration_token(db: Session, consultation_id: int, token: str, now: datetime) -> bool:
    """Compare-and-set: flip token_used false -> true only if the row still holds this token.

    Returns False when another request consumed (or replaced) the token first.
    """
    stmt = (
        update(ConsultationRequest)
        .where(
            ConsultationRequest.id == consultation_id,
            ConsultationRequest.token_used == False,  # noqa: E712
            ConsultationRequest.registration_token == token,
            ConsultationRequest.status == ConsultationStatus.approved,
        )
        .values(
            token_used=True,
            status=ConsultationStatus.registered,
            pipeline_status=PIPELINE_FOR_STATUS[ConsultationStatus.registered],
            registered_at=now,
            updated_at=now,
            version=ConsultationRequest.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def link_registered_account(db: Session, consultation_id: int, account_id: int) -> None:
    stmt = (
        update(ConsultationRequest)
        .where(
            ConsultationRequest.id == consultation_id,
            ConsultationRequest.token_used == True,  # noqa: E712
            ConsultationRequest.registered_user_id.is_(None),
        )
        .values(registered_user_id=account_id, version=ConsultationRequest.version + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        raise RuntimeError(f"Consultation {consultation_id} could not be linked to account {account_id}")
