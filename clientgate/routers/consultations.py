"""Consultation intake (public) and admin pipeline actions."""
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from clientgate.database import get_db
from clientgate.dependencies import request_actor, require_admin
from clientgate.models.account import Account
from clientgate.models.consultation import ConsultationStatus
from clientgate.schemas.consultation import (
    AdminNotesRequest,
    ApproveRequest,
    ConsultationIntake,
    ConsultationResponse,
    ConsultationSubmitted,
    PaymentConfirmation,
    ReissueInviteRequest,
    ScheduleRequest,
)
from clientgate.services import lifecycle

router = APIRouter(prefix="/consultations", tags=["consultations"])


def _ttl(hours: int | None) -> timedelta | None:
    return timedelta(hours=hours) if hours else None


@router.post("", response_model=ConsultationSubmitted, status_code=201)
def submit_consultation(request: Request, data: ConsultationIntake, db: Session = Depends(get_db)):
    consultation = lifecycle.submit(db, data, actor=request_actor(request, data.email))
    return ConsultationSubmitted(
        id=consultation.id,
        status=consultation.status,
        pipeline_status=consultation.pipeline_status,
        created_at=consultation.created_at,
    )


@router.get("", response_model=list[ConsultationResponse])
def list_consultations(
    status: ConsultationStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.list_consultations(db, status=status, limit=limit, offset=offset)


@router.get("/{consultation_id}", response_model=ConsultationResponse)
def get_consultation(consultation_id: int, db: Session = Depends(get_db), admin: Account = Depends(require_admin)):
    return lifecycle.get_consultation(db, consultation_id)


@router.post("/{consultation_id}/review", response_model=ConsultationResponse)
def review_consultation(
    consultation_id: int,
    request: Request,
    data: AdminNotesRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.mark_under_review(db, consultation_id, data.admin_notes, actor=request_actor(request, admin.email))


@router.post("/{consultation_id}/approve", response_model=ConsultationResponse)
def approve_consultation(
    consultation_id: int,
    request: Request,
    data: ApproveRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.approve(
        db,
        consultation_id,
        data.admin_notes,
        ttl=_ttl(data.ttl_hours),
        actor=request_actor(request, admin.email),
    )


@router.post("/{consultation_id}/reject", response_model=ConsultationResponse)
def reject_consultation(
    consultation_id: int,
    request: Request,
    data: AdminNotesRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.reject(db, consultation_id, data.admin_notes, actor=request_actor(request, admin.email))


@router.post("/{consultation_id}/cancel", response_model=ConsultationResponse)
def cancel_consultation(
    consultation_id: int,
    request: Request,
    data: AdminNotesRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.cancel(db, consultation_id, data.admin_notes, actor=request_actor(request, admin.email))


@router.post("/{consultation_id}/payment", response_model=ConsultationResponse)
def confirm_payment(
    consultation_id: int,
    request: Request,
    data: PaymentConfirmation,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.confirm_payment(
        db,
        consultation_id,
        data.amount,
        data.method,
        data.reference,
        actor=request_actor(request, admin.email),
    )


@router.post("/{consultation_id}/reissue-invite", response_model=ConsultationResponse)
def reissue_invite(
    consultation_id: int,
    request: Request,
    data: ReissueInviteRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.reissue_invite(db, consultation_id, ttl=_ttl(data.ttl_hours), actor=request_actor(request, admin.email))


@router.post("/{consultation_id}/schedule", response_model=ConsultationResponse)
def schedule_consultation(
    consultation_id: int,
    request: Request,
    data: ScheduleRequest,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.schedule(
        db,
        consultation_id,
        data.scheduled_at,
        data.meeting_link,
        actor=request_actor(request, admin.email),
    )


@router.post("/{consultation_id}/complete", response_model=ConsultationResponse)
def complete_consultation(
    consultation_id: int,
    request: Request,
    db: Session = Depends(get_db),
    admin: Account = Depends(require_admin),
):
    return lifecycle.mark_completed(db, consultation_id, actor=request_actor(request, admin.email))
