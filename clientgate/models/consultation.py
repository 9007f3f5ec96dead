"""Consultation request: a prospect's intake record and its lifecycle state."""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Numeric, JSON, Enum as SQLEnum, event, inspect
from sqlalchemy.dialects.postgresql import JSONB

from clientgate.database import Base


class ConsultationStatus(str, enum.Enum):
    pending = "pending"
    under_review = "under_review"
    approved = "approved"
    registered = "registered"
    scheduled = "scheduled"
    completed = "completed"
    rejected = "rejected"
    cancelled = "cancelled"


class PipelineStatus(str, enum.Enum):
    """Coarse phase shown to admins; always derived from ConsultationStatus."""
    lead = "lead"
    under_review = "under_review"
    approved = "approved"
    client = "client"
    rejected = "rejected"
    cancelled = "cancelled"


PIPELINE_FOR_STATUS: dict[ConsultationStatus, PipelineStatus] = {
    ConsultationStatus.pending: PipelineStatus.lead,
    ConsultationStatus.under_review: PipelineStatus.under_review,
    ConsultationStatus.approved: PipelineStatus.approved,
    ConsultationStatus.registered: PipelineStatus.client,
    ConsultationStatus.scheduled: PipelineStatus.client,
    ConsultationStatus.completed: PipelineStatus.client,
    ConsultationStatus.rejected: PipelineStatus.rejected,
    ConsultationStatus.cancelled: PipelineStatus.cancelled,
}

# Written once at submit; pipeline machinery never touches these.
INTAKE_FIELDS = ("email", "full_name", "phone", "locale", "intake")

_json = JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConsultationRequest(Base):
    __tablename__ = "consultation_requests"

    id = Column(Integer, primary_key=True, index=True)
    status = Column(SQLEnum(ConsultationStatus, name="consultation_status"), nullable=False, default=ConsultationStatus.pending, index=True)
    pipeline_status = Column(SQLEnum(PipelineStatus, name="pipeline_status"), nullable=False, default=PipelineStatus.lead)

    # Contact + intake (immutable after creation)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    locale = Column(String(20), nullable=True)
    # target roles, package tier, availability windows, notes ...
    intake = Column(_json, nullable=False, default=dict)

    # Registration invite
    registration_token = Column(Text, nullable=True, unique=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    token_used = Column(Boolean, nullable=False, default=False)
    registered_user_id = Column(Integer, nullable=True, index=True)

    admin_notes = Column(Text, nullable=True)

    # Payment confirmation (recorded by admin after approval)
    payment_received = Column(Boolean, nullable=False, default=False)
    payment_amount = Column(Numeric(10, 2), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(255), nullable=True)
    payment_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Post-registration scheduling
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    meeting_link = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    registered_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=_utcnow)

    # Optimistic lock: an ORM flush against a row someone else changed raises StaleDataError
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def package_tier(self) -> str | None:
        return (self.intake or {}).get("package_tier")


@event.listens_for(ConsultationRequest, "before_update")
def _reject_intake_changes(mapper, connection, target: ConsultationRequest) -> None:
    state = inspect(target)
    changed = [name for name in INTAKE_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ValueError(f"Consultation {target.id}: intake fields are immutable ({', '.join(changed)})")
