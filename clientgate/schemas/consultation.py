"""Consultation intake and admin action schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from clientgate.models.consultation import ConsultationStatus, PipelineStatus

MAX_AVAILABILITY_WINDOWS = 3


class ConsultationIntake(BaseModel):
    """What a prospect submits. Everything past the contact fields is opaque to the core."""
    full_name: str
    email: EmailStr
    phone: str | None = None
    locale: str | None = None
    target_roles: list[str] = Field(default_factory=list)
    package_tier: str | None = None
    availability_windows: list[str] = Field(default_factory=list)
    notes: str | None = None

    class Config:
        # Unknown intake keys are kept and stored as-is
        extra = "allow"

    @field_validator("full_name")
    @classmethod
    def name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Full name is required.")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("phone", "locale", "package_tier", "notes")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        v = (v or "").strip()
        return v or None

    @field_validator("availability_windows")
    @classmethod
    def at_most_three_windows(cls, v: list[str]) -> list[str]:
        if len(v) > MAX_AVAILABILITY_WINDOWS:
            raise ValueError(f"At most {MAX_AVAILABILITY_WINDOWS} availability windows may be provided.")
        return v

    def intake_payload(self) -> dict[str, Any]:
        return {
            "target_roles": list(self.target_roles),
            "package_tier": self.package_tier,
            "availability_windows": list(self.availability_windows),
            "notes": self.notes,
            **(self.model_extra or {}),
        }


class ConsultationResponse(BaseModel):
    id: int
    status: ConsultationStatus
    pipeline_status: PipelineStatus
    email: str
    full_name: str
    phone: str | None = None
    locale: str | None = None
    intake: dict[str, Any]
    token_expires_at: datetime | None = None
    token_used: bool
    registered_user_id: int | None = None
    admin_notes: str | None = None
    payment_received: bool = False
    scheduled_at: datetime | None = None
    meeting_link: str | None = None
    created_at: datetime
    registered_at: datetime | None = None

    class Config:
        from_attributes = True


class ConsultationSubmitted(BaseModel):
    id: int
    status: ConsultationStatus
    pipeline_status: PipelineStatus
    message: str = "Request received. We will confirm your consultation shortly."
    created_at: datetime


class AdminNotesRequest(BaseModel):
    admin_notes: str | None = None


class ApproveRequest(AdminNotesRequest):
    ttl_hours: int | None = Field(default=None, gt=0)


class ReissueInviteRequest(BaseModel):
    ttl_hours: int | None = Field(default=None, gt=0)


class PaymentConfirmation(BaseModel):
    amount: Decimal = Field(gt=0)
    method: str
    reference: str | None = None


class ScheduleRequest(BaseModel):
    scheduled_at: datetime
    meeting_link: str | None = None
