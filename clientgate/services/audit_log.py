"""Append-only audit log service. Never update or delete - immutable audit trail."""
from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from clientgate.models.audit_log import AuditLog

CATEGORY_STATUS_CHANGE = "status_change"
CATEGORY_FAILED_ATTEMPT = "failed_attempt"
CATEGORY_ACCOUNT_CREATED = "account_created"

# Column limits (match model)
_CATEGORY_LEN = 32
_TITLE_LEN = 255
_ACTOR_EMAIL_LEN = 255
_IP_LEN = 64
_USER_AGENT_LEN = 500
_MESSAGE_LEN = 100_000


def _sanitize_meta_value(v: Any) -> Any:
    """Convert to JSON-serializable value so meta never raises on INSERT."""
    if v is None or isinstance(v, (str, int, float, bool)):
        return v
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, enum.Enum):
        return getattr(v, "value", str(v))
    if isinstance(v, dict):
        return {str(k): _sanitize_meta_value(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_sanitize_meta_value(x) for x in v]
    return str(v)


def create_log(
    db: Session,
    category: str,
    title: str,
    message: str,
    *,
    consultation_id: int | None = None,
    account_id: int | None = None,
    actor_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    meta: dict[str, Any] | None = None,
) -> AuditLog:
    """Append one audit record. String fields are truncated to column limits; meta is sanitized for JSON.
    Commit stays with the caller so the entry lands in the same transaction as the change it records."""
    entry = AuditLog(
        category=(category or "")[:_CATEGORY_LEN].strip() or CATEGORY_STATUS_CHANGE,
        title=(title or "")[:_TITLE_LEN].strip() or "-",
        message=(message or "")[:_MESSAGE_LEN].strip() or "-",
        consultation_id=consultation_id,
        account_id=account_id,
        actor_email=actor_email[:_ACTOR_EMAIL_LEN] if actor_email else None,
        ip_address=ip_address[:_IP_LEN] if ip_address else None,
        user_agent=str(user_agent)[:_USER_AGENT_LEN] if user_agent else None,
        meta=_sanitize_meta(meta),
    )
    db.add(entry)
    db.flush()
    return entry


def _sanitize_meta(meta: dict[str, Any] | None) -> dict[str, Any] | None:
    if meta is None:
        return None
    return {str(k): _sanitize_meta_value(v) for k, v in meta.items()}
