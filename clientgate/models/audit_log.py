"""Append-only audit log. No updates or deletes - every record is permanent."""
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB

from clientgate.database import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Plain ids, not foreign keys: audit rows must survive whatever happens to the subject rows
    consultation_id = Column(Integer, nullable=True, index=True)
    account_id = Column(Integer, nullable=True, index=True)

    # category: status_change | failed_attempt | account_created
    category = Column(String(32), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    # Optional structured data (e.g. old_status, new_status, reason)
    meta = Column(JSON().with_variant(JSONB, "postgresql"), nullable=True)

    actor_email = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
