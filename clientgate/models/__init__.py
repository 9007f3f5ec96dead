"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table.
"""
from clientgate.models.consultation import ConsultationRequest, ConsultationStatus, PipelineStatus
from clientgate.models.account import Account, AccountRole
from clientgate.models.audit_log import AuditLog

__all__ = [
    "ConsultationRequest",
    "ConsultationStatus",
    "PipelineStatus",
    "Account",
    "AccountRole",
    "AuditLog",
]
