"""Provisioned client (or admin) identity."""
import enum
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime, Boolean

from clientgate.database import Base


class AccountRole(str, enum.Enum):
    client = "client"
    admin = "admin"


class Account(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(SQLEnum(AccountRole, name="account_role"), nullable=False, default=AccountRole.client)
    is_active = Column(Boolean, nullable=False, default=True)

    # Lookup link to the originating consultation, not a foreign key: the account outlives lineage data.
    source_consultation_id = Column(Integer, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    last_login_at = Column(DateTime(timezone=True), nullable=True)
