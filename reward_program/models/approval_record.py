"""Append-only approval trail. One row per registration status transition.
No updates or deletes - every record is permanent."""
import enum

from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey, Enum as SQLEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_program.database import Base
from reward_program.models.user import RegistrationStatus


class ApprovalAction(str, enum.Enum):
    approved = "approved"
    rejected = "rejected"


class ApprovalRecord(Base):
    __tablename__ = "approval_records"

    id = Column(Integer, primary_key=True, index=True)

    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    action = Column(SQLEnum(ApprovalAction), nullable=False)
    from_status = Column(SQLEnum(RegistrationStatus), nullable=False)
    to_status = Column(SQLEnum(RegistrationStatus), nullable=False)
    rejection_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    account = relationship("Account", foreign_keys=[account_id])
    reviewer = relationship("Account", foreign_keys=[reviewer_id])
