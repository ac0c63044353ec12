"""Append-only approval trail service. Never update or delete - immutable history."""
from __future__ import annotations

from sqlalchemy.orm import Session

from reward_program.models.approval_record import ApprovalAction, ApprovalRecord
from reward_program.models.user import RegistrationStatus

# Column limits (match model)
_REASON_LEN = 500


def create_record(
    db: Session,
    account_id: int,
    reviewer_id: int,
    action: ApprovalAction,
    from_status: RegistrationStatus,
    to_status: RegistrationStatus,
    *,
    rejection_reason: str | None = None,
) -> ApprovalRecord:
    """Append one approval record. Timestamp is UTC (server_default).
    Flushes only; the caller's transaction owns the commit."""
    reason = (rejection_reason[:_REASON_LEN].strip() if rejection_reason else None) or None
    entry = ApprovalRecord(
        account_id=account_id,
        reviewer_id=reviewer_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        rejection_reason=reason,
    )
    db.add(entry)
    db.flush()
    return entry


def list_for_account(db: Session, account_id: int) -> list[ApprovalRecord]:
    return (
        db.query(ApprovalRecord)
        .filter(ApprovalRecord.account_id == account_id)
        .order_by(ApprovalRecord.created_at.asc(), ApprovalRecord.id.asc())
        .all()
    )
