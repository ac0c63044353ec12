"""Reviewer endpoints: pending queue, approve, reject, history."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from reward_program.database import get_db
from reward_program.dependencies import get_current_account, require_reviewer
from reward_program.models.user import Account
from reward_program.schemas.approvals import (
    ApprovalRecordResponse,
    ApproveRequest,
    PendingAccountResponse,
    RejectRequest,
    TransitionResponse,
)
from reward_program.services import approvals
from reward_program.services.otp_channel import OtpChannel, get_otp_channel

router = APIRouter(prefix="/approvals", tags=["approvals"])


def _pending_to_response(account: Account) -> PendingAccountResponse:
    shop = account.shop_profile
    reviewer = account.assigned_reviewer
    return PendingAccountResponse(
        id=account.id,
        name=account.name,
        mobile_number=account.mobile_number,
        kind=account.kind,
        registration_status=account.registration_status,
        registered_at=account.created_at,
        store_name=shop.store_name if shop else None,
        tax_id=shop.tax_id if shop else None,
        commercial_registration=shop.commercial_registration if shop else None,
        image_url=shop.image_url if shop else None,
        city_id=account.city_id,
        district_id=account.district_id,
        street=account.street,
        building_number=account.building_number,
        postal_code=account.postal_code,
        sub_number=account.sub_number,
        assigned_reviewer_name=reviewer.name if reviewer else None,
    )


def _transition_response(account: Account) -> TransitionResponse:
    shop = account.shop_profile
    return TransitionResponse(
        user_id=account.id,
        registration_status=account.registration_status,
        shop_code=shop.shop_code if shop else None,
    )


@router.get("/pending", response_model=list[PendingAccountResponse])
def list_pending(
    db: Session = Depends(get_db),
    current_account: Account = Depends(require_reviewer),
):
    """Registrations waiting on the current reviewer's tier."""
    return [_pending_to_response(a) for a in approvals.list_pending(db, current_account.id)]


@router.post("/approve", response_model=TransitionResponse)
def approve(
    data: ApproveRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(require_reviewer),
    channel: OtpChannel = Depends(get_otp_channel),
):
    account = approvals.approve(db, data.user_id, current_account.id, channel=channel)
    return _transition_response(account)


@router.post("/reject", response_model=TransitionResponse)
def reject(
    data: RejectRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(require_reviewer),
):
    account = approvals.reject(db, data.user_id, current_account.id, data.reason)
    return _transition_response(account)


@router.get("/{user_id}/history", response_model=list[ApprovalRecordResponse])
def history(
    user_id: int,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
):
    return approvals.approval_history(db, user_id, current_account.id)
