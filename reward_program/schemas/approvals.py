"""Approval schemas."""
from datetime import datetime
from pydantic import BaseModel, Field
from reward_program.models.user import AccountKind, RegistrationStatus
from reward_program.models.approval_record import ApprovalAction


class ApproveRequest(BaseModel):
    user_id: int


class RejectRequest(BaseModel):
    user_id: int
    reason: str = Field(min_length=1, max_length=500)


class PendingAccountResponse(BaseModel):
    id: int
    name: str
    mobile_number: str
    kind: AccountKind
    registration_status: RegistrationStatus
    registered_at: datetime | None = None
    store_name: str | None = None
    tax_id: str | None = None
    commercial_registration: str | None = None
    image_url: str | None = None
    city_id: int | None = None
    district_id: int | None = None
    street: str | None = None
    building_number: int | None = None
    postal_code: str | None = None
    sub_number: int | None = None
    assigned_reviewer_name: str | None = None


class ApprovalRecordResponse(BaseModel):
    id: int
    account_id: int
    reviewer_id: int
    action: ApprovalAction
    from_status: RegistrationStatus
    to_status: RegistrationStatus
    rejection_reason: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class TransitionResponse(BaseModel):
    user_id: int
    registration_status: RegistrationStatus
    shop_code: str | None = None
