"""OTP, login and account schemas."""
import re
from datetime import datetime
from pydantic import BaseModel, field_validator
from reward_program.models.user import AccountKind, RegistrationStatus
from reward_program.schemas.registration import _validate_mobile

OTP_CODE_PATTERN = re.compile(r"^\d{4,10}$")


class VerifyOtpRequest(BaseModel):
    handle: str
    code: str

    @field_validator("handle")
    @classmethod
    def handle_present(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Verification handle is required.")
        return v

    @field_validator("code")
    @classmethod
    def code_digits(cls, v: str) -> str:
        v = (v or "").strip()
        if not OTP_CODE_PATTERN.match(v):
            raise ValueError("Verification code must be digits only.")
        return v


class ResendOtpRequest(BaseModel):
    handle: str


class LoginRequest(BaseModel):
    mobile_number: str

    @field_validator("mobile_number")
    @classmethod
    def mobile_valid(cls, v: str) -> str:
        return _validate_mobile(v)


class AccountResponse(BaseModel):
    id: int
    name: str
    mobile_number: str
    kind: AccountKind
    registration_status: RegistrationStatus
    roles: list[str] = []
    shop_code: str | None = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    refresh_token_expires_at: datetime
    user: AccountResponse


class OtpChallengeSent(BaseModel):
    handle: str
    masked_mobile: str
    expires_in_seconds: int
    message: str = "A verification code has been sent."


class RefreshTokenRequest(BaseModel):
    refresh_token: str

    @field_validator("refresh_token")
    @classmethod
    def token_present(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Refresh token is required.")
        return v
