"""Registration (OTP-gated) and OTP sign-in."""
from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from reward_program.database import get_db
from reward_program.dependencies import get_current_account
from reward_program.models.user import Account
from reward_program.schemas.auth import (
    AccountResponse,
    LoginRequest,
    OtpChallengeSent,
    RefreshTokenRequest,
    ResendOtpRequest,
    Token,
    VerifyOtpRequest,
)
from reward_program.schemas.registration import (
    NationalAddress,
    RegistrationAccepted,
    RegistrationCompleted,
    SellerRegister,
    ShopOwnerRegister,
    TechnicianRegister,
)
from reward_program.services import login as login_service
from reward_program.services import otp, registration
from reward_program.services.media_storage import LocalMediaStorage, get_media_storage
from reward_program.services.otp_channel import OtpChannel, get_otp_channel
from reward_program.services.phone import mask_mobile
from reward_program.config import get_settings

router = APIRouter(prefix="/auth", tags=["auth"])


def _shop_owner_form(
    owner_name: str = Form(...),
    mobile_number: str = Form(...),
    store_name: str = Form(...),
    tax_id: str = Form(...),
    commercial_registration: str = Form(...),
    city_id: int = Form(...),
    district_id: int = Form(...),
    street: str = Form(...),
    building_number: int = Form(...),
    postal_code: str = Form(...),
    sub_number: int = Form(...),
) -> ShopOwnerRegister:
    """Multipart fields -> ShopOwnerRegister. Field errors come back as a normal 422."""
    try:
        return ShopOwnerRegister(
            owner_name=owner_name,
            mobile_number=mobile_number,
            store_name=store_name,
            tax_id=tax_id,
            commercial_registration=commercial_registration,
            address=NationalAddress(
                city_id=city_id,
                district_id=district_id,
                street=street,
                building_number=building_number,
                postal_code=postal_code,
                sub_number=sub_number,
            ),
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors())


@router.post("/register/shop-owner", response_model=RegistrationAccepted)
def register_shop_owner(
    data: ShopOwnerRegister = Depends(_shop_owner_form),
    shop_image: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
    storage: LocalMediaStorage = Depends(get_media_storage),
):
    """Step 1 for shop owners: validate, store the shop image, send the OTP. No account yet."""
    return registration.register_shop_owner(
        db,
        channel,
        storage,
        data,
        shop_image.file if shop_image else None,
        shop_image.filename if shop_image else None,
        shop_image.size if shop_image else None,
    )


@router.post("/register/seller", response_model=RegistrationAccepted)
def register_seller(
    data: SellerRegister,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    return registration.register_seller(db, channel, data)


@router.post("/register/technician", response_model=RegistrationAccepted)
def register_technician(
    data: TechnicianRegister,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    return registration.register_technician(db, channel, data)


@router.post("/register/verify", response_model=RegistrationCompleted)
def verify_registration(
    data: VerifyOtpRequest,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    """Step 2: verify the OTP; creates the account (pending first-tier review)."""
    account = registration.verify_registration(db, channel, data.handle, data.code)
    return RegistrationCompleted(user_id=account.id)


@router.post("/otp/resend", response_model=OtpChallengeSent)
def resend_otp(
    data: ResendOtpRequest,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    challenge = otp.resend_challenge(db, channel, data.handle.strip())
    return OtpChallengeSent(
        handle=challenge.handle,
        masked_mobile=mask_mobile(challenge.mobile_number),
        expires_in_seconds=get_settings().otp_expire_minutes * 60,
    )


@router.post("/login", response_model=OtpChallengeSent)
def login(
    data: LoginRequest,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    return login_service.request_login(db, channel, data.mobile_number)


@router.post("/login/verify", response_model=Token)
def verify_login(
    data: VerifyOtpRequest,
    db: Session = Depends(get_db),
    channel: OtpChannel = Depends(get_otp_channel),
):
    return login_service.verify_login(db, channel, data.handle, data.code)


@router.post("/refresh-token", response_model=Token)
def refresh_token(data: RefreshTokenRequest, db: Session = Depends(get_db)):
    """Rotate: the presented refresh token is revoked and a new pair is issued."""
    return login_service.refresh_session(db, data.refresh_token)


@router.post("/revoke-token")
def revoke_token(
    data: RefreshTokenRequest,
    db: Session = Depends(get_db),
    current_account: Account = Depends(get_current_account),
):
    login_service.revoke_refresh_token(db, data.refresh_token, current_account)
    return {"message": "Signed out."}


@router.get("/me", response_model=AccountResponse)
def me(current_account: Account = Depends(get_current_account)):
    return login_service.account_response(current_account)
