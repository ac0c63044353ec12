"""Registration intake and commit.

Intake validates a registration request, stages everything Commit needs as a
pending payload on an OTP challenge and sends the code. No account exists until
Commit verifies the code; Commit then creates account, role and profile in one
transaction whose last write spends the challenge.
"""
import logging
from pathlib import Path
from typing import BinaryIO

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from reward_program.config import get_settings
from reward_program.errors import (
    ServiceError,
    image_required,
    image_too_large,
    invalid_image_type,
    invalid_shop_code,
    mobile_already_registered,
    operation_failed,
    otp_already_used,
    registration_data_not_found,
    reviewer_unavailable,
    shop_identity_in_use,
    shop_owner_not_approved,
    no_reviewer_for_district,
    StorageFailed,
)
from reward_program.models.otp_challenge import PURPOSE_REGISTRATION
from reward_program.models.profiles import SellerProfile, ShopProfile, TechnicianProfile
from reward_program.models.user import (
    Account,
    AccountKind,
    RegistrationStatus,
    ROLE_FOR_KIND,
    ROLE_SALES_PERSON,
)
from reward_program.schemas.registration import (
    NationalAddress,
    RegistrationAccepted,
    SellerPending,
    SellerRegister,
    ShopOwnerPending,
    ShopOwnerRegister,
    TechnicianPending,
    TechnicianRegister,
    dump_pending,
    load_pending,
)
from reward_program.services import otp
from reward_program.services.geography import resolve_district, resolve_reviewer_id
from reward_program.services.identity import assign_role, has_role, mobile_in_use
from reward_program.services.media_storage import SHOP_IMAGES_FOLDER, LocalMediaStorage
from reward_program.services.otp_channel import OtpChannel
from reward_program.services.phone import mask_mobile

logger = logging.getLogger("uvicorn.error")

ALLOWED_IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}


# --- Checks shared by intake and commit --------------------------------------------

def _shop_identity_taken(db: Session, tax_id: str, commercial_registration: str) -> bool:
    return (
        db.query(ShopProfile.id)
        .filter((ShopProfile.tax_id == tax_id) | (ShopProfile.commercial_registration == commercial_registration))
        .first()
        is not None
    )


def _ensure_mobile_free(db: Session, mobile_number: str) -> None:
    if mobile_in_use(db, mobile_number):
        logger.warning("Registration rejected, mobile already registered: %s", mask_mobile(mobile_number))
        raise mobile_already_registered()


def _ensure_shop_identity_free(db: Session, tax_id: str, commercial_registration: str) -> None:
    if _shop_identity_taken(db, tax_id, commercial_registration):
        raise shop_identity_in_use()


def _approved_shop_owner(shop_owner: Account | None) -> Account:
    if (
        shop_owner is None
        or shop_owner.registration_status != RegistrationStatus.approved
        or shop_owner.is_disabled
    ):
        raise shop_owner_not_approved()
    return shop_owner


def _ensure_reviewer_available(db: Session, reviewer_id: int) -> None:
    reviewer = db.query(Account).filter(Account.id == reviewer_id).first()
    if reviewer is None or reviewer.is_disabled or not has_role(reviewer, ROLE_SALES_PERSON):
        logger.warning("Assigned reviewer %s is no longer an enabled SalesPerson", reviewer_id)
        raise reviewer_unavailable()


def _conflict_for(e: IntegrityError) -> ServiceError:
    if "mobile_number" in str(e.orig).lower():
        return mobile_already_registered()
    return shop_identity_in_use()


# --- Intake -----------------------------------------------------------------------

def _check_image(filename: str | None, size: int | None) -> None:
    if not filename:
        raise image_required()
    if Path(filename).suffix.lower() not in ALLOWED_IMAGE_EXTENSIONS:
        raise invalid_image_type()
    if size is not None and size > get_settings().max_image_bytes:
        raise image_too_large()


def _discard_image(storage: LocalMediaStorage, image_url: str) -> None:
    try:
        storage.delete(image_url)
    except StorageFailed:
        logger.error("Could not remove orphaned shop image %s", image_url)


def _accepted(challenge) -> RegistrationAccepted:
    return RegistrationAccepted(
        handle=challenge.handle,
        masked_mobile=mask_mobile(challenge.mobile_number),
        expires_in_seconds=get_settings().otp_expire_minutes * 60,
    )


def register_shop_owner(
    db: Session,
    channel: OtpChannel,
    storage: LocalMediaStorage,
    data: ShopOwnerRegister,
    image: BinaryIO | None,
    filename: str | None,
    size: int | None = None,
) -> RegistrationAccepted:
    _ensure_mobile_free(db, data.mobile_number)
    _ensure_shop_identity_free(db, data.tax_id, data.commercial_registration)
    reviewer_id = resolve_reviewer_id(db, data.address.city_id, data.address.district_id)

    if image is None:
        raise image_required()
    _check_image(filename, size)
    image_url = storage.upload(image, filename, SHOP_IMAGES_FOLDER)

    pending = ShopOwnerPending(
        name=data.owner_name,
        mobile_number=data.mobile_number,
        store_name=data.store_name,
        tax_id=data.tax_id,
        commercial_registration=data.commercial_registration,
        image_url=image_url,
        address=data.address,
        assigned_reviewer_id=reviewer_id,
    )
    try:
        challenge = otp.request_challenge(db, channel, data.mobile_number, dump_pending(pending))
    except Exception:
        # No challenge means no commit can ever reference the image
        _discard_image(storage, image_url)
        raise
    return _accepted(challenge)


def register_seller(db: Session, channel: OtpChannel, data: SellerRegister) -> RegistrationAccepted:
    _ensure_mobile_free(db, data.mobile_number)
    resolve_district(db, data.address.city_id, data.address.district_id)

    profile = db.query(ShopProfile).filter(ShopProfile.shop_code == data.shop_code).first()
    if profile is None:
        raise invalid_shop_code()
    shop_owner = _approved_shop_owner(profile.account)
    # Sellers are reviewed by whoever reviews their shop
    if shop_owner.assigned_reviewer_id is None:
        raise no_reviewer_for_district()

    pending = SellerPending(
        name=data.name,
        mobile_number=data.mobile_number,
        shop_code=data.shop_code,
        shop_owner_id=shop_owner.id,
        address=data.address,
        assigned_reviewer_id=shop_owner.assigned_reviewer_id,
    )
    challenge = otp.request_challenge(db, channel, data.mobile_number, dump_pending(pending))
    return _accepted(challenge)


def register_technician(db: Session, channel: OtpChannel, data: TechnicianRegister) -> RegistrationAccepted:
    _ensure_mobile_free(db, data.mobile_number)
    reviewer_id = resolve_reviewer_id(db, data.address.city_id, data.address.district_id)

    pending = TechnicianPending(
        name=data.name,
        mobile_number=data.mobile_number,
        address=data.address,
        assigned_reviewer_id=reviewer_id,
    )
    challenge = otp.request_challenge(db, channel, data.mobile_number, dump_pending(pending))
    return _accepted(challenge)


# --- Commit -----------------------------------------------------------------------

def _revalidate(db: Session, pending) -> None:
    # Anything may have changed between intake and OTP submission
    _ensure_mobile_free(db, pending.mobile_number)
    if isinstance(pending, ShopOwnerPending):
        _ensure_shop_identity_free(db, pending.tax_id, pending.commercial_registration)
    elif isinstance(pending, SellerPending):
        shop_owner = db.query(Account).filter(Account.id == pending.shop_owner_id).first()
        _approved_shop_owner(shop_owner)
    _ensure_reviewer_available(db, pending.assigned_reviewer_id)


def _new_account(pending, kind: AccountKind, address: NationalAddress) -> Account:
    return Account(
        name=pending.name,
        mobile_number=pending.mobile_number,
        kind=kind,
        registration_status=RegistrationStatus.pending_salesman,
        is_disabled=False,
        assigned_reviewer_id=pending.assigned_reviewer_id,
        city_id=address.city_id,
        district_id=address.district_id,
        street=address.street,
        building_number=address.building_number,
        postal_code=address.postal_code,
        sub_number=address.sub_number,
    )


def _materialize(db: Session, pending) -> Account:
    kind = AccountKind(pending.kind)
    account = _new_account(pending, kind, pending.address)
    db.add(account)
    db.flush()
    assign_role(db, account, ROLE_FOR_KIND[kind])

    if isinstance(pending, ShopOwnerPending):
        db.add(ShopProfile(
            account_id=account.id,
            store_name=pending.store_name,
            tax_id=pending.tax_id,
            commercial_registration=pending.commercial_registration,
            image_url=pending.image_url,
            shop_code=None,
        ))
    elif isinstance(pending, SellerPending):
        db.add(SellerProfile(account_id=account.id, shop_owner_id=pending.shop_owner_id))
    else:
        db.add(TechnicianProfile(account_id=account.id))
    db.flush()
    return account


def verify_registration(db: Session, channel: OtpChannel, handle: str, code: str) -> Account:
    """Verify the OTP and create the account from the staged payload.

    Replaying a handle after success raises OtpAlreadyUsed; a lost race on the
    phone number or shop identity surfaces as the same Conflict as the pre-checks.
    Once the code is accepted, any failure spends the challenge before it is raised.
    """
    challenge = otp.verify_challenge(db, channel, handle, code, PURPOSE_REGISTRATION)
    if not challenge.payload:
        logger.warning("Registration data missing for handle=%s", handle)
        otp.spend(db, handle)
        raise registration_data_not_found()
    try:
        pending = load_pending(challenge.payload)
    except ValidationError as e:
        logger.error("Malformed registration payload for handle=%s: %s", handle, e)
        otp.spend(db, handle)
        raise registration_data_not_found() from e

    try:
        _revalidate(db, pending)
        account = _materialize(db, pending)
        if not otp.mark_used(db, handle):
            raise otp_already_used()
        db.commit()
    except ServiceError:
        db.rollback()
        otp.spend(db, handle)
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning("Registration lost a uniqueness race for %s: %s", mask_mobile(pending.mobile_number), e.orig)
        otp.spend(db, handle)
        raise _conflict_for(e) from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Registration commit failed for %s", mask_mobile(pending.mobile_number))
        otp.spend(db, handle)
        raise operation_failed() from e

    db.refresh(account)
    logger.info(
        "Registration committed: account_id=%s kind=%s mobile=%s reviewer=%s",
        account.id, account.kind.value, mask_mobile(account.mobile_number), account.assigned_reviewer_id,
    )
    return account
