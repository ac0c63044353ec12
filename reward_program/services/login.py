"""Passwordless sign-in: an approved account proves its phone with an OTP and gets a JWT.

Sign-in also issues a refresh token. Refreshing rotates it (the presented token
is revoked and a new one issued); signing out revokes it.
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reward_program.config import get_settings
from reward_program.errors import (
    ServiceError,
    account_disabled,
    account_not_found,
    account_rejected,
    account_under_review,
    invalid_refresh_token,
    operation_failed,
    otp_already_used,
)
from reward_program.models.otp_challenge import PURPOSE_LOGIN
from reward_program.models.refresh_token import RefreshToken
from reward_program.models.user import Account, RegistrationStatus
from reward_program.schemas.auth import AccountResponse, OtpChallengeSent, Token
from reward_program.services import otp
from reward_program.services.auth import create_access_token, generate_refresh_token
from reward_program.services.otp_channel import OtpChannel
from reward_program.services.phone import mask_mobile

logger = logging.getLogger("uvicorn.error")


def ensure_can_sign_in(account: Account) -> None:
    if account.is_disabled:
        raise account_disabled()
    if account.registration_status == RegistrationStatus.rejected:
        raise account_rejected()
    if account.registration_status != RegistrationStatus.approved:
        raise account_under_review()


def account_response(account: Account) -> AccountResponse:
    shop_profile = getattr(account, "shop_profile", None)
    return AccountResponse(
        id=account.id,
        name=account.name,
        mobile_number=account.mobile_number,
        kind=account.kind,
        registration_status=account.registration_status,
        roles=account.role_names,
        shop_code=shop_profile.shop_code if shop_profile else None,
    )


def _account_by_mobile(db: Session, mobile_number: str) -> Account:
    account = db.query(Account).filter(Account.mobile_number == mobile_number).first()
    if account is None:
        raise account_not_found()
    return account


# --- Refresh tokens --------------------------------------------------------------

def is_active(refresh: RefreshToken) -> bool:
    return refresh.revoked_at is None and otp.utcnow() < otp.as_utc(refresh.expires_at)


def _issue_refresh_token(db: Session, account: Account) -> RefreshToken:
    token, expires_at = generate_refresh_token()
    refresh = RefreshToken(account_id=account.id, token=token, created_at=otp.utcnow(), expires_at=expires_at)
    db.add(refresh)
    db.flush()
    return refresh


def _find_active_refresh_token(db: Session, token: str) -> RefreshToken:
    refresh = db.query(RefreshToken).filter(RefreshToken.token == token).first()
    if refresh is None or not is_active(refresh):
        logger.warning("Refresh token rejected (unknown, expired or revoked)")
        raise invalid_refresh_token()
    return refresh


def _revoke(db: Session, refresh: RefreshToken) -> None:
    # Conditional so a token presented twice at once is only honoured once
    updated = (
        db.query(RefreshToken)
        .filter(RefreshToken.id == refresh.id, RefreshToken.revoked_at.is_(None))
        .update({RefreshToken.revoked_at: otp.utcnow()}, synchronize_session=False)
    )
    if updated != 1:
        raise invalid_refresh_token()


def _token_response(account: Account, refresh: RefreshToken) -> Token:
    return Token(
        access_token=create_access_token(account),
        expires_in=get_settings().jwt_access_token_expire_minutes * 60,
        refresh_token=refresh.token,
        refresh_token_expires_at=otp.as_utc(refresh.expires_at),
        user=account_response(account),
    )


def _commit(db: Session, account: Account, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("%s failed for account %s", action, account.id)
        raise operation_failed() from e


# --- Operations ------------------------------------------------------------------

def request_login(db: Session, channel: OtpChannel, mobile_number: str) -> OtpChallengeSent:
    account = _account_by_mobile(db, mobile_number)
    ensure_can_sign_in(account)
    challenge = otp.request_challenge(db, channel, mobile_number, purpose=PURPOSE_LOGIN)
    return OtpChallengeSent(
        handle=challenge.handle,
        masked_mobile=mask_mobile(mobile_number),
        expires_in_seconds=get_settings().otp_expire_minutes * 60,
    )


def verify_login(db: Session, channel: OtpChannel, handle: str, code: str) -> Token:
    challenge = otp.verify_challenge(db, channel, handle, code, PURPOSE_LOGIN)
    # The account may have been disabled since the code was sent
    try:
        account = _account_by_mobile(db, challenge.mobile_number)
        ensure_can_sign_in(account)
    except ServiceError:
        otp.spend(db, handle)
        raise
    try:
        refresh = _issue_refresh_token(db, account)
        if not otp.mark_used(db, handle):
            raise otp_already_used()
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Login failed for %s", mask_mobile(challenge.mobile_number))
        raise operation_failed() from e

    db.refresh(account)
    db.refresh(refresh)
    logger.info("Account %s signed in", account.id)
    return _token_response(account, refresh)


def refresh_session(db: Session, token: str) -> Token:
    """Exchange a refresh token for a new access token and a new refresh token."""
    presented = _find_active_refresh_token(db, token)
    account = presented.account
    ensure_can_sign_in(account)
    try:
        _revoke(db, presented)
        refresh = _issue_refresh_token(db, account)
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Token refresh failed for account %s", account.id)
        raise operation_failed() from e
    _commit(db, account, "Token refresh")

    db.refresh(account)
    db.refresh(refresh)
    logger.info("Refresh token rotated for account %s", account.id)
    return _token_response(account, refresh)


def revoke_refresh_token(db: Session, token: str, account: Account) -> None:
    """Sign out: the token must be active and belong to the caller."""
    refresh = _find_active_refresh_token(db, token)
    if refresh.account_id != account.id:
        logger.warning("Account %s tried to revoke a refresh token of account %s", account.id, refresh.account_id)
        raise invalid_refresh_token()
    try:
        _revoke(db, refresh)
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Revoke failed for account %s", account.id)
        raise operation_failed() from e
    _commit(db, account, "Revoke")
    logger.info("Refresh token revoked for account %s", account.id)
