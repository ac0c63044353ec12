"""OTP staging store.

Challenges are staged locally (handle -> phone, optional pending-registration
payload, attempts, expiry) so that our own expiry and attempt policy applies
regardless of what the provider does. Expiry and the attempt ceiling are
evaluated lazily at lookup; nothing sweeps the table.
"""
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from reward_program.config import get_settings
from reward_program.errors import (
    operation_failed,
    otp_already_used,
    otp_attempts_exceeded,
    otp_expired,
    otp_invalid,
    otp_not_found,
    too_many_otp_requests,
)
from reward_program.models.otp_challenge import OtpChallenge, PURPOSE_REGISTRATION
from reward_program.services.otp_channel import OtpChannel
from reward_program.services.phone import mask_mobile

logger = logging.getLogger("uvicorn.error")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def is_expired(challenge: OtpChallenge, now: datetime | None = None) -> bool:
    return (now or utcnow()) > as_utc(challenge.expires_at)


def attempts_exhausted(challenge: OtpChallenge) -> bool:
    return challenge.verification_attempts >= get_settings().otp_max_verification_attempts


# --- Store primitives --------------------------------------------------------------

def create(
    db: Session,
    handle: str,
    mobile_number: str,
    payload: str | None = None,
    purpose: str = PURPOSE_REGISTRATION,
) -> OtpChallenge:
    now = utcnow()
    challenge = OtpChallenge(
        handle=handle,
        mobile_number=mobile_number,
        payload=payload,
        purpose=purpose,
        is_used=False,
        verification_attempts=0,
        created_at=now,
        expires_at=now + timedelta(minutes=get_settings().otp_expire_minutes),
    )
    db.add(challenge)
    db.flush()
    return challenge


def find(db: Session, handle: str) -> OtpChallenge | None:
    return db.query(OtpChallenge).filter(OtpChallenge.handle == handle).first()


def find_actionable(db: Session, handle: str) -> OtpChallenge | None:
    """Unused challenge for handle. Expiry and attempts are checked by the caller."""
    return db.query(OtpChallenge).filter(OtpChallenge.handle == handle, OtpChallenge.is_used.is_(False)).first()


def mark_used(db: Session, handle: str) -> bool:
    """One-way. True only for the caller that actually flipped the flag."""
    updated = (
        db.query(OtpChallenge)
        .filter(OtpChallenge.handle == handle, OtpChallenge.is_used.is_(False))
        .update({OtpChallenge.is_used: True}, synchronize_session=False)
    )
    return updated == 1


def spend(db: Session, handle: str) -> None:
    """Mark used in its own transaction after a caller failed past a successful verify.

    The provider will not accept the same code again, so a retry must see
    OtpAlreadyUsed rather than burn an attempt on OtpInvalid.
    """
    try:
        mark_used(db, handle)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not spend challenge handle=%s", handle)


def increment_attempts(db: Session, handle: str) -> None:
    db.query(OtpChallenge).filter(OtpChallenge.handle == handle).update(
        {OtpChallenge.verification_attempts: OtpChallenge.verification_attempts + 1},
        synchronize_session=False,
    )


def count_recent(db: Session, mobile_number: str, since: datetime) -> int:
    return (
        db.query(OtpChallenge)
        .filter(OtpChallenge.mobile_number == mobile_number, OtpChallenge.created_at >= since)
        .count()
    )


# --- Operations ------------------------------------------------------------------

def _check_rate_limit(db: Session, mobile_number: str) -> None:
    s = get_settings()
    window_start = utcnow() - timedelta(minutes=s.otp_rate_limit_window_minutes)
    recent = count_recent(db, mobile_number, window_start)
    if recent >= s.otp_max_requests_per_window:
        logger.warning(
            "OTP rate limit exceeded for %s: %d requests in last %d minutes",
            mask_mobile(mobile_number), recent, s.otp_rate_limit_window_minutes,
        )
        raise too_many_otp_requests()


def _stage(db: Session, handle: str, mobile_number: str, payload: str | None, purpose: str) -> OtpChallenge:
    try:
        challenge = create(db, handle, mobile_number, payload=payload, purpose=purpose)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to stage OTP challenge for %s", mask_mobile(mobile_number))
        raise operation_failed() from e
    db.refresh(challenge)
    return challenge


def request_challenge(
    db: Session,
    channel: OtpChannel,
    mobile_number: str,
    payload: str | None = None,
    purpose: str = PURPOSE_REGISTRATION,
) -> OtpChallenge:
    """Rate-limit, send a code through the provider, stage the challenge."""
    _check_rate_limit(db, mobile_number)
    handle = channel.send(mobile_number)
    challenge = _stage(db, handle, mobile_number, payload, purpose)
    logger.info("OTP sent and stored for handle=%s, mobile=%s", handle, mask_mobile(mobile_number))
    return challenge


def _raise_not_actionable(db: Session, handle: str, purpose: str | None = None) -> None:
    existing = find(db, handle)
    if existing is not None and (purpose is None or existing.purpose == purpose):
        logger.warning("OTP already used for handle=%s", handle)
        raise otp_already_used()
    logger.warning("OTP record not found for handle=%s", handle)
    raise otp_not_found()


def verify_challenge(
    db: Session,
    channel: OtpChannel,
    handle: str,
    code: str,
    purpose: str = PURPOSE_REGISTRATION,
) -> OtpChallenge:
    """Check a submitted code. Wrong codes count against the attempt ceiling.

    Does not mark the challenge used; the caller does that as the last write of
    its own transaction.
    """
    challenge = find_actionable(db, handle)
    if challenge is None or challenge.purpose != purpose:
        _raise_not_actionable(db, handle, purpose)

    if is_expired(challenge):
        logger.warning("OTP expired for handle=%s", handle)
        raise otp_expired()

    max_attempts = get_settings().otp_max_verification_attempts
    if attempts_exhausted(challenge):
        logger.warning("Max verification attempts exceeded for handle=%s", handle)
        raise otp_attempts_exceeded()

    if not channel.verify(handle, code):
        increment_attempts(db, handle)
        db.commit()
        logger.warning(
            "Invalid OTP for handle=%s, attempts %d/%d",
            handle, challenge.verification_attempts, max_attempts,
        )
        raise otp_invalid()

    logger.info("OTP verified for handle=%s", handle)
    return challenge


def resend_challenge(db: Session, channel: OtpChannel, handle: str) -> OtpChallenge:
    """Issue a fresh code for an outstanding challenge, carrying over its payload.

    The old handle is spent once the new one is staged. An expired challenge may
    be resent; one that hit the attempt ceiling may not, or its payload would get
    a fresh set of guesses.
    """
    old = find_actionable(db, handle)
    if old is None:
        _raise_not_actionable(db, handle)
    if attempts_exhausted(old):
        logger.warning("Resend refused for handle=%s: attempts exhausted", handle)
        raise otp_attempts_exceeded()

    cooldown = timedelta(seconds=get_settings().otp_resend_cooldown_seconds)
    if utcnow() - as_utc(old.created_at) < cooldown:
        raise too_many_otp_requests()

    _check_rate_limit(db, old.mobile_number)
    new_handle = channel.send(old.mobile_number)
    try:
        fresh = create(db, new_handle, old.mobile_number, payload=old.payload, purpose=old.purpose)
        if not mark_used(db, old.handle):
            db.rollback()
            raise otp_already_used()
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Failed to stage resent OTP for handle=%s", handle)
        raise operation_failed() from e
    db.refresh(fresh)
    logger.info("OTP resent: handle=%s replaced by %s, mobile=%s", handle, new_handle, mask_mobile(fresh.mobile_number))
    return fresh
