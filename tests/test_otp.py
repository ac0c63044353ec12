from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from twilio.base.exceptions import TwilioRestException

from conftest import GOOD_CODE, WRONG_CODE
from reward_program.config import Settings
from reward_program.errors import (
    InvalidPhoneNumber,
    OtpAlreadyUsed,
    OtpAttemptsExceeded,
    OtpExpired,
    OtpInvalid,
    OtpNotFound,
    ProviderRateLimited,
    ProviderUnreachable,
    TooManyOtpRequests,
    Upstream,
)
from reward_program.models.otp_challenge import OtpChallenge, PURPOSE_LOGIN, PURPOSE_REGISTRATION
from reward_program.services import otp
from reward_program.services.otp_channel import MockOtpChannel, TwilioVerifyChannel, build_otp_channel
from reward_program.services.phone import mask_mobile, to_e164

MOBILE = "0501112222"


def _reload(db, handle):
    db.expire_all()
    return db.query(OtpChallenge).filter(OtpChallenge.handle == handle).one()


def _backdate(db, handle, **delta):
    challenge = _reload(db, handle)
    challenge.created_at = otp.as_utc(challenge.created_at) - timedelta(**delta)
    db.commit()


def test_mask_mobile():
    assert mask_mobile("0500000001") == "050****001"
    assert mask_mobile("123") == "****"
    assert mask_mobile(None) == "****"


def test_to_e164():
    assert to_e164("0501234567") == "+966501234567"
    assert to_e164("966501234567") == "+966501234567"


def test_request_stages_fresh_challenge(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE, payload='{"kind": "technician"}')
    stored = _reload(db, challenge.handle)
    assert channel.sent == [(MOBILE, challenge.handle)]
    assert stored.is_used is False
    assert stored.verification_attempts == 0
    assert stored.purpose == PURPOSE_REGISTRATION
    ttl = otp.as_utc(stored.expires_at) - otp.as_utc(stored.created_at)
    assert ttl == timedelta(minutes=5)


def test_verify_does_not_spend_challenge(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)
    assert _reload(db, challenge.handle).is_used is False


def test_unknown_handle_is_not_found(db, channel):
    with pytest.raises(OtpNotFound):
        otp.verify_challenge(db, channel, "VE-missing", GOOD_CODE)


def test_used_handle_is_distinguished_from_unknown(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    assert otp.mark_used(db, challenge.handle) is True
    db.commit()
    with pytest.raises(OtpAlreadyUsed):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)


def test_mark_used_is_one_way(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    assert otp.mark_used(db, challenge.handle) is True
    assert otp.mark_used(db, challenge.handle) is False
    assert otp.find_actionable(db, challenge.handle) is None


def test_expired_rejected_even_with_right_code(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    stored = _reload(db, challenge.handle)
    stored.expires_at = otp.utcnow() - timedelta(seconds=1)
    db.commit()
    with pytest.raises(OtpExpired):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)
    assert channel.verified == []


def test_wrong_code_counts_attempt(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    with pytest.raises(OtpInvalid):
        otp.verify_challenge(db, channel, challenge.handle, WRONG_CODE)
    assert _reload(db, challenge.handle).verification_attempts == 1


def test_attempt_ceiling_invalidates_before_expiry(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    for _ in range(5):
        with pytest.raises(OtpInvalid):
            otp.verify_challenge(db, channel, challenge.handle, WRONG_CODE)
    with pytest.raises(OtpAttemptsExceeded):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)
    stored = _reload(db, challenge.handle)
    assert stored.verification_attempts == 5
    assert not otp.is_expired(stored)


def test_provider_failure_does_not_count_attempt(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    channel.verify = MagicMock(side_effect=ProviderUnreachable("otp.provider_unreachable", "down"))
    with pytest.raises(ProviderUnreachable):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)
    assert _reload(db, challenge.handle).verification_attempts == 0


def test_purpose_mismatch_is_not_found(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE, purpose=PURPOSE_LOGIN)
    with pytest.raises(OtpNotFound):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE, PURPOSE_REGISTRATION)


def test_rate_limit_per_number(db, channel):
    for _ in range(3):
        otp.request_challenge(db, channel, MOBILE)
    with pytest.raises(TooManyOtpRequests):
        otp.request_challenge(db, channel, MOBILE)
    assert len(channel.sent) == 3
    # Other numbers are unaffected
    otp.request_challenge(db, channel, "0509998888")


def test_provider_send_failure_stages_nothing(db, channel):
    channel.fail_with = InvalidPhoneNumber("otp.invalid_phone_number", "bad number")
    with pytest.raises(InvalidPhoneNumber):
        otp.request_challenge(db, channel, MOBILE)
    assert db.query(OtpChallenge).count() == 0


def test_resend_respects_cooldown(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE)
    with pytest.raises(TooManyOtpRequests):
        otp.resend_challenge(db, channel, challenge.handle)


def test_resend_replaces_handle_and_keeps_payload(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE, payload='{"kind": "technician"}')
    _backdate(db, challenge.handle, seconds=31)

    fresh = otp.resend_challenge(db, channel, challenge.handle)

    assert fresh.handle != challenge.handle
    assert fresh.payload == '{"kind": "technician"}'
    assert fresh.mobile_number == MOBILE
    assert _reload(db, challenge.handle).is_used is True
    with pytest.raises(OtpAlreadyUsed):
        otp.verify_challenge(db, channel, challenge.handle, GOOD_CODE)
    otp.verify_challenge(db, channel, fresh.handle, GOOD_CODE)


def test_resend_refused_after_attempt_ceiling(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE, payload='{"kind": "technician"}')
    for _ in range(5):
        with pytest.raises(OtpInvalid):
            otp.verify_challenge(db, channel, challenge.handle, WRONG_CODE)
    _backdate(db, challenge.handle, seconds=31)

    with pytest.raises(OtpAttemptsExceeded):
        otp.resend_challenge(db, channel, challenge.handle)

    assert len(channel.sent) == 1
    assert db.query(OtpChallenge).count() == 1
    assert _reload(db, challenge.handle).is_used is False


def test_resend_allowed_after_expiry(db, channel):
    challenge = otp.request_challenge(db, channel, MOBILE, payload='{"kind": "technician"}')
    stored = _reload(db, challenge.handle)
    stored.created_at = otp.as_utc(stored.created_at) - timedelta(minutes=6)
    stored.expires_at = otp.utcnow() - timedelta(minutes=1)
    db.commit()

    fresh = otp.resend_challenge(db, channel, challenge.handle)

    assert fresh.payload == '{"kind": "technician"}'
    assert not otp.is_expired(fresh)
    otp.verify_challenge(db, channel, fresh.handle, GOOD_CODE)


def test_resend_unknown_handle(db, channel):
    with pytest.raises(OtpNotFound):
        otp.resend_challenge(db, channel, "VE-missing")


# --- Channel adapters ------------------------------------------------------------

def _twilio_settings(**overrides):
    values = dict(
        twilio_account_sid="AC00000000000000000000000000000000",
        twilio_auth_token="token",
        twilio_verify_service_sid="VA00000000000000000000000000000000",
        twilio_whatsapp_from_number="whatsapp:+14155238886",
    )
    values.update(overrides)
    return Settings(**values)


def _twilio_channel():
    client = MagicMock()
    channel = TwilioVerifyChannel(_twilio_settings(), client=client)
    service = client.verify.v2.services.return_value
    return channel, service, client


def test_twilio_send_returns_sid():
    channel, service, _ = _twilio_channel()
    service.verifications.create.return_value = MagicMock(status="pending", sid="VE123")
    assert channel.send("0501234567") == "VE123"
    service.verifications.create.assert_called_once_with(to="+966501234567", channel="whatsapp")


def test_twilio_send_unexpected_status():
    channel, service, _ = _twilio_channel()
    service.verifications.create.return_value = MagicMock(status="canceled", sid="VE123")
    with pytest.raises(Upstream):
        channel.send("0501234567")


@pytest.mark.parametrize(
    "status,code,expected",
    [
        (400, 60200, InvalidPhoneNumber),
        (429, 20429, ProviderRateLimited),
        (500, 20500, Upstream),
    ],
)
def test_twilio_send_errors_are_distinct(status, code, expected):
    channel, service, _ = _twilio_channel()
    service.verifications.create.side_effect = TwilioRestException(status, "/Verifications", msg="boom", code=code)
    with pytest.raises(expected):
        channel.send("0501234567")


def test_twilio_send_network_failure():
    channel, service, _ = _twilio_channel()
    service.verifications.create.side_effect = ConnectionError("unreachable")
    with pytest.raises(ProviderUnreachable):
        channel.send("0501234567")


def test_twilio_verify_statuses():
    channel, service, _ = _twilio_channel()
    service.verification_checks.create.return_value = MagicMock(status="approved")
    assert channel.verify("VE123", "123456") is True
    service.verification_checks.create.return_value = MagicMock(status="pending")
    assert channel.verify("VE123", "000000") is False
    service.verification_checks.create.side_effect = TwilioRestException(404, "/VerificationCheck", msg="not found")
    assert channel.verify("VE123", "123456") is False


def test_twilio_send_message_uses_whatsapp_prefix():
    channel, _, client = _twilio_channel()
    channel.send_message("0501234567", "hello")
    client.messages.create.assert_called_once_with(
        body="hello", from_="whatsapp:+14155238886", to="whatsapp:+966501234567",
    )


def test_mock_channel_only_in_development():
    dev = build_otp_channel(_twilio_settings(app_env="development", otp_use_mock_mode=True))
    assert isinstance(dev, MockOtpChannel)
    handle = dev.send("0501234567")
    assert handle.startswith("VE") and len(handle) == 34
    assert dev.verify(handle, "123456") is True
    assert dev.verify(handle, "111111") is False

    prod = build_otp_channel(_twilio_settings(app_env="production", otp_use_mock_mode=True))
    assert isinstance(prod, TwilioVerifyChannel)
