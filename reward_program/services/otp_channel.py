"""OTP delivery through an external messaging provider (Twilio Verify, or a dev-only mock).

The rest of the code only sees the OtpChannel contract: ``send`` returns the
provider's verification handle, ``verify`` answers whether a code is right.
Provider failures are raised as distinct Upstream errors, never swallowed.
"""
import logging
import uuid
from functools import lru_cache

from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from reward_program.config import Settings, get_settings
from reward_program.errors import InvalidPhoneNumber, ProviderRateLimited, ProviderUnreachable, Upstream
from reward_program.services.phone import mask_mobile, to_e164

logger = logging.getLogger("uvicorn.error")

# Twilio error codes (https://www.twilio.com/docs/api/errors)
_INVALID_NUMBER_CODES = {21211, 21614, 60200, 60205}
_RATE_LIMIT_CODES = {20429, 60202, 60203}
_NOT_FOUND_STATUS = 404


class OtpChannel:
    """Contract for OTP providers."""

    def send(self, mobile_number: str) -> str:
        raise NotImplementedError

    def verify(self, handle: str, code: str) -> bool:
        raise NotImplementedError

    def send_message(self, mobile_number: str, body: str) -> None:
        raise NotImplementedError


def _map_twilio_error(e: TwilioRestException, mobile_number: str | None = None) -> Upstream:
    if e.status == 429 or e.code in _RATE_LIMIT_CODES:
        return ProviderRateLimited("otp.provider_rate_limited", "Too many verification requests. Please try again later.")
    if e.code in _INVALID_NUMBER_CODES:
        return InvalidPhoneNumber("otp.invalid_phone_number", "The mobile number was rejected by the messaging provider.")
    logger.error("Twilio error status=%s code=%s mobile=%s: %s", e.status, e.code, mask_mobile(mobile_number), e.msg)
    return Upstream("otp.provider_error", "The verification code could not be sent. Please try again.")


def _unreachable() -> ProviderUnreachable:
    return ProviderUnreachable("otp.provider_unreachable", "The messaging provider is unreachable. Please try again.")


class TwilioVerifyChannel(OtpChannel):
    def __init__(self, settings: Settings, client: Client | None = None):
        self._settings = settings
        self._client = client or Client(settings.twilio_account_sid, settings.twilio_auth_token)

    @property
    def _service(self):
        return self._client.verify.v2.services(self._settings.twilio_verify_service_sid)

    def send(self, mobile_number: str) -> str:
        try:
            verification = self._service.verifications.create(
                to=to_e164(mobile_number),
                channel=self._settings.otp_channel,
            )
        except TwilioRestException as e:
            raise _map_twilio_error(e, mobile_number) from e
        except OSError as e:
            logger.error("Twilio unreachable while sending OTP to %s: %s", mask_mobile(mobile_number), e)
            raise _unreachable() from e
        except TwilioException as e:
            logger.error("Twilio client error while sending OTP to %s: %s", mask_mobile(mobile_number), e)
            raise Upstream("otp.provider_error", "The verification code could not be sent. Please try again.") from e

        if verification.status != "pending":
            logger.error("Unexpected Twilio verification status: %s", verification.status)
            raise Upstream("otp.provider_unexpected_status", "The verification code could not be sent. Please try again.")
        logger.info("OTP sent to %s, handle=%s", mask_mobile(mobile_number), verification.sid)
        return verification.sid

    def verify(self, handle: str, code: str) -> bool:
        try:
            check = self._service.verification_checks.create(verification_sid=handle, code=code)
        except TwilioRestException as e:
            # Twilio answers 404 once a verification is approved, expired or deleted on its side
            if e.status == _NOT_FOUND_STATUS:
                logger.warning("Twilio verification not found for handle=%s", handle)
                return False
            raise _map_twilio_error(e) from e
        except OSError as e:
            logger.error("Twilio unreachable while verifying handle=%s: %s", handle, e)
            raise _unreachable() from e
        except TwilioException as e:
            logger.error("Twilio client error while verifying handle=%s: %s", handle, e)
            raise Upstream("otp.provider_error", "The verification code could not be checked. Please try again.") from e
        return check.status == "approved"

    def send_message(self, mobile_number: str, body: str) -> None:
        prefix = "whatsapp:" if self._settings.otp_channel == "whatsapp" else ""
        try:
            self._client.messages.create(
                body=body,
                from_=self._settings.twilio_whatsapp_from_number,
                to=f"{prefix}{to_e164(mobile_number)}",
            )
        except TwilioRestException as e:
            raise _map_twilio_error(e, mobile_number) from e
        except OSError as e:
            raise _unreachable() from e


class MockOtpChannel(OtpChannel):
    """Development only: nothing is sent; the configured mock code is the only valid code."""

    def __init__(self, code: str):
        self._code = code

    def send(self, mobile_number: str) -> str:
        handle = f"VE{uuid.uuid4().hex}"
        logger.info("[MOCK] OTP sent to %s, handle=%s", mask_mobile(mobile_number), handle)
        return handle

    def verify(self, handle: str, code: str) -> bool:
        valid = code == self._code
        logger.info("[MOCK] OTP verification for handle=%s, valid=%s", handle, valid)
        return valid

    def send_message(self, mobile_number: str, body: str) -> None:
        logger.info("[MOCK] Message to %s: %s", mask_mobile(mobile_number), body)


def build_otp_channel(settings: Settings) -> OtpChannel:
    if settings.otp_use_mock_mode:
        if settings.is_development:
            logger.warning("OTP channel is running in MOCK MODE. Verification is bypassed!")
            return MockOtpChannel(settings.otp_mock_code)
        logger.warning(
            "OTP_USE_MOCK_MODE is set but IGNORED because APP_ENV=%s. Mock mode is only allowed in development.",
            settings.app_env,
        )
    return TwilioVerifyChannel(settings)


@lru_cache
def get_otp_channel() -> OtpChannel:
    return build_otp_channel(get_settings())
