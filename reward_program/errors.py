"""Typed service errors.

Every failure a caller can act on is raised as a ServiceError subclass with a
stable machine-readable ``code`` and a human-readable ``description``. The HTTP
layer turns them into ``{"code", "kind", "detail"}`` bodies with ``status_code``.
"""
from __future__ import annotations


class ServiceError(Exception):
    kind = "operation_failed"
    status_code = 500

    def __init__(self, code: str, description: str):
        super().__init__(description)
        self.code = code
        self.description = description

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "kind": self.kind, "detail": self.description}


class Conflict(ServiceError):
    kind = "conflict"
    status_code = 409


class NotFound(ServiceError):
    kind = "not_found"
    status_code = 404


class PreconditionFailed(ServiceError):
    kind = "precondition_failed"
    status_code = 400


class InvalidInput(ServiceError):
    kind = "invalid_input"
    status_code = 400


class OtpNotFound(ServiceError):
    kind = "otp_not_found"
    status_code = 400


class OtpInvalid(ServiceError):
    kind = "otp_invalid"
    status_code = 400


class OtpExpired(ServiceError):
    kind = "otp_expired"
    status_code = 400


class OtpAlreadyUsed(ServiceError):
    kind = "otp_already_used"
    status_code = 400


class OtpAttemptsExceeded(ServiceError):
    kind = "otp_attempts_exceeded"
    status_code = 429


class TooManyOtpRequests(ServiceError):
    kind = "too_many_otp_requests"
    status_code = 429


class Unauthorized(ServiceError):
    kind = "unauthorized"
    status_code = 403


class AccountUnavailable(ServiceError):
    kind = "account_unavailable"
    status_code = 403


class InvalidRefreshToken(ServiceError):
    kind = "invalid_refresh_token"
    status_code = 401


class NotPending(ServiceError):
    kind = "not_pending"
    status_code = 400


class Exhausted(ServiceError):
    kind = "exhausted"
    status_code = 503


class Upstream(ServiceError):
    kind = "upstream"
    status_code = 502


class ProviderUnreachable(Upstream):
    pass


class InvalidPhoneNumber(Upstream):
    status_code = 400


class ProviderRateLimited(Upstream):
    status_code = 429


class StorageFailed(Upstream):
    pass


class OperationFailed(ServiceError):
    pass


# --- Catalogue -----------------------------------------------------------------
# Factories rather than module-level instances: a raised exception carries its
# traceback, so each raise needs a fresh object.

def mobile_already_registered() -> Conflict:
    return Conflict("auth.mobile_already_registered", "This mobile number is already in use.")


def shop_identity_in_use() -> Conflict:
    # Shared by tax id and commercial registration so callers cannot tell which one exists
    return Conflict("auth.shop_identity_in_use", "The store registration details are already in use.")


def registration_data_not_found() -> NotFound:
    return NotFound("auth.registration_data_not_found", "Registration data was not found. Please register again.")


def account_not_found() -> NotFound:
    return NotFound("auth.user_not_found", "The account was not found.")


def city_not_found() -> NotFound:
    return NotFound("auth.city_not_found", "The city was not found.")


def district_not_found() -> NotFound:
    return NotFound("auth.district_not_found", "The district was not found.")


def district_not_in_city() -> InvalidInput:
    return InvalidInput("auth.district_not_in_city", "The district does not belong to the selected city.")


def no_reviewer_for_district() -> PreconditionFailed:
    return PreconditionFailed("auth.no_approval_sales_person", "No sales representative is assigned to this district yet.")


def reviewer_unavailable() -> PreconditionFailed:
    return PreconditionFailed("auth.reviewer_unavailable", "The assigned sales representative is no longer available. Please register again.")


def invalid_shop_code() -> NotFound:
    return NotFound("auth.invalid_shop_code", "The shop code is not valid.")


def shop_owner_not_approved() -> PreconditionFailed:
    return PreconditionFailed("auth.shop_owner_not_approved", "The shop owner has not been approved yet.")


def invalid_image_type() -> InvalidInput:
    return InvalidInput("auth.invalid_image_type", "Unsupported image type. Please use JPG or PNG.")


def image_too_large() -> InvalidInput:
    return InvalidInput("auth.image_too_large", "The image is too large.")


def image_required() -> InvalidInput:
    return InvalidInput("auth.image_required", "A shop image is required.")


def otp_not_found() -> OtpNotFound:
    return OtpNotFound("otp.not_found", "The verification code was not found.")


def otp_invalid() -> OtpInvalid:
    return OtpInvalid("otp.invalid", "The verification code is incorrect.")


def otp_expired() -> OtpExpired:
    return OtpExpired("otp.expired", "The verification code has expired.")


def otp_already_used() -> OtpAlreadyUsed:
    return OtpAlreadyUsed("otp.already_used", "The verification code has already been used.")


def otp_attempts_exceeded() -> OtpAttemptsExceeded:
    return OtpAttemptsExceeded("otp.attempts_exceeded", "Too many incorrect attempts. Please request a new code.")


def too_many_otp_requests() -> TooManyOtpRequests:
    return TooManyOtpRequests("otp.too_many_requests", "Too many verification requests. Please try again later.")


def not_authorized_to_review() -> Unauthorized:
    return Unauthorized("approval.not_authorized", "You are not authorized to review this request.")


def not_pending_approval() -> NotPending:
    return NotPending("approval.not_pending", "The account is not pending approval.")


def sales_person_has_no_zone_manager() -> PreconditionFailed:
    return PreconditionFailed("approval.no_zone_manager", "The sales representative does not report to a zone manager.")


def rejection_reason_required() -> InvalidInput:
    return InvalidInput("approval.reason_required", "A rejection reason is required.")


def rejection_reason_too_long() -> InvalidInput:
    return InvalidInput("approval.reason_too_long", "The rejection reason cannot exceed 500 characters.")


def shop_code_exhausted() -> Exhausted:
    return Exhausted("approval.shop_code_exhausted", "Could not assign a shop code. Please try again.")


def account_disabled() -> AccountUnavailable:
    return AccountUnavailable("auth.user_disabled", "The account is disabled. Please contact support.")


def account_rejected() -> AccountUnavailable:
    return AccountUnavailable("auth.user_rejected", "The registration request was rejected.")


def account_under_review() -> AccountUnavailable:
    return AccountUnavailable("auth.user_not_approved", "Your account is under review.")


def invalid_refresh_token() -> InvalidRefreshToken:
    return InvalidRefreshToken("auth.invalid_refresh_token", "The refresh token is invalid or has expired.")


def operation_failed() -> OperationFailed:
    return OperationFailed("auth.operation_failed", "The operation could not be completed.")
