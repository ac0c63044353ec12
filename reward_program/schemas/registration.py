"""Registration requests and the pending-registration payload staged with an OTP challenge."""
import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

MOBILE_PATTERN = re.compile(r"^05\d{8}$")
TAX_ID_PATTERN = re.compile(r"^3\d{13}3$")
CRN_PATTERN = re.compile(r"^\d{10}$")
POSTAL_CODE_PATTERN = re.compile(r"^\d{5}$")


def normalize_mobile(value: str | None) -> str:
    if value is None:
        return ""
    return re.sub(r"[\s-]", "", value.strip())


def _validate_mobile(value: str) -> str:
    mobile = normalize_mobile(value)
    if not mobile:
        raise ValueError("Mobile number is required.")
    if not MOBILE_PATTERN.match(mobile):
        raise ValueError("Mobile number must start with 05 and contain 10 digits.")
    return mobile


def _validate_name(value: str, max_len: int = 100) -> str:
    name = (value or "").strip()
    if len(name) < 2:
        raise ValueError("Name must be at least 2 characters.")
    if len(name) > max_len:
        raise ValueError(f"Name cannot exceed {max_len} characters.")
    return name


class NationalAddress(BaseModel):
    city_id: int
    district_id: int
    street: str = Field(min_length=1, max_length=255)
    building_number: int = Field(ge=0, le=99999)
    postal_code: str
    sub_number: int = Field(ge=0, le=99999)

    @field_validator("postal_code")
    @classmethod
    def postal_code_valid(cls, v: str) -> str:
        v = (v or "").strip()
        if not POSTAL_CODE_PATTERN.match(v):
            raise ValueError("Postal code must be 5 digits.")
        return v


class ShopOwnerRegister(BaseModel):
    owner_name: str
    mobile_number: str
    store_name: str
    tax_id: str
    commercial_registration: str
    address: NationalAddress

    @field_validator("owner_name")
    @classmethod
    def owner_name_valid(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator("store_name")
    @classmethod
    def store_name_valid(cls, v: str) -> str:
        return _validate_name(v, max_len=150)

    @field_validator("mobile_number")
    @classmethod
    def mobile_valid(cls, v: str) -> str:
        return _validate_mobile(v)

    @field_validator("tax_id")
    @classmethod
    def tax_id_valid(cls, v: str) -> str:
        v = (v or "").strip()
        if not TAX_ID_PATTERN.match(v):
            raise ValueError("Tax id must be 15 digits starting and ending with 3.")
        return v

    @field_validator("commercial_registration")
    @classmethod
    def crn_valid(cls, v: str) -> str:
        v = (v or "").strip()
        if not CRN_PATTERN.match(v):
            raise ValueError("Commercial registration number must be 10 digits.")
        return v


class SellerRegister(BaseModel):
    name: str
    mobile_number: str
    shop_code: str
    address: NationalAddress

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator("mobile_number")
    @classmethod
    def mobile_valid(cls, v: str) -> str:
        return _validate_mobile(v)

    @field_validator("shop_code")
    @classmethod
    def shop_code_upper(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if not v:
            raise ValueError("Shop code is required.")
        return v


class TechnicianRegister(BaseModel):
    name: str
    mobile_number: str
    address: NationalAddress

    @field_validator("name")
    @classmethod
    def name_valid(cls, v: str) -> str:
        return _validate_name(v)

    @field_validator("mobile_number")
    @classmethod
    def mobile_valid(cls, v: str) -> str:
        return _validate_mobile(v)


# --- Pending registration payload ------------------------------------------------
# One variant per account kind, each carrying exactly what commit needs to
# materialize the account without going back to the original request.

class ShopOwnerPending(BaseModel):
    kind: Literal["shop_owner"] = "shop_owner"
    name: str
    mobile_number: str
    store_name: str
    tax_id: str
    commercial_registration: str
    image_url: str | None = None
    address: NationalAddress
    assigned_reviewer_id: int


class SellerPending(BaseModel):
    kind: Literal["seller"] = "seller"
    name: str
    mobile_number: str
    shop_code: str
    shop_owner_id: int
    address: NationalAddress
    assigned_reviewer_id: int


class TechnicianPending(BaseModel):
    kind: Literal["technician"] = "technician"
    name: str
    mobile_number: str
    address: NationalAddress
    assigned_reviewer_id: int


PendingRegistration = Annotated[
    Union[ShopOwnerPending, SellerPending, TechnicianPending],
    Field(discriminator="kind"),
]

_pending_adapter = TypeAdapter(PendingRegistration)


def dump_pending(pending: ShopOwnerPending | SellerPending | TechnicianPending) -> str:
    return pending.model_dump_json()


def load_pending(raw: str) -> ShopOwnerPending | SellerPending | TechnicianPending:
    """Decode a staged payload by its ``kind`` discriminator. Raises pydantic.ValidationError."""
    return _pending_adapter.validate_json(raw)


class RegistrationAccepted(BaseModel):
    """Response from register: OTP sent, account not created yet."""
    handle: str
    masked_mobile: str
    expires_in_seconds: int
    message: str = "A verification code has been sent."


class RegistrationCompleted(BaseModel):
    user_id: int
    message: str = "Registration completed. Your account is awaiting approval."
