"""
All SQLAlchemy models. Schema is the source of truth for new DBs.
Base.metadata.create_all() creates every table; no migration scripts needed for fresh installs.
"""
from reward_program.models.user import Account, Role
from reward_program.models.geography import Region, City, District
from reward_program.models.profiles import ShopProfile, SellerProfile, TechnicianProfile
from reward_program.models.otp_challenge import OtpChallenge
from reward_program.models.approval_record import ApprovalRecord
from reward_program.models.refresh_token import RefreshToken

__all__ = [
    "Account",
    "Role",
    "Region",
    "City",
    "District",
    "ShopProfile",
    "SellerProfile",
    "TechnicianProfile",
    "OtpChallenge",
    "ApprovalRecord",
    "RefreshToken",
]
