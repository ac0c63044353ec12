"""Accounts, roles and registration status."""
from sqlalchemy import Column, Integer, String, Enum as SQLEnum, DateTime, Boolean, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from reward_program.database import Base
import enum


class AccountKind(str, enum.Enum):
    shop_owner = "shop_owner"
    seller = "seller"
    technician = "technician"
    sales_person = "sales_person"
    zone_manager = "zone_manager"
    system_admin = "system_admin"


class RegistrationStatus(str, enum.Enum):
    pending_salesman = "pending_salesman"
    pending_zone_manager = "pending_zone_manager"
    approved = "approved"
    rejected = "rejected"


PENDING_STATUSES = (RegistrationStatus.pending_salesman, RegistrationStatus.pending_zone_manager)

ROLE_SHOP_OWNER = "ShopOwner"
ROLE_SELLER = "Seller"
ROLE_TECHNICIAN = "Technician"
ROLE_SALES_PERSON = "SalesPerson"
ROLE_ZONE_MANAGER = "ZoneManager"
ROLE_SYSTEM_ADMIN = "SystemAdmin"

ROLE_FOR_KIND = {
    AccountKind.shop_owner: ROLE_SHOP_OWNER,
    AccountKind.seller: ROLE_SELLER,
    AccountKind.technician: ROLE_TECHNICIAN,
    AccountKind.sales_person: ROLE_SALES_PERSON,
    AccountKind.zone_manager: ROLE_ZONE_MANAGER,
    AccountKind.system_admin: ROLE_SYSTEM_ADMIN,
}


account_roles = Table(
    "account_roles",
    Base.metadata,
    Column("account_id", Integer, ForeignKey("accounts.id"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id"), primary_key=True),
)


class Role(Base):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False)


class Account(Base):
    __tablename__ = "accounts"
    # Phone number is unique across every account kind
    __table_args__ = (UniqueConstraint("mobile_number", name="uq_accounts_mobile_number"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    mobile_number = Column(String(20), nullable=False, index=True)
    kind = Column(SQLEnum(AccountKind), nullable=False)
    registration_status = Column(SQLEnum(RegistrationStatus), nullable=False, default=RegistrationStatus.pending_salesman)
    is_disabled = Column(Boolean, default=False, nullable=False)

    # First-tier reviewer (a SalesPerson) fixed at registration time
    assigned_reviewer_id = Column(Integer, ForeignKey("accounts.id"), nullable=True, index=True)
    # SalesPerson accounts only: the ZoneManager they report to
    zone_manager_id = Column(Integer, ForeignKey("accounts.id"), nullable=True, index=True)

    # National address (owned value; ids refer to the geography catalog)
    city_id = Column(Integer, nullable=True)
    district_id = Column(Integer, nullable=True)
    street = Column(String(255), nullable=True)
    building_number = Column(Integer, nullable=True)
    postal_code = Column(String(20), nullable=True)
    sub_number = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    roles = relationship("Role", secondary=account_roles, lazy="selectin")
    assigned_reviewer = relationship("Account", remote_side="Account.id", foreign_keys="Account.assigned_reviewer_id")
    zone_manager = relationship("Account", remote_side="Account.id", foreign_keys="Account.zone_manager_id")

    @property
    def role_names(self) -> list[str]:
        return sorted(r.name for r in self.roles)
