"""Kind-specific profile records linked one-to-one to an Account."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.orm import relationship, backref
from sqlalchemy.sql import func
from reward_program.database import Base


class ShopProfile(Base):
    __tablename__ = "shop_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)

    store_name = Column(String(150), nullable=False)
    tax_id = Column(String(15), unique=True, nullable=False)
    commercial_registration = Column(String(10), unique=True, nullable=False)
    image_url = Column(String(500), nullable=True)

    # Assigned once, on final approval
    shop_code = Column(String(12), unique=True, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    account = relationship("Account", backref=backref("shop_profile", uselist=False))


class SellerProfile(Base):
    __tablename__ = "seller_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)
    # Resolved at registration from the submitted shop code
    shop_owner_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("Account", foreign_keys=[account_id], backref=backref("seller_profile", uselist=False))
    shop_owner = relationship("Account", foreign_keys=[shop_owner_id])


class TechnicianProfile(Base):
    __tablename__ = "technician_profiles"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), unique=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    account = relationship("Account", backref=backref("technician_profile", uselist=False))
