"""Geography catalog (read-only reference data, pre-seeded)."""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from reward_program.database import Base


class Region(Base):
    __tablename__ = "regions"

    id = Column(Integer, primary_key=True, index=True)
    name_ar = Column(String(100), nullable=False)
    name_en = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    zone_manager_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    cities = relationship("City", back_populates="region")


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True)
    region_id = Column(Integer, ForeignKey("regions.id"), nullable=False)
    name_ar = Column(String(100), nullable=False)
    name_en = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    region = relationship("Region", back_populates="cities")
    districts = relationship("District", back_populates="city")


class District(Base):
    __tablename__ = "districts"

    id = Column(Integer, primary_key=True, index=True)
    city_id = Column(Integer, ForeignKey("cities.id"), nullable=False, index=True)
    name_ar = Column(String(100), nullable=False)
    name_en = Column(String(100), nullable=False)
    zone = Column(String(20), nullable=True)  # north, south, east, west, center
    is_active = Column(Boolean, default=True, nullable=False)

    # SalesPerson who performs first-tier review for registrations in this district
    approval_sales_person_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)

    city = relationship("City", back_populates="districts")
