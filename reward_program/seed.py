"""Seed the geography catalog and the internal reviewer accounts it points at."""
import logging

from sqlalchemy.orm import Session

from reward_program.models.geography import City, District, Region
from reward_program.models.user import Account, AccountKind, RegistrationStatus, ROLE_FOR_KIND
from reward_program.services.identity import assign_role, get_or_create_role

logger = logging.getLogger("uvicorn.error")


class MobileSequence:
    """Deterministic 05XXXXXXXX numbers for seeded accounts. One instance per seeding run."""

    def __init__(self, start: int = 599000001):
        self._next = start

    def next(self) -> str:
        value = self._next
        self._next += 1
        return f"0{value}"


def _internal_account(db: Session, mobiles: MobileSequence, name: str, kind: AccountKind, zone_manager_id: int | None = None) -> Account:
    account = Account(
        name=name,
        mobile_number=mobiles.next(),
        kind=kind,
        registration_status=RegistrationStatus.approved,
        is_disabled=False,
        zone_manager_id=zone_manager_id,
    )
    db.add(account)
    db.flush()
    assign_role(db, account, ROLE_FOR_KIND[kind])
    return account


def seed_reference_data(db: Session) -> None:
    if db.query(Region).count() > 0:
        return
    mobiles = MobileSequence()
    for role_name in ROLE_FOR_KIND.values():
        get_or_create_role(db, role_name)

    zone_manager = _internal_account(db, mobiles, "Central Zone Manager", AccountKind.zone_manager)
    sales_person = _internal_account(
        db, mobiles, "Riyadh Sales Representative", AccountKind.sales_person, zone_manager_id=zone_manager.id,
    )
    _internal_account(db, mobiles, "System Administrator", AccountKind.system_admin)

    region = Region(name_ar="منطقة الرياض", name_en="Riyadh Region", zone_manager_id=zone_manager.id)
    db.add(region)
    db.flush()
    city = City(region_id=region.id, name_ar="الرياض", name_en="Riyadh")
    db.add(city)
    db.flush()
    districts = [
        District(city_id=city.id, name_ar="العليا", name_en="Al Olaya", zone="center", approval_sales_person_id=sales_person.id),
        District(city_id=city.id, name_ar="الملقا", name_en="Al Malqa", zone="north", approval_sales_person_id=sales_person.id),
        District(city_id=city.id, name_ar="النخيل", name_en="Al Nakheel", zone="west", approval_sales_person_id=sales_person.id),
        # No reviewer yet: registrations here are refused until one is assigned
        District(city_id=city.id, name_ar="السويدي", name_en="Al Suwaidi", zone="south"),
    ]
    for d in districts:
        db.add(d)
    db.commit()
    logger.info(
        "Seeded reference data: region=%s city=%s districts=%d zone_manager=%s sales_person=%s",
        region.id, city.id, len(districts), zone_manager.id, sales_person.id,
    )
