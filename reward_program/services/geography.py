"""Read-only lookups against the geography catalog."""
from sqlalchemy.orm import Session

from reward_program.errors import city_not_found, district_not_found, district_not_in_city, no_reviewer_for_district
from reward_program.models.geography import City, District


def resolve_district(db: Session, city_id: int, district_id: int) -> District:
    city = db.query(City).filter(City.id == city_id, City.is_active.is_(True)).first()
    if not city:
        raise city_not_found()
    district = db.query(District).filter(District.id == district_id, District.is_active.is_(True)).first()
    if not district:
        raise district_not_found()
    if district.city_id != city.id:
        raise district_not_in_city()
    return district


def resolve_reviewer_id(db: Session, city_id: int, district_id: int) -> int:
    """First-tier reviewer (SalesPerson account id) for a district."""
    district = resolve_district(db, city_id, district_id)
    if district.approval_sales_person_id is None:
        raise no_reviewer_for_district()
    return district.approval_sales_person_id
