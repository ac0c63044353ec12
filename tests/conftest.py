import io
import os
import types

# Settings are read once at import; point everything at throwaway SQLite before the package loads
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SEED_REFERENCE_DATA"] = "false"
os.environ["OTP_USE_MOCK_MODE"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import reward_program.models  # noqa: F401
from reward_program.database import Base, get_db
from reward_program.main import app
from reward_program.models.geography import City, District, Region
from reward_program.models.user import Account, AccountKind
from reward_program.schemas.registration import (
    NationalAddress,
    SellerRegister,
    ShopOwnerRegister,
    TechnicianRegister,
)
from reward_program.seed import MobileSequence, _internal_account, seed_reference_data
from reward_program.services import approvals as approvals_service
from reward_program.services import registration
from reward_program.services.auth import create_access_token
from reward_program.services.media_storage import LocalMediaStorage, get_media_storage
from reward_program.services.otp_channel import OtpChannel, get_otp_channel

GOOD_CODE = "123456"
WRONG_CODE = "654321"


class FakeOtpChannel(OtpChannel):
    """Records sends; accepts only ``code``. Set ``fail_with`` to make send() raise."""

    def __init__(self, code: str = GOOD_CODE):
        self.code = code
        self.sent: list[tuple[str, str]] = []
        self.messages: list[tuple[str, str]] = []
        self.verified: list[tuple[str, str]] = []
        self.fail_with: Exception | None = None
        self._counter = 0

    def send(self, mobile_number: str) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        self._counter += 1
        handle = f"VE{self._counter:032x}"
        self.sent.append((mobile_number, handle))
        return handle

    def verify(self, handle: str, code: str) -> bool:
        self.verified.append((handle, code))
        return code == self.code

    def send_message(self, mobile_number: str, body: str) -> None:
        self.messages.append((mobile_number, body))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def channel():
    return FakeOtpChannel()


@pytest.fixture
def storage(tmp_path):
    return LocalMediaStorage(tmp_path / "media", "/uploads")


@pytest.fixture(autouse=True)
def dispatched(monkeypatch):
    """Outbound notifications are captured instead of scheduled."""
    calls = []
    monkeypatch.setattr(approvals_service, "dispatch", lambda func, *args: calls.append((func, args)))
    return calls


@pytest.fixture
def world(db):
    """Seeded catalog plus a second SalesPerson/ZoneManager pair that reviews nothing here."""
    seed_reference_data(db)
    mobiles = MobileSequence(start=598000001)
    other_zone_manager = _internal_account(db, mobiles, "Eastern Zone Manager", AccountKind.zone_manager)
    other_sales_person = _internal_account(
        db, mobiles, "Dammam Sales Representative", AccountKind.sales_person, zone_manager_id=other_zone_manager.id,
    )
    orphan_sales_person = _internal_account(db, mobiles, "Unassigned Sales Representative", AccountKind.sales_person)
    db.commit()

    city = db.query(City).filter(City.name_en == "Riyadh").one()
    other_region = Region(name_ar="المنطقة الشرقية", name_en="Eastern Province", zone_manager_id=other_zone_manager.id)
    db.add(other_region)
    db.flush()
    other_city = City(region_id=other_region.id, name_ar="الدمام", name_en="Dammam")
    db.add(other_city)
    db.flush()
    orphan_district = District(
        city_id=other_city.id, name_ar="الفيصلية", name_en="Al Faisaliyah", approval_sales_person_id=orphan_sales_person.id,
    )
    db.add(orphan_district)
    db.commit()

    def district(name_en):
        return db.query(District).filter(District.name_en == name_en).one()

    def account(kind, name):
        return db.query(Account).filter(Account.kind == kind, Account.name == name).one()

    return types.SimpleNamespace(
        city=city,
        other_city=other_city,
        district=district("Al Olaya"),
        district_without_reviewer=district("Al Suwaidi"),
        orphan_district=orphan_district,
        sales_person=account(AccountKind.sales_person, "Riyadh Sales Representative"),
        zone_manager=account(AccountKind.zone_manager, "Central Zone Manager"),
        system_admin=account(AccountKind.system_admin, "System Administrator"),
        other_sales_person=other_sales_person,
        other_zone_manager=other_zone_manager,
        orphan_sales_person=orphan_sales_person,
    )


def address_for(city, district) -> NationalAddress:
    return NationalAddress(
        city_id=city.id,
        district_id=district.id,
        street="King Fahd Road",
        building_number=1234,
        postal_code="12345",
        sub_number=5678,
    )


def png_image() -> io.BytesIO:
    return io.BytesIO(b"\x89PNG\r\n\x1a\n" + b"\x00" * 64)


def shop_owner_request(world, mobile="0500000001", tax_id="300000000000003", crn="1010101010", district=None):
    return ShopOwnerRegister(
        owner_name="Fahad Alqahtani",
        mobile_number=mobile,
        store_name="Fahad Electronics",
        tax_id=tax_id,
        commercial_registration=crn,
        address=address_for(world.city, district or world.district),
    )


@pytest.fixture
def register_shop_owner(db, channel, storage, world):
    """Intake + commit for a shop owner; returns the new account."""
    def _register(mobile="0500000001", tax_id="300000000000003", crn="1010101010"):
        accepted = registration.register_shop_owner(
            db, channel, storage, shop_owner_request(world, mobile, tax_id, crn), png_image(), "shop.png", 72,
        )
        return registration.verify_registration(db, channel, accepted.handle, GOOD_CODE)
    return _register


@pytest.fixture
def approved_shop_owner(db, world, register_shop_owner):
    account = register_shop_owner()
    approvals_service.approve(db, account.id, world.sales_person.id)
    approvals_service.approve(db, account.id, world.zone_manager.id)
    db.refresh(account)
    return account


@pytest.fixture
def register_seller(db, channel, world):
    def _register(shop_code, mobile="0500000002"):
        data = SellerRegister(
            name="Saad Alharbi",
            mobile_number=mobile,
            shop_code=shop_code,
            address=address_for(world.city, world.district),
        )
        accepted = registration.register_seller(db, channel, data)
        return registration.verify_registration(db, channel, accepted.handle, GOOD_CODE)
    return _register


@pytest.fixture
def register_technician(db, channel, world):
    def _register(mobile="0500000003"):
        data = TechnicianRegister(
            name="Omar Alzahrani",
            mobile_number=mobile,
            address=address_for(world.city, world.district),
        )
        accepted = registration.register_technician(db, channel, data)
        return registration.verify_registration(db, channel, accepted.handle, GOOD_CODE)
    return _register


@pytest.fixture
def client(session_factory, channel, storage, world):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.rollback()
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_otp_channel] = lambda: channel
    app.dependency_overrides[get_media_storage] = lambda: storage
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def auth_header(account: Account) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(account)}"}
