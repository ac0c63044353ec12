"""
Database connection and session.

Schema source of truth: reward_program.models. On startup, Base.metadata.create_all(bind=engine)
creates all tables and constraints from the current models. The unique constraints on
accounts.mobile_number, shop_profiles.tax_id, shop_profiles.commercial_registration and
shop_profiles.shop_code are the last line of defence behind the service-level checks.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from reward_program.config import get_settings

settings = get_settings()
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        # Anything not committed by the handler (client went away, unexpected error) is discarded
        db.rollback()
        db.close()
