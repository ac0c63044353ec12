"""Standalone script to create DB tables and seed the geography catalog and reviewer accounts."""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from reward_program.database import engine, SessionLocal, Base
import reward_program.models  # noqa: F401
from reward_program.seed import seed_reference_data

if __name__ == "__main__":
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_reference_data(db)
        print("Reference data seeded: Riyadh region, city, districts and reviewer accounts.")
    finally:
        db.close()
