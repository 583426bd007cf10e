# scripts/setup/init_db.py
"""
Initialize database — creates all tables, optionally seeds a demo space.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed]
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from app.database import create_tables, engine, SessionLocal
from app.config import settings
from app.exceptions import DuplicateId
from app.schemas.parking_space import ParkingSpaceCreate
from app.services import parking_space_service
from sqlalchemy import inspect, text

DEMO_SPACE = {
    "space_id": "PS-DEMO-001",
    "name": "Demo Parking",
    "address": "1 MG Road, Bengaluru",
    "space_type": "Covered",
    "latitude": 12.9756,
    "longitude": 77.6050,
    "facilities": ["CCTV", "EV Charging"],
    "vehicle_slots": [
        {"vehicle_type": "Car", "total_slots": 20, "price_per_hour": 40,
         "dimensions": {"length": 5, "width": 2.5, "height": 2.2}},
        {"vehicle_type": "Motorcycle", "total_slots": 30, "price_per_hour": 15},
    ],
}


def main():
    print("🗄️  Parking DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    print("✅ All tables created")

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if "--seed" in sys.argv:
        db = SessionLocal()
        try:
            space = parking_space_service.create_space(db, ParkingSpaceCreate(**DEMO_SPACE))
            print(f"\n🅿️  Seeded {space.space_id} ({space.total_capacity} slots)")
        except DuplicateId:
            print(f"\n🅿️  {DEMO_SPACE['space_id']} already exists — seed skipped")
        finally:
            db.close()

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn app.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
