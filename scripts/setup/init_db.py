# scripts/setup/init_db.py
"""
Initialize database: creates all tables, optionally seeding a demo lot.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed] [--lot 1]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from datetime import datetime, timezone
from sqlalchemy import inspect, text
from plazas_api.database import SessionLocal, create_tables, engine
from plazas_api.config import settings
from plazas_api.models.plaza import Plaza
from plazas_api.models.pricing import BillingUnit, PricingTemplate, Tariff

DEMO_PRICES = {
    "car": {BillingUnit.HOUR: 1500, BillingUnit.DAY: 12000, BillingUnit.WEEK: 60000, BillingUnit.MONTH: 180000},
    "motorcycle": {BillingUnit.HOUR: 700, BillingUnit.DAY: 5000, BillingUnit.WEEK: 25000, BillingUnit.MONTH: 80000},
}
DEMO_ZONES = {"A": ("car", range(1, 11)), "B": ("car", range(11, 21)), "M": ("motorcycle", range(21, 26))}


def seed_demo_lot(lot_id: int):
    db = SessionLocal()
    try:
        if db.query(Plaza).filter(Plaza.lot_id == lot_id).first():
            print(f"⚠️  Lot {lot_id} already has plazas, seed skipped")
            return

        effective = datetime(2000, 1, 1, tzinfo=timezone.utc)
        templates = {}
        for segment, prices in DEMO_PRICES.items():
            template = PricingTemplate(lot_id=lot_id, name=f"Standard {segment}", segment=segment)
            db.add(template)
            db.flush()
            templates[segment] = template
            for unit, price in prices.items():
                db.add(Tariff(template_id=template.id, unit=unit.value, price=price, effective_from=effective))

        count = 0
        for zone, (segment, numbers) in DEMO_ZONES.items():
            for number in numbers:
                db.add(Plaza(lot_id=lot_id, number=number, zone=zone, segment=segment,
                             template_id=templates[segment].id))
                count += 1
        db.commit()
        print(f"✅ Seeded lot {lot_id}: {len(templates)} templates, {count} plazas")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create tables and optionally seed a demo lot")
    parser.add_argument("--seed", action="store_true", help="Insert demo templates, tariffs and plazas")
    parser.add_argument("--lot", type=int, default=1)
    args = parser.parse_args()

    print("🗄️  Plazas DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    # Test connection
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed:
        print(f"\n🌱 Seeding demo lot {args.lot}...")
        seed_demo_lot(args.lot)

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn plazas_api.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
