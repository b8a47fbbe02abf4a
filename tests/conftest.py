# tests/conftest.py
"""Shared fixtures: an in-memory SQLite session and a small lot builder."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from plazas_api.database import Base, create_tables
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.pricing import BillingUnit, PricingTemplate, Tariff
from plazas_api.models.reservation import Reservation, ReservationState
from plazas_api.models.subscription import Subscription, SubscriptionState

# 12:00 in Buenos Aires (UTC-3)
NOW = datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc)
LONG_AGO = datetime(2000, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


class LotBuilder:
    """Inserts pricing, plazas and claims for one lot, committing each time."""

    def __init__(self, db, lot_id=1):
        self.db = db
        self.lot_id = lot_id

    def template(self, prices=None, name="Standard car", segment="car", effective_from=LONG_AGO):
        prices = {BillingUnit.HOUR: 1200} if prices is None else prices
        template = PricingTemplate(lot_id=self.lot_id, name=name, segment=segment)
        self.db.add(template)
        self.db.flush()
        for unit, price in prices.items():
            self.db.add(Tariff(template_id=template.id, unit=unit.value, price=price,
                               effective_from=effective_from))
        self.db.commit()
        return template

    def plaza(self, number, template=None, zone="A", state=PlazaState.FREE.value, segment="car"):
        plaza = Plaza(lot_id=self.lot_id, number=number, zone=zone, segment=segment,
                      template_id=template.id if template else None, state=state)
        self.db.add(plaza)
        self.db.commit()
        return plaza

    def reservation(self, code, plaza_number, starts_at, hours=2, state=ReservationState.CONFIRMED.value,
                    plate="AB123CD", driver_id=7, amount=2400, created_at=None, grace_minutes=15):
        reservation = Reservation(
            code=code, lot_id=self.lot_id, plaza_number=plaza_number, vehicle_plate=plate,
            driver_id=driver_id, starts_at=starts_at, ends_at=starts_at + timedelta(hours=hours),
            grace_minutes=grace_minutes, amount=amount, state=state,
            created_at=created_at or starts_at,
        )
        self.db.add(reservation)
        self.db.commit()
        return reservation

    def occupancy(self, plaza_number, entered_at, unit=BillingUnit.HOUR, plate="XY987ZW",
                  agreed_price=0, exited_at=None, subscription_number=None, reservation_code=None):
        occupancy = Occupancy(
            lot_id=self.lot_id, plaza_number=plaza_number, vehicle_plate=plate,
            entered_at=entered_at, exited_at=exited_at, billing_unit=unit.value,
            agreed_price=agreed_price, subscription_number=subscription_number,
            reservation_code=reservation_code,
        )
        self.db.add(occupancy)
        self.db.commit()
        return occupancy

    def subscription(self, plaza_number, ends_at, starts_at=None, state=SubscriptionState.ACTIVE.value):
        subscription = Subscription(
            lot_id=self.lot_id, plaza_number=plaza_number,
            starts_at=starts_at or ends_at - timedelta(days=30), ends_at=ends_at, state=state,
        )
        self.db.add(subscription)
        self.db.commit()
        return subscription


@pytest.fixture
def lot(db):
    return LotBuilder(db)


@pytest.fixture
def now():
    return NOW
