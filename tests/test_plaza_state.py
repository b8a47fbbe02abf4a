# tests/test_plaza_state.py
"""Unit tests for plaza state derivation and reconciliation."""

from datetime import timedelta
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.reservation import ReservationState
from plazas_api.services.plaza_state import (
    arrival_deadline, effective_state, reconcile_lot, reconcile_plaza,
)


class TestEffectiveState:
    def test_free_without_claims(self, db, lot, now):
        plaza = lot.plaza(1)
        assert effective_state(db, plaza, now) == PlazaState.FREE.value

    def test_occupancy_beats_subscription(self, db, lot, now):
        plaza = lot.plaza(1)
        lot.subscription(1, ends_at=now + timedelta(days=5))
        lot.occupancy(1, entered_at=now - timedelta(hours=1))

        assert effective_state(db, plaza, now) == PlazaState.OCCUPIED.value

    def test_active_subscription(self, db, lot, now):
        plaza = lot.plaza(1)
        lot.subscription(1, ends_at=now + timedelta(days=5))

        assert effective_state(db, plaza, now) == PlazaState.SUBSCRIBED.value

    def test_lapsed_subscription_no_longer_counts(self, db, lot, now):
        plaza = lot.plaza(1)
        lot.subscription(1, ends_at=now - timedelta(minutes=1))

        assert effective_state(db, plaza, now) == PlazaState.FREE.value

    def test_confirmed_reservation_reserves_until_deadline(self, db, lot, now):
        plaza = lot.plaza(1)
        reservation = lot.reservation("RES-20260310-0001", 1, starts_at=now, hours=2)

        assert effective_state(db, plaza, arrival_deadline(reservation)) == PlazaState.RESERVED.value
        after = arrival_deadline(reservation) + timedelta(seconds=1)
        assert effective_state(db, plaza, after) == PlazaState.FREE.value

    def test_unpaid_reservation_does_not_reserve(self, db, lot, now):
        plaza = lot.plaza(1)
        lot.reservation("RES-20260310-0001", 1, starts_at=now, state=ReservationState.PENDING_PAYMENT.value)

        assert effective_state(db, plaza, now) == PlazaState.FREE.value

    def test_maintenance_is_never_overridden(self, db, lot, now):
        plaza = lot.plaza(1, state=PlazaState.MAINTENANCE.value)
        lot.occupancy(1, entered_at=now - timedelta(hours=1))

        assert effective_state(db, plaza, now) == PlazaState.MAINTENANCE.value

    def test_deadline_is_window_end_plus_grace(self, lot, now):
        reservation = lot.reservation("RES-20260310-0001", 1, starts_at=now, hours=3, grace_minutes=10)
        assert arrival_deadline(reservation) == now + timedelta(hours=3, minutes=10)


class TestReconcile:
    def test_stale_reserved_plaza_is_freed(self, db, lot, now):
        plaza = lot.plaza(1, state=PlazaState.RESERVED.value)
        lot.reservation("RES-20260310-0001", 1, starts_at=now - timedelta(hours=4), hours=2)

        assert reconcile_plaza(db, plaza, now) is True
        db.commit()

        assert plaza.state == PlazaState.FREE.value
        assert reconcile_plaza(db, plaza, now) is False

    def test_reconcile_closes_overdue_reservation(self, db, lot, now):
        plaza = lot.plaza(1, state=PlazaState.RESERVED.value)
        reservation = lot.reservation("RES-20260310-0001", 1, starts_at=now - timedelta(hours=4), hours=2)

        reconcile_plaza(db, plaza, now)
        db.commit()

        assert reservation.state == ReservationState.EXPIRED.value

    def test_reconcile_lot_persists_and_sorts(self, db, lot, now):
        lot.plaza(3, zone="B", state=PlazaState.RESERVED.value)
        lot.plaza(2, zone="A")
        lot.plaza(1, zone="B")
        lot.occupancy(2, entered_at=now - timedelta(hours=1))

        plazas = reconcile_lot(db, 1, now)

        assert [(p.zone, p.number) for p in plazas] == [("A", 2), ("B", 1), ("B", 3)]
        db.expire_all()
        stored = {p.number: p.state for p in db.query(Plaza).all()}
        assert stored == {1: "Libre", 2: "Ocupada", 3: "Libre"}
