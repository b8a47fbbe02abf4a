# tests/test_subscription_expiry.py
"""Unit tests for abono expiry processing."""

import threading
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.pricing import BillingUnit
from plazas_api.models.subscription import Subscription, SubscriptionState
from plazas_api.services import reservation_service, subscription_expiry
from plazas_api.services.subscription_expiry import (
    find_expired_subscriptions, process_expired_subscription, process_expired_subscriptions,
)


def stored_plaza(db, number):
    db.expire_all()
    return db.query(Plaza).filter(Plaza.number == number).one()


class TestSubscriptionExpiry:
    def test_only_active_past_subscriptions_are_found(self, db, lot, now):
        expired = lot.subscription(1, ends_at=now - timedelta(hours=1))
        lot.subscription(2, ends_at=now + timedelta(hours=1))
        lot.subscription(3, ends_at=now - timedelta(days=1), state=SubscriptionState.INACTIVE.value)

        assert [s.number for s in find_expired_subscriptions(db, 1, now)] == [expired.number]

    @pytest.mark.asyncio
    async def test_empty_plaza_is_freed(self, db, lot, now):
        lot.plaza(1, state=PlazaState.SUBSCRIBED.value)
        sub = lot.subscription(1, ends_at=now - timedelta(hours=1))

        results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert [(r.subscription_number, r.action) for r in results] == [(sub.number, "freed")]
        assert stored_plaza(db, 1).state == PlazaState.FREE.value
        assert db.query(Subscription).one().state == SubscriptionState.INACTIVE.value

    @pytest.mark.asyncio
    async def test_parked_vehicle_moves_to_hourly_without_gap(self, db, lot, now):
        lot.plaza(1, state=PlazaState.OCCUPIED.value)
        ends_at = now - timedelta(hours=1)
        sub = lot.subscription(1, ends_at=ends_at)
        covered = lot.occupancy(1, entered_at=now - timedelta(days=20), plate="ABO123",
                                subscription_number=sub.number)

        results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert results[0].action == "converted"
        assert results[0].vehicle_plate == "ABO123"
        db.expire_all()
        old = db.get(Occupancy, covered.id)
        new = db.get(Occupancy, results[0].new_occupancy_id)
        assert old.exited_at == ends_at
        assert new.entered_at == ends_at
        assert new.exited_at is None
        assert new.vehicle_plate == "ABO123"
        assert new.billing_unit == "hora"
        assert new.agreed_price == 0
        assert new.subscription_number is None
        assert stored_plaza(db, 1).state == PlazaState.OCCUPIED.value

    @pytest.mark.asyncio
    async def test_maintenance_plaza_stays_in_maintenance(self, db, lot, now):
        lot.plaza(1, state=PlazaState.MAINTENANCE.value)
        lot.subscription(1, ends_at=now - timedelta(hours=1))

        await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert stored_plaza(db, 1).state == PlazaState.MAINTENANCE.value

    @pytest.mark.asyncio
    async def test_second_sweep_does_nothing(self, db, lot, now):
        lot.plaza(1, state=PlazaState.SUBSCRIBED.value)
        lot.subscription(1, ends_at=now - timedelta(hours=1))

        await process_expired_subscriptions(db, 1, now=now, delay=0)
        again = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert again == []
        assert db.query(Occupancy).count() == 0

    def test_already_inactive_subscription_is_skipped(self, db, lot, now):
        lot.plaza(1)
        sub = lot.subscription(1, ends_at=now - timedelta(hours=1), state=SubscriptionState.INACTIVE.value)

        result = process_expired_subscription(db, sub.number)

        assert result.action == "skipped"
        assert result.success

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_sweep(self, db, lot, now):
        lot.plaza(1, state=PlazaState.SUBSCRIBED.value)
        lot.plaza(2, state=PlazaState.SUBSCRIBED.value)
        failing = lot.subscription(1, ends_at=now - timedelta(hours=2))
        lot.subscription(2, ends_at=now - timedelta(hours=1))
        real = subscription_expiry.active_occupancy

        def flaky(db, lot_id, plaza_number):
            if plaza_number == 1:
                raise RuntimeError("disk full")
            return real(db, lot_id, plaza_number)

        with patch.object(subscription_expiry, "active_occupancy", side_effect=flaky):
            results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert [r.action for r in results] == ["error", "freed"]
        assert "disk full" in results[0].error
        db.expire_all()
        assert db.get(Subscription, failing.number).state == SubscriptionState.ACTIVE.value
        assert stored_plaza(db, 1).state == PlazaState.SUBSCRIBED.value
        assert stored_plaza(db, 2).state == PlazaState.FREE.value

    @pytest.mark.asyncio
    async def test_pauses_between_subscriptions(self, db, lot, now):
        for number in (1, 2, 3):
            lot.plaza(number, state=PlazaState.SUBSCRIBED.value)
            lot.subscription(number, ends_at=now - timedelta(hours=number))

        with patch("plazas_api.services.subscription_expiry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            results = await process_expired_subscriptions(db, 1, now=now, delay=0.5)

        assert len(results) == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_reservation_stay_after_lapse_is_left_alone(self, db, lot, now):
        template = lot.template({BillingUnit.HOUR: 1200})
        lot.plaza(5, template, state=PlazaState.SUBSCRIBED.value)
        lot.subscription(5, ends_at=now - timedelta(hours=2))
        reservation = reservation_service.create_reservation(db, 1, 5, "AB123CD", 7, now, 2, now=now)
        reservation_service.apply_payment_outcome(db, reservation.code, "approved", "MP-1", now=now)
        arrived, _ = reservation_service.confirm_arrival(db, reservation.code, 1, now=now)

        results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert results[0].action == "freed"
        assert results[0].new_occupancy_id is None
        db.expire_all()
        stay = db.query(Occupancy).one()
        assert stay.id == arrived.id
        assert stay.entered_at == now
        assert stay.exited_at is None
        assert stay.agreed_price == 2400
        assert stay.reservation_code == reservation.code
        assert stored_plaza(db, 5).state == PlazaState.OCCUPIED.value

    @pytest.mark.asyncio
    async def test_walk_in_after_lapse_is_not_converted(self, db, lot, now):
        lot.plaza(1, state=PlazaState.OCCUPIED.value)
        lot.subscription(1, ends_at=now - timedelta(hours=3))
        walk_in = lot.occupancy(1, entered_at=now - timedelta(hours=1), plate="NEW001")

        results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert results[0].action == "freed"
        db.expire_all()
        assert db.get(Occupancy, walk_in.id).exited_at is None
        assert db.query(Occupancy).count() == 1
        assert stored_plaza(db, 1).state == PlazaState.OCCUPIED.value

    @pytest.mark.asyncio
    async def test_each_subscription_is_processed_off_the_event_loop(self, db, lot, now):
        for number in (1, 2):
            lot.plaza(number, state=PlazaState.SUBSCRIBED.value)
            lot.subscription(number, ends_at=now - timedelta(hours=number))
        loop_thread = threading.get_ident()
        worker_threads = []
        real = subscription_expiry.process_expired_subscription

        def tracking(*args):
            worker_threads.append(threading.get_ident())
            return real(*args)

        with patch.object(subscription_expiry, "process_expired_subscription", side_effect=tracking):
            results = await process_expired_subscriptions(db, 1, now=now, delay=0)

        assert [r.action for r in results] == ["freed", "freed"]
        assert len(worker_threads) == 2
        assert loop_thread not in worker_threads
