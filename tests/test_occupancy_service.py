# tests/test_occupancy_service.py
"""Unit tests for fee quotes and checkout."""

import pytest
from datetime import timedelta
from plazas_api.errors import ConfigurationError, NotFoundError, StateError
from plazas_api.models.plaza import PlazaState
from plazas_api.models.plaza_movement import PlazaMovement
from plazas_api.models.pricing import BillingUnit
from plazas_api.services.occupancy_service import checkout, get_occupancy, quote_fee


@pytest.fixture
def priced(lot):
    return lot.template({BillingUnit.HOUR: 1000, BillingUnit.DAY: 9000})


class TestCheckout:
    def test_checkout_prices_closes_and_frees(self, db, lot, priced, now):
        lot.plaza(1, priced, state=PlazaState.OCCUPIED.value)
        occ = lot.occupancy(1, entered_at=now - timedelta(hours=1, minutes=10))

        result = checkout(db, occ.id, now=now)

        assert result.fee.fee == 2000
        assert result.fee.billed_units == 2
        assert result.exited_at == now
        assert result.plaza_state == PlazaState.FREE.value
        assert get_occupancy(db, occ.id).exited_at == now

    def test_checkout_is_audited(self, db, lot, priced, now):
        lot.plaza(1, priced, state=PlazaState.OCCUPIED.value)
        occ = lot.occupancy(1, entered_at=now - timedelta(hours=1))

        checkout(db, occ.id, now=now)

        movement = db.query(PlazaMovement).one()
        assert movement.action == "checkout"
        assert movement.reference == str(occ.id)

    def test_second_checkout_is_a_state_error(self, db, lot, priced, now):
        lot.plaza(1, priced)
        occ = lot.occupancy(1, entered_at=now - timedelta(hours=1))
        checkout(db, occ.id, now=now)

        with pytest.raises(StateError):
            checkout(db, occ.id, now=now)

    def test_pricing_error_leaves_stay_open(self, db, lot, now):
        lot.plaza(1, template=None, state=PlazaState.OCCUPIED.value)
        occ = lot.occupancy(1, entered_at=now - timedelta(hours=1))

        with pytest.raises(ConfigurationError):
            checkout(db, occ.id, now=now)

        assert get_occupancy(db, occ.id).exited_at is None

    def test_subscription_stay_has_no_fee(self, db, lot, priced, now):
        lot.plaza(1, priced, state=PlazaState.OCCUPIED.value)
        sub = lot.subscription(1, ends_at=now + timedelta(days=3))
        occ = lot.occupancy(1, entered_at=now - timedelta(days=2), subscription_number=sub.number)

        result = checkout(db, occ.id, now=now)

        assert result.fee is None
        # The abono still holds the plaza
        assert result.plaza_state == PlazaState.SUBSCRIBED.value

    def test_unknown_occupancy(self, db, now):
        with pytest.raises(NotFoundError):
            checkout(db, 12345, now=now)


class TestQuoteFee:
    def test_quote_does_not_close_the_stay(self, db, lot, priced, now):
        lot.plaza(1, priced)
        occ = lot.occupancy(1, entered_at=now - timedelta(hours=30), unit=BillingUnit.DAY)

        quote = quote_fee(db, occ.id, now=now)

        assert quote.billed_units == 2
        assert quote.fee == 18000
        assert get_occupancy(db, occ.id).is_active

    def test_quote_for_subscription_stay_is_rejected(self, db, lot, priced, now):
        lot.plaza(1, priced)
        sub = lot.subscription(1, ends_at=now + timedelta(days=3))
        occ = lot.occupancy(1, entered_at=now - timedelta(days=2), subscription_number=sub.number)

        with pytest.raises(StateError):
            quote_fee(db, occ.id, now=now)
