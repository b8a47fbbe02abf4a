# tests/test_movement_service.py
"""Unit tests for the plaza movement audit trail."""

from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError
from plazas_api.models.plaza_movement import PlazaMovement
from plazas_api.services.movement_service import record_movement


class TestRecordMovement:
    def test_row_is_written(self, db):
        assert record_movement(db, 1, 5, "arrival", "AB123CD", "RES-20260310-0001", "Opened") is True

        row = db.query(PlazaMovement).one()
        assert (row.lot_id, row.plaza_number, row.action) == (1, 5, "arrival")
        assert row.recorded_at is not None

    def test_failure_is_swallowed_and_rolled_back(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("INSERT", {}, Exception("database is locked"))

        assert record_movement(db, 1, 5, "checkout") is False
        db.rollback.assert_called_once()
