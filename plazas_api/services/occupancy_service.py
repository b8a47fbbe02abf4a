# plazas_api/services/occupancy_service.py
"""
Occupancy read, fee quote and checkout.
Check-in itself happens elsewhere (arrival confirmation or the operator's
manual flow); this module only prices and closes stays.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from plazas_api.errors import NotFoundError, StateError
from plazas_api.models.occupancy import Occupancy
from plazas_api.services.movement_service import record_movement
from plazas_api.services.plaza_lock import plaza_lock
from plazas_api.services.plaza_state import reconcile_plaza
from plazas_api.services.tariff_calculator import FeeBreakdown, calculate_fee
from plazas_api.utils.clock import now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    occupancy_id: int
    plaza_number: int
    vehicle_plate: str
    exited_at: datetime
    plaza_state: str
    fee: Optional[FeeBreakdown]      # None when a subscription covered the stay


def get_occupancy(db: Session, occupancy_id: int) -> Occupancy:
    occupancy = (
        db.query(Occupancy)
        .filter(Occupancy.id == occupancy_id)
        .populate_existing()
        .first()
    )
    if not occupancy:
        raise NotFoundError(f"Occupancy {occupancy_id} not found")
    return occupancy


def quote_fee(db: Session, occupancy_id: int, now: Optional[datetime] = None) -> FeeBreakdown:
    """Fee for an occupancy as of now (or as of its exit, once closed)."""
    occupancy = get_occupancy(db, occupancy_id)
    if occupancy.subscription_number is not None:
        raise StateError(f"Occupancy {occupancy_id} is covered by subscription "
                         f"{occupancy.subscription_number}")
    return calculate_fee(db, occupancy, now=now)


def checkout(db: Session, occupancy_id: int, now: Optional[datetime] = None) -> CheckoutResult:
    """
    Close an active occupancy at `now`, price it and release the plaza.
    The fee is computed before anything is written, so a pricing
    configuration error leaves the stay open.
    """
    now = now or now_utc()
    occupancy = get_occupancy(db, occupancy_id)

    with plaza_lock(db, occupancy.lot_id, occupancy.plaza_number) as plaza:
        occupancy = get_occupancy(db, occupancy_id)
        if not occupancy.is_active:
            raise StateError(f"Occupancy {occupancy_id} already closed at {occupancy.exited_at.isoformat()}")

        fee = None
        if occupancy.subscription_number is None:
            fee = calculate_fee(db, occupancy, exit_at=now, now=now)

        occupancy.exited_at = now
        db.flush()
        if plaza:
            reconcile_plaza(db, plaza, now)
        db.commit()
        plaza_state = plaza.state if plaza else None

    logger.info(f"[SALIDA] occupancy={occupancy_id} plaza={occupancy.plaza_number} "
                f"plate={occupancy.vehicle_plate} fee={fee.fee if fee else 'abono'}")
    record_movement(db, occupancy.lot_id, occupancy.plaza_number, "checkout", occupancy.vehicle_plate,
                    str(occupancy_id), f"Fee {fee.fee}" if fee else "Covered by subscription")

    return CheckoutResult(
        occupancy_id=occupancy.id,
        plaza_number=occupancy.plaza_number,
        vehicle_plate=occupancy.vehicle_plate,
        exited_at=now,
        plaza_state=plaza_state,
        fee=fee,
    )
