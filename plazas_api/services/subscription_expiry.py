# plazas_api/services/subscription_expiry.py
"""
Subscription (abono) expiry processing.

For each subscription whose end date has passed while still `activo`:
  1. mark it `inactivo`;
  2. the abono's own stay is still open → close it at the subscription end and
     open a new hourly one for the same vehicle starting at that same instant,
     agreed price 0. The plaza stays Ocupada throughout;
  3. otherwise → recompute the plaza state. Normally Libre, but a stay or
     reservation that started after the abono lapsed keeps its claim.

Each subscription is one unit of work. A failure rolls that unit back and is
reported as an `error` result; the sweep moves on to the next subscription
after a fixed pause.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from plazas_api.config import settings
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.pricing import BillingUnit
from plazas_api.models.subscription import Subscription, SubscriptionState
from plazas_api.services.movement_service import record_movement
from plazas_api.services.plaza_lock import plaza_lock
from plazas_api.services.plaza_state import active_occupancy, reconcile_plaza
from plazas_api.utils.clock import ensure_utc, now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)

ACTION_FREED = "freed"
ACTION_CONVERTED = "converted"
ACTION_SKIPPED = "skipped"
ACTION_ERROR = "error"


@dataclass
class SubscriptionExpiryResult:
    subscription_number: int
    plaza_number: int
    action: str
    vehicle_plate: Optional[str] = None
    new_occupancy_id: Optional[int] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.action != ACTION_ERROR


def find_expired_subscriptions(db: Session, lot_id: int, now: Optional[datetime] = None) -> list:
    now = now or now_utc()
    return (
        db.query(Subscription)
        .filter(
            Subscription.lot_id == lot_id,
            Subscription.state == SubscriptionState.ACTIVE.value,
            Subscription.ends_at <= now,
        )
        .order_by(Subscription.ends_at, Subscription.number)
        .all()
    )


def process_expired_subscription(db: Session, subscription_number: int,
                                 now: Optional[datetime] = None) -> SubscriptionExpiryResult:
    """Resolve one expired subscription. Never raises; failures come back as results."""
    now = now or now_utc()
    subscription = db.query(Subscription).filter(Subscription.number == subscription_number).first()
    if not subscription:
        return SubscriptionExpiryResult(subscription_number, None, ACTION_ERROR,
                                        error=f"Subscription {subscription_number} not found")

    lot_id, plaza_number = subscription.lot_id, subscription.plaza_number
    logger.info(f"[ABONO] Processing expired subscription {subscription_number} on plaza {plaza_number}")

    try:
        with plaza_lock(db, lot_id, plaza_number) as plaza:
            subscription = (
                db.query(Subscription)
                .filter(Subscription.number == subscription_number)
                .populate_existing()
                .first()
            )
            if subscription.state == SubscriptionState.INACTIVE.value:
                db.rollback()
                logger.info(f"[ABONO] Subscription {subscription_number} already inactive; nothing to do")
                return SubscriptionExpiryResult(subscription_number, plaza_number, ACTION_SKIPPED)
            if not plaza:
                raise LookupError(f"Plaza {plaza_number} not found in lot {lot_id}")

            subscription.state = SubscriptionState.INACTIVE.value
            current = active_occupancy(db, lot_id, plaza_number)
            if current is None or not _covered_by(current, subscription):
                result = _release(db, plaza, subscription, now)
            else:
                result = _convert(db, plaza, subscription, current)
            db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"[ABONO] Subscription {subscription_number} failed: {e}", exc_info=True)
        return SubscriptionExpiryResult(subscription_number, plaza_number, ACTION_ERROR, error=str(e))

    if result.action == ACTION_CONVERTED:
        record_movement(db, lot_id, plaza_number, "subscription_converted", result.vehicle_plate,
                        str(subscription_number), f"Hourly occupancy {result.new_occupancy_id} opened")
    else:
        record_movement(db, lot_id, plaza_number, "subscription_freed", None,
                        str(subscription_number), "Plaza released at subscription end")
    return result


def _covered_by(occupancy: Occupancy, subscription: Subscription) -> bool:
    """True when the stay is the one the abono paid for, not a later check-in or reservation."""
    if occupancy.subscription_number is not None:
        return occupancy.subscription_number == subscription.number
    return (occupancy.reservation_code is None
            and ensure_utc(occupancy.entered_at) <= ensure_utc(subscription.ends_at))


def _release(db: Session, plaza: Plaza, subscription: Subscription, now: datetime) -> SubscriptionExpiryResult:
    # Any other live claim on the plaza survives the abono
    db.flush()
    reconcile_plaza(db, plaza, now)
    logger.info(f"[ABONO] Subscription {subscription.number} expired; plaza {plaza.number} released ({plaza.state})")
    return SubscriptionExpiryResult(subscription.number, plaza.number, ACTION_FREED)


def _convert(db: Session, plaza: Plaza, subscription: Subscription,
             current: Occupancy) -> SubscriptionExpiryResult:
    boundary = ensure_utc(subscription.ends_at)
    current.exited_at = boundary
    successor = Occupancy(
        lot_id=current.lot_id,
        plaza_number=current.plaza_number,
        vehicle_plate=current.vehicle_plate,
        entered_at=boundary,
        billing_unit=BillingUnit.HOUR.value,
        agreed_price=0,
    )
    db.add(successor)
    plaza.state = PlazaState.OCCUPIED.value
    db.flush()
    logger.info(f"[ABONO] Subscription {subscription.number} expired; vehicle {current.vehicle_plate} "
                f"moved to hourly occupancy {successor.id} from {boundary.isoformat()}")
    return SubscriptionExpiryResult(subscription.number, plaza.number, ACTION_CONVERTED,
                                    vehicle_plate=current.vehicle_plate, new_occupancy_id=successor.id)


async def process_expired_subscriptions(db: Session, lot_id: int, now: Optional[datetime] = None,
                                        delay: Optional[float] = None) -> list:
    """Sweep every expired subscription of a lot, one at a time."""
    now = now or now_utc()
    delay = settings.SUBSCRIPTION_SWEEP_DELAY_SECONDS if delay is None else delay
    expired = await run_in_threadpool(find_expired_subscriptions, db, lot_id, now)
    numbers = [s.number for s in expired]

    results = []
    for i, number in enumerate(numbers):
        # Blocking DB work and the plaza lock stay off the event loop
        results.append(await run_in_threadpool(process_expired_subscription, db, number, now))
        if delay and i < len(numbers) - 1:
            await asyncio.sleep(delay)

    freed = sum(1 for r in results if r.action == ACTION_FREED)
    converted = sum(1 for r in results if r.action == ACTION_CONVERTED)
    errors = sum(1 for r in results if r.action == ACTION_ERROR)
    logger.info(f"[ABONO] Sweep lot={lot_id}: {len(results) - errors}/{len(results)} ok, "
                f"{freed} freed, {converted} converted, {errors} errors")
    return results
