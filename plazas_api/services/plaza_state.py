# plazas_api/services/plaza_state.py
"""
Plaza state derived from the rows that actually claim the plaza.

The `plazas.state` column is a cache. The truth is:
  - an active occupancy (exited_at IS NULL)      → Ocupada
  - an active, unexpired subscription           → Abonado
  - a confirmed reservation before its deadline → Reservada
  - nothing                                     → Libre
Mantenimiento is set by operators and is never overridden here.

effective_state() only reads. reconcile_plaza() also writes: it closes out
reservations whose time has passed and stores the recomputed state. Neither
commits; the caller owns the transaction.
"""

from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import and_, or_
from sqlalchemy.orm import Session
from plazas_api.config import settings
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.reservation import Reservation, ReservationState
from plazas_api.models.subscription import Subscription, SubscriptionState
from plazas_api.utils.clock import now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


def arrival_deadline(reservation: Reservation) -> datetime:
    """Last instant at which arrival is honoured: window end plus grace minutes."""
    return reservation.ends_at + timedelta(minutes=reservation.grace_minutes or 0)


def payment_hold_cutoff(now: datetime) -> datetime:
    """Unpaid reservations created before this instant no longer hold their plaza."""
    return now - timedelta(minutes=settings.PAYMENT_HOLD_MINUTES)


def blocking_reservation_clause(now: datetime):
    """Reservations that currently claim their plaza/window."""
    return or_(
        Reservation.state.in_((ReservationState.CONFIRMED.value, ReservationState.ACTIVE.value)),
        and_(
            Reservation.state == ReservationState.PENDING_PAYMENT.value,
            Reservation.created_at > payment_hold_cutoff(now),
        ),
    )


def active_occupancy(db: Session, lot_id: int, plaza_number: int) -> Optional[Occupancy]:
    return (
        db.query(Occupancy)
        .filter(
            Occupancy.lot_id == lot_id,
            Occupancy.plaza_number == plaza_number,
            Occupancy.exited_at.is_(None),
        )
        .order_by(Occupancy.entered_at.desc())
        .first()
    )


def _claims(db: Session, lot_id: int, now: datetime, plaza_number: Optional[int] = None):
    """Plaza numbers claimed by an occupancy, a subscription and a reservation."""
    occ_q = db.query(Occupancy.plaza_number).filter(
        Occupancy.lot_id == lot_id, Occupancy.exited_at.is_(None))
    sub_q = db.query(Subscription.plaza_number).filter(
        Subscription.lot_id == lot_id,
        Subscription.state == SubscriptionState.ACTIVE.value,
        Subscription.ends_at > now,
    )
    res_q = db.query(Reservation).filter(
        Reservation.lot_id == lot_id,
        Reservation.state.in_((ReservationState.CONFIRMED.value, ReservationState.ACTIVE.value)),
    )
    if plaza_number is not None:
        occ_q = occ_q.filter(Occupancy.plaza_number == plaza_number)
        sub_q = sub_q.filter(Subscription.plaza_number == plaza_number)
        res_q = res_q.filter(Reservation.plaza_number == plaza_number)

    occupied = {row[0] for row in occ_q.all()}
    subscribed = {row[0] for row in sub_q.all()}
    reserved = {r.plaza_number for r in res_q.all() if now <= arrival_deadline(r)}
    return occupied, subscribed, reserved


def _derive(plaza: Plaza, occupied: set, subscribed: set, reserved: set) -> str:
    if plaza.state == PlazaState.MAINTENANCE.value:
        return PlazaState.MAINTENANCE.value
    if plaza.number in occupied:
        return PlazaState.OCCUPIED.value
    if plaza.number in subscribed:
        return PlazaState.SUBSCRIBED.value
    if plaza.number in reserved:
        return PlazaState.RESERVED.value
    return PlazaState.FREE.value


def effective_state(db: Session, plaza: Plaza, now: Optional[datetime] = None) -> str:
    now = now or now_utc()
    return _derive(plaza, *_claims(db, plaza.lot_id, now, plaza.number))


def effective_states(db: Session, lot_id: int, plazas: list, now: Optional[datetime] = None) -> dict:
    """Bulk effective_state() for every plaza of one lot, keyed by plaza number."""
    now = now or now_utc()
    claims = _claims(db, lot_id, now)
    return {p.number: _derive(p, *claims) for p in plazas}


def close_overdue_reservations(db: Session, lot_id: Optional[int] = None,
                               plaza_number: Optional[int] = None,
                               now: Optional[datetime] = None) -> list:
    """
    Confirmed reservations past their arrival deadline → expirada.
    Unpaid reservations past their payment hold → cancelada.
    Returns the reservations that changed.
    """
    now = now or now_utc()
    q = db.query(Reservation).filter(
        Reservation.state.in_((ReservationState.CONFIRMED.value, ReservationState.PENDING_PAYMENT.value))
    )
    if lot_id is not None:
        q = q.filter(Reservation.lot_id == lot_id)
    if plaza_number is not None:
        q = q.filter(Reservation.plaza_number == plaza_number)

    cutoff = payment_hold_cutoff(now)
    changed = []
    for reservation in q.all():
        if reservation.state == ReservationState.CONFIRMED.value and now > arrival_deadline(reservation):
            reservation.state = ReservationState.EXPIRED.value
            changed.append(reservation)
        elif reservation.state == ReservationState.PENDING_PAYMENT.value and reservation.created_at <= cutoff:
            reservation.state = ReservationState.CANCELLED.value
            changed.append(reservation)
    if changed:
        db.flush()
        logger.info(f"[RESERVA] Closed {len(changed)} overdue reservation(s): "
                    f"{[(r.code, r.state) for r in changed]}")
    return changed


def reconcile_plaza(db: Session, plaza: Plaza, now: Optional[datetime] = None) -> bool:
    """Recompute and store one plaza's state. Returns True when it changed."""
    now = now or now_utc()
    close_overdue_reservations(db, plaza.lot_id, plaza.number, now)
    new_state = effective_state(db, plaza, now)
    if new_state == plaza.state:
        return False
    logger.info(f"[PLAZA] lot={plaza.lot_id} #{plaza.number}: {plaza.state} → {new_state}")
    plaza.state = new_state
    return True


def reconcile_lot(db: Session, lot_id: int, now: Optional[datetime] = None) -> list:
    """Reconcile every plaza of a lot and commit. Returns the plazas, sorted."""
    now = now or now_utc()
    close_overdue_reservations(db, lot_id, now=now)
    plazas = (
        db.query(Plaza)
        .filter(Plaza.lot_id == lot_id)
        .order_by(Plaza.zone, Plaza.number)
        .all()
    )
    states = effective_states(db, lot_id, plazas, now)
    changed = 0
    for plaza in plazas:
        if plaza.state != states[plaza.number]:
            plaza.state = states[plaza.number]
            changed += 1
    db.commit()
    if changed:
        logger.info(f"[PLAZA] lot={lot_id}: reconciled {changed}/{len(plazas)} plazas")
    return plazas
