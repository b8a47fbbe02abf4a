# plazas_api/services/reservation_service.py
"""
Reservation lifecycle.

    pendiente_pago ──approved──▶ confirmada ──arrival──▶ completada
          │                          │
          └─rejected/cancelled─▶ cancelada ◀─manual─┘
                                     │
                                     └─deadline passed─▶ expirada

Every transition that touches a plaza runs under plaza_lock() and commits
once: the reservation, the occupancy it may create and the plaza state change
land together or not at all. Movement rows are written after the commit.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from plazas_api.config import settings
from plazas_api.errors import (
    ConfigurationError, ConflictError, ExpiryError, NotFoundError, StateError, ValidationError,
)
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.pricing import BillingUnit
from plazas_api.models.reservation import OPEN_STATES, Reservation, ReservationState
from plazas_api.services.availability_service import (
    conflicting_occupancy_plazas, conflicting_reservation_plazas, unavailable_reason, validate_window,
)
from plazas_api.services.movement_service import record_movement
from plazas_api.services.plaza_lock import plaza_lock
from plazas_api.services.plaza_state import (
    arrival_deadline, close_overdue_reservations, effective_state, payment_hold_cutoff, reconcile_plaza,
)
from plazas_api.services.tariff_catalog import latest_tariff
from plazas_api.utils.clock import now_utc, to_lot_time
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)

CODE_PREFIX = "RES"
_CODE_ATTEMPTS = 3

PAYMENT_APPROVED = "approved"
PAYMENT_REJECTED = {"rejected", "cancelled"}
PAYMENT_PENDING = "pending"


# ── Lookups ───────────────────────────────────────────────────────────────────

def _load(db: Session, code: str, lot_id: Optional[int] = None) -> Optional[Reservation]:
    q = db.query(Reservation).filter(Reservation.code == code)
    if lot_id is not None:
        q = q.filter(Reservation.lot_id == lot_id)
    return q.populate_existing().first()


def get_reservation(db: Session, code: str) -> Reservation:
    reservation = _load(db, code)
    if not reservation:
        raise NotFoundError(f"Reservation {code} not found")
    return reservation


def get_reservation_detail(db: Session, code: str):
    """Reservation joined with its plaza, for display. Returns (reservation, plaza)."""
    reservation = get_reservation(db, code)
    plaza = (
        db.query(Plaza)
        .filter(Plaza.lot_id == reservation.lot_id, Plaza.number == reservation.plaza_number)
        .first()
    )
    return reservation, plaza


def search_reservations(db: Session, code: Optional[str] = None, plate: Optional[str] = None,
                        lot_id: Optional[int] = None) -> list:
    """Open reservations matching a code and/or plate, newest window first."""
    if not code and not plate:
        raise ValidationError("Provide a reservation code or a vehicle plate")
    q = db.query(Reservation).filter(Reservation.state.in_(OPEN_STATES))
    if code:
        q = q.filter(Reservation.code == code)
    if plate:
        q = q.filter(Reservation.vehicle_plate == plate.strip().upper())
    if lot_id:
        q = q.filter(Reservation.lot_id == lot_id)
    return q.order_by(Reservation.starts_at.desc()).all()


def current_reservation_for_plaza(db: Session, lot_id: int, plaza_number: int) -> Optional[Reservation]:
    return (
        db.query(Reservation)
        .filter(
            Reservation.lot_id == lot_id,
            Reservation.plaza_number == plaza_number,
            Reservation.state.in_(OPEN_STATES),
        )
        .order_by(Reservation.starts_at.desc())
        .first()
    )


# ── Creation ──────────────────────────────────────────────────────────────────

def generate_reservation_code(db: Session, now: Optional[datetime] = None) -> str:
    """RES-YYYYMMDD-NNNN, dated in the lot's timezone, sequence restarting daily."""
    day = to_lot_time(now or now_utc()).strftime("%Y%m%d")
    prefix = f"{CODE_PREFIX}-{day}-"
    last = (
        db.query(Reservation.code)
        .filter(Reservation.code.like(f"{prefix}%"))
        .order_by(Reservation.code.desc())
        .first()
    )
    sequence = 1
    if last:
        try:
            sequence = int(last[0].rsplit("-", 1)[1]) + 1
        except (IndexError, ValueError):
            logger.warning(f"[RESERVA] Unparseable reservation code {last[0]}; restarting sequence")
    return f"{prefix}{sequence:04d}"


def _check_driver_overlap(db: Session, driver_id: int, start: datetime, end: datetime, now: datetime):
    overlapping = (
        db.query(Reservation)
        .filter(
            Reservation.driver_id == driver_id,
            Reservation.state.in_(OPEN_STATES),
            Reservation.starts_at < end,
            Reservation.ends_at > start,
        )
        .all()
    )
    # Lapsed payment holds no longer count
    live = [r for r in overlapping if r.state != ReservationState.PENDING_PAYMENT.value
            or r.created_at > payment_hold_cutoff(now)]
    if live:
        raise ConflictError(
            f"Driver already holds reservation {live[0].code} in this time window"
        )


def _create_once(db: Session, lot_id: int, plaza_number: int, plate: str, driver_id: int,
                 start: datetime, end: datetime, hours: int, now: datetime) -> Reservation:
    with plaza_lock(db, lot_id, plaza_number) as plaza:
        if not plaza:
            raise NotFoundError(f"Plaza {plaza_number} not found in lot {lot_id}")

        _check_driver_overlap(db, driver_id, start, end, now)

        if not plaza.template_id:
            raise ConfigurationError(f"Plaza {plaza_number} has no pricing template assigned")
        tariff = latest_tariff(db, plaza.template_id, BillingUnit.HOUR, at=start)
        if not tariff or tariff.price <= 0:
            raise ConfigurationError(
                f"No hourly tariff configured for plaza {plaza_number} (template {plaza.template_id})"
            )

        state = effective_state(db, plaza, now)
        reserved = conflicting_reservation_plazas(db, lot_id, start, end, now, plaza_number)
        occupied = conflicting_occupancy_plazas(db, lot_id, end, plaza_number)
        reason = unavailable_reason(plaza, state, reserved, occupied, {plaza.template_id: tariff.price})
        if reason:
            raise ConflictError(f"Plaza {plaza_number} is not available for the selected window: {reason}")

        reservation = Reservation(
            code=generate_reservation_code(db, now),
            lot_id=lot_id,
            plaza_number=plaza_number,
            vehicle_plate=plate,
            driver_id=driver_id,
            starts_at=start,
            ends_at=end,
            grace_minutes=settings.RESERVATION_GRACE_MINUTES,
            amount=tariff.price * hours,
            state=ReservationState.PENDING_PAYMENT.value,
            created_at=now,
        )
        db.add(reservation)
        db.commit()
        return reservation


def create_reservation(db: Session, lot_id, plaza_number, vehicle_plate, driver_id,
                       start, duration_hours, now: Optional[datetime] = None) -> Reservation:
    """
    Book a plaza for a same-day window. The reservation starts in
    pendiente_pago; the plaza itself is untouched until payment is approved,
    but the unpaid reservation blocks the window for PAYMENT_HOLD_MINUTES.
    """
    now = now or now_utc()
    if not lot_id or not plaza_number or not vehicle_plate or not driver_id:
        raise ValidationError("Required parameters: lot_id, plaza_number, vehicle_plate, driver_id, "
                              "start, duration_hours")
    start_at, end_at = validate_window(start, duration_hours, now)
    hours = int(str(duration_hours).strip())
    plate = str(vehicle_plate).strip().upper()

    logger.info(f"[RESERVA] Creating: lot={lot_id} plaza={plaza_number} plate={plate} "
                f"start={start_at.isoformat()} hours={hours}")

    for attempt in range(1, _CODE_ATTEMPTS + 1):
        try:
            reservation = _create_once(db, int(lot_id), int(plaza_number), plate, int(driver_id),
                                       start_at, end_at, hours, now)
        except IntegrityError:
            db.rollback()
            logger.warning(f"[RESERVA] Reservation code collision (attempt {attempt}); retrying")
            continue
        logger.info(f"[RESERVA] Created {reservation.code} amount={reservation.amount}")
        return reservation

    raise ConflictError("Could not allocate a unique reservation code; try again")


# ── Payment outcome ───────────────────────────────────────────────────────────

def apply_payment_outcome(db: Session, code: str, status: str, payment_ref: Optional[str] = None,
                          now: Optional[datetime] = None) -> Reservation:
    """
    React to the payment provider's verdict for a reservation.
      approved            → confirmada, plaza Reservada
      rejected, cancelled → cancelada, plaza recomputed (normally Libre)
      pending             → no change
      anything else       → logged and ignored
    Re-delivery of an outcome that was already applied is a no-op.
    """
    now = now or now_utc()
    if not code or not status:
        raise ValidationError("Required parameters: code, status")
    status = status.strip().lower()

    reservation = get_reservation(db, code)

    if status == PAYMENT_PENDING:
        logger.info(f"[PAGO] {code}: payment pending, no change")
        return reservation
    if status != PAYMENT_APPROVED and status not in PAYMENT_REJECTED:
        logger.warning(f"[PAGO] {code}: unrecognised provider status '{status}', ignored")
        return reservation

    target = (ReservationState.CONFIRMED.value if status == PAYMENT_APPROVED
              else ReservationState.CANCELLED.value)
    if reservation.state == target:
        logger.info(f"[PAGO] {code}: outcome '{status}' already applied")
        return reservation

    with plaza_lock(db, reservation.lot_id, reservation.plaza_number) as plaza:
        reservation = _load(db, code)
        if reservation.state != ReservationState.PENDING_PAYMENT.value:
            raise StateError(f"Reservation {code} is {reservation.state}; payment outcome not applicable")

        reservation.payment_ref = payment_ref or reservation.payment_ref
        if status == PAYMENT_APPROVED:
            reserved = conflicting_reservation_plazas(
                db, reservation.lot_id, reservation.starts_at, reservation.ends_at, now,
                reservation.plaza_number, exclude_code=code,
            )
            if reserved:
                # Hold lapsed and someone else booked the window meanwhile
                reservation.state = ReservationState.CANCELLED.value
                logger.error(f"[PAGO] {code}: approved after its hold lapsed and the plaza was "
                             f"rebooked; cancelled, payment {payment_ref} needs a refund")
            else:
                reservation.state = ReservationState.CONFIRMED.value
        else:
            reservation.state = ReservationState.CANCELLED.value

        db.flush()
        if plaza:
            reconcile_plaza(db, plaza, now)
        db.commit()

    logger.info(f"[PAGO] {code}: '{status}' → {reservation.state}")
    record_movement(db, reservation.lot_id, reservation.plaza_number,
                    f"reservation_{reservation.state}", reservation.vehicle_plate, code,
                    f"Payment {status} ({payment_ref or 'no ref'})")
    return reservation


# ── Arrival ───────────────────────────────────────────────────────────────────

def confirm_arrival(db: Session, code: str, lot_id, now: Optional[datetime] = None):
    """
    Turn a confirmed reservation into an occupancy. Returns (occupancy, reservation).

    The occupancy starts at the reservation's scheduled start, not at the
    arrival clock time, billed by the hour with the paid amount as floor.
    Arrival after the deadline (window end + grace) expires the reservation,
    frees the plaza and raises ExpiryError.
    """
    now = now or now_utc()
    if not code or not lot_id:
        raise ValidationError("Reservation code and lot are required")
    lot_id = int(lot_id)

    reservation = _load(db, code, lot_id)
    if not reservation or reservation.state != ReservationState.CONFIRMED.value:
        raise NotFoundError(f"Reservation {code} not found or not confirmed")

    with plaza_lock(db, lot_id, reservation.plaza_number) as plaza:
        reservation = _load(db, code, lot_id)
        if reservation.state != ReservationState.CONFIRMED.value:
            raise StateError(f"Reservation {code} is {reservation.state}")
        if not plaza:
            raise NotFoundError(f"Plaza {reservation.plaza_number} not found in lot {lot_id}")

        if now > arrival_deadline(reservation):
            reservation.state = ReservationState.EXPIRED.value
            db.flush()
            reconcile_plaza(db, plaza, now)
            db.commit()
            expired = True
        else:
            expired = False
            _admit(db, reservation, plaza, now)
            db.commit()

    if expired:
        logger.warning(f"[LLEGADA] {code}: arrival after deadline {arrival_deadline(reservation).isoformat()}")
        record_movement(db, lot_id, reservation.plaza_number, "reservation_expirada",
                        reservation.vehicle_plate, code, "Arrival after deadline")
        raise ExpiryError(f"Reservation {code} has expired; the paid time is over")

    occupancy = (
        db.query(Occupancy)
        .filter(Occupancy.reservation_code == code, Occupancy.exited_at.is_(None))
        .first()
    )
    logger.info(f"[LLEGADA] {code} → occupancy {occupancy.id} plaza={reservation.plaza_number} "
                f"plate={reservation.vehicle_plate}")
    record_movement(db, lot_id, reservation.plaza_number, "arrival", reservation.vehicle_plate,
                    code, f"Occupancy {occupancy.id} opened from reservation")
    return occupancy, reservation


def _admit(db: Session, reservation: Reservation, plaza: Plaza, now: datetime):
    if plaza.state == PlazaState.MAINTENANCE.value:
        raise ConflictError(f"Plaza {plaza.number} is under maintenance")
    parked = conflicting_occupancy_plazas(db, plaza.lot_id, arrival_deadline(reservation), plaza.number)
    if parked:
        raise ConflictError(f"Plaza {plaza.number} is not available: a vehicle is parked in it")

    db.add(Occupancy(
        lot_id=reservation.lot_id,
        plaza_number=reservation.plaza_number,
        vehicle_plate=reservation.vehicle_plate,
        entered_at=reservation.starts_at,
        billing_unit=BillingUnit.HOUR.value,
        agreed_price=reservation.amount,
        reservation_code=reservation.code,
        payment_ref=reservation.payment_ref,
        deadline=reservation.ends_at,
    ))
    reservation.state = ReservationState.COMPLETED.value
    plaza.state = PlazaState.OCCUPIED.value
    db.flush()


# ── Cancellation and expiry ───────────────────────────────────────────────────

def cancel_reservation(db: Session, code: str, now: Optional[datetime] = None) -> Reservation:
    now = now or now_utc()
    reservation = get_reservation(db, code)
    with plaza_lock(db, reservation.lot_id, reservation.plaza_number) as plaza:
        reservation = _load(db, code)
        if reservation.state not in (ReservationState.PENDING_PAYMENT.value,
                                     ReservationState.CONFIRMED.value):
            raise StateError(f"Reservation {code} is {reservation.state} and cannot be cancelled")
        reservation.state = ReservationState.CANCELLED.value
        db.flush()
        if plaza:
            reconcile_plaza(db, plaza, now)
        db.commit()

    logger.info(f"[RESERVA] {code} cancelled")
    record_movement(db, reservation.lot_id, reservation.plaza_number, "reservation_cancelada",
                    reservation.vehicle_plate, code, "Cancelled manually")
    return reservation


def expire_reservations(db: Session, lot_id: Optional[int] = None,
                        now: Optional[datetime] = None) -> dict:
    """
    Sweep: confirmed reservations past their deadline → expirada, lapsed
    unpaid ones → cancelada, and their plazas reconciled. Idempotent.
    """
    now = now or now_utc()
    changed = close_overdue_reservations(db, lot_id, now=now)
    touched = {(r.lot_id, r.plaza_number) for r in changed}
    for plaza_lot, number in sorted(touched):
        plaza = db.query(Plaza).filter(Plaza.lot_id == plaza_lot, Plaza.number == number).first()
        if plaza:
            reconcile_plaza(db, plaza, now)
    db.commit()

    for r in changed:
        record_movement(db, r.lot_id, r.plaza_number, f"reservation_{r.state}",
                        r.vehicle_plate, r.code, "Closed by expiry sweep")

    summary = {
        "expired": sum(1 for r in changed if r.state == ReservationState.EXPIRED.value),
        "cancelled": sum(1 for r in changed if r.state == ReservationState.CANCELLED.value),
        "plazas_reconciled": len(touched),
        "timestamp": now.isoformat(),
    }
    logger.info(f"[RESERVA] Expiry sweep: {summary}")
    return summary
