# plazas_api/services/availability_service.py
"""
Availability search: which plazas of a lot are free for a whole same-day window.

A plaza qualifies when
  1. its effective state is not Mantenimiento, Abonado or Reservada;
  2. no blocking reservation overlaps [start, end) (open-interval overlap);
  3. no active occupancy entered before `end` (its exit is unknown);
  4. its template has an hourly tariff.
Results are sorted by zone, then number. This module never writes.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import Session
from plazas_api.config import settings
from plazas_api.errors import ValidationError
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza, PlazaState
from plazas_api.models.reservation import Reservation
from plazas_api.services.plaza_state import blocking_reservation_clause, effective_states
from plazas_api.services.tariff_catalog import hourly_prices
from plazas_api.utils.clock import now_utc, parse_iso, to_lot_time
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)

UNBOOKABLE_STATES = {
    PlazaState.MAINTENANCE.value,
    PlazaState.SUBSCRIBED.value,
    PlazaState.RESERVED.value,
}


@dataclass
class AvailablePlaza:
    number: int
    zone: str
    segment: str
    template_id: int
    hourly_price: float


def validate_window(start, duration_hours, now: Optional[datetime] = None):
    """
    Parse and check a booking window. Returns (start, end) as aware UTC.
    The start must fall on the lot's current calendar day and not lie more
    than the configured tolerance in the past.
    """
    now = now or now_utc()
    if start is None or start == "" or duration_hours is None:
        raise ValidationError("Required parameters: start, duration_hours")

    start_at = start if isinstance(start, datetime) else parse_iso(str(start))
    if start_at is None:
        raise ValidationError(f"Invalid start timestamp: {start!r}")

    try:
        hours = int(str(duration_hours).strip())
    except ValueError:
        raise ValidationError("duration_hours must be a whole number of hours")
    if not settings.RESERVATION_MIN_HOURS <= hours <= settings.RESERVATION_MAX_HOURS:
        raise ValidationError(
            f"Duration must be between {settings.RESERVATION_MIN_HOURS} "
            f"and {settings.RESERVATION_MAX_HOURS} hours"
        )

    if to_lot_time(start_at).date() != to_lot_time(now).date():
        raise ValidationError("Reservations can only start on the current day")
    tolerance = timedelta(minutes=settings.RESERVATION_PAST_TOLERANCE_MINUTES)
    if start_at < now - tolerance:
        raise ValidationError(
            f"Reservations cannot start more than "
            f"{settings.RESERVATION_PAST_TOLERANCE_MINUTES} minutes in the past"
        )

    return start_at, start_at + timedelta(hours=hours)


def conflicting_reservation_plazas(db: Session, lot_id: int, start: datetime, end: datetime,
                                   now: datetime, plaza_number: Optional[int] = None,
                                   exclude_code: Optional[str] = None) -> set:
    q = db.query(Reservation.plaza_number).filter(
        Reservation.lot_id == lot_id,
        blocking_reservation_clause(now),
        Reservation.starts_at < end,
        Reservation.ends_at > start,
    )
    if plaza_number is not None:
        q = q.filter(Reservation.plaza_number == plaza_number)
    if exclude_code:
        q = q.filter(Reservation.code != exclude_code)
    return {row[0] for row in q.all()}


def conflicting_occupancy_plazas(db: Session, lot_id: int, end: datetime,
                                 plaza_number: Optional[int] = None) -> set:
    q = db.query(Occupancy.plaza_number).filter(
        Occupancy.lot_id == lot_id,
        Occupancy.exited_at.is_(None),
        Occupancy.entered_at < end,
    )
    if plaza_number is not None:
        q = q.filter(Occupancy.plaza_number == plaza_number)
    return {row[0] for row in q.all()}


def unavailable_reason(plaza: Plaza, state: str, reserved: set, occupied: set,
                       prices: dict) -> Optional[str]:
    """Why a plaza cannot be booked for the window, or None when it can."""
    if state in UNBOOKABLE_STATES:
        return f"plaza is {state}"
    if plaza.number in reserved:
        return "another reservation overlaps the window"
    if plaza.number in occupied:
        return "a vehicle is parked in the plaza"
    if not plaza.template_id or plaza.template_id not in prices:
        return "plaza has no hourly tariff"
    return None


def search_availability(db: Session, lot_id, start, duration_hours,
                        now: Optional[datetime] = None) -> list[AvailablePlaza]:
    now = now or now_utc()
    if not lot_id or int(lot_id) <= 0:
        raise ValidationError("Required parameters: lot_id, start, duration_hours")
    start_at, end_at = validate_window(start, duration_hours, now)
    return find_available_plazas(db, int(lot_id), start_at, end_at, now)


def find_available_plazas(db: Session, lot_id: int, start_at: datetime, end_at: datetime,
                          now: datetime) -> list[AvailablePlaza]:
    """Plazas free for an already validated window."""
    logger.info(f"[DISPONIBILIDAD] lot={lot_id} window={start_at.isoformat()} → {end_at.isoformat()}")

    plazas = db.query(Plaza).filter(Plaza.lot_id == lot_id).all()
    if not plazas:
        return []

    states = effective_states(db, lot_id, plazas, now)
    reserved = conflicting_reservation_plazas(db, lot_id, start_at, end_at, now)
    occupied = conflicting_occupancy_plazas(db, lot_id, end_at)
    prices = hourly_prices(db, [p.template_id for p in plazas], at=start_at)

    available = [
        AvailablePlaza(
            number=p.number,
            zone=p.zone or "",
            segment=p.segment,
            template_id=p.template_id,
            hourly_price=prices[p.template_id],
        )
        for p in plazas
        if unavailable_reason(p, states[p.number], reserved, occupied, prices) is None
    ]
    available.sort(key=lambda a: (a.zone, a.number))

    logger.info(f"[DISPONIBILIDAD] lot={lot_id}: {len(available)} of {len(plazas)} plazas available")
    return available
