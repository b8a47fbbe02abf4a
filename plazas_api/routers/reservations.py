# plazas_api/routers/reservations.py
"""Reservation lifecycle endpoints: book, pay, arrive, cancel, expire."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional
from plazas_api.database import get_db
from plazas_api.schemas.reservation import (
    ArrivalIn, ArrivalOut, ExpirySweepOut, PaymentOutcomeIn, ReservationCreate,
    ReservationDetailOut, ReservationOut,
)
from plazas_api.services import reservation_service
from plazas_api.services.plaza_state import arrival_deadline
from plazas_api.utils.auth import require_cron_key

router = APIRouter()


@router.post("/reservations", response_model=ReservationOut, status_code=status.HTTP_201_CREATED,
             summary="Book a plaza for a same-day window")
def create_reservation(body: ReservationCreate, db: Session = Depends(get_db)):
    """Creates the reservation in `pendiente_pago`. Payment approval confirms it."""
    return reservation_service.create_reservation(
        db, body.lot_id, body.plaza_number, body.vehicle_plate, body.driver_id,
        body.start, body.duration_hours,
    )


@router.get("/reservations", response_model=list[ReservationOut], summary="Find open reservations")
def search_reservations(code: Optional[str] = None, plate: Optional[str] = None,
                        lot_id: Optional[int] = None, db: Session = Depends(get_db)):
    return reservation_service.search_reservations(db, code, plate, lot_id)


@router.post("/reservations/expire", response_model=ExpirySweepOut,
             dependencies=[Depends(require_cron_key)], summary="Expire overdue reservations")
def expire_reservations(lot_id: Optional[int] = None, db: Session = Depends(get_db)):
    """Cron entry point. Safe to call repeatedly."""
    return reservation_service.expire_reservations(db, lot_id)


@router.get("/reservations/{code}", response_model=ReservationDetailOut, summary="Reservation detail")
def get_reservation(code: str, db: Session = Depends(get_db)):
    reservation, plaza = reservation_service.get_reservation_detail(db, code)
    detail = ReservationOut.model_validate(reservation).model_dump()
    detail.update(
        zone=plaza.zone if plaza else None,
        segment=plaza.segment if plaza else None,
        plaza_state=plaza.state if plaza else None,
        arrival_deadline=arrival_deadline(reservation),
    )
    return detail


@router.post("/reservations/{code}/payment", response_model=ReservationOut,
             summary="Payment provider outcome for a reservation")
def payment_outcome(code: str, body: PaymentOutcomeIn, db: Session = Depends(get_db)):
    """
    Called by the payment webhook handler with the provider's status:
    approved, rejected, cancelled or pending. Re-delivery is harmless.
    """
    return reservation_service.apply_payment_outcome(db, code, body.status, body.payment_ref)


@router.post("/reservations/{code}/arrival", response_model=ArrivalOut,
             summary="Driver arrived: open the occupancy")
def confirm_arrival(code: str, body: ArrivalIn, db: Session = Depends(get_db)):
    occupancy, reservation = reservation_service.confirm_arrival(db, code, body.lot_id)
    return {
        "occupancy_id": occupancy.id,
        "reservation_code": reservation.code,
        "plaza_number": occupancy.plaza_number,
        "vehicle_plate": occupancy.vehicle_plate,
        "entered_at": occupancy.entered_at,
        "deadline": occupancy.deadline,
        "agreed_price": occupancy.agreed_price,
        "state": reservation.state,
    }


@router.post("/reservations/{code}/cancel", response_model=ReservationOut, summary="Cancel a reservation")
def cancel_reservation(code: str, db: Session = Depends(get_db)):
    return reservation_service.cancel_reservation(db, code)
