# plazas_api/routers/plazas.py
"""Plaza map, availability search and tariff catalog for one lot."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from plazas_api.database import get_db
from plazas_api.errors import ValidationError
from plazas_api.models.plaza import Plaza
from plazas_api.schemas.plaza import AvailabilityOut, PlazaOut
from plazas_api.schemas.reservation import ReservationOut
from plazas_api.schemas.tariff import TemplateTariffsOut
from plazas_api.services.availability_service import find_available_plazas, validate_window
from plazas_api.services.plaza_lock import plaza_lock
from plazas_api.services.plaza_state import reconcile_lot, reconcile_plaza
from plazas_api.services.reservation_service import current_reservation_for_plaza
from plazas_api.services.tariff_catalog import catalog_for_lot
from plazas_api.utils.clock import now_utc

router = APIRouter()


@router.get("/lots/{lot_id}/availability", response_model=AvailabilityOut,
            summary="Plazas free for a whole same-day window")
def get_availability(lot_id: int, start: Optional[str] = None, duration_hours: Optional[str] = None,
                     db: Session = Depends(get_db)):
    """
    `start` is ISO-8601 (naive values are taken as lot-local time),
    `duration_hours` a whole number between 1 and 24.
    """
    if lot_id <= 0:
        raise ValidationError("Required parameters: lot_id, start, duration_hours")
    now = now_utc()
    start_at, end_at = validate_window(start, duration_hours, now)
    plazas = find_available_plazas(db, lot_id, start_at, end_at, now)
    return {
        "lot_id": lot_id,
        "start": start_at.isoformat(),
        "duration_hours": round((end_at - start_at).total_seconds() / 3600),
        "plazas": plazas,
    }


@router.get("/lots/{lot_id}/plazas", response_model=list[PlazaOut], summary="Plaza map (reconciled)")
def list_plazas(lot_id: int, db: Session = Depends(get_db)):
    """Every plaza of the lot with its state recomputed from live reservations, stays and abonos."""
    return reconcile_lot(db, lot_id)


@router.post("/lots/{lot_id}/plazas/{number}/reconcile", response_model=PlazaOut,
             summary="Recompute one plaza's state")
def reconcile_one(lot_id: int, number: int, db: Session = Depends(get_db)):
    with plaza_lock(db, lot_id, number) as plaza:
        if not plaza:
            raise HTTPException(status_code=404, detail=f"Plaza {number} not found in lot {lot_id}")
        reconcile_plaza(db, plaza)
        db.commit()
    return db.query(Plaza).filter(Plaza.lot_id == lot_id, Plaza.number == number).first()


@router.get("/lots/{lot_id}/plazas/{number}/reservation", response_model=Optional[ReservationOut],
            summary="Open reservation currently attached to a plaza")
def get_plaza_reservation(lot_id: int, number: int, db: Session = Depends(get_db)):
    return current_reservation_for_plaza(db, lot_id, number)


@router.get("/lots/{lot_id}/tariffs", response_model=list[TemplateTariffsOut], summary="Tariff catalog")
def get_tariffs(lot_id: int, db: Session = Depends(get_db)):
    """Current price per billing unit for every pricing template of the lot."""
    return catalog_for_lot(db, lot_id)
