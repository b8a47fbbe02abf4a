# plazas_api/routers/occupancies.py
"""Fee quote and checkout for a vehicle stay."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from plazas_api.database import get_db
from plazas_api.schemas.occupancy import CheckoutOut, FeeOut
from plazas_api.services.occupancy_service import checkout, quote_fee

router = APIRouter()


@router.get("/occupancies/{occupancy_id}/fee", response_model=FeeOut, summary="Fee owed so far")
def get_fee(occupancy_id: int, db: Session = Depends(get_db)):
    return quote_fee(db, occupancy_id)


@router.post("/occupancies/{occupancy_id}/checkout", response_model=CheckoutOut,
             summary="Close the stay and free the plaza")
def post_checkout(occupancy_id: int, db: Session = Depends(get_db)):
    return checkout(db, occupancy_id)
