# plazas_api/schemas/reservation.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Union


class ReservationCreate(BaseModel):
    # Missing fields are rejected by reservation_service (400)
    lot_id: Optional[int] = None
    plaza_number: Optional[int] = None
    vehicle_plate: Optional[str] = None
    driver_id: Optional[int] = None
    start: Optional[str] = None                 # ISO-8601; naive values are lot-local time
    duration_hours: Optional[Union[int, str]] = Field(None, description="Whole hours, 1-24")


class ReservationOut(BaseModel):
    code: str
    lot_id: int
    plaza_number: int
    vehicle_plate: str
    driver_id: int
    starts_at: datetime
    ends_at: datetime
    grace_minutes: int
    duration_hours: int
    amount: float
    payment_ref: Optional[str]
    state: str
    created_at: datetime

    class Config:
        from_attributes = True


class ReservationDetailOut(ReservationOut):
    zone: Optional[str] = None
    segment: Optional[str] = None
    plaza_state: Optional[str] = None
    arrival_deadline: datetime


class PaymentOutcomeIn(BaseModel):
    status: str                     # approved | rejected | cancelled | pending
    payment_ref: Optional[str] = None


class ArrivalIn(BaseModel):
    lot_id: int


class ArrivalOut(BaseModel):
    occupancy_id: int
    reservation_code: str
    plaza_number: int
    vehicle_plate: str
    entered_at: datetime
    deadline: datetime
    agreed_price: float
    state: str                      # reservation state after arrival (completada)


class ExpirySweepOut(BaseModel):
    expired: int
    cancelled: int
    plazas_reconciled: int
    timestamp: str
