# plazas_api/schemas/occupancy.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class FeeOut(BaseModel):
    fee: float
    billed_units: int
    unit_price: float
    calculated_fee: float
    agreed_price: float
    billing_unit: str
    elapsed_hours: float
    template_id: int
    template_name: str
    entered_at: datetime
    exited_at: datetime

    class Config:
        from_attributes = True


class CheckoutOut(BaseModel):
    occupancy_id: int
    plaza_number: int
    vehicle_plate: str
    exited_at: datetime
    plaza_state: Optional[str]
    fee: Optional[FeeOut]           # null when a subscription covered the stay

    class Config:
        from_attributes = True
