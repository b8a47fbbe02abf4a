# plazas_api/schemas/plaza.py
from pydantic import BaseModel
from typing import Optional


class PlazaOut(BaseModel):
    lot_id: int
    number: int
    zone: str
    segment: str
    template_id: Optional[int]
    state: str

    class Config:
        from_attributes = True


class AvailablePlazaOut(BaseModel):
    number: int
    zone: str
    segment: str
    template_id: int
    hourly_price: float

    class Config:
        from_attributes = True


class AvailabilityOut(BaseModel):
    lot_id: int
    start: str
    duration_hours: int
    plazas: list[AvailablePlazaOut]
