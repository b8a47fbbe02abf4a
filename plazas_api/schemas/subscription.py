# plazas_api/schemas/subscription.py
from pydantic import BaseModel
from typing import Optional


class SubscriptionExpiryOut(BaseModel):
    subscription_number: int
    plaza_number: Optional[int]
    action: str                     # freed | converted | skipped | error
    vehicle_plate: Optional[str] = None
    new_occupancy_id: Optional[int] = None
    error: Optional[str] = None

    class Config:
        from_attributes = True


class SubscriptionSweepOut(BaseModel):
    lot_id: int
    processed: int
    succeeded: int
    failed: int
    results: list[SubscriptionExpiryOut]
