# plazas_api/models/plaza_movement.py
"""
Plaza movement audit trail.
One row per lifecycle transition that touched a plaza. Written by
movement_service after the transition commits; losing a row never undoes it.
"""

from sqlalchemy import Column, Integer, String, Text
from plazas_api.database import Base
from plazas_api.models.types import UTCDateTime


class PlazaMovement(Base):
    __tablename__ = "movimientos_plaza"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, nullable=False, index=True)
    plaza_number = Column(Integer, nullable=False)
    action = Column(String(50), nullable=False, index=True)
    vehicle_plate = Column(String(20))
    reference = Column(String(50))          # reservation code, occupancy id or abono number
    description = Column(Text)
    recorded_at = Column(UTCDateTime, nullable=False)

    def __repr__(self):
        return f"<PlazaMovement {self.id} plaza={self.plaza_number} action={self.action}>"
