# plazas_api/models/occupancy.py
"""
Occupancy table ("ocupacion").
One row per vehicle stay in a plaza; exited_at IS NULL marks the stay as active.
At most one active row per plaza, enforced under the per-plaza lock.
"""

from sqlalchemy import Column, Integer, String, Float, Index
from plazas_api.database import Base
from plazas_api.models.types import UTCDateTime


class Occupancy(Base):
    __tablename__ = "ocupacion"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, nullable=False)
    plaza_number = Column(Integer, nullable=False)
    vehicle_plate = Column(String(20), nullable=False, index=True)
    entered_at = Column(UTCDateTime, nullable=False)
    exited_at = Column(UTCDateTime)                         # NULL = still parked
    billing_unit = Column(String(10), nullable=False, default="hora")
    agreed_price = Column(Float, nullable=False, default=0)
    reservation_code = Column(String(30))                   # set when born from a reservation
    subscription_number = Column(Integer)                   # set while covered by an abono
    payment_ref = Column(String(100))
    deadline = Column(UTCDateTime)                          # paid-until, for reservation stays

    __table_args__ = (
        Index("ix_ocupacion_plaza_active", "lot_id", "plaza_number", "exited_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.exited_at is None

    def __repr__(self):
        return f"<Occupancy {self.id} plate={self.vehicle_plate} plaza={self.plaza_number}>"
