# plazas_api/models/plaza.py
"""
Plaza table: one physical parking spot, identified by (lot_id, number).
`state` is a cached view of the truth held by reservations, occupancies and
subscriptions; services.plaza_state recomputes it.
"""

import enum
from sqlalchemy import Column, Integer, String, ForeignKey
from sqlalchemy.orm import relationship
from plazas_api.database import Base


class PlazaState(str, enum.Enum):
    FREE = "Libre"
    OCCUPIED = "Ocupada"
    RESERVED = "Reservada"
    SUBSCRIBED = "Abonado"
    MAINTENANCE = "Mantenimiento"


class Plaza(Base):
    __tablename__ = "plazas"

    lot_id = Column(Integer, primary_key=True)
    number = Column(Integer, primary_key=True)
    zone = Column(String(50), nullable=False, default="")
    segment = Column(String(20), nullable=False, default="car")   # car | motorcycle | truck
    template_id = Column(Integer, ForeignKey("plantillas.id"), nullable=True)
    state = Column(String(20), nullable=False, default=PlazaState.FREE.value)

    template = relationship("PricingTemplate")

    def __repr__(self):
        return f"<Plaza lot={self.lot_id} #{self.number} state={self.state}>"
