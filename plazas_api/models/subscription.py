# plazas_api/models/subscription.py
"""
Subscriptions table ("abonos").
Flat-rate, date-ranged right to one plaza. Deactivated, never deleted.
"""

import enum
from sqlalchemy import Column, Integer, String
from plazas_api.database import Base
from plazas_api.models.types import UTCDateTime


class SubscriptionState(str, enum.Enum):
    ACTIVE = "activo"
    INACTIVE = "inactivo"


class Subscription(Base):
    __tablename__ = "abonos"

    number = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, nullable=False, index=True)
    plaza_number = Column(Integer, nullable=False)
    starts_at = Column(UTCDateTime)
    ends_at = Column(UTCDateTime, nullable=False, index=True)
    state = Column(String(10), nullable=False, default=SubscriptionState.ACTIVE.value)

    def __repr__(self):
        return f"<Subscription {self.number} plaza={self.plaza_number} state={self.state}>"
