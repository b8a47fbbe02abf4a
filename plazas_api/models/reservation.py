# plazas_api/models/reservation.py
"""
Reservations table.
A driver's paid claim on one plaza for a same-day window, keyed by a
human-readable code (RES-YYYYMMDD-NNNN).
"""

import enum
from sqlalchemy import Column, Integer, String, Float, Index
from plazas_api.database import Base
from plazas_api.models.types import UTCDateTime


class ReservationState(str, enum.Enum):
    PENDING_PAYMENT = "pendiente_pago"
    CONFIRMED = "confirmada"
    ACTIVE = "activa"           # not produced by the current flow
    COMPLETED = "completada"
    CANCELLED = "cancelada"
    EXPIRED = "expirada"
    NO_SHOW = "no_show"


OPEN_STATES = (
    ReservationState.PENDING_PAYMENT.value,
    ReservationState.CONFIRMED.value,
    ReservationState.ACTIVE.value,
)


class Reservation(Base):
    __tablename__ = "reservas"

    code = Column(String(30), primary_key=True)
    lot_id = Column(Integer, nullable=False)
    plaza_number = Column(Integer, nullable=False)
    vehicle_plate = Column(String(20), nullable=False, index=True)
    driver_id = Column(Integer, nullable=False, index=True)
    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)
    grace_minutes = Column(Integer, nullable=False, default=15)
    amount = Column(Float, nullable=False)
    payment_ref = Column(String(100))
    state = Column(String(30), nullable=False, default=ReservationState.PENDING_PAYMENT.value)
    created_at = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_reservas_plaza_window", "lot_id", "plaza_number", "starts_at", "ends_at"),
    )

    @property
    def duration_hours(self) -> int:
        return round((self.ends_at - self.starts_at).total_seconds() / 3600)

    def __repr__(self):
        return f"<Reservation {self.code} plaza={self.plaza_number} state={self.state}>"
