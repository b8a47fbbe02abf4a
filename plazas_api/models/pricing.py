# plazas_api/models/pricing.py
"""
Pricing templates and their effective-dated tariff rows.
A plaza points to one template; the template's most recent tariff row with
effective_from <= now is authoritative for each billing unit.
"""

import enum
from sqlalchemy import Column, Integer, String, Float, ForeignKey, Index
from plazas_api.database import Base
from plazas_api.models.types import UTCDateTime


class BillingUnit(str, enum.Enum):
    HOUR = "hora"
    DAY = "dia"
    WEEK = "semana"
    MONTH = "mes"


# Length of one billed unit, in hours
UNIT_HOURS = {
    BillingUnit.HOUR: 1,
    BillingUnit.DAY: 24,
    BillingUnit.WEEK: 24 * 7,
    BillingUnit.MONTH: 24 * 30,
}


class PricingTemplate(Base):
    __tablename__ = "plantillas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    lot_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    segment = Column(String(20))              # car | motorcycle | truck

    def __repr__(self):
        return f"<PricingTemplate {self.id} name={self.name}>"


class Tariff(Base):
    __tablename__ = "tarifas"

    id = Column(Integer, primary_key=True, autoincrement=True)
    template_id = Column(Integer, ForeignKey("plantillas.id"), nullable=False)
    unit = Column(String(10), nullable=False)  # hora | dia | semana | mes
    price = Column(Float, nullable=False)
    effective_from = Column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_tarifas_template_unit_from", "template_id", "unit", "effective_from"),
    )

    def __repr__(self):
        return f"<Tariff template={self.template_id} unit={self.unit} price={self.price}>"
