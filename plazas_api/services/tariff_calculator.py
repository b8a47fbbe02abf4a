# plazas_api/services/tariff_calculator.py
"""
Fee computation for one occupancy.

Pricing comes strictly from the plaza's template; there is no fallback by
vehicle type. The billing unit chosen at entry decides which tariff row
applies and how elapsed time is rounded:

    billed_units   = max(1, ceil(elapsed / unit_length))
    calculated_fee = unit_price × billed_units
    fee            = max(calculated_fee, agreed_price)

Unit lengths: hora 1h, dia 24h, semana 168h, mes 720h.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session
from plazas_api.errors import ConfigurationError, NotFoundError
from plazas_api.models.occupancy import Occupancy
from plazas_api.models.plaza import Plaza
from plazas_api.models.pricing import UNIT_HOURS, BillingUnit, PricingTemplate
from plazas_api.services.tariff_catalog import latest_tariff
from plazas_api.utils.clock import now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class FeeBreakdown:
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


def to_billing_unit(raw) -> BillingUnit:
    if isinstance(raw, BillingUnit):
        return raw
    try:
        return BillingUnit(str(raw).strip().lower())
    except ValueError:
        raise ConfigurationError(f"Unknown billing unit '{raw}'")


def billed_units(elapsed_hours: float, unit: BillingUnit) -> int:
    """At least one unit, rounded up beyond that."""
    return max(1, math.ceil(elapsed_hours / UNIT_HOURS[unit]))


def calculate_fee(db: Session, occupancy: Occupancy, exit_at: Optional[datetime] = None,
                  now: Optional[datetime] = None) -> FeeBreakdown:
    """
    Fee owed for `occupancy` up to `exit_at` (default: its exit, else now).
    Raises ConfigurationError when the plaza has no template or the template
    has no usable tariff for the occupancy's unit.
    """
    if occupancy.plaza_number is None:
        raise ConfigurationError(f"Occupancy {occupancy.id} has no plaza assigned; cannot price it")

    plaza = (
        db.query(Plaza)
        .filter(Plaza.lot_id == occupancy.lot_id, Plaza.number == occupancy.plaza_number)
        .first()
    )
    if not plaza:
        raise NotFoundError(f"Plaza {occupancy.plaza_number} not found in lot {occupancy.lot_id}")
    if not plaza.template_id:
        raise ConfigurationError(
            f"Plaza {plaza.number} has no pricing template assigned. "
            f"Assign a template to this plaza before using it."
        )

    template = db.query(PricingTemplate).filter(PricingTemplate.id == plaza.template_id).first()
    template_name = template.name if template else "unnamed"
    unit = to_billing_unit(occupancy.billing_unit)

    now = now or now_utc()
    tariff = latest_tariff(db, plaza.template_id, unit, at=now)
    if not tariff:
        raise ConfigurationError(
            f"No tariff configured for plaza {plaza.number}, "
            f"template '{template_name}' (id {plaza.template_id}), unit '{unit.value}'"
        )
    if tariff.price <= 0:
        raise ConfigurationError(
            f"Tariff for template '{template_name}' unit '{unit.value}' must be greater than 0"
        )

    exited_at = exit_at or occupancy.exited_at or now
    elapsed_hours = (exited_at - occupancy.entered_at).total_seconds() / 3600
    units = billed_units(elapsed_hours, unit)
    calculated = tariff.price * units
    agreed = occupancy.agreed_price or 0
    fee = max(calculated, agreed)

    logger.info(
        f"[TARIFA] occupancy={occupancy.id} plaza={plaza.number} template={template_name} "
        f"unit={unit.value} elapsed={elapsed_hours:.2f}h "
        f"{tariff.price} × {units} = {calculated} agreed={agreed} → fee={fee}"
    )

    return FeeBreakdown(
        fee=fee,
        billed_units=units,
        unit_price=tariff.price,
        calculated_fee=calculated,
        agreed_price=agreed,
        billing_unit=unit.value,
        elapsed_hours=round(elapsed_hours, 4),
        template_id=plaza.template_id,
        template_name=template_name,
        entered_at=occupancy.entered_at,
        exited_at=exited_at,
    )
