# plazas_api/services/tariff_catalog.py
"""
Tariff lookup per (template, billing unit), versioned by effective date.
The most recent row with effective_from <= the reference instant wins.
"""

from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy.orm import Session
from plazas_api.models.pricing import BillingUnit, PricingTemplate, Tariff
from plazas_api.utils.clock import now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


def latest_tariff(db: Session, template_id: int, unit: BillingUnit,
                  at: Optional[datetime] = None) -> Optional[Tariff]:
    """Authoritative tariff row for a template and unit at `at` (default: now)."""
    at = at or now_utc()
    return (
        db.query(Tariff)
        .filter(
            Tariff.template_id == template_id,
            Tariff.unit == unit.value,
            Tariff.effective_from <= at,
        )
        .order_by(Tariff.effective_from.desc(), Tariff.id.desc())
        .first()
    )


def hourly_prices(db: Session, template_ids: Iterable[int],
                  at: Optional[datetime] = None) -> dict:
    """Current hourly price per template id. Templates without one are absent."""
    ids = {t for t in template_ids if t}
    if not ids:
        return {}
    at = at or now_utc()
    rows = (
        db.query(Tariff)
        .filter(
            Tariff.template_id.in_(ids),
            Tariff.unit == BillingUnit.HOUR.value,
            Tariff.effective_from <= at,
        )
        .order_by(Tariff.effective_from.desc(), Tariff.id.desc())
        .all()
    )
    latest = {}
    for row in rows:
        # Rows arrive newest first; the first seen per template is authoritative
        latest.setdefault(row.template_id, row.price)
    return {template_id: price for template_id, price in latest.items() if price > 0}


def catalog_for_lot(db: Session, lot_id: int, at: Optional[datetime] = None) -> list[dict]:
    """Current tariffs of a lot grouped by template, for display."""
    at = at or now_utc()
    templates = (
        db.query(PricingTemplate)
        .filter(PricingTemplate.lot_id == lot_id)
        .order_by(PricingTemplate.id)
        .all()
    )
    catalog = []
    for template in templates:
        prices = {}
        for unit in BillingUnit:
            tariff = latest_tariff(db, template.id, unit, at)
            if tariff:
                prices[unit.value] = tariff.price
        catalog.append({
            "template_id": template.id,
            "template_name": template.name,
            "segment": template.segment,
            "prices": prices,
        })
    logger.debug(f"[TARIFA] Catalog for lot {lot_id}: {len(catalog)} templates")
    return catalog
