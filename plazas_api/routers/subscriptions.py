# plazas_api/routers/subscriptions.py
"""Abono expiry sweep."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from plazas_api.database import get_db
from plazas_api.schemas.subscription import SubscriptionSweepOut
from plazas_api.services.subscription_expiry import process_expired_subscriptions
from plazas_api.utils.auth import require_cron_key

router = APIRouter()


@router.post("/lots/{lot_id}/subscriptions/expire", response_model=SubscriptionSweepOut,
             dependencies=[Depends(require_cron_key)], summary="Process expired subscriptions")
async def expire_subscriptions(lot_id: int, db: Session = Depends(get_db)):
    """
    Frees plazas of expired abonos, or moves a still-parked vehicle onto an
    hourly occupancy starting exactly at the abono's end.
    """
    results = await process_expired_subscriptions(db, lot_id)
    failed = sum(1 for r in results if not r.success)
    return {
        "lot_id": lot_id,
        "processed": len(results),
        "succeeded": len(results) - failed,
        "failed": failed,
        "results": results,
    }
