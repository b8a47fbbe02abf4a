# plazas_api/services/movement_service.py
"""
Shared plaza movement recording.
Called by the lifecycle services after their own commit. A failure here is
logged and swallowed: the transition it describes has already happened.
"""

from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from plazas_api.models.plaza_movement import PlazaMovement
from plazas_api.utils.clock import now_utc
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


def record_movement(db: Session, lot_id: int, plaza_number: int, action: str,
                    vehicle_plate: Optional[str] = None, reference: Optional[str] = None,
                    description: Optional[str] = None) -> bool:
    """Persist one movement row. Returns False when it could not be written."""
    try:
        db.add(PlazaMovement(lot_id=lot_id, plaza_number=plaza_number, action=action,
                             vehicle_plate=vehicle_plate, reference=reference,
                             description=description, recorded_at=now_utc()))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[MOVIMIENTO] Could not record {action} on plaza {plaza_number} "
                     f"(lot {lot_id}, ref {reference}): {e}")
        return False
    logger.debug(f"[MOVIMIENTO] {action} plaza={plaza_number} ref={reference}")
    return True
