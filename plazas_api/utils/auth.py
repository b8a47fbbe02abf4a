# plazas_api/utils/auth.py
"""Shared-secret guard for the cron-triggered sweep endpoints."""

from fastapi import Header, HTTPException, status
from typing import Optional
from plazas_api.config import settings
from plazas_api.utils.logger import get_logger

logger = get_logger(__name__)


def require_cron_key(x_cron_key: Optional[str] = Header(None)):
    """FastAPI dependency. No-op while CRON_API_KEY is unset."""
    if not settings.CRON_API_KEY:
        return
    if x_cron_key != settings.CRON_API_KEY:
        logger.warning("Rejected sweep call with invalid or missing X-Cron-Key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or missing cron key")
