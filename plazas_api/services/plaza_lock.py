# plazas_api/services/plaza_lock.py
"""
Per-plaza mutual exclusion for check-then-act transitions.

Two layers:
  - an in-process lock keyed by (lot_id, plaza_number), serialising the
    FastAPI worker threads of one process;
  - SELECT ... FOR UPDATE on the plaza row, serialising processes that share
    a PostgreSQL database (SQLite ignores it).

The caller must commit or roll back before leaving the block.
"""

import threading
from contextlib import contextmanager
from sqlalchemy.orm import Session
from plazas_api.models.plaza import Plaza

_registry_guard = threading.Lock()
_locks: dict = {}


def _lock_for(lot_id: int, plaza_number: int) -> threading.Lock:
    key = (lot_id, plaza_number)
    with _registry_guard:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


@contextmanager
def plaza_lock(db: Session, lot_id: int, plaza_number: int):
    """Yields the locked Plaza row, or None when it does not exist."""
    with _lock_for(lot_id, plaza_number):
        plaza = (
            db.query(Plaza)
            .filter(Plaza.lot_id == lot_id, Plaza.number == plaza_number)
            .with_for_update()
            .populate_existing()
            .first()
        )
        try:
            yield plaza
        except Exception:
            db.rollback()
            raise
