# tests/test_concurrency.py
"""Two drivers racing for the same plaza and window."""

import threading
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from plazas_api.database import create_tables
from plazas_api.errors import ConflictError
from plazas_api.models.reservation import Reservation
from plazas_api.services.reservation_service import create_reservation
from conftest import LotBuilder


@pytest.fixture
def file_sessions(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    create_tables(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.mark.parametrize("contenders", [2, 8])
def test_exactly_one_concurrent_booking_wins(file_sessions, now, contenders):
    seed = file_sessions()
    builder = LotBuilder(seed)
    builder.plaza(5, builder.template())
    seed.close()

    barrier = threading.Barrier(contenders)
    outcomes = []
    guard = threading.Lock()

    def book(driver_id):
        db = file_sessions()
        try:
            barrier.wait()
            reservation = create_reservation(db, 1, 5, f"PLT{driver_id:03d}", driver_id, now, 2, now=now)
            outcome = ("ok", reservation.code)
        except ConflictError as e:
            outcome = ("conflict", e.message)
        finally:
            db.close()
        with guard:
            outcomes.append(outcome)

    threads = [threading.Thread(target=book, args=(i + 1,)) for i in range(contenders)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(kind for kind, _ in outcomes) == ["conflict"] * (contenders - 1) + ["ok"]

    check = file_sessions()
    try:
        assert check.query(Reservation).count() == 1
    finally:
        check.close()
