"""
Lost-update protection for concurrent movements on the same product.

Two sessions read the same product version; the first commits, the second
then writes against the stale read. The compare-and-set on products.version
must reject the stale write so the loser recomputes from fresh state instead
of overwriting the winner's stock.
"""

import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from stocksync.database import Base
from stocksync.exceptions import ConcurrentUpdateError
from stocksync.models.product import Product
from stocksync.models.stock_movement import StockMovement
from stocksync.services import movement_service


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def product_id(session_factory):
    with session_factory() as s:
        product = Product(name="Samsung Galaxy S24", sku="SG24-002", current_stock=8, safety_stock=15)
        s.add(product)
        s.commit()
        return product.id


def test_interleaved_out_movements_lose_no_update(session_factory, product_id, caplog):
    caplog.set_level(logging.INFO, logger="stocksync.services.movement_service")
    s1 = session_factory()
    s2 = session_factory()
    try:
        # Both "requests" read stock=8 before either writes. The session identity
        # map is weak, so the stale instance must stay referenced.
        fresh = s1.get(Product, product_id)
        stale = s2.get(Product, product_id)
        assert fresh.current_stock == stale.current_stock == 8
        assert fresh.version == stale.version

        first = movement_service.apply_movement(s1, product_id, "OUT", 5)
        assert first.previous_stock == 8
        assert first.product.current_stock == 3

        # s2 still holds the stale read; its write must be retried, not applied blindly
        second = movement_service.apply_movement(s2, product_id, "OUT", 5)
        assert second.product is stale
        assert second.previous_stock == 3
        assert second.product.current_stock == 0
        assert any("retrying movement" in r.getMessage() for r in caplog.records)
    finally:
        s1.close()
        s2.close()

    with session_factory() as check:
        assert check.get(Product, product_id).current_stock == 0
        movements = check.query(StockMovement).filter(StockMovement.product_id == product_id).all()
        assert len(movements) == 2
        assert sorted(m.balance_after for m in movements) == [0, 3]
        assert 8 + movement_service.ledger_balance(check, product_id) == 0


def test_retries_exhausted_leaves_no_partial_write(session_factory, product_id):
    s1 = session_factory()
    s2 = session_factory()
    try:
        stale = s2.get(Product, product_id)
        movement_service.apply_movement(s1, product_id, "IN", 2)

        with pytest.raises(ConcurrentUpdateError) as exc_info:
            movement_service.apply_movement(s2, product_id, "OUT", 5, max_retries=1)
        assert exc_info.value.status_code == 409
        assert exc_info.value.attempts == 1
        assert stale.current_stock == 10  # reloaded after the rollback
    finally:
        s1.close()
        s2.close()

    with session_factory() as check:
        assert check.get(Product, product_id).current_stock == 10
        assert check.query(StockMovement).count() == 1
