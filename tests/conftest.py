import os

# Must be set before stocksync.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REQUIRE_AUTH"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from stocksync.database import Base, SessionLocal, engine, init_db
from stocksync.main import app
from stocksync.models.product import Product


@pytest.fixture(autouse=True)
def _fresh_db():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_product(db):
    """Factory: insert a product directly and return it."""
    counter = {"n": 0}

    def _make(**overrides) -> Product:
        counter["n"] += 1
        fields = {
            "name": f"Product {counter['n']}",
            "sku": f"SKU-{counter['n']:03d}",
            "current_stock": 25,
            "safety_stock": 10,
            "location": "A1-001",
        }
        fields.update(overrides)
        product = Product(**fields)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make
