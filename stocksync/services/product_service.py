import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stocksync.exceptions import DuplicateSkuError
from stocksync.models.product import Product
from stocksync.schemas.product import ProductCreate

logger = logging.getLogger(__name__)


def create_product(db: Session, data: ProductCreate) -> Product:
    # current_stock given here is the ledger baseline; no movement is recorded for it
    if get_product_by_sku(db, data.sku):
        raise DuplicateSkuError(data.sku)
    product = Product(
        sku=data.sku,
        name=data.name,
        current_stock=data.current_stock,
        safety_stock=data.safety_stock,
        location=data.location,
    )
    db.add(product)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race against another insert of the same sku
        db.rollback()
        raise DuplicateSkuError(data.sku) from None
    db.refresh(product)
    logger.info("Created product %s (%s) with stock %d", product.id, product.sku, product.current_stock)
    return product


def get_product(db: Session, product_id: str) -> Product | None:
    return db.query(Product).filter(Product.id == product_id).first()


def get_product_by_sku(db: Session, sku: str) -> Product | None:
    return db.query(Product).filter(Product.sku == sku).first()


def list_products(db: Session, skip: int = 0, limit: int = 100, q: str | None = None) -> list[Product]:
    query = db.query(Product)
    if q:
        like = f"%{q}%"
        query = query.filter((Product.name.ilike(like)) | (Product.sku.ilike(like)))
    return query.order_by(Product.name).offset(skip).limit(limit).all()


def get_low_stock(db: Session) -> list[Product]:
    """Products at or below their safety stock, out-of-stock ones included."""
    return (
        db.query(Product)
        .filter(Product.current_stock <= Product.safety_stock)
        .order_by(Product.current_stock)
        .all()
    )
