from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from stocksync.api.auth import require_user
from stocksync.database import get_db
from stocksync.exceptions import NotFoundError, ProductNotFoundError
from stocksync.schemas.product import ProductCreate, ProductOut
from stocksync.services import product_service

router = APIRouter(prefix="/products", tags=["Products"])


@router.post("", response_model=ProductOut, status_code=201, dependencies=[Depends(require_user)])
def create_product(data: ProductCreate, db: Session = Depends(get_db)):
    return product_service.create_product(db, data)


@router.get("", response_model=list[ProductOut])
def list_products(skip: int = 0, limit: int = 100, q: str | None = None, db: Session = Depends(get_db)):
    return product_service.list_products(db, skip=skip, limit=limit, q=q)


@router.get("/low-stock", response_model=list[ProductOut])
def low_stock(db: Session = Depends(get_db)):
    return product_service.get_low_stock(db)


@router.get("/sku/{sku}", response_model=ProductOut)
def get_product_by_sku(sku: str, db: Session = Depends(get_db)):
    """Barcode lookup."""
    product = product_service.get_product_by_sku(db, sku)
    if not product:
        raise NotFoundError(f"No product found with SKU: {sku}")
    return product


@router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = product_service.get_product(db, product_id)
    if not product:
        raise ProductNotFoundError(product_id)
    return product
