"""Stock mutation: adjust a product's stock, append a ledger entry, derive alerts.

The product row carries a ``version`` column used as a compare-and-set token,
so two concurrent movements on the same product can never both commit
against the same read. A losing writer rolls back and recomputes from fresh
state. Broadcasting the outcome is left to the caller.
"""
import logging
from dataclasses import dataclass
from enum import Enum

from sqlalchemy import case, func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from stocksync.config import settings
from stocksync.exceptions import (
    ConcurrentUpdateError,
    InsufficientStockError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    ProductNotFoundError,
    TransientError,
)
from stocksync.models.product import Product
from stocksync.models.stock_movement import MovementType, StockMovement
from stocksync.schemas.events import LowStockAlertEvent, MovementSummary, StockUpdateEvent

logger = logging.getLogger(__name__)


class AlertKind(str, Enum):
    LOW_STOCK = "lowStock"
    OUT_OF_STOCK = "outOfStock"


class OverdrawPolicy(str, Enum):
    CLAMP = "clamp"  # OUT beyond available stock floors at zero
    REJECT = "reject"  # OUT beyond available stock fails with InsufficientStockError


@dataclass
class MovementOutcome:
    product: Product
    movement: StockMovement
    previous_stock: int
    alert: AlertKind | None = None

    def stock_update(self) -> StockUpdateEvent:
        return StockUpdateEvent(
            product_id=self.product.id,
            product_name=self.product.name,
            previous_stock=self.previous_stock,
            new_stock=self.product.current_stock,
            movement=MovementSummary(
                type=self.movement.type.value,
                quantity=self.movement.quantity,
                timestamp=self.movement.created_at,
            ),
        )

    def low_stock_alert(self) -> LowStockAlertEvent | None:
        if self.alert is None:
            return None
        return LowStockAlertEvent(
            product_id=self.product.id,
            product_name=self.product.name,
            current_stock=self.product.current_stock,
            safety_stock=self.product.safety_stock,
            out_of_stock=self.alert == AlertKind.OUT_OF_STOCK,
        )


def derive_alert(current_stock: int, safety_stock: int) -> AlertKind | None:
    if current_stock == 0:
        return AlertKind.OUT_OF_STOCK
    if current_stock <= safety_stock:
        return AlertKind.LOW_STOCK
    return None


def parse_movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise InvalidMovementTypeError(value) from None


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidQuantityError(quantity)
    return quantity


def compute_new_stock(
    current_stock: int,
    movement_type: MovementType,
    quantity: int,
    policy: OverdrawPolicy = OverdrawPolicy.CLAMP,
) -> int:
    if movement_type == MovementType.IN:
        return current_stock + quantity
    if quantity > current_stock and policy == OverdrawPolicy.REJECT:
        raise InsufficientStockError(current_stock, quantity)
    return max(0, current_stock - quantity)


def _apply_once(
    db: Session,
    product_id: str,
    movement_type: MovementType,
    quantity: int,
    notes: str | None,
    policy: OverdrawPolicy,
) -> MovementOutcome:
    product = db.get(Product, product_id)
    if not product:
        raise ProductNotFoundError(product_id)

    previous_stock = product.current_stock
    new_stock = compute_new_stock(previous_stock, movement_type, quantity, policy)

    product.current_stock = new_stock
    # Force the versioned UPDATE even when a clamped OUT leaves stock unchanged
    flag_modified(product, "current_stock")

    movement = StockMovement(
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        applied_quantity=abs(new_stock - previous_stock),
        balance_after=new_stock,
        notes=notes or f"{movement_type.value} movement of {quantity} units",
    )
    db.add(movement)
    db.commit()
    db.refresh(product)
    db.refresh(movement)

    return MovementOutcome(
        product=product,
        movement=movement,
        previous_stock=previous_stock,
        alert=derive_alert(product.current_stock, product.safety_stock),
    )


def apply_movement(
    db: Session,
    product_id: str,
    movement_type,
    quantity,
    notes: str | None = None,
    *,
    overdraw_policy: OverdrawPolicy | str | None = None,
    max_retries: int | None = None,
) -> MovementOutcome:
    """Apply an IN/OUT movement to a product.

    The stock write and the ledger insert commit together. If another writer
    changed the product between our read and our write, the transaction is
    rolled back and the movement is recomputed, up to ``max_retries`` attempts.

    Raises ProductNotFoundError, InvalidQuantityError, InvalidMovementTypeError,
    InsufficientStockError (reject policy only), ConcurrentUpdateError or
    TransientError.
    """
    movement_type = parse_movement_type(movement_type)
    quantity = validate_quantity(quantity)
    policy = OverdrawPolicy(overdraw_policy or settings.OVERDRAW_POLICY)
    attempts = max_retries if max_retries is not None else settings.MOVEMENT_MAX_RETRIES
    if attempts < 1:
        raise ValueError(f"max_retries must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            outcome = _apply_once(db, product_id, movement_type, quantity, notes, policy)
        except StaleDataError:
            db.rollback()
            logger.info(
                "Concurrent update on product %s, retrying movement (%d/%d)", product_id, attempt, attempts
            )
            continue
        except OperationalError as e:
            db.rollback()
            logger.error("Database unavailable while applying movement to %s: %s", product_id, e)
            raise TransientError("Database temporarily unavailable") from e

        logger.info(
            "Movement %s %s x%d on %s: %d -> %d",
            outcome.movement.id, movement_type.value, quantity, product_id,
            outcome.previous_stock, outcome.product.current_stock,
        )
        return outcome

    raise ConcurrentUpdateError(product_id, attempts)


def list_movements(db: Session, product_id: str | None = None, limit: int = 100) -> list[StockMovement]:
    q = db.query(StockMovement)
    if product_id:
        q = q.filter(StockMovement.product_id == product_id)
    return q.order_by(StockMovement.created_at.desc()).limit(limit).all()


def ledger_balance(db: Session, product_id: str) -> int:
    """Net stock change recorded in the ledger for a product."""
    signed = case(
        (StockMovement.type == MovementType.IN, StockMovement.applied_quantity),
        else_=-StockMovement.applied_quantity,
    )
    return (
        db.query(func.coalesce(func.sum(signed), 0))
        .filter(StockMovement.product_id == product_id)
        .scalar()
    )
