from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from stocksync.api.auth import require_user
from stocksync.api.realtime import get_broadcaster
from stocksync.database import get_db
from stocksync.schemas.movement import MovementCreate, MovementOut, MovementResult
from stocksync.schemas.product import ProductOut
from stocksync.services import movement_service
from stocksync.services.broadcast_service import Broadcaster

router = APIRouter(prefix="/movements", tags=["Movements"])


@router.post("", response_model=MovementResult, dependencies=[Depends(require_user)])
def create_movement(
    data: MovementCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    outcome = movement_service.apply_movement(db, data.product_id, data.type, data.quantity, data.notes)

    # Payloads are built now, while the session is open; delivery happens after the response
    background_tasks.add_task(
        broadcaster.publish_movement_outcome, outcome.stock_update(), outcome.low_stock_alert()
    )

    return MovementResult(
        product=ProductOut.model_validate(outcome.product),
        movement=MovementOut.model_validate(outcome.movement),
        alert=outcome.alert.value if outcome.alert else None,
    )


@router.get("", response_model=list[MovementOut])
def list_movements(
    product_id: str | None = Query(default=None, alias="productId"),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
):
    return movement_service.list_movements(db, product_id=product_id, limit=limit)
