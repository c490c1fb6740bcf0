from datetime import datetime

from pydantic import Field, field_validator

from stocksync.models.stock_movement import MovementType
from stocksync.schemas.events import as_utc
from stocksync.schemas.product import CamelModel, ProductOut


class MovementCreate(CamelModel):
    # type and quantity are range-checked by movement_service so the errors
    # carry their own taxonomy instead of a generic schema failure
    product_id: str
    type: str
    quantity: int
    notes: str | None = None


class MovementOut(CamelModel):
    id: str
    product_id: str
    type: MovementType
    quantity: int
    applied_quantity: int
    balance_after: int
    notes: str = ""
    created_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, v):
        return as_utc(v)


class MovementResult(CamelModel):
    message: str = "Stock updated successfully"
    product: ProductOut
    movement: MovementOut
    alert: str | None = None
    real_time_update: bool = Field(default=True)
