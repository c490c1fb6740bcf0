"""Real-time event names and payloads.

Every frame on the socket is ``{"event": <EventName>, "data": {...}}``.
"""
from datetime import datetime, timezone
from enum import Enum

from pydantic import Field, field_validator

from stocksync.schemas.product import CamelModel


class EventName(str, Enum):
    # server -> client
    STOCK_UPDATE = "stockUpdate"
    LOW_STOCK_ALERT = "lowStockAlert"
    BARCODE_SCAN = "barcodeScan"
    # client -> server
    UPDATE_STOCK = "updateStock"
    JOIN_ROOM = "joinRoom"
    LEAVE_ROOM = "leaveRoom"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MovementSummary(CamelModel):
    type: str
    quantity: int
    timestamp: datetime = Field(default_factory=_now)

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, v):
        return as_utc(v)


class StockUpdateEvent(CamelModel):
    product_id: str
    product_name: str
    previous_stock: int
    new_stock: int
    movement: MovementSummary


class LowStockAlertEvent(CamelModel):
    product_id: str
    product_name: str
    current_stock: int
    safety_stock: int
    out_of_stock: bool = False
    timestamp: datetime = Field(default_factory=_now)


class BarcodeScanEvent(CamelModel):
    barcode: str
    timestamp: datetime = Field(default_factory=_now)


def frame(event: EventName, data) -> dict:
    """Wrap a payload (model or plain dict) into a wire frame."""
    if isinstance(data, CamelModel):
        data = data.model_dump(mode="json", by_alias=True)
    return {"event": event.value, "data": data}
