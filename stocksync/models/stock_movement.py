import uuid
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stocksync.database import Base


class MovementType(str, PyEnum):
    IN = "IN"
    OUT = "OUT"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockMovement(Base):
    """Append-only ledger of stock changes. Rows are never updated or deleted."""

    __tablename__ = "stock_movements"
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_stock_movements_quantity_positive"),
        CheckConstraint("applied_quantity >= 0", name="ck_stock_movements_applied_non_negative"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id: Mapped[str] = mapped_column(String, ForeignKey("products.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(
        Enum(MovementType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # as requested
    applied_quantity: Mapped[int] = mapped_column(Integer, nullable=False)  # after clamping
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, index=True)

    product: Mapped["Product"] = relationship("Product", back_populates="movements")  # noqa: F821
