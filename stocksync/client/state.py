"""Dashboard-side view state kept in sync with the server.

``DashboardState`` is seeded from a bulk product fetch and then patched by
push events (delivered through an ``EventBus``) and by the results of the
user's own stock adjustments.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from stocksync.client.api_client import ApiError, StockSyncClient
from stocksync.client.events import EventBus
from stocksync.schemas.events import EventName

logger = logging.getLogger(__name__)

SCAN_HISTORY_SIZE = 20


class FailurePolicy(str, Enum):
    REVERT = "revert"  # restore the last server-confirmed stock
    KEEP = "keep"  # leave the optimistic value on screen


@dataclass
class ProductView:
    id: str
    name: str
    sku: str
    current_stock: int
    safety_stock: int
    location: str = ""

    @classmethod
    def from_json(cls, data: dict) -> "ProductView":
        return cls(
            id=data.get("id") or data.get("_id"),
            name=data.get("name", ""),
            sku=data.get("sku", ""),
            current_stock=int(data.get("currentStock", 0)),
            safety_stock=int(data.get("safetyStock", 0)),
            location=data.get("location") or "",
        )

    @property
    def status(self) -> str:
        if self.current_stock == 0:
            return "Out of Stock"
        if self.current_stock <= self.safety_stock:
            return "Low Stock"
        return "In Stock"


@dataclass
class ScanRecord:
    barcode: str
    timestamp: datetime | str
    product: ProductView | None = None

    @property
    def matched(self) -> bool:
        return self.product is not None


@dataclass
class DashboardState:
    api: StockSyncClient | None = None
    failure_policy: FailurePolicy = FailurePolicy.REVERT
    history_size: int = SCAN_HISTORY_SIZE
    bus: EventBus = field(default_factory=EventBus)

    products: dict[str, ProductView] = field(default_factory=dict, init=False)
    selected: ProductView | None = field(default=None, init=False)
    error: str | None = field(default=None, init=False)

    def __post_init__(self):
        # last stock value the server confirmed, per product id
        self._confirmed: dict[str, int] = {}
        self.scan_history: deque[ScanRecord] = deque(maxlen=self.history_size)
        self.alerts: deque[dict] = deque(maxlen=self.history_size)
        self.bus.subscribe(EventName.STOCK_UPDATE, self.apply_stock_update)
        self.bus.subscribe(EventName.BARCODE_SCAN, self.apply_barcode_scan)
        self.bus.subscribe(EventName.LOW_STOCK_ALERT, self.apply_low_stock_alert)

    # --- seeding ---

    def load(self, products: list[dict]) -> None:
        selected_id = self.selected.id if self.selected else None
        self.products = {}
        self._confirmed = {}
        for item in products:
            view = ProductView.from_json(item)
            self.products[view.id] = view
            self._confirmed[view.id] = view.current_stock
        self.selected = self.products.get(selected_id) if selected_id else None

    def refresh(self) -> bool:
        """Full re-sync. On failure the last-known-good view is kept."""
        try:
            products = self.api.list_products()
        except ApiError as e:
            logger.warning("Product fetch failed: %s", e)
            self.error = "Failed to fetch products. Using offline mode."
            return False
        self.load(products)
        self.error = None
        return True

    # --- push events ---

    def dispatch(self, message: dict | str) -> bool:
        return self.bus.dispatch(message)

    def apply_stock_update(self, data: dict) -> bool:
        product = self.products.get(data.get("productId"))
        new_stock = data.get("newStock")
        if product is None:
            return False
        if isinstance(new_stock, bool) or not isinstance(new_stock, int) or new_stock < 0:
            logger.warning("Ignoring stock update with invalid newStock: %s", data)
            return False
        product.current_stock = new_stock
        # relayed peer updates are shown but never become the revert target
        if not data.get("advisory"):
            self._confirmed[product.id] = new_stock
        return True

    def find_by_sku(self, sku: str) -> ProductView | None:
        for product in self.products.values():
            if product.sku == sku:
                return product
        return None

    def apply_barcode_scan(self, data: dict) -> ScanRecord:
        barcode = data.get("barcode", "")
        product = self.find_by_sku(barcode)
        record = ScanRecord(
            barcode=barcode,
            timestamp=data.get("timestamp") or datetime.now(timezone.utc),
            product=product,
        )
        self.scan_history.appendleft(record)
        if product is not None:
            self.selected = product
        return record

    def apply_low_stock_alert(self, data: dict) -> None:
        self.alerts.appendleft(data)

    # --- user actions ---

    def adjust_stock(self, product_id: str, change: int, notes: str | None = None) -> ProductView | None:
        """Optimistically apply ``change`` and confirm it with the server.

        Returns the reconciled product, or None if the product is unknown or
        the request failed (``error`` then holds the message).
        """
        product = self.products.get(product_id)
        if product is None or change == 0:
            return product

        confirmed = self._confirmed.get(product_id, product.current_stock)
        product.current_stock = max(0, product.current_stock + change)
        movement_type = "IN" if change > 0 else "OUT"

        try:
            result = self.api.apply_movement(product_id, movement_type, abs(change), notes)
        except ApiError as e:
            logger.warning("Stock update for %s failed: %s", product_id, e)
            self.error = f"Failed to update stock: {e.message}"
            if self.failure_policy == FailurePolicy.REVERT:
                product.current_stock = confirmed
            return None

        product.current_stock = int(result["product"]["currentStock"])
        self._confirmed[product_id] = product.current_stock
        self.error = None
        return product
