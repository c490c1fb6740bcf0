import logging
from datetime import datetime

from stocksync.schemas.events import (
    BarcodeScanEvent,
    EventName,
    LowStockAlertEvent,
    MovementSummary,
    StockUpdateEvent,
    frame,
)
from stocksync.services.connection_registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class Broadcaster:
    """Fans out stock updates, low-stock alerts and barcode scans.

    Stock updates and scans go to the registry's default room. Alerts go to
    ``alert_room`` when anyone is in it, otherwise to everyone.
    """

    def __init__(self, registry: ConnectionRegistry, alert_room: str = "managers"):
        self.registry = registry
        self.alert_room = alert_room

    @property
    def default_room(self) -> str:
        return self.registry.default_room

    async def publish_stock_update(
        self,
        product_id: str,
        product_name: str,
        previous_stock: int,
        new_stock: int,
        movement_summary: MovementSummary,
    ) -> int:
        event = StockUpdateEvent(
            product_id=product_id,
            product_name=product_name,
            previous_stock=previous_stock,
            new_stock=new_stock,
            movement=movement_summary,
        )
        return await self._send_stock_update(event)

    async def publish_low_stock_alert(
        self,
        product_id: str,
        product_name: str,
        current_stock: int,
        safety_stock: int,
        out_of_stock: bool = False,
    ) -> int:
        event = LowStockAlertEvent(
            product_id=product_id,
            product_name=product_name,
            current_stock=current_stock,
            safety_stock=safety_stock,
            out_of_stock=out_of_stock,
        )
        return await self._send_alert(event)

    async def publish_barcode_scan(self, barcode: str, timestamp: datetime | None = None) -> int:
        event = BarcodeScanEvent(barcode=barcode)
        if timestamp is not None:
            event.timestamp = timestamp
        return await self.registry.send_to_room(self.default_room, frame(EventName.BARCODE_SCAN, event))

    async def publish_movement_outcome(
        self, stock_update: StockUpdateEvent, alert: LowStockAlertEvent | None = None
    ) -> None:
        """Publish the numeric update, then the derived alert. Never raises."""
        try:
            await self._send_stock_update(stock_update)
            if alert is not None:
                await self._send_alert(alert)
        except Exception:
            logger.exception("Broadcast failed for movement on product %s", stock_update.product_id)

    async def _send_stock_update(self, event: StockUpdateEvent) -> int:
        return await self.registry.send_to_room(self.default_room, frame(EventName.STOCK_UPDATE, event))

    async def _send_alert(self, event: LowStockAlertEvent) -> int:
        room = self.alert_room if self.registry.members(self.alert_room) else self.default_room
        return await self.registry.send_to_room(room, frame(EventName.LOW_STOCK_ALERT, event))

    async def relay(self, connection_id: str, message) -> None:
        """Handle one client frame. Malformed frames are logged and ignored."""
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object frame from %s", connection_id)
            return
        try:
            event = EventName(message.get("event"))
        except ValueError:
            logger.warning("Ignoring unknown event %r from %s", message.get("event"), connection_id)
            return
        data = message.get("data")

        if event in (EventName.JOIN_ROOM, EventName.LEAVE_ROOM):
            room = data.get("room") if isinstance(data, dict) else data
            if not isinstance(room, str) or not room:
                logger.warning("Ignoring %s without a room from %s", event.value, connection_id)
                return
            if event == EventName.JOIN_ROOM:
                self.registry.join(connection_id, room)
            else:
                self.registry.leave(connection_id, room)
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring %s without a payload from %s", event.value, connection_id)
            return

        if event == EventName.UPDATE_STOCK:
            product_id, new_stock = data.get("productId"), data.get("newStock")
            if (
                not isinstance(product_id, str)
                or not product_id
                or isinstance(new_stock, bool)
                or not isinstance(new_stock, int)
                or new_stock < 0
            ):
                logger.warning("Ignoring invalid stock update from %s: %s", connection_id, data)
                return
            # Advisory only; the authoritative path is POST /api/movements
            logger.info("Stock update received from %s: %s", connection_id, data)
            relayed = {"productId": product_id, "newStock": new_stock, "advisory": True}
            await self.registry.send_to_room(
                self.default_room, frame(EventName.STOCK_UPDATE, relayed), exclude=connection_id
            )
        elif event == EventName.BARCODE_SCAN:
            if not data.get("barcode"):
                logger.warning("Ignoring barcode scan without barcode from %s", connection_id)
                return
            logger.info("Barcode scan received from %s: %s", connection_id, data.get("barcode"))
            await self.registry.send_to_room(self.default_room, frame(EventName.BARCODE_SCAN, data))
        elif event == EventName.LOW_STOCK_ALERT:
            logger.info("Low stock alert received from %s: %s", connection_id, data)
            await self.registry.send_to_room(
                self.alert_room, frame(EventName.LOW_STOCK_ALERT, data), exclude=connection_id
            )
        else:
            logger.warning("Clients may not send %s (from %s)", event.value, connection_id)
