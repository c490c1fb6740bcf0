"""DashboardState reconciliation: bulk seed, push events, optimistic adjustments."""

import json

import httpx
import pytest

from stocksync.client.api_client import ApiError, StockSyncClient
from stocksync.client.events import EventBus
from stocksync.client.state import SCAN_HISTORY_SIZE, DashboardState, FailurePolicy
from stocksync.schemas.events import EventName

CATALOG = [
    {"id": "1", "name": "iPhone 15", "sku": "IP15-001", "currentStock": 25, "safetyStock": 10, "location": "A1-001"},
    {"id": "2", "name": "Samsung Galaxy S24", "sku": "SG24-002", "currentStock": 8, "safetyStock": 15},
    {"_id": "3", "name": "AirPods Pro", "sku": "APP-005", "currentStock": 0, "safetyStock": 20},
]


def _mock_api(handler) -> StockSyncClient:
    return StockSyncClient(client=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://test"))


@pytest.fixture()
def state():
    s = DashboardState()
    s.load(CATALOG)
    return s


class TestEventBus:
    def test_single_subscription_per_kind(self):
        bus = EventBus()
        calls = []
        bus.subscribe(EventName.BARCODE_SCAN, lambda d: calls.append(("first", d)))
        bus.subscribe(EventName.BARCODE_SCAN, lambda d: calls.append(("second", d)))

        assert bus.publish(EventName.BARCODE_SCAN, {"barcode": "X"})
        assert calls == [("second", {"barcode": "X"})]

    def test_unsubscribe(self):
        bus = EventBus()
        bus.subscribe(EventName.STOCK_UPDATE, lambda d: None)
        bus.unsubscribe(EventName.STOCK_UPDATE)
        assert not bus.is_subscribed(EventName.STOCK_UPDATE)
        assert not bus.publish(EventName.STOCK_UPDATE, {})

    def test_dispatch_wire_frames(self):
        bus = EventBus()
        seen = []
        bus.subscribe(EventName.STOCK_UPDATE, seen.append)
        assert bus.dispatch('{"event": "stockUpdate", "data": {"productId": "1"}}')
        assert not bus.dispatch({"event": "somethingElse", "data": {}})
        assert not bus.dispatch({"event": "barcodeScan", "data": {}})  # no handler
        assert seen == [{"productId": "1"}]


class TestPushEvents:
    def test_load_seeds_products(self, state):
        assert set(state.products) == {"1", "2", "3"}
        assert state.products["1"].location == "A1-001"
        assert state.products["2"].status == "Low Stock"
        assert state.products["3"].status == "Out of Stock"
        assert state.products["1"].status == "In Stock"

    def test_stock_update_patches_known_product(self, state):
        assert state.dispatch({"event": "stockUpdate", "data": {"productId": "1", "newStock": 5, "previousStock": 25}})
        assert state.products["1"].current_stock == 5

    def test_stock_update_for_unknown_product_ignored(self, state):
        state.dispatch({"event": "stockUpdate", "data": {"productId": "99", "newStock": 5}})
        assert "99" not in state.products
        assert len(state.products) == 3

    @pytest.mark.parametrize(
        "data",
        [{"productId": "1"}, {"productId": "1", "newStock": -40}, {"productId": "1", "newStock": "x"}],
    )
    def test_stock_update_with_invalid_new_stock_ignored(self, state, data):
        state.dispatch({"event": "stockUpdate", "data": data})
        assert not state.apply_stock_update(data)
        assert state.products["1"].current_stock == 25

    def test_advisory_update_is_not_a_revert_target(self, state):
        state.api = _mock_api(lambda request: httpx.Response(500, json={"error": "boom"}))
        assert state.dispatch({"event": "stockUpdate", "data": {"productId": "1", "newStock": 3, "advisory": True}})
        assert state.products["1"].current_stock == 3

        state.adjust_stock("1", 5)
        assert state.products["1"].current_stock == 25

    def test_matched_scan_selects_product(self, state):
        state.dispatch({"event": "barcodeScan", "data": {"barcode": "SG24-002", "timestamp": "t1"}})
        assert state.selected is state.products["2"]
        record = state.scan_history[0]
        assert record.matched
        assert record.timestamp == "t1"

    def test_unmatched_scan_recorded_without_selection_change(self, state):
        state.dispatch({"event": "barcodeScan", "data": {"barcode": "IP15-001"}})
        before = state.selected

        record = state.apply_barcode_scan({"barcode": "ZZZZ"})
        assert record.matched is False
        assert state.scan_history[0] is record
        assert state.selected is before

    def test_scan_history_is_bounded_newest_first(self, state):
        for i in range(SCAN_HISTORY_SIZE + 5):
            state.apply_barcode_scan({"barcode": f"CODE-{i}"})
        assert len(state.scan_history) == SCAN_HISTORY_SIZE
        assert state.scan_history[0].barcode == f"CODE-{SCAN_HISTORY_SIZE + 4}"
        assert state.scan_history[-1].barcode == "CODE-5"

    def test_low_stock_alerts_collected(self, state):
        state.dispatch({"event": "lowStockAlert", "data": {"productId": "2", "currentStock": 8}})
        assert state.alerts[0]["productId"] == "2"

    def test_reload_keeps_selection(self, state):
        state.apply_barcode_scan({"barcode": "IP15-001"})
        state.load(CATALOG)
        assert state.selected is state.products["1"]


class TestOptimisticAdjust:
    def test_success_reconciles_to_server_value(self, client):
        api = StockSyncClient(client=client)
        created = api.create_product("iPhone 15", "IP15-001", current_stock=3, safety_stock=10)

        state = DashboardState(api=api)
        assert state.refresh()

        # Optimistic 3-5 floors at 0 locally; the server agrees after clamping
        product = state.adjust_stock(created["id"], -5)
        assert product.current_stock == 0
        assert state.error is None

        product = state.adjust_stock(created["id"], +4)
        assert product.current_stock == 4
        assert [m["type"] for m in api.list_movements(created["id"])] == ["IN", "OUT"]

    def test_failure_reverts_by_default(self, state):
        state.api = _mock_api(lambda request: httpx.Response(503, json={"error": "Database temporarily unavailable"}))

        assert state.adjust_stock("1", -3) is None
        assert state.products["1"].current_stock == 25
        assert state.error == "Failed to update stock: Database temporarily unavailable"

    def test_failure_can_keep_optimistic_value(self, state):
        state.api = _mock_api(lambda request: httpx.Response(404, json={"error": "Product not found"}))
        state.failure_policy = FailurePolicy.KEEP

        assert state.adjust_stock("1", -3) is None
        assert state.products["1"].current_stock == 22
        assert "Product not found" in state.error

    def test_revert_uses_last_confirmed_push(self, state):
        state.api = _mock_api(lambda request: httpx.Response(500, json={"error": "boom"}))
        state.apply_stock_update({"productId": "1", "newStock": 12})
        state.adjust_stock("1", 5)
        assert state.products["1"].current_stock == 12

    def test_unknown_product_is_a_no_op(self, state):
        state.api = _mock_api(lambda request: pytest.fail("no request expected"))
        assert state.adjust_stock("99", 1) is None

    def test_request_body(self, state):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            product = dict(CATALOG[0], currentStock=26)
            return httpx.Response(200, json={"product": product, "movement": {}, "realTimeUpdate": True})

        state.api = _mock_api(handler)
        state.adjust_stock("1", 1)
        assert seen == {"productId": "1", "type": "IN", "quantity": 1}
        assert state.products["1"].current_stock == 26


class TestRefresh:
    def test_transport_failure_keeps_last_known_good(self, state):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        state.api = _mock_api(handler)
        assert not state.refresh()
        assert len(state.products) == 3
        assert state.error == "Failed to fetch products. Using offline mode."

    def test_api_error_carries_status(self):
        api = _mock_api(lambda request: httpx.Response(404, json={"error": "Product not found"}))
        with pytest.raises(ApiError) as exc_info:
            api.get_product("x")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Product not found"


def test_live_socket_frames_reconcile_state(client):
    api = StockSyncClient(client=client)
    created = api.create_product("MacBook Pro 14", "MBP14-003", current_stock=5, safety_stock=8)
    state = DashboardState(api=api)
    state.refresh()

    with client.websocket_connect("/ws") as ws:
        api.apply_movement(created["id"], "OUT", 5)
        state.dispatch(ws.receive_json())  # stockUpdate
        state.dispatch(ws.receive_json())  # lowStockAlert (outOfStock)

        ws.send_json({"event": "barcodeScan", "data": {"barcode": "MBP14-003", "timestamp": "t"}})
        state.dispatch(ws.receive_json())

    assert state.products[created["id"]].current_stock == 0
    assert state.alerts[0]["outOfStock"] is True
    assert state.selected.sku == "MBP14-003"
