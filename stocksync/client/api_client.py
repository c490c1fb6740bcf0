import logging

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Non-2xx response or transport failure (status_code 0)."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class StockSyncClient:
    """Thin httpx wrapper around the StockSync REST API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        token: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs):
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error("Request %s %s failed: %s", method, path, e)
            raise ApiError(0, str(e)) from e

        if not resp.is_success:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                message = body.get("error") or body.get("detail") or resp.reason_phrase
            else:
                message = resp.text or resp.reason_phrase
            raise ApiError(resp.status_code, str(message))
        return resp.json()

    def login(self, username: str, password: str) -> dict:
        data = self._request("POST", "/api/auth/login", json={"username": username, "password": password})
        self.token = data["token"]
        return data["user"]

    def list_products(self) -> list[dict]:
        return self._request("GET", "/api/products")

    def get_product(self, product_id: str) -> dict:
        return self._request("GET", f"/api/products/{product_id}")

    def create_product(
        self, name: str, sku: str, current_stock: int = 0, safety_stock: int = 0, location: str = ""
    ) -> dict:
        payload = {
            "name": name,
            "sku": sku,
            "currentStock": current_stock,
            "safetyStock": safety_stock,
            "location": location,
        }
        return self._request("POST", "/api/products", json=payload)

    def apply_movement(self, product_id: str, movement_type: str, quantity: int, notes: str | None = None) -> dict:
        payload = {"productId": product_id, "type": movement_type, "quantity": quantity}
        if notes:
            payload["notes"] = notes
        return self._request("POST", "/api/movements", json=payload)

    def list_movements(self, product_id: str | None = None, limit: int = 100) -> list[dict]:
        params = {"limit": limit}
        if product_id:
            params["productId"] = product_id
        return self._request("GET", "/api/movements", params=params)
