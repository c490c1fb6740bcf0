"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status it maps to; ``main.py`` renders them as
``{"error": message}``.
"""


class StockSyncError(Exception):
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFoundError(StockSyncError):
    status_code = 404


class ProductNotFoundError(NotFoundError):
    def __init__(self, product_id: str):
        super().__init__("Product not found")
        self.product_id = product_id


class ValidationError(StockSyncError):
    status_code = 400


class InvalidQuantityError(ValidationError):
    def __init__(self, quantity):
        super().__init__(f"Quantity must be an integer of at least 1, got {quantity!r}")
        self.quantity = quantity


class InvalidMovementTypeError(ValidationError):
    def __init__(self, movement_type):
        super().__init__(f"Movement type must be IN or OUT, got {movement_type!r}")
        self.movement_type = movement_type


class InsufficientStockError(ValidationError):
    def __init__(self, current_stock: int, requested: int):
        super().__init__(f"Insufficient stock. Current: {current_stock}, requested: {requested}")
        self.current_stock = current_stock
        self.requested = requested


class DuplicateSkuError(ValidationError):
    def __init__(self, sku: str):
        super().__init__(f"Product with SKU {sku} already exists")
        self.sku = sku


class TransientError(StockSyncError):
    status_code = 503


class ConcurrentUpdateError(TransientError):
    status_code = 409

    def __init__(self, product_id: str, attempts: int):
        super().__init__(f"Product {product_id} was modified concurrently; gave up after {attempts} attempts")
        self.product_id = product_id
        self.attempts = attempts


class UnauthorizedError(StockSyncError):
    status_code = 401


class ForbiddenError(StockSyncError):
    status_code = 403
