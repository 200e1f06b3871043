from typing import Any, Dict, Optional


class StoreError(Exception):
    """Expected, user-facing failure of a storefront operation."""

    status_code = 400

    def __init__(self, message: str, **extra: Any):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class InvalidArgument(StoreError):
    status_code = 400


class NotFound(StoreError):
    status_code = 404


class Expired(StoreError):
    status_code = 404


class EmptyCart(StoreError):
    status_code = 400

    def __init__(self, message: str = "Cart is empty"):
        super().__init__(message)


class InsufficientStock(StoreError):
    status_code = 400

    def __init__(self, message: str, *, available: int, recipe: Optional[str] = None, missing: Optional[int] = None):
        extra: Dict[str, Any] = {"available": int(available)}
        if recipe is not None:
            extra["recipe"] = recipe
        if missing is not None:
            extra["missing"] = int(missing)
        super().__init__(message, **extra)
        self.available = int(available)
        self.missing = missing


class Conflict(StoreError):
    status_code = 409
