from typing import Optional

from fastapi import HTTPException


class ValidationFailed(HTTPException):
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=400, detail=detail)


class InsufficientStock(HTTPException):
    def __init__(self, product_name: Optional[str] = None):
        detail = "Insufficient stock"
        if product_name:
            detail = f"Insufficient stock for product: {product_name}"
        super().__init__(status_code=400, detail=detail)


class EmptyCart(HTTPException):
    def __init__(self):
        super().__init__(status_code=400, detail="Cart is empty")


class IllegalStatusTransition(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, what: str = "Resource"):
        super().__init__(status_code=404, detail=f"{what} not found")
