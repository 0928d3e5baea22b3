"""
Domain errors for the RentalShop backend

Services and repositories raise these; routers turn them into
HTTPException via to_http_exception() so clients always get
{"code", "message", "details"} in the response detail.
"""
from typing import Any, Optional

from fastapi import HTTPException, status


class ErrorCode:
    """Stable error codes returned to API clients"""
    NOT_FOUND = "NOT_FOUND"
    MERCHANT_NOT_FOUND = "MERCHANT_NOT_FOUND"
    OUTLET_NOT_FOUND = "OUTLET_NOT_FOUND"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    PLAN_NOT_FOUND = "PLAN_NOT_FOUND"
    SUBSCRIPTION_NOT_FOUND = "SUBSCRIPTION_NOT_FOUND"
    PAYMENT_NOT_FOUND = "PAYMENT_NOT_FOUND"
    BACKUP_NOT_FOUND = "BACKUP_NOT_FOUND"
    SYNC_SESSION_NOT_FOUND = "SYNC_SESSION_NOT_FOUND"
    SYNC_SESSION_NOT_RESUMABLE = "SYNC_SESSION_NOT_RESUMABLE"

    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    ORDER_NUMBER_EXHAUSTED = "ORDER_NUMBER_EXHAUSTED"
    IMPORT_TOO_MANY_ROWS = "IMPORT_TOO_MANY_ROWS"
    IMPORT_INVALID_FILE = "IMPORT_INVALID_FILE"

    PLAN_LIMIT_EXCEEDED = "PLAN_LIMIT_EXCEEDED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"

    LEGACY_SYNC_FAILED = "LEGACY_SYNC_FAILED"


class RentalShopError(Exception):
    """Base error carrying an error code and HTTP status"""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_dict())


class NotFoundError(RentalShopError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = ErrorCode.NOT_FOUND


class ValidationError(RentalShopError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = ErrorCode.VALIDATION_ERROR


class InsufficientStockError(ValidationError):
    default_code = ErrorCode.INSUFFICIENT_STOCK


class ConflictError(RentalShopError):
    status_code = status.HTTP_409_CONFLICT
    default_code = ErrorCode.DUPLICATE_ENTRY


class PlanLimitError(RentalShopError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.PLAN_LIMIT_EXCEEDED


class SubscriptionError(RentalShopError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = ErrorCode.SUBSCRIPTION_INACTIVE
