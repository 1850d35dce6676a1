# Overview: Domain exceptions raised by the purchase-request services and mapped to HTTP statuses by the routes.

from __future__ import annotations


class PurchaseRequestError(Exception):
    """Base class for purchase-request and transfer failures."""

    status_code = 400

    def to_dict(self) -> dict:
        return {"error": str(self), "type": type(self).__name__}


class ValidationError(PurchaseRequestError, ValueError):
    """400-level input problem, optionally tied to one field."""

    status_code = 400

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.field:
            body["field"] = self.field
        return body


class NotFoundError(PurchaseRequestError):
    """Request, product or client missing (or outside the caller's tenant)."""

    status_code = 404


class InvalidStateError(PurchaseRequestError):
    """Transition attempted on a request that is no longer pending."""

    status_code = 409

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.status:
            body["status"] = self.status
        return body


class InsufficientStockError(PurchaseRequestError):
    """Manufacturer stock cannot cover the requested quantity."""

    status_code = 422

    def __init__(self, message: str, available: int | None = None, requested: int | None = None):
        super().__init__(message)
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["available"] = self.available
        body["requested"] = self.requested
        return body


class TransactionConflictError(PurchaseRequestError):
    """Storage transaction kept conflicting; nothing was written and the call may be retried."""

    status_code = 503

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryable"] = True
        return body
