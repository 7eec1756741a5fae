"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
Every domain error carries the entity id and the invariant it protects
in ``details``.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class DuplicatePaymentError(AppException):
    """
    Raised when a payment record with the same transaction number already exists.

    Recovered locally by the reconciliation engine as an idempotent replay.
    """

    def __init__(self, transaction_number: str):
        super().__init__(
            message=f"Payment {transaction_number} has already been recorded",
            error_code="ERR_PAYMENT_DUPLICATE",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "transaction_number": transaction_number,
                "invariant": "payment_records.transaction_number is unique"
            }
        )


class UnresolvedInvoiceError(AppException):
    """Raised when a payment cannot be matched to an invoice. The payment stays persisted."""

    def __init__(self, transaction_number: str, reference: Optional[str] = None, description: Optional[str] = None):
        super().__init__(
            message=f"Payment {transaction_number} does not reference a known invoice",
            error_code="ERR_PAYMENT_UNRESOLVED",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={
                "transaction_number": transaction_number,
                "reference": reference,
                "description": description,
                "invariant": "every recorded payment resolves to an invoice reference number"
            }
        )


class InvalidTransitionError(AppException):
    """Raised when a status change would regress, skip, or leave a terminal state."""

    def __init__(self, entity: str, entity_id: Any, current: str, requested: str, reason: str = None):
        message = f"{entity} {entity_id} cannot move from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_INVALID_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity": entity,
                "id": entity_id,
                "current": current,
                "requested": requested,
                "invariant": reason or "status transitions are forward-only"
            }
        )


class PaymentGateError(InvalidTransitionError):
    """Raised when the physical axis would advance before payment allows it."""

    def __init__(self, logistics_details_id: int, current: str, requested: str, payment_status: str):
        super().__init__(
            entity="LogisticsDetails",
            entity_id=logistics_details_id,
            current=current,
            requested=requested,
            reason=f"payment status {payment_status} does not permit dispatch"
        )
        self.error_code = "ERR_PAYMENT_GATE"
        self.details["payment_status"] = payment_status


class InsufficientCapacityError(AppException):
    """Raised when no truck combination can absorb the requested quantity."""

    def __init__(self, logistics_details_id: int, quantity: int, available_headroom: Any = 0):
        super().__init__(
            message=(
                f"Not enough fleet capacity for logistics detail {logistics_details_id}: "
                f"requested {quantity}, available {available_headroom}"
            ),
            error_code="ERR_INSUFFICIENT_CAPACITY",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "logistics_details_id": logistics_details_id,
                "quantity": quantity,
                "available_headroom": str(available_headroom),
                "invariant": "committed truck usage never exceeds max_pickups, max_dropoffs or max_capacity"
            }
        )


class ConcurrencyConflictError(AppException):
    """Raised when a concurrent writer changed the rows this transaction relied on."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"Concurrent update detected on {entity} {entity_id}",
            error_code="ERR_CONCURRENCY_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "entity": entity,
                "id": entity_id,
                "invariant": "rows read inside a reconciliation or allocation are unchanged at commit"
            }
        )


class LedgerRuleError(AppException):
    """Raised when a ledger append violates an amount rule (e.g. refund above balance)."""

    def __init__(self, invoice_id: int, message: str, invariant: str):
        super().__init__(
            message=message,
            error_code="ERR_LEDGER_RULE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"invoice_id": invoice_id, "invariant": invariant}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
