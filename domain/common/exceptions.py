"""Domain-level business exceptions, shared by the domain and infrastructure layers.

The core layer only maps these to HTTP responses; the domain never imports core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class TourNotFoundException(BusinessException):
    def __init__(self, tour_id: Optional[int] = None):
        details = {"tour_id": tour_id} if tour_id is not None else None
        super().__init__(
            code=BusinessCode.TOUR_NOT_FOUND,
            message="Tour not found",
            error_type="TourNotFound",
            details=details,
        )


class TicketsUnavailableException(BusinessException):
    def __init__(self, tour_id: int, requested: int, remaining: int):
        super().__init__(
            code=BusinessCode.TICKETS_SOLD_OUT,
            message=f"Only {remaining} tickets left for tour {tour_id}",
            error_type="TicketsUnavailable",
            details={"tour_id": tour_id, "requested": requested, "remaining": remaining},
            field="quantity",
        )


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class StoreUnavailableException(BusinessException):
    """The domain store could not be reached or failed mid-transaction.

    Nothing has been committed when this is raised, so the caller may retry
    the whole operation from scratch.
    """

    def __init__(self, message: str = "Domain store unavailable", *, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.STORE_UNAVAILABLE,
            message=message,
            error_type="StoreUnavailable",
            details=details,
        )


class ReconciliationInProgressException(BusinessException):
    def __init__(self, event_id: str):
        super().__init__(
            code=PaymentCode.RECONCILIATION_IN_PROGRESS,
            message="Event is being reconciled by another delivery",
            error_type="ReconciliationInProgress",
            details={"event_id": event_id},
        )
