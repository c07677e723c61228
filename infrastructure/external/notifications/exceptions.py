"""
Notification delivery errors mapped to BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes import BusinessCode


class NotificationDeliveryError(BusinessException):
    """The channel refused the message; retrying will not help."""

    def __init__(self, message: str, *, channel: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        full_details = {"channel": channel, "status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=BusinessCode.NOTIFICATION_UNDELIVERABLE,
            message=message,
            error_type="NotificationDeliveryError",
            details=full_details,
        )


class NotificationRecoverableError(BusinessException):
    """Transient channel failure (rate limit, 5xx, transport)."""

    def __init__(
        self,
        message: str,
        *,
        channel: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(
            code=BusinessCode.SERVICE_UNAVAILABLE,
            message=message,
            error_type="NotificationRecoverableError",
            details={"channel": channel, "status_code": status_code, "retry_after": retry_after},
        )
        self.retry_after = retry_after
