"""
Business codes returned in the `code` field of every API response.

Payment and reconciliation codes live in `shared.codes.payment_codes`; the two
enums never share a value so `core.exceptions` can map both from one table.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request validation (1xxxx)
    PARAM_VALIDATION_ERROR = 10003

    # Fans and tours (2xxxx)
    USER_NOT_FOUND = 20001
    NOT_FOUND = 20006  # route or resource without a dedicated code
    TOUR_NOT_FOUND = 20007
    TICKETS_SOLD_OUT = 20008

    # Access (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002  # webhook caller outside the IP allowlist

    # System (4xxxx)
    SYSTEM_ERROR = 40000
    SERVICE_UNAVAILABLE = 40003
    NOTIFICATION_UNDELIVERABLE = 40010

    # Rate limiting (5xxxx)
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
