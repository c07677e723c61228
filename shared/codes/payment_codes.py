"""
Payment and reconciliation codes, plus the Stripe checkout status table.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Provider calls and webhook verification (60xxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    PAYLOAD_INVALID = 60005

    # Reconciliation (61xxx): nothing committed, the provider should redeliver
    RECONCILIATION_IN_PROGRESS = 61000
    STORE_UNAVAILABLE = 61001


# checkout.session payment_status / status -> internal status.
# Only "succeeded" sessions are reconciled.
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "paid": "succeeded",
        "no_payment_required": "succeeded",
        "complete": "succeeded",
        "unpaid": "pending",
        "open": "pending",
        "expired": "canceled",
    },
}
