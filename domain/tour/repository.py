"""
Tour and ticket purchase repository interfaces.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Tour, TicketPurchase


class PaymentAlreadyRecordedError(Exception):
    """A purchase with the same provider payment reference already exists."""

    def __init__(self, provider_payment_ref: str):
        self.provider_payment_ref = provider_payment_ref
        super().__init__(f"Payment {provider_payment_ref} already recorded")


class TourRepository(ABC):

    @abstractmethod
    async def create(self, tour: Tour) -> Tour:
        pass

    @abstractmethod
    async def get_by_id(self, tour_id: int) -> Optional[Tour]:
        pass

    @abstractmethod
    async def reserve_tickets(self, tour_id: int, quantity: int) -> bool:
        """
        Increment tickets_sold by `quantity` only if capacity allows.

        Check and increment must happen in one isolation scope so that
        concurrent callers for the same tour are serialized. Returns False
        when the tour is missing or the increment would oversell it.
        """
        pass


class TicketPurchaseRepository(ABC):

    @abstractmethod
    async def create(self, purchase: TicketPurchase) -> TicketPurchase:
        """Raises PaymentAlreadyRecordedError when the payment reference is taken."""
        pass

    @abstractmethod
    async def get_by_payment_ref(self, provider_payment_ref: str) -> Optional[TicketPurchase]:
        pass

    @abstractmethod
    async def sum_completed_quantity(self, tour_id: int) -> int:
        pass
