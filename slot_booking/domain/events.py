from datetime import datetime
from typing import Optional

from slot_booking.shared_kernel import DomainEvent, EntityId, Money


class BookingCreated(DomainEvent):
    """Событие создания бронирования (в состоянии draft)."""

    customer_id: EntityId
    slot_id: EntityId
    price: Money


class BookingConfirmed(DomainEvent):
    confirmed_at: datetime


class BookingCanceled(DomainEvent):
    """Событие отмены бронирования."""

    fee: Money
    reason: Optional[str] = None


class BookingCheckedIn(DomainEvent):
    checked_in_at: datetime


class BookingCompleted(DomainEvent):
    pass


class BookingMarkedNoShow(DomainEvent):
    pass
