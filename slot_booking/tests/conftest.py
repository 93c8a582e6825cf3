from datetime import datetime, timedelta, timezone

import pytest

from slot_booking.config import BookingSettings
from slot_booking.domain.booking import Booking
from slot_booking.domain.catalog import Service
from slot_booking.domain.slots import ScheduleSlot, SlotAllocator
from slot_booking.shared_kernel import Money, TimeRange, generate_id

SLOT_START = datetime(2030, 5, 10, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings() -> BookingSettings:
    return BookingSettings()


@pytest.fixture
def service() -> Service:
    """Услуга за 10.00 USD."""
    return Service(name="Стрижка", base_price=Money(amount=1000), duration_minutes=60)


@pytest.fixture
def period() -> TimeRange:
    return TimeRange(starts_at=SLOT_START, ends_at=SLOT_START + timedelta(hours=1))


@pytest.fixture
def slot(service: Service, period: TimeRange) -> ScheduleSlot:
    return ScheduleSlot(service_id=service.id, period=period, capacity=2)


@pytest.fixture
def allocator(slot: ScheduleSlot) -> SlotAllocator:
    """Аллокатор с одним зарегистрированным слотом."""
    allocator = SlotAllocator()
    allocator.add_slot(slot)
    return allocator


@pytest.fixture
def draft_booking(slot: ScheduleSlot) -> Booking:
    return Booking.draft(customer_id=generate_id(), slot=slot, price=Money(amount=1000))
