import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import List

import pytest
from pydantic import ValidationError

from slot_booking.application.services import (
    BookingApplicationService,
    BookingDTO,
    CancelBookingRequest,
    CreateBookingRequest,
)
from slot_booking.config import BookingSettings
from slot_booking.domain.booking import BookingState
from slot_booking.domain.catalog import PaymentStatus, Service
from slot_booking.domain.events import BookingCanceled, BookingConfirmed, BookingCreated
from slot_booking.domain.pricing import AddOn
from slot_booking.domain.slots import ScheduleSlot, SlotAllocator
from slot_booking.infrastructure import (
    DummyPaymentGateway,
    InMemoryBookingRepository,
    InMemoryEventBus,
    InMemoryServiceCatalog,
)
from slot_booking.shared_kernel import (
    AddOnNotFound,
    BookingNotFound,
    CapacityExceeded,
    CurrencyMismatch,
    InvalidTransition,
    Money,
    NaiveTimestamp,
    PreconditionFailed,
    SlotUnavailable,
    TimeRange,
    generate_id,
)

from ..conftest import SLOT_START

BOOKED_AT = SLOT_START - timedelta(days=7)


@pytest.fixture
def add_on() -> AddOn:
    return AddOn(name="Укладка", price=Money(amount=300))


@pytest.fixture
def catalog(service: Service, add_on: AddOn) -> InMemoryServiceCatalog:
    return InMemoryServiceCatalog(services=[service], add_ons=[add_on])


@pytest.fixture
def event_bus() -> InMemoryEventBus:
    return InMemoryEventBus()


@pytest.fixture
def published(event_bus: InMemoryEventBus) -> List:
    """Собирает опубликованные события."""
    events: List = []
    for event_type in (BookingCreated, BookingConfirmed, BookingCanceled):
        event_bus.subscribe(event_type, events.append)
    return events


def make_service(
    allocator: SlotAllocator,
    catalog: InMemoryServiceCatalog,
    event_bus: InMemoryEventBus,
    settings: BookingSettings = None,
    approve: bool = True,
    payments: DummyPaymentGateway = None,
) -> BookingApplicationService:
    return BookingApplicationService(
        allocator=allocator,
        bookings=InMemoryBookingRepository(),
        catalog=catalog,
        payments=payments or DummyPaymentGateway(approve=approve),
        event_bus=event_bus,
        settings=settings,
    )


@pytest.fixture
def booking_service(allocator, catalog, event_bus) -> BookingApplicationService:
    """Фикстура, предоставляющая сервис приложения с чистыми репозиториями."""
    return make_service(allocator, catalog, event_bus)


def book(service: BookingApplicationService, slot_id, **kwargs) -> BookingDTO:
    return service.create_booking(
        CreateBookingRequest(customer_id=generate_id(), slot_id=slot_id, at=BOOKED_AT, **kwargs)
    )


def test_create_booking_confirms_and_prices(
    allocator, catalog, event_bus, slot, add_on, published
):
    gateway = DummyPaymentGateway()
    app = make_service(allocator, catalog, event_bus, payments=gateway)

    booking = book(app, slot.id, add_on_ids=(add_on.id,))

    assert booking.state is BookingState.CONFIRMED
    assert booking.price == Money(amount=1300)
    assert booking.payment_status is PaymentStatus.AUTHORIZED
    payment = gateway.processed_payments[booking.payment_ref]
    assert booking.payment_id == payment.id
    assert payment.booking_id == booking.id
    assert payment.amount == booking.price
    assert booking.add_on_ids == (add_on.id,)
    assert [type(event) for event in published] == [BookingCreated, BookingConfirmed]


def test_peak_hour_member_pricing(allocator, catalog, event_bus, service):
    evening = datetime(2030, 5, 10, 18, 0, tzinfo=timezone.utc)
    peak_slot = ScheduleSlot(
        service_id=service.id,
        period=TimeRange(starts_at=evening, ends_at=evening + timedelta(hours=1)),
        capacity=1,
    )
    allocator.add_slot(peak_slot)
    app = make_service(allocator, catalog, event_bus)

    booking = book(app, peak_slot.id, is_member=True)

    # 1000 * 1.25 = 1250, скидка участника 10% -> 1125
    assert booking.price == Money(amount=1125)


def test_deferred_payment_policy(allocator, catalog, event_bus, slot):
    app = make_service(
        allocator, catalog, event_bus, settings=BookingSettings(payment_policy="defer")
    )

    booking = book(app, slot.id)

    assert booking.state is BookingState.CONFIRMED
    assert booking.payment_status is PaymentStatus.DEFERRED
    assert booking.payment_id is not None
    assert booking.payment_ref is None


def test_declined_payment_cancels_draft_and_frees_seat(
    allocator, catalog, event_bus, slot, published
):
    app = make_service(allocator, catalog, event_bus, approve=False)
    customer_id = generate_id()

    with pytest.raises(PreconditionFailed) as exc_info:
        app.create_booking(
            CreateBookingRequest(customer_id=customer_id, slot_id=slot.id, at=BOOKED_AT)
        )

    assert exc_info.value.precondition == "payment_authorized"
    assert allocator.available(slot.id) == slot.capacity
    [kept] = app.list_customer_bookings(customer_id)
    assert kept.state is BookingState.CANCELED
    assert kept.canceled_reason == "payment_declined"
    assert isinstance(published[-1], BookingCanceled)


def test_unknown_add_on_fails_without_reserving(booking_service, allocator, slot):
    with pytest.raises(AddOnNotFound):
        book(booking_service, slot.id, add_on_ids=(generate_id(),))

    assert allocator.available(slot.id) == slot.capacity


def test_inactive_service_is_unavailable(allocator, event_bus, slot, service):
    catalog = InMemoryServiceCatalog(services=[service.model_copy(update={"active": False})])
    app = make_service(allocator, catalog, event_bus)

    with pytest.raises(SlotUnavailable):
        book(app, slot.id)
    assert allocator.available(slot.id) == slot.capacity


def test_service_priced_in_other_currency_is_rejected(allocator, event_bus, slot, service):
    euro_service = service.model_copy(update={"base_price": Money(amount=1000, currency="EUR")})
    app = make_service(allocator, InMemoryServiceCatalog(services=[euro_service]), event_bus)

    with pytest.raises(CurrencyMismatch) as exc_info:
        book(app, slot.id)

    assert exc_info.value.expected == "USD"
    assert exc_info.value.actual == "EUR"
    assert allocator.available(slot.id) == slot.capacity


def test_add_on_in_other_currency_is_rejected(allocator, event_bus, slot, service):
    add_on = AddOn(name="Маска", price=Money(amount=300, currency="EUR"))
    catalog = InMemoryServiceCatalog(services=[service], add_ons=[add_on])
    app = make_service(allocator, catalog, event_bus)

    with pytest.raises(CurrencyMismatch):
        book(app, slot.id, add_on_ids=(add_on.id,))
    assert allocator.available(slot.id) == slot.capacity


def test_settings_currency_drives_accepted_prices(allocator, event_bus, slot, service):
    euro_service = service.model_copy(update={"base_price": Money(amount=1000, currency="EUR")})
    app = make_service(
        allocator,
        InMemoryServiceCatalog(services=[euro_service]),
        event_bus,
        settings=BookingSettings(currency="EUR"),
    )

    booking = book(app, slot.id)

    assert booking.price == Money(amount=1000, currency="EUR")


def test_naive_request_time_is_rejected(booking_service, slot):
    booking = book(booking_service, slot.id)

    with pytest.raises(ValidationError):
        CancelBookingRequest(booking_id=booking.id, at=datetime(2030, 5, 10, 9, 0))
    with pytest.raises(ValidationError):
        CreateBookingRequest(
            customer_id=generate_id(), slot_id=slot.id, at=datetime(2030, 5, 1, 9, 0)
        )


def test_request_time_is_normalized_to_utc():
    local = datetime(2030, 5, 10, 12, 0, tzinfo=timezone(timedelta(hours=3)))

    request = CancelBookingRequest(booking_id=generate_id(), at=local)

    assert request.at == datetime(2030, 5, 10, 9, 0, tzinfo=timezone.utc)
    assert request.at.tzinfo == timezone.utc


@pytest.mark.parametrize("operation", ["check_in", "complete_booking", "mark_no_show"])
def test_naive_time_in_service_call_leaves_booking_unchanged(booking_service, slot, operation):
    booking = book(booking_service, slot.id)

    with pytest.raises(NaiveTimestamp):
        getattr(booking_service, operation)(booking.id, datetime(2030, 5, 10, 12, 0))

    stored = booking_service.get_booking(booking.id)
    assert stored.state is BookingState.CONFIRMED
    assert stored.checked_in_at is None
    assert stored.version == booking.version


def test_full_slot_rejects_booking(booking_service, slot):
    for _ in range(slot.capacity):
        book(booking_service, slot.id)

    with pytest.raises(CapacityExceeded):
        book(booking_service, slot.id)


def test_cancel_booking_charges_fee_and_releases_seat(booking_service, allocator, slot):
    booking = book(booking_service, slot.id)
    assert allocator.available(slot.id) == 1

    canceled = booking_service.cancel_booking(
        CancelBookingRequest(
            booking_id=booking.id, reason="заболел", at=SLOT_START - timedelta(hours=3)
        )
    )

    assert canceled.state is BookingState.CANCELED
    assert canceled.cancellation_fee == Money(amount=500)
    assert canceled.canceled_reason == "заболел"
    assert allocator.available(slot.id) == 2


def test_early_cancellation_is_free(booking_service, slot):
    booking = book(booking_service, slot.id)

    canceled = booking_service.cancel_booking(
        CancelBookingRequest(booking_id=booking.id, at=SLOT_START - timedelta(hours=24))
    )

    assert canceled.cancellation_fee == Money.zero()


def test_cancel_twice_is_invalid_and_releases_once(booking_service, allocator, slot):
    booking = book(booking_service, slot.id)
    request = CancelBookingRequest(booking_id=booking.id, at=BOOKED_AT)
    booking_service.cancel_booking(request)

    with pytest.raises(InvalidTransition):
        booking_service.cancel_booking(request)
    assert allocator.available(slot.id) == 2


def test_cancel_unknown_booking(booking_service):
    with pytest.raises(BookingNotFound):
        booking_service.cancel_booking(CancelBookingRequest(booking_id=generate_id()))


def test_check_in_then_complete(booking_service, slot):
    booking = book(booking_service, slot.id)

    checked_in = booking_service.check_in(booking.id, SLOT_START + timedelta(minutes=5))
    completed = booking_service.complete_booking(booking.id, SLOT_START + timedelta(hours=1))

    assert checked_in.checked_in_at is not None
    assert completed.state is BookingState.COMPLETED
    with pytest.raises(InvalidTransition):
        booking_service.cancel_booking(
            CancelBookingRequest(booking_id=booking.id, at=SLOT_START + timedelta(hours=2))
        )


def test_mark_no_show(booking_service, slot):
    booking = book(booking_service, slot.id)

    result = booking_service.mark_no_show(booking.id, SLOT_START + timedelta(hours=3))

    assert result.state is BookingState.NO_SHOW
    assert booking_service.get_booking(booking.id).state is BookingState.NO_SHOW


def test_two_concurrent_bookings_for_last_seat(catalog, event_bus, service, period):
    """Вместимость 1: ровно одна попытка подтверждается, вторая получает отказ."""
    slot = ScheduleSlot(service_id=service.id, period=period, capacity=1)
    allocator = SlotAllocator()
    allocator.add_slot(slot)
    app = make_service(allocator, catalog, event_bus)
    barrier = threading.Barrier(2)

    def attempt():
        barrier.wait()
        try:
            return book(app, slot.id)
        except CapacityExceeded as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(lambda _: attempt(), range(2)))

    confirmed = [r for r in results if isinstance(r, BookingDTO)]
    rejected = [r for r in results if isinstance(r, CapacityExceeded)]
    assert len(confirmed) == 1
    assert len(rejected) == 1
    assert confirmed[0].state is BookingState.CONFIRMED
    assert allocator.available(slot.id) == 0
