"""
Прикладной слой бронирования слотов.

Координирует аллокатор мест, расчет цены, платеж и переходы
состояний бронирования. Хранение, HTTP и аутентификация - снаружи.
"""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, field_validator

from slot_booking.application.repositories import (
    BookingRepository,
    EventBus,
    PaymentGateway,
    ServiceCatalog,
)
from slot_booking.config import BookingSettings
from slot_booking.domain.booking import Booking, BookingState, BookingStateMachine
from slot_booking.domain.cancellation import CancellationPolicy
from slot_booking.domain.catalog import Payment, PaymentStatus
from slot_booking.domain.pricing import (
    PriceCalculator,
    PricingContext,
    PricingStrategy,
    default_strategies,
)
from slot_booking.domain.slots import SlotAllocator
from slot_booking.shared_kernel import (
    CurrencyMismatch,
    EntityId,
    Money,
    PreconditionFailed,
    SlotUnavailable,
    as_utc,
    now,
)

logger = logging.getLogger(__name__)

# DTO для входящих данных


class CreateBookingRequest(BaseModel):
    """Запрос на создание бронирования."""

    customer_id: EntityId
    slot_id: EntityId
    add_on_ids: Tuple[EntityId, ...] = ()
    is_member: bool = False
    at: Optional[datetime] = None

    @field_validator("at")
    @classmethod
    def at_is_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v


class CancelBookingRequest(BaseModel):
    """Запрос на отмену бронирования."""

    booking_id: EntityId
    reason: Optional[str] = None
    at: Optional[datetime] = None

    @field_validator("at")
    @classmethod
    def at_is_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else v


# DTO для исходящих данных


class BookingDTO(BaseModel):
    """DTO для представления бронирования."""

    id: EntityId
    customer_id: EntityId
    service_id: EntityId
    slot_id: EntityId
    state: BookingState
    price: Money
    add_on_ids: Tuple[EntityId, ...] = Field(default_factory=tuple)
    payment_status: PaymentStatus
    payment_id: Optional[EntityId] = None
    payment_ref: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    cancellation_fee: Optional[Money] = None
    canceled_reason: Optional[str] = None
    starts_at: datetime
    ends_at: datetime
    version: int

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingDTO":
        """Создает DTO из доменной модели."""
        return cls(
            id=booking.id,
            customer_id=booking.customer_id,
            service_id=booking.service_id,
            slot_id=booking.slot_id,
            state=booking.state,
            price=booking.price,
            add_on_ids=booking.add_on_ids,
            payment_status=booking.payment_status,
            payment_id=booking.payment_id,
            payment_ref=booking.payment_ref,
            checked_in_at=booking.checked_in_at,
            cancellation_fee=booking.cancellation_fee,
            canceled_reason=booking.canceled_reason,
            starts_at=booking.period.starts_at,
            ends_at=booking.period.ends_at,
            version=booking.version,
        )


# Сервисы приложения


class BookingApplicationService:
    """Сервис приложения для работы с бронированиями."""

    def __init__(
        self,
        allocator: SlotAllocator,
        bookings: BookingRepository,
        catalog: ServiceCatalog,
        payments: PaymentGateway,
        event_bus: EventBus,
        settings: Optional[BookingSettings] = None,
        strategies: Optional[Sequence[PricingStrategy]] = None,
        cancellation_policy: Optional[CancellationPolicy] = None,
    ):
        """Инициализирует сервис."""
        self._settings = settings or BookingSettings()
        self._allocator = allocator
        self._bookings = bookings
        self._catalog = catalog
        self._payments = payments
        self._event_bus = event_bus
        self._calculator = PriceCalculator()
        self._strategies = (
            list(strategies)
            if strategies is not None
            else default_strategies(self._settings)
        )
        self._state_machine = BookingStateMachine(
            cancellation_policy or CancellationPolicy.from_settings(self._settings)
        )

    def create_booking(self, request: CreateBookingRequest) -> BookingDTO:
        """
        Создает и подтверждает бронирование.

        Raises:
            SlotNotFound, ServiceNotFound, AddOnNotFound: неизвестные ссылки.
            SlotUnavailable: слот или услуга неактивны.
            CurrencyMismatch: услуга или дополнение оценены не в валюте настроек.
            CapacityExceeded: в слоте нет свободных мест.
            PreconditionFailed: платеж отклонен.
        """
        at = request.at or now()

        # Все проверки до резерва, чтобы ошибка не оставляла следов
        slot = self._allocator.get_slot(request.slot_id)
        service = self._catalog.get_service(slot.service_id)
        if not service.active:
            raise SlotUnavailable(slot.id, "service is inactive")
        add_ons = tuple(self._catalog.get_add_on(add_on_id) for add_on_id in request.add_on_ids)
        for price in [service.base_price] + [add_on.price for add_on in add_ons]:
            if price.currency != self._settings.currency:
                raise CurrencyMismatch(self._settings.currency, price.currency)
        context = PricingContext(
            is_peak_hour=self._settings.is_peak_hour(slot.starts_at.hour),
            is_member=request.is_member,
            add_ons=add_ons,
        )

        token = self._allocator.reserve(slot.id)
        try:
            price = self._calculator.total(service.base_price, context, self._strategies)
            booking = Booking.draft(
                customer_id=request.customer_id,
                slot=slot,
                price=price,
                reservation=token,
                add_on_ids=request.add_on_ids,
            )
            payment = self._settle_payment(booking)
        except Exception:
            self._allocator.release(token)
            raise

        self._bookings.add(booking)
        try:
            self._state_machine.confirm(booking, payment, at)
        except PreconditionFailed:
            # Черновик сохраняется отмененным для аудита, место возвращается
            self._state_machine.cancel(booking, at, reason="payment_declined")
            self._allocator.release(token)
            self._bookings.save(booking)
            self._publish(booking)
            raise

        self._bookings.save(booking)
        self._publish(booking)
        logger.info(
            "Created booking %s for customer %s in slot %s, price %s",
            booking.id,
            booking.customer_id,
            booking.slot_id,
            booking.price,
        )
        return BookingDTO.from_domain(booking)

    def cancel_booking(self, request: CancelBookingRequest) -> BookingDTO:
        """Отменяет бронирование и возвращает место в слот."""
        at = request.at or now()
        booking = self._bookings.get_by_id(request.booking_id)
        self._state_machine.cancel(booking, at, request.reason)
        if booking.reservation is not None:
            self._allocator.release(booking.reservation)
        self._bookings.save(booking)
        self._publish(booking)
        logger.info(
            "Canceled booking %s with fee %s", booking.id, booking.cancellation_fee
        )
        return BookingDTO.from_domain(booking)

    def check_in(self, booking_id: EntityId, at: Optional[datetime] = None) -> BookingDTO:
        """Отмечает явку клиента."""
        booking = self._bookings.get_by_id(booking_id)
        self._state_machine.check_in(booking, at or now())
        return self._store(booking)

    def complete_booking(
        self, booking_id: EntityId, at: Optional[datetime] = None
    ) -> BookingDTO:
        """Завершает бронирование после окончания слота."""
        booking = self._bookings.get_by_id(booking_id)
        self._state_machine.complete(booking, at or now())
        return self._store(booking)

    def mark_no_show(
        self, booking_id: EntityId, at: Optional[datetime] = None
    ) -> BookingDTO:
        """Фиксирует неявку клиента."""
        booking = self._bookings.get_by_id(booking_id)
        self._state_machine.no_show(booking, at or now())
        return self._store(booking)

    def get_booking(self, booking_id: EntityId) -> BookingDTO:
        """Возвращает информацию о бронировании."""
        return BookingDTO.from_domain(self._bookings.get_by_id(booking_id))

    def list_customer_bookings(self, customer_id: EntityId) -> List[BookingDTO]:
        """Возвращает все бронирования клиента, включая завершенные."""
        return [
            BookingDTO.from_domain(booking)
            for booking in self._bookings.find_by_customer(customer_id)
        ]

    def _settle_payment(self, booking: Booking) -> Payment:
        if self._settings.payment_policy == "defer":
            logger.debug("Payment for booking %s deferred by policy", booking.id)
            return Payment(
                booking_id=booking.id,
                provider=self._payments.provider,
                status=PaymentStatus.DEFERRED,
                amount=booking.price,
            )

        payment = self._payments.authorize(booking.id, booking.price)
        if payment.status is not PaymentStatus.AUTHORIZED:
            logger.warning(
                "Payment for booking %s was not authorized: %s",
                booking.id,
                payment.status.value,
            )
        return payment

    def _store(self, booking: Booking) -> BookingDTO:
        self._bookings.save(booking)
        self._publish(booking)
        return BookingDTO.from_domain(booking)

    def _publish(self, booking: Booking) -> None:
        for event in booking.pull_domain_events():
            self._event_bus.publish(event)
