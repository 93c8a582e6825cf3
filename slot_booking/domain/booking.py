"""
Жизненный цикл бронирования.

Состояния и допустимые переходы заданы таблицей TRANSITIONS.
BookingStateMachine - единственный путь изменения бронирования после создания:
каждый переход сначала проверяет все условия и только затем
присваивает поля, поэтому частично примененный переход невозможен.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, PrivateAttr

from slot_booking.domain.catalog import Payment, PaymentStatus
from slot_booking.domain.events import (
    BookingCanceled,
    BookingCheckedIn,
    BookingCompleted,
    BookingConfirmed,
    BookingCreated,
    BookingMarkedNoShow,
)
from slot_booking.domain.slots import ReservationToken, ScheduleSlot
from slot_booking.shared_kernel import (
    DomainEvent,
    EntityId,
    InvalidTransition,
    Money,
    PreconditionFailed,
    TimeRange,
    as_utc,
    generate_id,
    now,
)

if TYPE_CHECKING:
    from slot_booking.domain.cancellation import CancellationPolicy

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    """Состояния бронирования."""

    DRAFT = "draft"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingState.CANCELED, BookingState.COMPLETED, BookingState.NO_SHOW)


class BookingAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    CHECK_IN = "check_in"
    COMPLETE = "complete"
    NO_SHOW = "no_show"


TRANSITIONS: Dict[Tuple[BookingState, BookingAction], BookingState] = {
    (BookingState.DRAFT, BookingAction.CONFIRM): BookingState.CONFIRMED,
    (BookingState.DRAFT, BookingAction.CANCEL): BookingState.CANCELED,
    (BookingState.CONFIRMED, BookingAction.CANCEL): BookingState.CANCELED,
    (BookingState.CONFIRMED, BookingAction.CHECK_IN): BookingState.CONFIRMED,
    (BookingState.CONFIRMED, BookingAction.COMPLETE): BookingState.COMPLETED,
    (BookingState.CONFIRMED, BookingAction.NO_SHOW): BookingState.NO_SHOW,
}


class Booking(BaseModel):
    """Бронирование места в слоте."""

    id: EntityId = Field(default_factory=generate_id)
    customer_id: EntityId
    service_id: EntityId
    slot_id: EntityId
    period: TimeRange
    state: BookingState = BookingState.DRAFT
    price: Money
    add_on_ids: Tuple[EntityId, ...] = ()
    reservation: Optional[ReservationToken] = None
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[EntityId] = None
    payment_ref: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    cancellation_fee: Optional[Money] = None
    canceled_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=now)
    updated_at: datetime = Field(default_factory=now)
    version: int = 0
    _events: List[DomainEvent] = PrivateAttr(default_factory=list)

    @classmethod
    def draft(
        cls,
        customer_id: EntityId,
        slot: ScheduleSlot,
        price: Money,
        reservation: Optional[ReservationToken] = None,
        add_on_ids: Tuple[EntityId, ...] = (),
    ) -> Booking:
        """Создает бронирование в состоянии draft."""
        booking = cls(
            customer_id=customer_id,
            service_id=slot.service_id,
            slot_id=slot.id,
            period=slot.period,
            price=price,
            reservation=reservation,
            add_on_ids=tuple(add_on_ids),
            version=1,
        )
        booking._events.append(
            BookingCreated(
                aggregate_id=booking.id,
                customer_id=customer_id,
                slot_id=slot.id,
                price=price,
            )
        )
        return booking

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def checked_in(self) -> bool:
        return self.checked_in_at is not None

    def pull_domain_events(self) -> List[DomainEvent]:
        events = list(self._events)
        self._events.clear()
        return events


class BookingStateMachine:
    """Выполняет переходы бронирования по таблице TRANSITIONS."""

    def __init__(self, cancellation_policy: Optional[CancellationPolicy] = None):
        self._cancellation_policy = cancellation_policy
        self._locks: Dict[EntityId, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    @staticmethod
    def can(booking: Booking, action: BookingAction) -> bool:
        """Проверяет наличие перехода в таблице (без предусловий)."""
        return (booking.state, action) in TRANSITIONS

    def confirm(
        self,
        booking: Booking,
        payment: Payment,
        at: Optional[datetime] = None,
    ) -> Booking:
        """
        draft -> confirmed; платеж должен быть авторизован или отложен.

        Идентификатор платежа и ссылка шлюза сохраняются в бронировании.
        """
        at = as_utc(at) if at is not None else now()
        with self._locked(booking):
            target = self._target(booking, BookingAction.CONFIRM)
            if payment.booking_id != booking.id:
                raise PreconditionFailed(
                    "payment_authorized", "платеж относится к другому бронированию"
                )
            if not payment.status.allows_confirmation:
                raise PreconditionFailed(
                    "payment_authorized",
                    f"платеж в статусе '{payment.status.value}' не позволяет подтвердить бронирование",
                )
            self._apply(
                booking,
                target,
                BookingConfirmed(aggregate_id=booking.id, confirmed_at=at),
                at,
                payment_status=payment.status,
                payment_id=payment.id,
                payment_ref=payment.external_ref,
            )
        return booking

    def cancel(
        self, booking: Booking, at: datetime, reason: Optional[str] = None
    ) -> Booking:
        """
        Отменяет бронирование.

        Из draft отмена бесплатна; из confirmed сбор считает политика отмены.
        """
        at = as_utc(at)
        with self._locked(booking):
            target = self._target(booking, BookingAction.CANCEL)
            if booking.state is BookingState.CONFIRMED:
                if self._cancellation_policy is None:
                    raise PreconditionFailed(
                        "cancellation_fee", "политика отмены не настроена"
                    )
                fee = self._cancellation_policy.fee(booking, at)
            else:
                fee = Money.zero(booking.price.currency)

            self._apply(
                booking,
                target,
                BookingCanceled(aggregate_id=booking.id, fee=fee, reason=reason),
                at,
                cancellation_fee=fee,
                canceled_reason=reason,
            )
        return booking

    def check_in(self, booking: Booking, at: datetime) -> Booking:
        """Отмечает явку; состояние остается confirmed."""
        at = as_utc(at)
        with self._locked(booking):
            target = self._target(booking, BookingAction.CHECK_IN)
            if at < booking.period.starts_at:
                raise PreconditionFailed("slot_started", "слот еще не начался")
            if booking.checked_in:
                raise PreconditionFailed("not_checked_in", "явка уже отмечена")
            self._apply(
                booking,
                target,
                BookingCheckedIn(aggregate_id=booking.id, checked_in_at=at),
                at,
                checked_in_at=at,
            )
        return booking

    def complete(self, booking: Booking, at: datetime) -> Booking:
        at = as_utc(at)
        with self._locked(booking):
            target = self._target(booking, BookingAction.COMPLETE)
            if at < booking.period.ends_at:
                raise PreconditionFailed("slot_ended", "слот еще не закончился")
            self._apply(booking, target, BookingCompleted(aggregate_id=booking.id), at)
        return booking

    def no_show(self, booking: Booking, at: datetime) -> Booking:
        """Фиксирует неявку клиента после окончания слота."""
        at = as_utc(at)
        with self._locked(booking):
            target = self._target(booking, BookingAction.NO_SHOW)
            if at < booking.period.ends_at:
                raise PreconditionFailed("slot_ended", "слот еще не закончился")
            if booking.checked_in:
                raise PreconditionFailed("not_checked_in", "клиент отметил явку")
            self._apply(booking, target, BookingMarkedNoShow(aggregate_id=booking.id), at)
        return booking

    @staticmethod
    def _target(booking: Booking, action: BookingAction) -> BookingState:
        target = TRANSITIONS.get((booking.state, action))
        if target is None:
            raise InvalidTransition(booking.state.value, action.value)
        return target

    @staticmethod
    def _apply(
        booking: Booking,
        target: BookingState,
        event: DomainEvent,
        at: datetime,
        **fields,
    ) -> None:
        # Все проверки уже выполнены, дальше только присваивания
        previous = booking.state
        for name, value in fields.items():
            setattr(booking, name, value)
        booking.state = target
        booking.updated_at = at
        booking.version += 1
        booking._events.append(event)
        logger.info(
            "Booking %s: %s -> %s (%s)",
            booking.id,
            previous.value,
            target.value,
            event.event_type,
        )

    @contextmanager
    def _locked(self, booking: Booking) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(booking.id, threading.Lock())
        with lock:
            try:
                yield
            finally:
                # Из терминального состояния переходов нет, блокировка больше не нужна
                if booking.is_terminal:
                    with self._registry_lock:
                        self._locks.pop(booking.id, None)
