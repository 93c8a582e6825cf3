"""
Политика отмены бронирований.

Граница окна включительная: отмена ровно за `hours` часов до начала слота
считается отменой вне окна штрафа и бесплатна.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Protocol

from slot_booking.config import BookingSettings
from slot_booking.domain.booking import Booking
from slot_booking.shared_kernel import Money, as_utc, to_decimal


def _inside_window(booking: Booking, at: datetime, hours: int) -> bool:
    return booking.period.starts_at - at < timedelta(hours=hours)


class CancellationFeeStrategy(Protocol):
    """Интерфейс стратегии расчета сбора за отмену."""

    def __call__(self, booking: Booking, at: datetime) -> Money: ...


@dataclass(frozen=True)
class NoFeeBeforeWindow:
    """
    Отмена без сбора.

    Стратегия только освобождает от сбора и никогда его не начисляет;
    штраф за позднюю отмену задается PercentageAfterWindow.
    """

    hours: int

    def __call__(self, booking: Booking, at: datetime) -> Money:
        return Money.zero(booking.price.currency)


@dataclass(frozen=True)
class PercentageAfterWindow:
    """Сбор в виде доли цены, если до начала слота меньше `hours` часов."""

    hours: int
    percent: Decimal

    def __post_init__(self):
        object.__setattr__(self, "percent", to_decimal(self.percent))
        if self.hours < 0:
            raise ValueError("Окно отмены не может быть отрицательным")
        if not Decimal(0) <= self.percent <= Decimal(1):
            raise ValueError("Доля сбора должна быть в диапазоне от 0 до 1")

    def __call__(self, booking: Booking, at: datetime) -> Money:
        if not _inside_window(booking, at, self.hours):
            return Money.zero(booking.price.currency)
        return booking.price.multiply(self.percent)


class CancellationPolicy:
    """Политика отмены с одной активной стратегией."""

    def __init__(self, strategy: CancellationFeeStrategy):
        self.strategy = strategy

    @classmethod
    def from_settings(cls, settings: BookingSettings) -> "CancellationPolicy":
        return cls(
            PercentageAfterWindow(
                hours=settings.cancellation_window_hours,
                percent=settings.late_cancellation_percent,
            )
        )

    def fee(self, booking: Booking, at: datetime) -> Money:
        """Возвращает сбор за отмену бронирования в момент `at`."""
        return self.strategy(booking, as_utc(at))
