"""
Доменная модель бронирования слотов.

- slots: вместимость слотов и резервирование мест
- pricing: композиция стратегий ценообразования
- booking: жизненный цикл бронирования
- cancellation: сбор за отмену
"""

from .booking import TRANSITIONS, Booking, BookingAction, BookingState, BookingStateMachine
from .cancellation import CancellationPolicy, NoFeeBeforeWindow, PercentageAfterWindow
from .catalog import Location, Payment, PaymentStatus, Service
from .pricing import (
    AddOn,
    AddOnTotal,
    FlatDiscount,
    PercentageDiscount,
    PriceCalculator,
    PricingContext,
    PricingStrategy,
    SurgePricing,
    Tax,
    default_strategies,
)
from .slots import ReservationToken, ScheduleSlot, SlotAllocator

__all__ = [
    "TRANSITIONS",
    "Booking",
    "BookingAction",
    "BookingState",
    "BookingStateMachine",
    "CancellationPolicy",
    "NoFeeBeforeWindow",
    "PercentageAfterWindow",
    "Location",
    "Payment",
    "PaymentStatus",
    "Service",
    "AddOn",
    "AddOnTotal",
    "FlatDiscount",
    "PercentageDiscount",
    "PriceCalculator",
    "PricingContext",
    "PricingStrategy",
    "SurgePricing",
    "Tax",
    "default_strategies",
    "ReservationToken",
    "ScheduleSlot",
    "SlotAllocator",
]
