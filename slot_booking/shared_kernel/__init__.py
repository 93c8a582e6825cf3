"""
Общее ядро (Shared Kernel) системы бронирования слотов.

Содержит общие типы данных и исключения, используемые всеми модулями.
"""

from .domain import (
    AddOnNotFound,
    AlreadyReleased,
    BookingNotFound,
    # Исключения
    CapacityExceeded,
    CurrencyMismatch,
    DomainEvent,
    DomainException,
    # Базовые типы
    EntityId,
    EntityNotFound,
    InvalidTransition,
    NaiveTimestamp,
    # Основные классы
    Money,
    Number,
    PreconditionFailed,
    ServiceNotFound,
    SlotNotFound,
    SlotUnavailable,
    TimeRange,
    as_utc,
    generate_id,
    # Утилиты
    now,
    round_half_up,
    to_decimal,
)

__all__ = [
    # Базовые типы
    "EntityId",
    "Number",
    "generate_id",
    # Основные классы
    "Money",
    "TimeRange",
    "DomainEvent",
    # Исключения
    "DomainException",
    "CapacityExceeded",
    "CurrencyMismatch",
    "AlreadyReleased",
    "SlotUnavailable",
    "InvalidTransition",
    "NaiveTimestamp",
    "PreconditionFailed",
    "EntityNotFound",
    "SlotNotFound",
    "BookingNotFound",
    "ServiceNotFound",
    "AddOnNotFound",
    # Утилиты
    "as_utc",
    "now",
    "round_half_up",
    "to_decimal",
]
