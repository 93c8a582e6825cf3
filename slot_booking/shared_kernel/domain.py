"""
Основные доменные типы и утилиты общего ядра.
"""

from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Общие типы идентификаторов
EntityId = UUID

Number = Union[int, float, str, Decimal]


def generate_id() -> UUID:
    """Генерирует новый UUID."""
    return uuid4()


def to_decimal(value: Number) -> Decimal:
    """Приводит число к Decimal без потери точности float-литералов."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value: Decimal) -> int:
    """Округляет до целого числа минимальных единиц (половина - вверх)."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


# Общие исключения
class DomainException(Exception):
    """Базовое исключение для доменных ошибок."""

    pass


class NaiveTimestamp(DomainException, ValueError):
    """Момент времени передан без часового пояса."""

    def __init__(self, moment: datetime):
        super().__init__(f"Время должно содержать часовой пояс: {moment.isoformat()}")
        self.moment = moment


def as_utc(moment: datetime) -> datetime:
    """Приводит момент к UTC; наивное время отклоняется."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        raise NaiveTimestamp(moment)
    return moment.astimezone(timezone.utc)


# Число знаков минимальной единицы (ISO 4217); по умолчанию 2
MINOR_UNIT_DIGITS = {
    "BHD": 3,
    "CLP": 0,
    "ISK": 0,
    "JOD": 3,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "OMR": 3,
    "TND": 3,
    "VND": 0,
}


class CurrencyMismatch(DomainException):
    """Операция над суммами в разных валютах."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"Несовпадение валют: ожидалась {expected}, получена {actual}")
        self.expected = expected
        self.actual = actual


class Money(BaseModel):
    """Денежная сумма в минимальных единицах валюты (например, центах)."""

    model_config = ConfigDict(frozen=True)

    amount: int = Field(..., ge=0, description="Сумма в минимальных единицах")
    currency: str = Field(
        default="USD", min_length=3, max_length=3, description="Код валюты (ISO 4217)"
    )

    @field_validator("currency")
    @classmethod
    def currency_is_iso_code(cls, v: str) -> str:
        if not v.isalpha() or not v.isupper():
            raise ValueError("Код валюты должен состоять из 3 заглавных букв")
        return v

    @classmethod
    def zero(cls, currency: str = "USD") -> "Money":
        return cls(amount=0, currency=currency)

    @classmethod
    def sum(cls, items: Iterable["Money"], currency: str) -> "Money":
        """Складывает суммы; пустой набор дает ноль в указанной валюте."""
        total = cls.zero(currency)
        for item in items:
            total = total + item
        return total

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    def _ensure_same_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatch(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._ensure_same_currency(other)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._ensure_same_currency(other)
        if self.amount < other.amount:
            raise ValueError("Результат не может быть отрицательным")
        return Money(amount=self.amount - other.amount, currency=self.currency)

    def __lt__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._ensure_same_currency(other)
        return self.amount < other.amount

    def __le__(self, other: "Money") -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._ensure_same_currency(other)
        return self.amount <= other.amount

    def multiply(self, factor: Number) -> "Money":
        """Умножает сумму на коэффициент с округлением половины вверх."""
        factor = to_decimal(factor)
        if factor < 0:
            raise ValueError("Множитель не может быть отрицательным")
        return Money(
            amount=round_half_up(Decimal(self.amount) * factor),
            currency=self.currency,
        )

    @property
    def minor_digits(self) -> int:
        return MINOR_UNIT_DIGITS.get(self.currency, 2)

    def __str__(self) -> str:
        digits = self.minor_digits
        major = Decimal(self.amount).scaleb(-digits)
        return f"{major:.{digits}f} {self.currency}"


class TimeRange(BaseModel):
    """Интервал времени в UTC; начало строго раньше конца."""

    model_config = ConfigDict(frozen=True)

    starts_at: datetime
    ends_at: datetime

    @field_validator("starts_at", "ends_at")
    @classmethod
    def must_be_aware(cls, v: datetime) -> datetime:
        return as_utc(v)

    @model_validator(mode="after")
    def starts_before_ends(self) -> "TimeRange":
        if self.starts_at >= self.ends_at:
            raise ValueError("Начало интервала должно быть раньше его конца")
        return self

    @property
    def duration(self) -> timedelta:
        return self.ends_at - self.starts_at

    def contains(self, moment: datetime) -> bool:
        """Начало включается в интервал, конец - нет."""
        return self.starts_at <= moment < self.ends_at


class DomainEvent(BaseModel):
    """Базовый класс для всех доменных событий."""

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    occurred_on: datetime = Field(default_factory=lambda: now())
    aggregate_id: EntityId

    @property
    def event_type(self) -> str:
        return type(self).__name__


class CapacityExceeded(DomainException):
    """В слоте не хватает свободных мест."""

    def __init__(self, slot_id: EntityId, requested: int, available: int):
        super().__init__(
            f"В слоте {slot_id} недостаточно мест: запрошено {requested}, "
            f"свободно {available}"
        )
        self.slot_id = slot_id
        self.requested = requested
        self.available = available


class AlreadyReleased(DomainException):
    """Резерв уже был освобожден."""

    def __init__(self, token_id: EntityId):
        super().__init__(f"Резерв {token_id} уже освобожден")
        self.token_id = token_id


class SlotUnavailable(DomainException):
    """Слот или услуга неактивны и не принимают бронирования."""

    def __init__(self, slot_id: EntityId, reason: str):
        super().__init__(f"Слот {slot_id} недоступен для бронирования: {reason}")
        self.slot_id = slot_id
        self.reason = reason


class InvalidTransition(DomainException):
    """Действие недопустимо в текущем состоянии бронирования."""

    def __init__(self, state: str, action: str):
        super().__init__(f"Действие '{action}' недопустимо в состоянии '{state}'")
        self.state = state
        self.action = action


class PreconditionFailed(DomainException):
    """Не выполнено предусловие перехода."""

    def __init__(self, precondition: str, message: str):
        super().__init__(f"{precondition}: {message}")
        self.precondition = precondition


class EntityNotFound(DomainException):
    """Сущность не найдена."""

    kind = "entity"

    def __init__(self, entity_id: EntityId):
        super().__init__(f"Не найдено ({self.kind}): {entity_id}")
        self.entity_id = entity_id


class SlotNotFound(EntityNotFound):
    kind = "slot"


class BookingNotFound(EntityNotFound):
    kind = "booking"


class ServiceNotFound(EntityNotFound):
    kind = "service"


class AddOnNotFound(EntityNotFound):
    kind = "add-on"


# Общие утилиты
def now() -> datetime:
    """Возвращает текущие дату и время в UTC."""
    return datetime.now(timezone.utc)
