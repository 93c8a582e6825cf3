"""
Расчет стоимости бронирования.

Стратегия - чистая функция (Money, PricingContext) -> Money.
Калькулятор применяет стратегии строго в переданном порядке,
затем добавляет стоимость дополнительных услуг.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from slot_booking.config import BookingSettings
from slot_booking.shared_kernel import (
    CurrencyMismatch,
    EntityId,
    Money,
    Number,
    generate_id,
    round_half_up,
    to_decimal,
)

logger = logging.getLogger(__name__)


class AddOn(BaseModel):
    """Дополнительная услуга к бронированию."""

    model_config = ConfigDict(frozen=True)

    id: EntityId = Field(default_factory=generate_id)
    name: str
    price: Money


class PricingContext(BaseModel):
    """Входные данные для одного расчета цены. Не сохраняется."""

    model_config = ConfigDict(frozen=True)

    is_peak_hour: bool = False
    is_member: bool = False
    add_ons: Tuple[AddOn, ...] = ()


PricingStrategy = Callable[[Money, PricingContext], Money]


def _fraction(value: Number, name: str) -> Decimal:
    value = to_decimal(value)
    if not Decimal(0) <= value <= Decimal(1):
        raise ValueError(f"{name} должен быть в диапазоне от 0 до 1")
    return value


@dataclass(frozen=True)
class SurgePricing:
    """Наценка в часы пик."""

    multiplier: Decimal
    peak_only: bool = True

    def __post_init__(self):
        object.__setattr__(self, "multiplier", to_decimal(self.multiplier))
        if self.multiplier <= 0:
            raise ValueError("Множитель наценки должен быть положительным")

    def __call__(self, amount: Money, context: PricingContext) -> Money:
        if self.peak_only and not context.is_peak_hour:
            return amount
        return amount.multiply(self.multiplier)


@dataclass(frozen=True)
class PercentageDiscount:
    """Процентная скидка; percent задается долей (0.10 = 10%)."""

    percent: Decimal
    members_only: bool = False

    def __post_init__(self):
        object.__setattr__(self, "percent", _fraction(self.percent, "Процент скидки"))

    def __call__(self, amount: Money, context: PricingContext) -> Money:
        if self.members_only and not context.is_member:
            return amount
        return amount.multiply(Decimal(1) - self.percent)


@dataclass(frozen=True)
class FlatDiscount:
    """Фиксированная скидка; цена не опускается ниже нуля."""

    amount: Money
    members_only: bool = False

    def __call__(self, amount: Money, context: PricingContext) -> Money:
        if self.members_only and not context.is_member:
            return amount
        if amount.currency != self.amount.currency:
            raise CurrencyMismatch(amount.currency, self.amount.currency)
        if self.amount.amount >= amount.amount:
            return Money.zero(amount.currency)
        return amount - self.amount


@dataclass(frozen=True)
class Tax:
    """Налог поверх текущей суммы."""

    rate: Decimal

    def __post_init__(self):
        object.__setattr__(self, "rate", to_decimal(self.rate))
        if self.rate < 0:
            raise ValueError("Ставка налога не может быть отрицательной")

    def __call__(self, amount: Money, context: PricingContext) -> Money:
        tax = round_half_up(Decimal(amount.amount) * self.rate)
        return Money(amount=amount.amount + tax, currency=amount.currency)


@dataclass(frozen=True)
class AddOnTotal:
    """Прибавляет сумму дополнительных услуг без процентных поправок."""

    def __call__(self, amount: Money, context: PricingContext) -> Money:
        extras = Money.sum((add_on.price for add_on in context.add_ons), amount.currency)
        return amount + extras


def default_strategies(settings: BookingSettings) -> List[PricingStrategy]:
    """Цепочка по умолчанию: наценка в пик, скидка участника, налог."""
    strategies: List[PricingStrategy] = [
        SurgePricing(settings.surge_multiplier, peak_only=True),
        PercentageDiscount(settings.member_discount, members_only=True),
    ]
    if settings.tax_rate:
        strategies.append(Tax(settings.tax_rate))
    return strategies


class PriceCalculator:
    """Сворачивает упорядоченную цепочку стратегий над базовой ценой."""

    def total(
        self,
        base: Money,
        context: PricingContext,
        strategies: Sequence[PricingStrategy] = (),
    ) -> Money:
        running = base
        for strategy in [*strategies, AddOnTotal()]:
            result = strategy(running, context)
            if not isinstance(result, Money):
                raise TypeError(f"Стратегия {strategy!r} должна вернуть Money")
            if result.currency != base.currency:
                raise CurrencyMismatch(base.currency, result.currency)
            logger.debug("%s: %s -> %s", type(strategy).__name__, running, result)
            running = result
        return running
