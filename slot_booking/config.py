"""
Настройки ядра бронирования.

Конфигурация передается явно при создании сервисов,
вместо глобальных переменных окружения.
"""

from decimal import Decimal
from typing import Literal, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingSettings(BaseModel):
    """Параметры ценообразования, оплаты и отмены."""

    model_config = ConfigDict(frozen=True)

    currency: str = Field(default="USD", min_length=3, max_length=3)
    # authorize - платеж авторизуется при подтверждении, defer - оплата откладывается
    payment_policy: Literal["authorize", "defer"] = "authorize"
    # Часы пиковой нагрузки (UTC), полуинтервал [начало, конец)
    peak_hours: Tuple[int, int] = (17, 21)
    surge_multiplier: Decimal = Field(default=Decimal("1.25"), gt=0)
    member_discount: Decimal = Field(default=Decimal("0.10"), ge=0, le=1)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0)
    cancellation_window_hours: int = Field(default=24, ge=0)
    late_cancellation_percent: Decimal = Field(default=Decimal("0.50"), ge=0, le=1)
    # True - повторное освобождение резерва вызывает AlreadyReleased
    strict_release: bool = True

    @field_validator("peak_hours")
    @classmethod
    def peak_hours_within_day(cls, v: Tuple[int, int]) -> Tuple[int, int]:
        start, end = v
        if not (0 <= start < end <= 24):
            raise ValueError("Часы пика должны задавать интервал внутри суток")
        return v

    def is_peak_hour(self, hour: int) -> bool:
        start, end = self.peak_hours
        return start <= hour < end
