"""
Каталог услуг и платежные записи.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from slot_booking.shared_kernel import EntityId, Money, generate_id


class Location(BaseModel):
    """Место оказания услуги."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    postal_code: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.name}, {self.city}, {self.country}"


class Service(BaseModel):
    """Услуга, которую можно забронировать."""

    id: EntityId = Field(default_factory=generate_id)
    name: str = Field(..., min_length=1)
    description: str = ""
    base_price: Money
    duration_minutes: int = Field(..., gt=0)
    active: bool = True


class PaymentStatus(str, Enum):
    """Статусы платежей."""

    PENDING = "pending"
    AUTHORIZED = "authorized"
    DEFERRED = "deferred"
    DECLINED = "declined"
    REFUNDED = "refunded"

    @property
    def allows_confirmation(self) -> bool:
        return self in (PaymentStatus.AUTHORIZED, PaymentStatus.DEFERRED)


class Payment(BaseModel):
    """Результат обращения к платежному шлюзу."""

    id: EntityId = Field(default_factory=generate_id)
    booking_id: EntityId
    provider: str
    status: PaymentStatus = PaymentStatus.PENDING
    amount: Money
    external_ref: Optional[str] = None
