"""
Слоты расписания и распределение мест в них.

SlotAllocator - единственная точка изменения счетчика резервов слота.
Все операции над одним слотом сериализуются отдельной блокировкой.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from slot_booking.config import BookingSettings
from slot_booking.domain.catalog import Location
from slot_booking.shared_kernel import (
    AlreadyReleased,
    CapacityExceeded,
    EntityId,
    SlotNotFound,
    SlotUnavailable,
    TimeRange,
    generate_id,
    now,
)

logger = logging.getLogger(__name__)


class ScheduleSlot(BaseModel):
    """Окно времени с ограниченной вместимостью."""

    id: EntityId = Field(default_factory=generate_id)
    service_id: EntityId
    provider_id: Optional[EntityId] = None
    location: Optional[Location] = None
    period: TimeRange
    capacity: int = Field(..., gt=0)
    reserved: int = Field(0, ge=0)
    active: bool = True

    @model_validator(mode="after")
    def reserved_within_capacity(self) -> "ScheduleSlot":
        if self.reserved > self.capacity:
            raise ValueError("Число резервов не может превышать вместимость слота")
        return self

    @property
    def available(self) -> int:
        return self.capacity - self.reserved

    @property
    def starts_at(self) -> datetime:
        return self.period.starts_at


class ReservationToken(BaseModel):
    """Подтверждение резерва мест в слоте."""

    model_config = ConfigDict(frozen=True)

    id: EntityId = Field(default_factory=generate_id)
    slot_id: EntityId
    count: int = Field(1, gt=0)
    issued_at: datetime = Field(default_factory=now)


class SlotAllocator:
    """
    Учет вместимости слотов.

    Гарантирует, что число успешных резервов слота никогда
    не превышает его вместимость, в том числе при параллельных вызовах.
    """

    def __init__(self, strict_release: bool = True) -> None:
        """
        Args:
            strict_release: при True повторное освобождение резерва вызывает
                AlreadyReleased, при False оно ничего не делает.
        """
        self._strict_release = strict_release
        self._slots: Dict[EntityId, ScheduleSlot] = {}
        self._locks: Dict[EntityId, threading.Lock] = {}
        self._active_tokens: Set[EntityId] = set()
        self._registry_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: BookingSettings) -> "SlotAllocator":
        return cls(strict_release=settings.strict_release)

    def add_slot(self, slot: ScheduleSlot) -> None:
        """Регистрирует слот."""
        with self._registry_lock:
            if slot.id in self._slots:
                raise ValueError(f"Слот {slot.id} уже зарегистрирован")
            self._slots[slot.id] = slot.model_copy()
            self._locks[slot.id] = threading.Lock()
        logger.info("Registered slot %s with capacity %d", slot.id, slot.capacity)

    def get_slot(self, slot_id: EntityId) -> ScheduleSlot:
        """Возвращает копию слота; оригинал меняет только аллокатор."""
        slot, lock = self._lookup(slot_id)
        with lock:
            return slot.model_copy()

    def available(self, slot_id: EntityId) -> int:
        """Количество свободных мест в слоте."""
        slot, lock = self._lookup(slot_id)
        with lock:
            return slot.available

    def reserve(self, slot_id: EntityId, count: int = 1) -> ReservationToken:
        """
        Резервирует места в слоте.

        Raises:
            SlotNotFound: слот не зарегистрирован.
            SlotUnavailable: слот деактивирован.
            CapacityExceeded: свободных мест меньше, чем запрошено.
        """
        if count < 1:
            raise ValueError("Количество мест должно быть положительным")

        slot, lock = self._lookup(slot_id)
        with lock:
            if not slot.active:
                raise SlotUnavailable(slot_id, "slot is inactive")
            if slot.reserved + count > slot.capacity:
                logger.warning(
                    "Reservation rejected for slot %s: requested %d, available %d",
                    slot_id,
                    count,
                    slot.available,
                )
                raise CapacityExceeded(slot_id, count, slot.available)

            token = ReservationToken(slot_id=slot_id, count=count)
            slot.reserved += count
            self._active_tokens.add(token.id)

        logger.debug("Reserved %d seat(s) in slot %s (token %s)", count, slot_id, token.id)
        return token

    def release(self, token: ReservationToken) -> None:
        """
        Освобождает места, занятые по резерву.

        Raises:
            AlreadyReleased: резерв уже освобожден (только в строгом режиме).
        """
        slot, lock = self._lookup(token.slot_id)
        with lock:
            if token.id not in self._active_tokens:
                if self._strict_release:
                    raise AlreadyReleased(token.id)
                logger.debug("Token %s already released, ignoring", token.id)
                return
            self._active_tokens.discard(token.id)
            slot.reserved -= token.count

        logger.debug("Released %d seat(s) in slot %s", token.count, token.slot_id)

    def deactivate(self, slot_id: EntityId) -> None:
        """Закрывает слот для новых резервов; существующие сохраняются."""
        slot, lock = self._lookup(slot_id)
        with lock:
            slot.active = False
        logger.info("Deactivated slot %s", slot_id)

    def _lookup(self, slot_id: EntityId) -> Tuple[ScheduleSlot, threading.Lock]:
        with self._registry_lock:
            if slot_id not in self._slots:
                raise SlotNotFound(slot_id)
            return self._slots[slot_id], self._locks[slot_id]
