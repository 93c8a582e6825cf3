"""
Реализации репозиториев в памяти.

Словари защищены блокировкой: сервисы вызываются из разных потоков.
"""

import threading
from typing import Dict, Iterable, List, Optional

from slot_booking.application.repositories import BookingRepository, ServiceCatalog
from slot_booking.domain.booking import Booking
from slot_booking.domain.catalog import Service
from slot_booking.domain.pricing import AddOn
from slot_booking.shared_kernel import (
    AddOnNotFound,
    BookingNotFound,
    EntityId,
    ServiceNotFound,
)


class InMemoryBookingRepository(BookingRepository):
    """Реализация репозитория бронирований в памяти."""

    def __init__(self) -> None:
        self._bookings: Dict[EntityId, Booking] = {}
        self._lock = threading.Lock()

    def add(self, booking: Booking) -> None:
        with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking with id {booking.id} already exists")
            self._bookings[booking.id] = booking

    def get_by_id(self, booking_id: EntityId) -> Booking:
        with self._lock:
            if booking_id not in self._bookings:
                raise BookingNotFound(booking_id)
            return self._bookings[booking_id]

    def save(self, booking: Booking) -> None:
        with self._lock:
            if booking.id not in self._bookings:
                raise BookingNotFound(booking.id)
            self._bookings[booking.id] = booking

    def find_by_customer(self, customer_id: EntityId) -> List[Booking]:
        with self._lock:
            return [
                booking
                for booking in self._bookings.values()
                if booking.customer_id == customer_id
            ]

    def find_by_slot(self, slot_id: EntityId) -> List[Booking]:
        with self._lock:
            return [
                booking for booking in self._bookings.values() if booking.slot_id == slot_id
            ]


class InMemoryServiceCatalog(ServiceCatalog):
    """Каталог услуг в памяти."""

    def __init__(
        self,
        services: Optional[Iterable[Service]] = None,
        add_ons: Optional[Iterable[AddOn]] = None,
    ) -> None:
        self._services: Dict[EntityId, Service] = {}
        self._add_ons: Dict[EntityId, AddOn] = {}
        for service in services or ():
            self.add_service(service)
        for add_on in add_ons or ():
            self.add_add_on(add_on)

    def add_service(self, service: Service) -> None:
        self._services[service.id] = service

    def add_add_on(self, add_on: AddOn) -> None:
        self._add_ons[add_on.id] = add_on

    def get_service(self, service_id: EntityId) -> Service:
        if service_id not in self._services:
            raise ServiceNotFound(service_id)
        return self._services[service_id]

    def get_add_on(self, add_on_id: EntityId) -> AddOn:
        if add_on_id not in self._add_ons:
            raise AddOnNotFound(add_on_id)
        return self._add_ons[add_on_id]
