from abc import ABC, abstractmethod
from typing import Callable, List, Type

from slot_booking.domain.booking import Booking
from slot_booking.domain.catalog import Payment, Service
from slot_booking.domain.pricing import AddOn
from slot_booking.shared_kernel import DomainEvent, EntityId, Money


class BookingRepository(ABC):
    """Абстрактный репозиторий бронирований. Бронирования не удаляются."""

    @abstractmethod
    def add(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, booking_id: EntityId) -> Booking:
        """Возвращает бронирование или вызывает BookingNotFound."""
        raise NotImplementedError

    @abstractmethod
    def save(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def find_by_customer(self, customer_id: EntityId) -> List[Booking]:
        raise NotImplementedError


class ServiceCatalog(ABC):
    """Каталог услуг и дополнительных опций."""

    @abstractmethod
    def get_service(self, service_id: EntityId) -> Service:
        raise NotImplementedError

    @abstractmethod
    def get_add_on(self, add_on_id: EntityId) -> AddOn:
        raise NotImplementedError


class PaymentGateway(ABC):
    """
    Внешний платежный шлюз.

    Вызов блокирующий; таймауты и повторы - ответственность реализации.
    """

    provider: str

    @abstractmethod
    def authorize(self, booking_id: EntityId, amount: Money) -> Payment:
        raise NotImplementedError


class EventBus(ABC):
    """Шина доменных событий."""

    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe(
        self, event_type: Type[DomainEvent], handler: Callable[[DomainEvent], None]
    ) -> None:
        raise NotImplementedError
