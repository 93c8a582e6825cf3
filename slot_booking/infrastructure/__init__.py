from .event_bus import InMemoryEventBus
from .payments import DummyPaymentGateway
from .repositories import InMemoryBookingRepository, InMemoryServiceCatalog

__all__ = [
    "InMemoryEventBus",
    "DummyPaymentGateway",
    "InMemoryBookingRepository",
    "InMemoryServiceCatalog",
]
