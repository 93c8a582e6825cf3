import logging
import threading
from typing import Callable, Dict, List, Type

from slot_booking.application.repositories import EventBus
from slot_booking.shared_kernel import DomainEvent

logger = logging.getLogger(__name__)


class InMemoryEventBus(EventBus):
    """Реализация шины событий в памяти."""

    def __init__(self) -> None:
        self._subscribers: Dict[Type[DomainEvent], List[Callable[[DomainEvent], None]]] = {}
        self._lock = threading.Lock()

    def publish(self, event: DomainEvent) -> None:
        """
        Публикует событие.

        Обработчики вызываются вне блокировки по снимку списка подписчиков:
        подписка, сделанная во время публикации, действует со следующего события.
        """
        event_type = type(event)
        with self._lock:
            handlers = list(self._subscribers.get(event_type, ()))
        if not handlers:
            logger.debug("No subscribers for event type %s", event_type.__name__)
            return

        logger.info("Publishing event: %s", event_type.__name__)

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                # Ошибка подписчика не отменяет уже выполненную операцию
                logger.exception("Error in event handler for %s", event_type.__name__)

    def subscribe(
        self, event_type: Type[DomainEvent], handler: Callable[[DomainEvent], None]
    ) -> None:
        """Подписывает обработчик на события указанного типа."""
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to %s events", event_type.__name__)
