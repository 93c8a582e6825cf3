import logging
import threading
from typing import Dict
from uuid import uuid4

from slot_booking.application.repositories import PaymentGateway
from slot_booking.domain.catalog import Payment, PaymentStatus
from slot_booking.shared_kernel import EntityId, Money

logger = logging.getLogger(__name__)


class DummyPaymentGateway(PaymentGateway):
    """Заглушка платежного шлюза для тестирования."""

    def __init__(self, approve: bool = True, provider: str = "dummy"):
        self.approve = approve
        self.provider = provider
        self.processed_payments: Dict[str, Payment] = {}
        self._lock = threading.Lock()

    def authorize(self, booking_id: EntityId, amount: Money) -> Payment:
        """Авторизует платеж через внешний платежный шлюз."""
        transaction_id = f"TXN-{uuid4().hex[:8].upper()}"
        payment = Payment(
            booking_id=booking_id,
            provider=self.provider,
            status=PaymentStatus.AUTHORIZED if self.approve else PaymentStatus.DECLINED,
            amount=amount,
            external_ref=transaction_id,
        )
        with self._lock:
            self.processed_payments[transaction_id] = payment
        logger.info(
            "Payment %s for booking %s: %s", transaction_id, booking_id, payment.status.value
        )
        return payment
