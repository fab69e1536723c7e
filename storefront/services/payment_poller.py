# storefront/services/payment_poller.py
import threading
from typing import Callable, Optional

from storefront.domain.errors import ProcessorError
from storefront.domain.schemas import PaymentState, PaymentStatus
from storefront.services.payment_gateway import PaymentGateway
from storefront.utils.settings import PAYMENT_POLL_INTERVAL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentPoller:
    """
    Polls one transaction at a fixed interval until it reaches a terminal status
    or is cancelled. A tick that fires while the previous one is still waiting on
    the processor is skipped. `on_paid` runs at most once.
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        transaction_id: str,
        on_paid: Optional[Callable[[PaymentStatus], None]] = None,
        interval: float = PAYMENT_POLL_INTERVAL_SECONDS,
        max_polls: int | None = None,
    ):
        self.gateway = gateway
        self.transaction_id = transaction_id
        self.on_paid = on_paid
        self.interval = interval
        self.max_polls = max_polls

        self.last_status: Optional[PaymentStatus] = None
        self.polls = 0
        self._cancelled = threading.Event()
        self._in_flight = threading.Lock()
        self._paid_fired = False
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def tick(self) -> Optional[PaymentStatus]:
        """One poll. Returns None when skipped (cancelled, or a poll already in flight)."""
        if self.cancelled:
            return None
        if not self._in_flight.acquire(blocking=False):
            logger.debug(f"Poll for {self.transaction_id} still in flight, skipping tick")
            return None
        try:
            self.polls += 1
            try:
                status = self.gateway.poll_status(self.transaction_id)
            except ProcessorError as e:
                logger.warning(f"Status check for {self.transaction_id} failed, will retry: {e}")
                return None

            #a cancel that landed during the request wins
            if self.cancelled:
                return None
            self.last_status = status
            if status.status == PaymentState.PAID and not self._paid_fired:
                self._paid_fired = True
                if self.on_paid:
                    self.on_paid(status)
            return status
        finally:
            self._in_flight.release()

    def run(self) -> Optional[PaymentStatus]:
        """Blocks until terminal status, cancellation or max_polls."""
        while not self.cancelled:
            status = self.tick()
            if status is not None and status.status.is_terminal:
                logger.info(f"Polling for {self.transaction_id} finished: {status.status.value}")
                self.cancel()
                break
            if self.max_polls is not None and self.polls >= self.max_polls:
                break
            self._cancelled.wait(self.interval)
        return self.last_status

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run, name=f"poll-{self.transaction_id}", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)
