"""Cancellable confirmation polling for a single payment.

The poller asks the gateway for the charge status every ``interval_seconds``
until the payment settles or ``timeout_seconds`` pass, at which point the
payment is failed with reason TIMEOUT. Cancelling the poller only stops local
polling: the charge may still complete, and a late webhook is still applied.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Optional

from tasklynk.errors import GatewayError
from tasklynk.payments.models import Payment, PaymentOutcome

if TYPE_CHECKING:
    from tasklynk.payments.engine import PaymentReconciliationEngine

logger = logging.getLogger(__name__)


class ConfirmationPoller:
    """Scheduled status checks for one payment, with a hard deadline."""

    def __init__(
        self,
        engine: "PaymentReconciliationEngine",
        payment_id: int,
        timeout_seconds: float,
        interval_seconds: float,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.engine = engine
        self.payment_id = payment_id
        self.timeout_seconds = timeout_seconds
        self.interval_seconds = interval_seconds
        self.attempts = 0
        self._task: Optional[asyncio.Task] = None

    def start(self) -> "ConfirmationPoller":
        """Schedule polling on the running event loop."""
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
            self._task.add_done_callback(self._log_failure)
        return self

    def _log_failure(self, task: asyncio.Task) -> None:
        # Pollers started fire-and-forget are never awaited
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Payment polling crashed | payment={self.payment_id} | "
                f"attempts={self.attempts} | error={exc!r}",
                exc_info=exc,
            )

    def cancel(self) -> None:
        """Stop polling. The payment record is left as it is."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.info(f"Payment polling cancelled | payment={self.payment_id}")

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def wait(self) -> Optional[Payment]:
        """Wait for polling to finish. Returns None if it was cancelled."""
        if self._task is None:
            raise RuntimeError("Poller has not been started")
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise

    async def _run(self) -> Payment:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds

        while True:
            payment = await asyncio.to_thread(self.engine.get_payment, self.payment_id)
            if payment.is_terminal:
                return payment

            if payment.provider_reference:
                self.attempts += 1
                try:
                    status = await self.engine.gateway.fetch_status(
                        payment.provider_reference, payment.method
                    )
                except GatewayError as e:
                    # Transient; keep polling until the deadline
                    logger.warning(
                        f"Status check failed | payment={self.payment_id} | "
                        f"attempt={self.attempts} | error={e}"
                    )
                else:
                    if status.outcome != PaymentOutcome.PENDING:
                        return await asyncio.to_thread(
                            self.engine.confirm,
                            self.payment_id,
                            status.outcome,
                            status.receipt_id,
                            status.detail,
                        )

            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.info(
                    f"Payment polling timed out | payment={self.payment_id} | "
                    f"attempts={self.attempts}"
                )
                return await asyncio.to_thread(self.engine.expire_payment, self.payment_id)
            await asyncio.sleep(min(self.interval_seconds, remaining))
