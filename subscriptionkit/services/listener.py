"""
Transaction Listener - Long-lived consumer of platform transaction updates.

Each verified update is sent to the backend and finished with the platform
only after the backend accepts it. One bad event never stops the loop, and a
failed stream is resubscribed with backoff until the listener is stopped.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from structlog import get_logger

from subscriptionkit.models.customer import CustomerSnapshot
from subscriptionkit.models.store import StoreTransaction, VerificationResult
from subscriptionkit.services.platform import StorePlatform
from subscriptionkit.services.tasks import TaskRegistry

logger = get_logger(__name__)

TransactionVerifier = Callable[[StoreTransaction], Awaitable[CustomerSnapshot]]

DEFAULT_RETRY_DELAY = 1.0
MAX_RETRY_DELAY = 60.0


class TransactionListener:
    """Feeds platform transaction updates into backend verification."""

    def __init__(
        self,
        platform: StorePlatform,
        verify: TransactionVerifier,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        max_retry_delay: float = MAX_RETRY_DELAY,
    ) -> None:
        """
        Args:
            platform: Source of the transaction update stream
            verify: Verifies a transaction with the backend and applies the result
            retry_delay: Seconds before resubscribing after the stream fails
            max_retry_delay: Upper bound for the doubling resubscribe delay
        """
        self.platform = platform
        self.verify = verify
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._task: asyncio.Task[Any] | None = None
        self.processed_count = 0
        self.failed_count = 0
        self.stream_failures = 0

    @property
    def task(self) -> asyncio.Task[Any] | None:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, tasks: TaskRegistry) -> None:
        """Start listening. Calling start() on a started listener is an error."""
        if self._task is not None:
            raise RuntimeError("Transaction listener already started")
        self._task = tasks.spawn(self._run(), name="transaction_listener")
        logger.info("transaction_listener_started")

    async def stop(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            # Only the listener's own cancellation is expected here
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
        logger.info("transaction_listener_stopped")

    async def _run(self) -> None:
        """Consume the update stream, resubscribing with backoff when it fails."""
        consecutive_failures = 0
        while True:
            try:
                async for update in self.platform.transaction_updates():
                    consecutive_failures = 0
                    await self.handle_update(update)
            except asyncio.CancelledError:
                raise
            except Exception:
                consecutive_failures += 1
                self.stream_failures += 1
                delay = min(
                    self.retry_delay * 2 ** (consecutive_failures - 1), self.max_retry_delay
                )
                logger.exception(
                    "transaction_listener_stream_failed",
                    consecutive_failures=consecutive_failures,
                    retry_in_seconds=delay,
                )
                await asyncio.sleep(delay)
                continue

            logger.info("transaction_listener_stream_closed")
            return

    async def handle_update(self, update: VerificationResult) -> bool:
        """
        Process one update.

        Returns:
            True if the transaction was verified and finished
        """
        transaction = update.transaction
        if not update.verified:
            self.failed_count += 1
            logger.error(
                "transaction_update_unverified",
                transaction_id=transaction.transaction_id,
                error=update.error,
            )
            return False

        try:
            await self.verify(transaction)
            await self.platform.finish(transaction)
        except Exception:
            self.failed_count += 1
            logger.exception(
                "transaction_update_processing_failed",
                transaction_id=transaction.transaction_id,
            )
            return False

        self.processed_count += 1
        logger.info(
            "transaction_update_processed",
            transaction_id=transaction.transaction_id,
            product_id=transaction.product_id,
        )
        return True
