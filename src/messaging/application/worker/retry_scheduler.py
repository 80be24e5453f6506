"""Retry scheduler: re-sends failed messages whose backoff has elapsed."""

import asyncio
from datetime import datetime
from typing import Callable, Optional, Set

from src.messaging.application.services.delivery_state_machine import DeliveryStateMachine
from src.messaging.domain.protocols import MessageRepository
from src.shared.domain.base_entity import utc_now
from src.shared.exceptions import DomainError
from src.shared.infrastructure.observability.logger import bind_context, clear_context, get_logger

logger = get_logger(__name__)


class RetryScheduler:
    """
    Polls for messages in Failed with next_retry_at <= now and hands each
    back to the delivery state machine.

    Backoff and the retry budget live in the state machine; the scheduler
    only decides when to look. A message acknowledged by a late callback
    in the meantime is skipped by the state machine itself.
    """

    def __init__(
        self,
        messages: MessageRepository,
        delivery: DeliveryStateMachine,
        poll_interval: float = 60.0,
        batch_size: int = 50,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.messages = messages
        self.delivery = delivery
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.clock = clock
        self.running = False
        self.tasks: Set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Process one batch of due messages. Returns how many were retried."""
        due = await self.messages.list_due_for_retry(self.clock(), self.batch_size)
        if not due:
            return 0

        logger.info("retry_batch_started", count=len(due))
        tasks = []
        for message in due:
            task = asyncio.create_task(self._retry(message.id, message.team_id))
            tasks.append(task)
            self.tasks.add(task)
            task.add_done_callback(self.tasks.discard)
        # shielded: stop() cancels the loop, not retries already in flight
        results = await asyncio.shield(asyncio.gather(*tasks))
        return sum(1 for ok in results if ok)

    async def _retry(self, message_id: int, team_id: Optional[int]) -> bool:
        bind_context(team_id=team_id, message_id=message_id)
        try:
            message = await self.delivery.send(message_id)
            logger.info("retry_attempted", status=message.status.value, retry_count=message.retry_count)
            return True
        except DomainError as exc:
            logger.warning("retry_skipped", code=exc.code, error=exc.message)
            return False
        finally:
            clear_context()

    async def start(self) -> None:
        """Run the polling loop until stop() is called."""
        logger.info("retry_scheduler_started", poll_interval=self.poll_interval, batch_size=self.batch_size)
        self.running = True
        while self.running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("retry_scheduler_error")
            await asyncio.sleep(self.poll_interval)

    def start_background(self) -> asyncio.Task:
        self._loop_task = asyncio.create_task(self.start())
        return self._loop_task

    async def stop(self) -> None:
        """Stop the scheduler gracefully, letting in-flight retries finish."""
        logger.info("retry_scheduler_stopping")
        self.running = False
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        logger.info("retry_scheduler_stopped")
