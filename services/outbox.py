"""
Notification Outbox.

Business flows enqueue notifications as rows. A background drainer
publishes them through the dispatcher with a bounded retry schedule,
so a failed notification is recorded instead of lost and never affects
the flow that produced it.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Sequence

from database.db import Database
from errors import UnknownEventError
from models.requests import NotificationRequest
from .notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)


class NotificationOutbox:
    """Writes notification requests to the outbox table."""

    def __init__(self, db: Database):
        self.db = db

    async def enqueue(
        self,
        event: str,
        merchant_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        admin_only: bool = False
    ) -> Optional[int]:
        """
        Queue a notification.

        Returns:
            The outbox row id, or None if the row could not be written
        """
        try:
            entry_id = await self.db.enqueue_outbox(
                event=event,
                merchant_id=merchant_id,
                payload=payload or {},
                admin_only=admin_only
            )
        except Exception as e:
            logger.error(f"Could not enqueue {event} notification: {e}", exc_info=True)
            return None

        logger.debug(f"Queued {event} notification as outbox entry {entry_id}")
        return entry_id


class OutboxDrainer:
    """
    Background task that delivers queued notifications.

    Each entry gets one attempt plus one retry per configured delay.
    Entries for unknown events are dropped at once.
    """

    def __init__(
        self,
        db: Database,
        dispatcher: NotificationDispatcher,
        poll_interval: int = 5,
        batch_size: int = 20,
        retry_delays: Sequence[int] = (1, 5, 15)
    ):
        """
        Initialize the drainer.

        Args:
            db: Database instance
            dispatcher: Dispatcher used to publish entries
            poll_interval: Seconds between polls
            batch_size: Maximum entries handled per poll
            retry_delays: Minutes to wait before each retry
        """
        self.db = db
        self.dispatcher = dispatcher
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self.retry_delays = list(retry_delays)
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stats = {"sent": 0, "retried": 0, "dead": 0}

    async def start(self) -> None:
        """Start the drain loop."""
        if self._running:
            logger.warning("Outbox drainer already running")
            return

        logger.info(f"Starting outbox drainer (polling every {self.poll_interval}s)")
        self._running = True
        self._task = asyncio.create_task(self._drain_loop())

    async def stop(self) -> None:
        """Stop the drain loop."""
        logger.info("Stopping outbox drainer...")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _drain_loop(self) -> None:
        while self._running:
            try:
                await self.drain_once()
            except Exception as e:
                logger.error(f"Error in outbox drainer: {e}", exc_info=True)

            await asyncio.sleep(self.poll_interval)

    async def drain_once(self) -> int:
        """
        Deliver every due entry once.

        Returns:
            Number of entries delivered
        """
        entries = await self.db.get_due_outbox(self.batch_size)
        if entries:
            logger.info(f"Draining {len(entries)} outbox entries")

        delivered = 0
        for entry in entries:
            if await self._deliver(entry):
                delivered += 1
        return delivered

    async def _deliver(self, entry: Dict[str, Any]) -> bool:
        entry_id = entry['id']
        attempts = int(entry.get('attempts') or 0) + 1

        request = NotificationRequest(
            event=entry['event'],
            merchant_id=entry.get('merchant_id'),
            payload=entry.get('payload') or {},
            admin_only=entry.get('admin_only', False)
        )

        try:
            await self.dispatcher.publish(request)
        except UnknownEventError as e:
            self._stats["dead"] += 1
            logger.error(f"Dropping outbox entry {entry_id}: {e.message}")
            await self.db.mark_outbox_dead(entry_id, attempts, e.message)
            return False
        except Exception as e:
            await self._schedule_retry(entry_id, attempts, str(e))
            return False

        await self.db.mark_outbox_sent(entry_id, attempts)
        self._stats["sent"] += 1
        return True

    async def _schedule_retry(self, entry_id: int, attempts: int, error: str) -> None:
        if attempts <= len(self.retry_delays):
            delay = self.retry_delays[attempts - 1]
            next_attempt = datetime.utcnow() + timedelta(minutes=delay)
            self._stats["retried"] += 1
            logger.warning(
                f"Outbox entry {entry_id} failed (attempt {attempts}): {error}, "
                f"next attempt in {delay} minutes"
            )
            await self.db.reschedule_outbox(entry_id, attempts, next_attempt, error)
        else:
            self._stats["dead"] += 1
            logger.error(f"All attempts exhausted for outbox entry {entry_id}: {error}")
            await self.db.mark_outbox_dead(entry_id, attempts, error)

    def get_stats(self) -> Dict[str, Any]:
        return {"running": self._running, **self._stats}
