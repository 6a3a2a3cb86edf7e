"""In-process fan-out of approval workflow events."""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

logger = logging.getLogger(__name__)


@dataclass
class WorkflowNotification:
    """A state transition worth telling someone about."""
    event_type: str
    entity_type: str
    entity_id: str
    status: Optional[str] = None
    actor_id: Optional[str] = None
    payload: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "status": self.status,
            "actor_id": self.actor_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


Subscriber = Callable[[WorkflowNotification], Awaitable[None]]


class NotificationHub:
    """
    Fire-and-forget publisher.

    Each subscriber callback runs in its own task. Failures are logged and
    never reach the publisher, so a broken consumer cannot undo a state
    transition that has already been committed.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._subscribers: List[Subscriber] = []
        self._tasks: Set[asyncio.Task] = set()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a function that unregisters it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, notification: WorkflowNotification) -> None:
        if not self.enabled or not self._subscribers:
            return

        for callback in list(self._subscribers):
            task = asyncio.create_task(self._deliver(callback, notification))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _deliver(self, callback: Subscriber, notification: WorkflowNotification) -> None:
        try:
            await callback(notification)
        except Exception as e:
            logger.error(
                f"Notification subscriber failed for {notification.event_type} "
                f"({notification.entity_type} {notification.entity_id}): {e}",
                exc_info=True
            )

    async def drain(self) -> None:
        """Wait for in-flight deliveries to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        self._subscribers.clear()
        logger.info("Notification hub closed")
