"""
Event publisher service.

Publishes workflow events to in-process subscribers (the UI layer) and,
when configured, to Redis pub/sub.
"""

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Set
from shared.redis_client import RedisClient
from shared.logging import get_logger

logger = get_logger(__name__)

Subscriber = Callable[[str, Dict[str, Any]], None]

# Event types
SAVING_CHANGED = "saving_changed"
GENERATING_CHANGED = "generating_changed"
VALIDATION_CHANGED = "validation_changed"
PHASE_CHANGED = "phase_changed"
NOTIFICATION = "notification"
RESTORATION_COMPLETED = "restoration_completed"

# generating_changed scopes
SCOPE_PROMPTS = "prompts"
SCOPE_SHOT_IMAGE = "shot_image"
SCOPE_SHOT_VIDEO = "shot_video"
SCOPE_IMAGES = "images"
SCOPE_VIDEOS = "videos"


class EventPublisher:
    """Fan-out of workflow events."""

    def __init__(self, redis_client: Optional[RedisClient] = None):
        """
        Initialize event publisher.

        Args:
            redis_client: Optional Redis client for pub/sub distribution
        """
        self.redis_client = redis_client
        self._subscribers: List[Subscriber] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """
        Register an in-process subscriber.

        Args:
            subscriber: Callable receiving (event_type, data)

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def _deliver(self, event_type: str, data: Dict[str, Any]) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event_type, data)
            except Exception as e:
                logger.warning(
                    "Event subscriber failed",
                    exc_info=e,
                    extra={"event_type": event_type}
                )

    async def _publish_redis(self, project_id: Optional[str], event_type: str, data: Dict[str, Any]) -> None:
        if self.redis_client is None:
            return
        channel = f"workflow_events:{project_id}"
        message = {
            "event_type": event_type,
            "data": data
        }
        try:
            await self.redis_client.publish(channel, json.dumps(message, default=str))
            logger.debug(
                "Event published",
                extra={"channel": channel, "event_type": event_type}
            )
        except Exception as e:
            logger.warning(
                "Failed to publish event",
                exc_info=e,
                extra={"channel": channel, "event_type": event_type}
            )

    def emit(self, project_id: Optional[str], event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish an event from synchronous code.

        In-process subscribers are called immediately; Redis publication is
        scheduled on the running loop, if any.

        Args:
            project_id: Project the event belongs to
            event_type: Event type
            data: Event data dictionary
        """
        self._deliver(event_type, data)
        if self.redis_client is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, skipping Redis publication", extra={"event_type": event_type})
            return
        task = loop.create_task(self._publish_redis(project_id, event_type, data))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def publish(self, project_id: Optional[str], event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish an event and wait for Redis distribution.

        Args:
            project_id: Project the event belongs to
            event_type: Event type
            data: Event data dictionary
        """
        self._deliver(event_type, data)
        await self._publish_redis(project_id, event_type, data)

    async def notify(
        self,
        project_id: Optional[str],
        title: str,
        description: str,
        variant: str = "default"
    ) -> None:
        """
        Publish a user-visible notification.

        Args:
            project_id: Project the notification belongs to
            title: Short title
            description: Message body
            variant: "default" or "destructive"
        """
        await self.publish(project_id, NOTIFICATION, {
            "title": title,
            "description": description,
            "variant": variant
        })

    async def drain(self) -> None:
        """Wait for scheduled Redis publications to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
