"""Events published when submissions resolve.

The dispatcher and scoring engine receive a publisher at construction time;
delivery (websockets, queues, chat) is up to whoever subscribes.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Optional, Union

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubmissionResolved:
    submission_id: int
    user_id: str
    problem_id: int
    verdict: str
    contest_id: Optional[int] = None

    name = "submissionResolved"


@dataclass(frozen=True)
class LeaderboardChanged:
    contest_id: int

    name = "leaderboardChanged"


Event = Union[SubmissionResolved, LeaderboardChanged]


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event: Event) -> None:
        """Deliver one event to whoever listens."""


class InMemoryEventBus(EventPublisher):
    """Fan events out to subscriber queues. Slow subscribers lose their oldest events."""

    def __init__(self, *, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    async def publish(self, event: Event) -> None:
        _LOGGER.info("Publishing %s %s", event.name, asdict(event))
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:  # pragma: no cover - raced with a consumer
                    pass
            queue.put_nowait(event)


_event_bus: Optional[InMemoryEventBus] = None


def get_event_bus() -> InMemoryEventBus:
    global _event_bus
    if _event_bus is None:
        _event_bus = InMemoryEventBus()
    return _event_bus


__all__ = [
    "Event",
    "EventPublisher",
    "InMemoryEventBus",
    "LeaderboardChanged",
    "SubmissionResolved",
    "get_event_bus",
]
