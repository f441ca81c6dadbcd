"""In-process broker pushing notifications to connected SSE clients.

Each subscriber owns a bounded queue; slow consumers drop events instead of
blocking the publisher.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
from typing import Any
from uuid import UUID

logger = logging.getLogger(__name__)

MAX_QUEUE_SIZE = 100


class NotificationBroker:
    def __init__(self) -> None:
        self._subscribers: dict[UUID, set[queue.Queue]] = {}
        self._lock = threading.Lock()

    def subscribe(self, user_id: UUID) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=MAX_QUEUE_SIZE)
        with self._lock:
            self._subscribers.setdefault(user_id, set()).add(q)
        return q

    def unsubscribe(self, user_id: UUID, q: queue.Queue) -> None:
        with self._lock:
            subs = self._subscribers.get(user_id)
            if subs is None:
                return
            subs.discard(q)
            if not subs:
                del self._subscribers[user_id]

    def publish(self, user_id: UUID, payload: dict[str, Any]) -> int:
        """Deliver *payload* to every open stream of *user_id*; returns the count."""
        with self._lock:
            targets = list(self._subscribers.get(user_id, ()))
        delivered = 0
        for q in targets:
            try:
                q.put_nowait(payload)
                delivered += 1
            except queue.Full:
                logger.warning("Dropping notification for slow subscriber of %s", user_id)
        return delivered

    def subscriber_count(self, user_id: UUID) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, ()))


broker = NotificationBroker()


def format_sse(data: dict[str, Any], event: str | None = None, event_id: str | None = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, separators=(',', ':'))}")
    return "\n".join(lines) + "\n\n"


def keepalive_message() -> str:
    return ": keep-alive\n\n"
