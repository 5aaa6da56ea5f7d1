# =============================================================================
# chatgate -- Notification Bus
# =============================================================================
#
# One outbound notification channel per session.  Listeners subscribe per
# topic (or to all topics); every notification is also queued for async
# iteration.
# =============================================================================

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Awaitable, Callable

from ._logging import logger
from .constants import NOTIFICATION_QUEUE_SIZE
from .types import Notification, Topic

Listener = Callable[..., Any]
AsyncListener = Callable[..., Awaitable[Any]]
WildcardListener = Callable[[Notification], Any]


class EventBus:
    """Publish notifications to per-topic listeners and an iteration queue.

    Sync listeners run inline, in registration order.  Coroutine results
    are scheduled as tasks with a strong reference held until done.
    Listener exceptions are logged, never propagated into dispatch.

    Args:
        queue_size: Max notifications buffered for async iteration. When
            full, the oldest is dropped.
    """

    def __init__(self, queue_size: int = NOTIFICATION_QUEUE_SIZE) -> None:
        self._listeners: dict[Topic, list[Listener | AsyncListener]] = defaultdict(list)
        self._wildcard_listeners: list[WildcardListener] = []
        self._queue: asyncio.Queue[Notification | None] = asyncio.Queue(
            maxsize=queue_size
        )
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -- Registration -----------------------------------------------------------

    def on(
        self, topic: Topic | str
    ) -> Callable[[Listener | AsyncListener], Listener | AsyncListener]:
        """Decorator registering a listener for *topic*.

        Example::

            @bus.on(Topic.MESSAGE)
            async def handle(message):
                print(message.content)
        """
        key = Topic(topic)

        def decorator(fn: Listener | AsyncListener) -> Listener | AsyncListener:
            self._listeners[key].append(fn)
            return fn

        return decorator

    def on_any(self, fn: WildcardListener) -> WildcardListener:
        """Register a listener receiving every :class:`Notification`."""
        self._wildcard_listeners.append(fn)
        return fn

    def off(self, topic: Topic | str, fn: Listener | AsyncListener) -> None:
        listeners = self._listeners.get(Topic(topic), [])
        if fn in listeners:
            listeners.remove(fn)

    def listener_count(self, topic: Topic | str) -> int:
        return len(self._listeners.get(Topic(topic), []))

    # -- Publishing ---------------------------------------------------------------

    def emit(self, topic: Topic, *args: Any) -> Notification:
        notification = Notification(topic, args)

        for listener in list(self._listeners.get(topic, [])):
            self._call(listener, topic, *args)
        for wildcard in list(self._wildcard_listeners):
            self._call(wildcard, topic, notification)

        self._enqueue(notification)
        return notification

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.emit(Topic.WARNING, message)

    def debug(self, message: str) -> None:
        logger.debug(message)
        self.emit(Topic.DEBUG, message)

    def _call(self, listener: Callable[..., Any], topic: Topic, *args: Any) -> None:
        try:
            result = listener(*args)
            if asyncio.iscoroutine(result):
                self._fire_task(result)
        except Exception as exc:
            logger.error("Listener error for '%s': %s", topic.value, exc)

    def _fire_task(self, coro: Any) -> None:
        """Schedule a coroutine with a strong reference to prevent GC."""
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._background_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Async listener error: %s", task.exception())

    # -- Iteration queue ------------------------------------------------------------

    def _enqueue(self, item: Notification | None) -> None:
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            # Drop oldest to make room
            try:
                self._queue.get_nowait()
                self._queue.put_nowait(item)
            except (asyncio.QueueEmpty, asyncio.QueueFull):
                pass

    async def next(self, timeout: float | None = None) -> Notification | None:
        """Next queued notification, or ``None`` once the bus is closed."""
        if timeout is not None:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        else:
            item = await self._queue.get()
        if item is None:
            # Re-queue sentinel so other consumers also see the close signal
            self._enqueue(None)
        return item

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop iteration and cancel pending listener tasks."""
        for task in self._background_tasks:
            task.cancel()
        self._background_tasks.clear()
        self._enqueue(None)

    def reopen(self) -> None:
        """Drop a pending close sentinel so iteration can resume."""
        kept = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                kept.append(item)
        for item in kept:
            self._queue.put_nowait(item)
