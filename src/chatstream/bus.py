"""In-process notification bus with bounded per-consumer queues."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Callable, Coroutine
from dataclasses import dataclass
from typing import Any

from blinker import Signal
from loguru import logger

from chatstream.models import Notification

NotificationHandler = Callable[[Notification], Coroutine[Any, Any, None]]

DEFAULT_BUFFER_SIZE = 64


@dataclass(frozen=True)
class Consumer:
    """Push-style consumer: the bus awaits ``handler`` for each notification."""

    name: str
    handler: NotificationHandler
    buffer_size: int | None = None


class Subscription:
    """One consumer's view of the bus.

    Notifications are queued in publish order. When the queue is full the
    oldest queued notification is dropped so the publisher never waits.
    """

    def __init__(self, name: str, buffer_size: int) -> None:
        self.name = name
        self.buffer_size = buffer_size
        self.dropped = 0
        self._queue: asyncio.Queue[Notification | None] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, notification: Notification) -> bool:
        """Queue ``notification`` without blocking. Returns False once closed."""
        if self._closed:
            return False
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.warning(
                "bus.overflow consumer={} buffer_size={} dropped={}",
                self.name,
                self.buffer_size,
                self.dropped,
            )
        self._queue.put_nowait(notification)
        return True

    async def get(self, timeout_seconds: float | None = None) -> Notification | None:
        """Return the next notification, or None on timeout or once closed and drained."""
        if self._closed and self._queue.empty():
            return None
        if timeout_seconds is None:
            return await self._queue.get()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout_seconds)
        except TimeoutError:
            return None

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked on an empty queue.
        if self._queue.empty():
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[Notification]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Notification]:
        while True:
            notification = await self.get()
            if notification is None:
                return
            yield notification


class NotificationBus:
    """Broadcast notifications to every subscription."""

    def __init__(self, name: str = "chatstream.notify", *, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self.name = name
        self.buffer_size = buffer_size
        self._signal = Signal(name)
        self._receivers: dict[Subscription, Callable[..., None]] = {}
        self._consumers: dict[Subscription, Consumer] = {}
        self._dispatchers: dict[Subscription, asyncio.Task[None]] = {}

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._receivers)

    def subscribe(
        self,
        consumer: Consumer | None = None,
        *,
        name: str | None = None,
        buffer_size: int | None = None,
    ) -> Subscription:
        """Register a consumer. Without ``consumer`` the caller pulls from the returned subscription."""
        size = buffer_size or (consumer.buffer_size if consumer else None) or self.buffer_size
        label = consumer.name if consumer else (name or f"consumer-{len(self._receivers) + 1}")
        subscription = Subscription(label, size)

        def _receiver(sender: Any, *, notification: Notification) -> None:
            subscription.offer(notification.copy())

        self._signal.connect(_receiver, weak=False)
        self._receivers[subscription] = _receiver
        if consumer is not None:
            self._consumers[subscription] = consumer
            self._start_dispatchers()
        logger.debug("bus.subscribe bus={} consumer={} buffer_size={}", self.name, label, size)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        receiver = self._receivers.pop(subscription, None)
        if receiver is not None:
            self._signal.disconnect(receiver)
        self._consumers.pop(subscription, None)
        subscription.close()

    def publish(self, notification: Notification) -> int:
        """Deliver ``notification`` to every subscription. Returns the number of receivers."""
        self._start_dispatchers()
        results = self._signal.send(self, notification=notification)
        return len(results)

    async def aclose(self) -> None:
        """Close all subscriptions and wait for push consumers to drain."""
        for subscription in list(self._receivers):
            receiver = self._receivers.pop(subscription)
            self._signal.disconnect(receiver)
            subscription.close()
        dispatchers = list(self._dispatchers.values())
        self._dispatchers.clear()
        self._consumers.clear()
        for task in dispatchers:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _start_dispatchers(self) -> None:
        pending = [sub for sub in self._consumers if sub not in self._dispatchers]
        if not pending:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        for subscription in pending:
            consumer = self._consumers[subscription]
            self._dispatchers[subscription] = loop.create_task(
                self._dispatch(subscription, consumer), name=f"{self.name}:{consumer.name}"
            )

    async def _dispatch(self, subscription: Subscription, consumer: Consumer) -> None:
        async for notification in subscription:
            try:
                await consumer.handler(notification)
            except Exception:
                logger.exception(
                    "bus.consumer.error consumer={} correlation_id={}", consumer.name, notification.correlation_id
                )
