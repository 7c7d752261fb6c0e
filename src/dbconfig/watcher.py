"""Change notifications and watchers that trigger configuration reloads.

A watcher hands out single-use ``ChangeNotification`` objects. Each one fires
at most once; whoever consumes it has to ask the watcher again to keep
watching. ``on_change`` wires that re-arm loop so it runs until disposed.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, Optional

from .exceptions import WatcherDisposedError

logger = logging.getLogger(__name__)


class CallbackRegistration:
    """Handle returned by ``ChangeNotification.register``."""

    def __init__(self, notification: ChangeNotification, callback: Callable[[], None]):
        self._notification = notification
        self._callback = callback
        self._disposed = False

    def dispose(self) -> None:
        """Remove the callback from its notification. Safe to call repeatedly."""
        if self._disposed:
            return
        self._disposed = True
        self._notification._unregister(self._callback)


class ChangeNotification:
    """One-shot signal: armed until fired, then spent for good."""

    def __init__(self):
        self._fired = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def has_changed(self) -> bool:
        """True once the notification has fired."""
        return self._fired

    def register(self, callback: Callable[[], None]) -> CallbackRegistration:
        """Register a callback to run when the notification fires.

        A callback registered on an already fired notification runs immediately.
        """
        registration = CallbackRegistration(self, callback)
        if self._fired:
            self._invoke(callback)
        else:
            self._callbacks.append(callback)
        return registration

    def _unregister(self, callback: Callable[[], None]) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def fire(self) -> None:
        """Fire the notification. Only the first call has any effect."""
        if self._fired:
            return
        self._fired = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)

    def _invoke(self, callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception(f"Error in change notification callback {callback!r}")

    async def wait(self) -> None:
        """Wait until the notification fires."""
        if self._fired:
            return
        future = asyncio.get_running_loop().create_future()

        def _resolve() -> None:
            if not future.done():
                future.set_result(None)

        registration = self.register(_resolve)
        try:
            await future
        finally:
            registration.dispose()

    def __repr__(self) -> str:
        state = "fired" if self._fired else "armed"
        return f"ChangeNotification({state})"


class ChangeWatcher(ABC):
    """Abstract source of change notifications."""

    @abstractmethod
    def watch(self) -> ChangeNotification:
        """Arm and return a new one-shot notification."""
        pass

    @abstractmethod
    def dispose(self) -> None:
        """Stop watching and release resources. Must be idempotent."""
        pass

    async def aclose(self) -> None:
        """Dispose and wait until background work has stopped."""
        self.dispose()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class ManualWatcher(ChangeWatcher):
    """Watcher fired by an external caller via ``trigger()``.

    Useful for push-style integrations (a message handler, a database
    notification listener) that learn about changes on their own.

    The watcher remembers the event loop it was last armed on. A ``trigger()``
    from any other thread is handed to that loop, so listeners running in
    their own threads can call it directly.
    """

    def __init__(self):
        self._notification: Optional[ChangeNotification] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._disposed = False
        self.trigger_count = 0

    def watch(self) -> ChangeNotification:
        if self._disposed:
            raise WatcherDisposedError("ManualWatcher has been disposed")
        self._loop = _running_loop() or self._loop
        self._notification = ChangeNotification()
        return self._notification

    def trigger(self) -> bool:
        """Fire the armed notification.

        Returns:
            True if a notification was armed and fired (or handed to the
            watcher's loop when called from another thread), False if the
            trigger was absorbed.
        """
        if self._disposed:
            return False
        loop = self._loop
        if loop is not None and _running_loop() is not loop:
            if self._notification is None:
                self.trigger_count += 1
                return False
            loop.call_soon_threadsafe(self._fire)
            return True
        return self._fire()

    def _fire(self) -> bool:
        if self._disposed:
            return False
        self.trigger_count += 1
        notification, self._notification = self._notification, None
        if notification is None:
            return False
        notification.fire()
        return True

    def dispose(self) -> None:
        self._disposed = True
        self._notification = None
        self._loop = None


class PeriodicWatcher(ChangeWatcher):
    """Watcher that fires on a fixed interval.

    The timer runs as an asyncio task. It starts the first time the watcher is
    armed, ticks immediately, then every ``interval`` seconds. A tick with no
    armed notification is absorbed.
    """

    def __init__(self, interval: float | timedelta):
        """Initialize periodic watcher.

        Args:
            interval: Refresh interval in seconds or as a timedelta
        """
        if isinstance(interval, timedelta):
            interval = interval.total_seconds()
        if interval <= 0:
            raise ValueError(f"Refresh interval must be positive, got {interval}")
        self.interval = float(interval)
        self.tick_count = 0
        self._notification: Optional[ChangeNotification] = None
        self._task: Optional[asyncio.Task] = None
        self._disposed = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def watch(self) -> ChangeNotification:
        if self._disposed:
            raise WatcherDisposedError("PeriodicWatcher has been disposed")
        self._notification = ChangeNotification()
        self._ensure_started()
        return self._notification

    def _ensure_started(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=f"dbconfig-watcher-{id(self):x}")
        logger.info(f"Periodic watcher started (interval={self.interval}s)")

    async def _run(self) -> None:
        delay = 0.0
        while not self._disposed:
            await asyncio.sleep(delay)
            delay = self.interval
            self._tick()

    def _tick(self) -> None:
        if self._disposed:
            return
        self.tick_count += 1
        # Swap before firing: callbacks may re-arm from inside fire()
        notification, self._notification = self._notification, None
        if notification is None:
            logger.debug(f"Watcher tick {self.tick_count} absorbed, nothing armed")
            return
        logger.debug(f"Watcher tick {self.tick_count} firing")
        notification.fire()

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._notification = None
        if self._task is not None:
            self._task.cancel()
            logger.info("Periodic watcher stopped")

    async def aclose(self) -> None:
        """Dispose and wait for the timer task to finish unwinding."""
        self.dispose()
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    def __repr__(self) -> str:
        return f"PeriodicWatcher(interval={self.interval}s, ticks={self.tick_count})"


class ChangeRegistration:
    """Keeps a consumer subscribed to a producer of one-shot notifications."""

    def __init__(
        self,
        producer: Callable[[], ChangeNotification],
        consumer: Callable[[], None],
    ):
        self._producer = producer
        self._consumer = consumer
        self._registration: Optional[CallbackRegistration] = None
        self._disposed = False
        self._arm()

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def _arm(self) -> None:
        notification = self._producer()
        self._registration = notification.register(self._on_fired)

    def _on_fired(self) -> None:
        if self._disposed:
            return
        try:
            self._consumer()
        finally:
            if not self._disposed:
                self._arm()

    def dispose(self) -> None:
        """Stop the chain. Safe to call repeatedly."""
        if self._disposed:
            return
        self._disposed = True
        if self._registration is not None:
            self._registration.dispose()
            self._registration = None


def on_change(
    producer: Callable[[], ChangeNotification],
    consumer: Callable[[], None],
) -> ChangeRegistration:
    """Call ``consumer`` every time a notification from ``producer`` fires.

    After each fire the chain immediately asks ``producer`` for a fresh
    notification, so it keeps running until the returned registration is
    disposed.

    Example:
        registration = on_change(watcher.watch, provider_reload_callback)
        ...
        registration.dispose()
    """
    return ChangeRegistration(producer, consumer)
