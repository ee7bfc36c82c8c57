"""
Named, cancellable timers for cooldown recovery and fetch backoff.
"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional

# Set up logger for timer operations
logger = logging.getLogger(__name__)


class TimerLifecycleLogger:
    """Structured logging for timer lifecycle events."""

    @staticmethod
    def log_timer_scheduled(name: str, delay: float, replaced: bool) -> None:
        """Log a timer being armed."""
        logger.debug(
            f"Timer lifecycle: SCHEDULED - {name}, Delay {delay:.3f}s" +
            (" (replaced pending timer)" if replaced else ""),
            extra={
                'event_type': 'timer_scheduled',
                'timer': name,
                'delay': delay,
                'replaced': replaced,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_fired(name: str) -> None:
        """Log a timer reaching its deadline."""
        logger.debug(
            f"Timer lifecycle: FIRED - {name}",
            extra={
                'event_type': 'timer_fired',
                'timer': name,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_cancelled(name: str, reason: str = None) -> None:
        """Log a pending timer being cancelled."""
        logger.info(
            f"Timer lifecycle: CANCELLED - {name}" + (f" ({reason})" if reason else ""),
            extra={
                'event_type': 'timer_cancelled',
                'timer': name,
                'reason': reason,
                'timestamp': time.time()
            }
        )

    @staticmethod
    def log_timer_error(name: str, error_message: str) -> None:
        """Log an exception raised by a timer callback."""
        logger.error(
            f"Timer lifecycle: ERROR - {name}: {error_message}",
            extra={
                'event_type': 'timer_error',
                'timer': name,
                'error_message': error_message,
                'timestamp': time.time()
            }
        )


class Scheduler:
    """
    Owns at most one pending timer per name on the running event loop.

    Scheduling a name that is already pending replaces the old timer, so
    re-arming a cooldown restarts it instead of stacking a second one.
    """

    def __init__(self):
        self._handles: Dict[str, asyncio.TimerHandle] = {}
        self._waiters: Dict[str, asyncio.Future] = {}

    def schedule(self, name: str, delay: float, callback: Callable[[], None]) -> float:
        """
        Arm a timer that calls callback after delay seconds.

        Args:
            name: Timer name, unique among pending timers
            delay: Seconds until the callback fires
            callback: Plain callable run on the event loop

        Returns:
            Loop time at which the timer will fire
        """
        replaced = self.cancel(name, reason="rescheduled", log=False)
        loop = asyncio.get_running_loop()
        handle = loop.call_later(delay, self._fire, name, callback)
        self._handles[name] = handle
        TimerLifecycleLogger.log_timer_scheduled(name, delay, replaced)
        return handle.when()

    def _fire(self, name: str, callback: Callable[[], None]) -> None:
        self._handles.pop(name, None)
        TimerLifecycleLogger.log_timer_fired(name)
        try:
            callback()
        except Exception as e:
            TimerLifecycleLogger.log_timer_error(name, str(e))

    async def wait(self, name: str, delay: float) -> bool:
        """
        Sleep for delay seconds unless the named timer is cancelled first.

        Returns:
            True if the delay elapsed, False if it was cancelled
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _elapsed():
            if not future.done():
                future.set_result(True)

        self.schedule(name, delay, _elapsed)
        self._waiters[name] = future
        try:
            return await future
        finally:
            if self._waiters.get(name) is future:
                del self._waiters[name]

    def cancel(self, name: str, reason: str = None, log: bool = True) -> bool:
        """
        Cancel a pending timer and release anyone waiting on it.

        Returns:
            True if a timer was pending, False otherwise
        """
        handle = self._handles.pop(name, None)
        waiter = self._waiters.pop(name, None)
        if waiter is not None and not waiter.done():
            waiter.set_result(False)
        if handle is None:
            return False
        handle.cancel()
        if log:
            TimerLifecycleLogger.log_timer_cancelled(name, reason)
        return True

    def cancel_all(self, reason: str = None) -> int:
        """Cancel every pending timer. Returns how many were pending."""
        names = list(self._handles)
        for name in names:
            self.cancel(name, reason)
        return len(names)

    def is_scheduled(self, name: str) -> bool:
        return name in self._handles

    def deadline(self, name: str) -> Optional[float]:
        """Loop time at which the named timer fires, if pending."""
        handle = self._handles.get(name)
        return handle.when() if handle else None

    def pending(self) -> List[str]:
        return list(self._handles)
