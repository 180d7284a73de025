"""
Event loop for a running extension.

Everything the extension does happens on the thread that calls
run_forever(): posted events are drained in order, then due alarms are
polled. Other threads only ever post(). Handlers therefore never interleave,
so read-modify-write cycles on the stores cannot lose each other's updates.
"""
import logging
import queue
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Runtime:
    """
    Single-consumer dispatcher for an Extension.

    Usage:
        runtime = Runtime(extension)
        runtime.post(extension.on_toolbar_clicked, tab)
        runtime.run_forever(stop_event)
    """

    def __init__(self, extension, poll_interval: Optional[float] = None):
        self.extension = extension
        self.poll_interval = (
            poll_interval if poll_interval is not None else extension.config.poll_interval
        )
        self._queue: "queue.Queue[tuple]" = queue.Queue()
        self._started = False

    def post(self, handler: Callable[..., Any], *args: Any) -> None:
        """Queue an event handler call; safe from any thread."""
        self._queue.put((handler, args))

    def run_pending(self) -> int:
        """
        Run every queued event in order.

        Returns:
            Number of events handled
        """
        handled = 0
        while True:
            try:
                handler, args = self._queue.get_nowait()
            except queue.Empty:
                return handled
            try:
                handler(*args)
            except Exception as e:
                logger.error(f"Event handler {getattr(handler, '__name__', handler)} failed: {e}")
            handled += 1

    def start(self) -> None:
        """Startup work: ensure alarms exist, then catch up on missed ones."""
        if self._started:
            return
        self._started = True
        self.extension.on_startup()
        fired = self.extension.scheduler.poll()
        if fired:
            logger.info(f"Caught up on {len(fired)} alarm(s) missed while stopped")

    def tick(self, now: Optional[int] = None) -> list:
        """One loop iteration: drain events, then fire due alarms."""
        self.run_pending()
        return self.extension.scheduler.poll(now)

    def run_forever(self, stop: Optional[threading.Event] = None) -> None:
        """Run until stop is set (or forever)."""
        stop = stop or threading.Event()
        self.start()
        logger.info(f"ToggleMark running (polling every {self.poll_interval}s)")
        while not stop.is_set():
            self.tick()
            stop.wait(self.poll_interval)
        self.run_pending()
        logger.info("ToggleMark stopped")
