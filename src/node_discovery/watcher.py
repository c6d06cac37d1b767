"""
Poll/Watch Engine.

A Watcher thread fetches the membership snapshot every interval and hands
it to a callback. Failed fetches skip the tick; nothing is retried early
and nothing is surfaced to the callback.
"""

import logging
import threading
from typing import Callable, List, Optional

from .models import Node


logger = logging.getLogger(__name__)

WatchCallback = Callable[[List[Node]], None]
FetchFunction = Callable[[], List[Node]]


class Watcher:
    """
    Background polling loop.

    Usage:
        with Watcher(backend.fetch, callback, interval=5) as watcher:
            ...
        # or
        watcher = Watcher(backend.fetch, callback, interval=5).start()
        watcher.stop()
    """

    def __init__(
        self,
        fetch: FetchFunction,
        callback: WatchCallback,
        interval: float,
        stop_event: Optional[threading.Event] = None,
        name: str = "node-discovery-watch",
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self._fetch = fetch
        self._callback = callback
        self.interval = interval
        self._owns_stop = stop_event is None
        self._stop = stop_event or threading.Event()
        self._name = name
        self._thread: Optional[threading.Thread] = None

        # Statistics
        self.ticks = 0
        self.failures = 0
        self.deliveries = 0
        self.callback_errors = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "Watcher":
        """Start the polling thread. Returns self."""
        if self.is_running:
            logger.warning("Watch thread already running")
            return self

        if self._owns_stop:
            self._stop.clear()

        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        return self

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Signal the loop to exit and wait for the thread.

        If the thread outlives timeout it is kept, and start() refuses to
        launch a second one until it has exited.
        """
        self._stop.set()
        thread = self._thread
        if thread is None:
            return
        if thread is threading.current_thread():
            # Called from the callback; the loop exits after this tick
            return
        thread.join(timeout=timeout)
        if thread.is_alive():
            # Still inside a slow tick; it exits at the next wait
            logger.warning(f"Watch thread did not stop within {timeout}s")
            return
        self._thread = None

    def tick(self) -> bool:
        """
        Run one polling cycle.

        Returns:
            True if the callback was given a snapshot.
        """
        self.ticks += 1
        try:
            nodes = self._fetch()
        except Exception as e:
            self.failures += 1
            logger.debug(f"Fetch failed, skipping tick: {e}")
            return False

        try:
            self._callback(nodes)
        except Exception as e:
            self.callback_errors += 1
            logger.error(f"Error in watch callback: {e}")
            return True
        self.deliveries += 1
        return True

    def _run(self) -> None:
        logger.info(f"Watch thread started (interval={self.interval}s)")
        while not self._stop.wait(timeout=self.interval):
            self.tick()
        logger.info("Watch thread stopped")

    def __enter__(self) -> "Watcher":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
