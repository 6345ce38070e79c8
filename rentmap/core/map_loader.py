"""Map initialisation guarded by an explicit state machine.

``UNINITIALIZED -> INITIALIZING -> READY | FAILED``. Callers arriving while the
map is initialising are queued and run, in arrival order, by the thread that
performs the initialisation.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class LoaderState:
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class MapLoader:
    def __init__(self, key_provider: Callable[[], Optional[str]]) -> None:
        self._key_provider = key_provider
        self._lock = threading.Lock()
        self._queue: List[Callable[[str], None]] = []
        self._failure_callbacks: List[Callable[[str], None]] = []
        self.state = LoaderState.UNINITIALIZED
        self.api_key: Optional[str] = None
        self.error: Optional[str] = None

    def on_failure(self, callback: Callable[[str], None]) -> None:
        self._failure_callbacks.append(callback)

    def when_ready(self, callback: Callable[[str], None]) -> bool:
        """
        Run ``callback(api_key)`` once the map is ready.

        Returns False when initialisation has failed and the callback will never
        run; True when it ran or has been queued. Exceptions raised by a callback
        are logged and never propagate, whether it runs now or from the queue.
        """
        with self._lock:
            if self.state == LoaderState.READY:
                api_key = self.api_key
                run_now = True
            elif self.state == LoaderState.FAILED:
                return False
            else:
                self._queue.append(callback)
                if self.state == LoaderState.INITIALIZING:
                    logger.debug("Map initialisation in progress; queued caller #%d", len(self._queue))
                    return True
                self.state = LoaderState.INITIALIZING
                run_now = False

        if run_now:
            self._run(callback, api_key)
            return True

        self._initialize()
        return self.state == LoaderState.READY

    def _initialize(self) -> None:
        try:
            api_key = self._key_provider()
            error = None if api_key else "Google Maps API key not found"
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to fetch maps key: %s", exc)
            api_key, error = None, f"Failed to fetch Google Maps API key: {exc}"

        if error:
            with self._lock:
                self.state = LoaderState.FAILED
                self.error = error
                dropped = len(self._queue)
                self._queue.clear()
            logger.warning("Map initialisation failed (%s); dropped %d queued callers", error, dropped)
            for callback in list(self._failure_callbacks):
                callback(error)
            return

        with self._lock:
            self.api_key = api_key

        # State stays INITIALIZING until the queue is drained, so callers that
        # arrive meanwhile are queued behind the earlier ones.
        while True:
            with self._lock:
                if not self._queue:
                    self.state = LoaderState.READY
                    break
                callback = self._queue.pop(0)
            self._run(callback, api_key)
        logger.info("Map initialised")

    @staticmethod
    def _run(callback: Callable[[str], None], api_key: str) -> None:
        try:
            callback(api_key)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Map caller failed: %s", exc)

    def reset(self) -> None:
        with self._lock:
            self.state = LoaderState.UNINITIALIZED
            self.api_key = None
            self.error = None
            self._queue.clear()
