"""Single-shot timer that bounds how long one page load may take"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from .config import LOAD_TIMEOUT


class LoadWatchdog:
    """
    One armed timer at a time, tagged with the attempt it guards.

    A disarm carrying a different attempt id is ignored, so a late completion
    for an old attempt cannot cancel the timer of the current one.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._armed_id: Optional[int] = None

    @property
    def armed_id(self) -> Optional[int]:
        return self._armed_id

    @property
    def is_armed(self) -> bool:
        return self._armed_id is not None

    def arm(
        self,
        attempt_id: int,
        timeout: float = LOAD_TIMEOUT,
        on_expire: Optional[Callable[[int], None]] = None,
    ) -> None:
        """
        Start the timer for an attempt.

        Args:
            attempt_id: Attempt the timer belongs to
            timeout: Seconds before on_expire is called
            on_expire: Called once with attempt_id if not disarmed in time
        """
        if self._armed_id is not None:
            logger.debug(f"Watchdog re-armed while guarding attempt #{self._armed_id}")
            self.disarm(self._armed_id)

        loop = self._loop or asyncio.get_running_loop()
        self._armed_id = attempt_id
        self._handle = loop.call_later(timeout, self._expire, attempt_id, on_expire)
        logger.debug(f"Watchdog armed for attempt #{attempt_id} ({timeout:.1f}s)")

    def disarm(self, attempt_id: int) -> bool:
        """Cancel the timer if it guards attempt_id. Returns True if cancelled."""
        if self._armed_id != attempt_id:
            return False

        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._armed_id = None
        logger.debug(f"Watchdog disarmed for attempt #{attempt_id}")
        return True

    def _expire(self, attempt_id: int, on_expire: Optional[Callable[[int], None]]) -> None:
        if self._armed_id != attempt_id:
            return

        self._handle = None
        self._armed_id = None
        if on_expire:
            on_expire(attempt_id)
