"""Blocking terminal prompt used to hand a challenge over to the user"""

import asyncio
import sys
import threading
from typing import Callable, Optional

from loguru import logger


class HumanPrompt:
    """
    Waits for the user to press Enter after solving a challenge in the window.

    The read happens on a daemon thread so the event loop keeps running and a
    pending read never blocks interpreter shutdown. The line itself is discarded.
    """

    def __init__(self, read_line: Optional[Callable[[], str]] = None):
        self.read_line = read_line or sys.stdin.readline

    async def wait(self) -> None:
        logger.warning("\aCouldn't get past the challenge automatically...")
        logger.warning("Solve it in the browser window, then press Enter:")

        loop = asyncio.get_running_loop()
        done = loop.create_future()

        def resolve(error: Optional[BaseException]) -> None:
            if done.done():
                return
            if error is not None:
                done.set_exception(error)
            else:
                done.set_result(None)

        def worker() -> None:
            try:
                self.read_line()
            except Exception as e:
                error: Optional[BaseException] = e
            else:
                error = None
            if not loop.is_closed():
                loop.call_soon_threadsafe(resolve, error)

        threading.Thread(target=worker, name="challenge-prompt", daemon=True).start()
        await done
