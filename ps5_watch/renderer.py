"""Browser-backed page renderer using Camoufox

Plain HTTP requests to the product pages only return a "your browser must
support JavaScript" shell, so every page is rendered in a real browser window
and the resulting DOM is read back as markup.
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Callable, FrozenSet, List, Optional, Pattern, Set, Tuple

from camoufox.async_api import AsyncCamoufox
from loguru import logger
from playwright.async_api import Error as PlaywrightError

from .config import BLOCK_RULES, HEADLESS, WINDOW_SIZE
from .exceptions import ConfigurationError, RendererError
from .models import (
    EvaluationFailed,
    LoadStarted,
    MarkupReady,
    MonitoredURL,
    NavigationFailed,
    NavigationFinished,
    RendererTerminated,
    WindowClosed,
)

OUTER_HTML_SCRIPT = "document.documentElement.outerHTML.toString()"
STOP_SCRIPT = "window.stop()"


@dataclass(frozen=True)
class ContentRule:
    """A compiled blocking rule"""

    url_filter: Pattern[str]
    resource_types: FrozenSet[str]

    def matches(self, url: str, resource_type: str) -> bool:
        if self.resource_types and resource_type not in self.resource_types:
            return False
        return self.url_filter.search(url) is not None


def compile_content_rules(encoded: str) -> List[ContentRule]:
    """
    Compile a JSON rule list into ContentRule objects.

    Each rule looks like
    {"trigger": {"url-filter": regex, "resource-type": [...]}, "action": {"type": "block"}}.

    Raises:
        ConfigurationError: If the JSON, a regex, or an action is invalid
    """
    try:
        rules = json.loads(encoded)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Content rules are not valid JSON: {e}") from e

    if not isinstance(rules, list):
        raise ConfigurationError("Content rules must be a JSON list")

    compiled = []
    for index, rule in enumerate(rules):
        try:
            trigger = rule["trigger"]
            action = rule["action"]["type"]
            url_filter = re.compile(trigger["url-filter"])
            resource_types = frozenset(trigger.get("resource-type", []))
        except (KeyError, TypeError, AttributeError) as e:
            raise ConfigurationError(f"Content rule #{index} is malformed: {e!r}") from e
        except re.error as e:
            raise ConfigurationError(f"Content rule #{index} has an invalid url-filter: {e}") from e

        if action != "block":
            raise ConfigurationError(f"Content rule #{index} has unsupported action: {action!r}")

        compiled.append(ContentRule(url_filter, resource_types))

    logger.debug(f"Compiled {len(compiled)} content blocking rules")
    return compiled


class BrowserRenderer:
    """
    Loads product pages in a Camoufox window and reports back through events.

    Each load runs as one task that posts LoadStarted, NavigationFinished and
    then MarkupReady (or a failure event) to the callback given to load().
    Page crashes and a user closing the window are reported the same way.
    """

    def __init__(
        self,
        block_rules: str = BLOCK_RULES,
        headless: bool = HEADLESS,
        window: Tuple[int, int] = WINDOW_SIZE,
    ):
        """
        Initialize renderer. Content rules are compiled here so a bad rule
        fails at startup, before any browser is launched.

        Args:
            block_rules: JSON content rule list
            headless: Run without a visible window
            window: Window size (width, height)
        """
        self.rules = compile_content_rules(block_rules)
        self.headless = headless
        self.window = window

        self.page = None
        self._camoufox: Optional[AsyncCamoufox] = None
        self._browser = None
        self._task: Optional[asyncio.Task] = None
        self._attempt_id: Optional[int] = None
        self._post: Optional[Callable] = None
        self._closing = False
        self._stopping: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    async def __aenter__(self):
        self._camoufox = AsyncCamoufox(headless=self.headless, window=self.window)
        try:
            self._browser = await self._camoufox.__aenter__()
        except PlaywrightError as e:
            raise RendererError(f"Could not start browser: {e}") from e

        try:
            await self._open_page()
        except PlaywrightError as e:
            # Browser is already up; shut it down before giving up
            await self._camoufox.__aexit__(type(e), e, e.__traceback__)
            self._browser = None
            raise RendererError(f"Could not open browser page: {e}") from e

        logger.info(f"🦊 Browser ready ({self.window[0]}x{self.window[1]})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self._closing = True
        self.cancel()
        for task in list(self._background):
            task.cancel()
        if self._camoufox is not None:
            await self._camoufox.__aexit__(exc_type, exc_val, exc_tb)

    async def _open_page(self) -> None:
        page = await self._browser.new_page()
        if self.rules:
            await page.route("**/*", self._route_handler)
        page.on("crash", self._on_crash)
        page.on("close", self._on_close)
        self.page = page

    async def _route_handler(self, route) -> None:
        request = route.request
        for rule in self.rules:
            if rule.matches(request.url, request.resource_type):
                await route.abort()
                return
        await route.continue_()

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------

    def load(self, attempt_id: int, url: MonitoredURL, post: Callable) -> None:
        """Start loading url; results are posted as events tagged with attempt_id"""
        self.cancel()
        self._attempt_id = attempt_id
        self._post = post
        self._task = asyncio.create_task(self._navigate(attempt_id, str(url), post))

    def cancel(self) -> None:
        """
        Abandon the in-flight load, if any. Its events are never posted.

        The page itself is stopped rather than navigated away, so whatever it
        currently shows (a challenge waiting for the user, say) stays on screen.
        """
        if self._task is not None and not self._task.done():
            self._task.cancel()
            if self.page is not None and not self._closing:
                self._stopping = self._spawn(self._stop_page(self.page))
        self._task = None

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _stop_page(self, page) -> None:
        try:
            await page.evaluate(STOP_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"Could not stop page: {e}")

    async def _close_page(self, page) -> None:
        try:
            await page.close()
        except PlaywrightError as e:
            logger.debug(f"Could not close crashed page: {e}")

    async def _navigate(self, attempt_id: int, url: str, post: Callable) -> None:
        # A stop issued for the previous attempt must not land on this navigation
        if self._stopping is not None and not self._stopping.done():
            await asyncio.wait({self._stopping})

        try:
            if self.page is None:
                await self._open_page()
        except PlaywrightError as e:
            post(NavigationFailed(attempt_id, f"could not open page: {e}"))
            return

        page = self.page
        post(LoadStarted(attempt_id))

        # The controller's watchdog bounds the load, not Playwright
        try:
            await page.goto(url, wait_until="load", timeout=0)
        except PlaywrightError as e:
            if page is self.page:
                post(NavigationFailed(attempt_id, str(e)))
            return

        post(NavigationFinished(attempt_id))

        try:
            markup = await page.evaluate(OUTER_HTML_SCRIPT)
        except PlaywrightError as e:
            post(EvaluationFailed(attempt_id, f"Could not read page HTML: {e}"))
            return

        if not isinstance(markup, str):
            post(EvaluationFailed(attempt_id, "Page HTML was not returned as text"))
            return

        post(MarkupReady(attempt_id, markup))

    # ------------------------------------------------------------------
    # Page lifecycle events
    # ------------------------------------------------------------------

    def _on_crash(self, page) -> None:
        if page is not self.page:
            return
        logger.debug("Page content process crashed, a fresh page will be opened")
        self.page = None
        self._spawn(self._close_page(page))
        if self._post is not None and self._attempt_id is not None:
            self._post(RendererTerminated(self._attempt_id))

    def _on_close(self, page) -> None:
        if self._closing or page is not self.page:
            return
        self.page = None
        if self._post is not None and self._attempt_id is not None:
            self._post(WindowClosed(self._attempt_id))
