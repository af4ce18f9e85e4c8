"""Retry/backoff controller: decides what happens after every page load"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from .classifier import MarkupClassifier
from .config import (
    CHALLENGE_THRESHOLD,
    FATAL_RENDERER_TERMINATION,
    LOAD_TIMEOUT,
    QUEUE_CUE,
    RETRY_DELAY,
    STOCK_CUE,
)
from .models import (
    Action,
    AttemptPhase,
    EvaluationFailed,
    ExitOutcome,
    HumanResumed,
    LoadStarted,
    MarkupReady,
    NavigationFailed,
    NavigationFinished,
    PageState,
    PageVerdict,
    PromptFailed,
    RendererTerminated,
    VerdictReceived,
    WatchdogExpired,
    WindowClosed,
)
from .notifier import SoundNotifier
from .prompt import HumanPrompt
from .rotator import URLRotator
from .watchdog import LoadWatchdog


@dataclass(frozen=True)
class Decision:
    """What to do next, as chosen by RetryController.decide"""

    action: Action
    delay: float = 0.0
    cue: Optional[str] = None
    message: Optional[str] = None


class RetryController:
    """
    Single decision loop for the watcher.

    Renderer callbacks, watchdog expiry and the human-resume prompt never act
    on their own; they post events to this controller's queue and the loop in
    run() handles them one at a time. Only one load attempt is in flight, and
    events tagged with any other attempt id are dropped.
    """

    def __init__(
        self,
        renderer,
        rotator: URLRotator,
        classifier: Optional[MarkupClassifier] = None,
        notifier: Optional[SoundNotifier] = None,
        prompt: Optional[HumanPrompt] = None,
        watchdog: Optional[LoadWatchdog] = None,
        load_timeout: float = LOAD_TIMEOUT,
        retry_delay: float = RETRY_DELAY,
        challenge_threshold: int = CHALLENGE_THRESHOLD,
        fatal_renderer_termination: bool = FATAL_RENDERER_TERMINATION,
    ):
        """
        Initialize controller.

        Args:
            renderer: Page renderer exposing load(attempt_id, url, post) and cancel()
            rotator: Monitored product pages
            classifier: Markup classifier
            notifier: Plays the success cues
            prompt: Blocks for the user to solve a challenge
            watchdog: Load timer
            load_timeout: Seconds before an unfinished load is cancelled and retried
            retry_delay: Seconds to wait before reloading after a challenge or sold-out page
            challenge_threshold: Automatic challenge reloads before asking the user
            fatal_renderer_termination: Fail instead of reloading when the page process dies
        """
        self.renderer = renderer
        self.rotator = rotator
        self.classifier = classifier or MarkupClassifier()
        self.notifier = notifier or SoundNotifier()
        self.prompt = prompt or HumanPrompt()
        self.watchdog = watchdog or LoadWatchdog()
        self.load_timeout = load_timeout
        self.retry_delay = retry_delay
        self.challenge_threshold = challenge_threshold
        self.fatal_renderer_termination = fatal_renderer_termination

        self.phase = AttemptPhase.IDLE
        self.attempt_id = 0
        self.challenge_streak = 0
        self.outcome: Optional[ExitOutcome] = None

        self._events: asyncio.Queue = asyncio.Queue()
        self._scheduled: Optional[asyncio.TimerHandle] = None
        self._prompt_task: Optional[asyncio.Task] = None

        logger.debug(
            f"Controller initialized: timeout={load_timeout}s, retry_delay={retry_delay}s, "
            f"challenge_threshold={challenge_threshold}"
        )

    # ------------------------------------------------------------------
    # Event loop
    # ------------------------------------------------------------------

    def post(self, event) -> None:
        """Queue an event for the decision loop. Ignored once terminated."""
        if self.phase is AttemptPhase.TERMINATED:
            return
        self._events.put_nowait(event)

    async def run(self) -> ExitOutcome:
        """Load pages until a terminal outcome is reached, then return it"""
        logger.info(f"Watching {len(self.rotator)} product pages")
        self._dispatch()

        while self.outcome is None:
            event = await self._events.get()
            await self.handle(event)

        return self.outcome

    async def handle(self, event) -> None:
        if self.phase is AttemptPhase.TERMINATED:
            return

        if isinstance(event, HumanResumed):
            if self.phase is AttemptPhase.AWAITING_HUMAN:
                self._resume_after_challenge()
            return

        if isinstance(event, PromptFailed):
            if self.phase is AttemptPhase.AWAITING_HUMAN:
                await self.execute(self.decide(event))
            return

        # The window is gone whatever the attempt; between loads and while
        # the user is prompted included
        if isinstance(event, WindowClosed):
            await self.execute(self.decide(event))
            return

        if not self._is_current(event):
            logger.debug(f"Dropping stale {type(event).__name__} for attempt #{event.attempt_id}")
            return

        if isinstance(event, LoadStarted):
            logger.info("Began loading product page.")
            return

        if isinstance(event, NavigationFinished):
            self._finish_loading(event.attempt_id)
            return

        # Timer fired just as navigation finished; the finished load wins
        if isinstance(event, WatchdogExpired) and self.phase is not AttemptPhase.LOADING:
            return

        if isinstance(event, MarkupReady):
            self._finish_loading(event.attempt_id)
            event = VerdictReceived(event.attempt_id, self.classifier.classify(event.markup))

        await self.execute(self.decide(event))

    def _is_current(self, event) -> bool:
        return event.attempt_id == self.attempt_id and self.phase in (
            AttemptPhase.LOADING,
            AttemptPhase.EVALUATING,
        )

    def _finish_loading(self, attempt_id: int) -> None:
        if self.phase is not AttemptPhase.LOADING:
            return
        self.watchdog.disarm(attempt_id)
        self.phase = AttemptPhase.EVALUATING
        logger.info("Finished loading product page.")

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(self, event) -> Decision:
        """Map an attempt's result to the next action, updating the challenge streak"""
        if isinstance(event, VerdictReceived):
            return self._decide_verdict(event.verdict)

        if isinstance(event, WatchdogExpired):
            return Decision(Action.RELOAD, message="Page loading took too long. Reloading...")

        if isinstance(event, RendererTerminated):
            if self.fatal_renderer_termination:
                return Decision(Action.FAIL, message="Web content process was terminated")
            return Decision(
                Action.RELOAD, message="Web content process was terminated! Reloading..."
            )

        if isinstance(event, NavigationFailed):
            return Decision(
                Action.RELOAD,
                delay=self.retry_delay,
                message=f"Navigation failed ({event.error}). Trying again...",
            )

        if isinstance(event, EvaluationFailed):
            return Decision(Action.FAIL, message=event.error)

        if isinstance(event, WindowClosed):
            return Decision(Action.FAIL, message="Browser window was closed")

        if isinstance(event, PromptFailed):
            return Decision(Action.FAIL, message=f"Challenge prompt failed: {event.error}")

        raise TypeError(f"Unhandled controller event: {event!r}")

    def _decide_verdict(self, verdict: PageVerdict) -> Decision:
        if verdict.state is PageState.QUEUED:
            return Decision(
                Action.SUCCEED, cue=QUEUE_CUE, message="PlayStation Direct queue is up! ⚠️"
            )

        if verdict.state is PageState.CHALLENGED:
            if self.challenge_streak < self.challenge_threshold:
                self.challenge_streak += 1
                return Decision(
                    Action.RELOAD,
                    delay=self.retry_delay,
                    message=(
                        f"Product page challenge detected "
                        f"({self.challenge_streak}/{self.challenge_threshold}). "
                        f"Attempting to get past it..."
                    ),
                )
            return Decision(Action.ESCALATE)

        if verdict.state is PageState.STOCKED:
            self.challenge_streak = 0
            if verdict.in_stock:
                return Decision(
                    Action.SUCCEED, cue=STOCK_CUE, message="High five! 🙏 PS5 is in stock! 🥳"
                )
            return Decision(
                Action.ROTATE, delay=self.retry_delay, message="PS5 is sold out. 😡 Trying again..."
            )

        return Decision(Action.FAIL, message=verdict.reason or "Product page is unreadable")

    async def execute(self, decision: Decision) -> None:
        action = decision.action

        if action is Action.RELOAD:
            logger.warning(decision.message)
            self._schedule(decision.delay)

        elif action is Action.ROTATE:
            logger.info(decision.message)
            url = self.rotator.advance()
            logger.debug(f"Next page: {url.name}")
            self._schedule(decision.delay)

        elif action is Action.ESCALATE:
            self._stop_load()
            self.phase = AttemptPhase.AWAITING_HUMAN
            self._prompt_task = asyncio.create_task(self._wait_for_human())

        elif action is Action.SUCCEED:
            url = self.rotator.current()
            logger.success(f"\a{decision.message}")
            logger.info(f"Product page URL: {url}")
            self._terminate(ExitOutcome.success())
            await self.notifier.play(decision.cue)

        else:
            logger.error(f"Giving up: {decision.message}")
            self._terminate(ExitOutcome.failure(decision.message))

    # ------------------------------------------------------------------
    # Attempt lifecycle
    # ------------------------------------------------------------------

    def _dispatch(self) -> None:
        """Start a new attempt on the current URL"""
        self._scheduled = None
        if self.phase is not AttemptPhase.IDLE:
            return

        self.attempt_id += 1
        url = self.rotator.current()
        self.phase = AttemptPhase.LOADING
        self.watchdog.arm(self.attempt_id, self.load_timeout, self._on_watchdog_expired)
        logger.debug(f"Attempt #{self.attempt_id}: {url.name} ({url})")
        self.renderer.load(self.attempt_id, url, self.post)

    def _schedule(self, delay: float) -> None:
        self._stop_load()
        if delay > 0:
            self._scheduled = asyncio.get_running_loop().call_later(delay, self._dispatch)
        else:
            self._dispatch()

    def _stop_load(self) -> None:
        """Cancel whatever is in flight and return to IDLE"""
        self.renderer.cancel()
        self.watchdog.disarm(self.attempt_id)
        if self.phase is not AttemptPhase.TERMINATED:
            self.phase = AttemptPhase.IDLE

    def _on_watchdog_expired(self, attempt_id: int) -> None:
        self.post(WatchdogExpired(attempt_id))

    async def _wait_for_human(self) -> None:
        try:
            await self.prompt.wait()
        except Exception as e:
            self.post(PromptFailed(str(e) or type(e).__name__))
            return
        self.post(HumanResumed())

    def _resume_after_challenge(self) -> None:
        logger.info("Resuming after challenge...")
        self._prompt_task = None
        self.challenge_streak = 0
        self.phase = AttemptPhase.IDLE
        self._dispatch()

    def _terminate(self, outcome: ExitOutcome) -> None:
        if self.outcome is not None:
            return

        self._stop_load()
        if self._scheduled is not None:
            self._scheduled.cancel()
            self._scheduled = None
        if self._prompt_task is not None and not self._prompt_task.done():
            self._prompt_task.cancel()

        self.phase = AttemptPhase.TERMINATED
        self.outcome = outcome
