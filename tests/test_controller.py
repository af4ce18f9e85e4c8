import asyncio

import pytest

from ps5_watch.controller import RetryController
from ps5_watch.models import (
    Action,
    AttemptPhase,
    EvaluationFailed,
    LoadStarted,
    MarkupReady,
    NavigationFailed,
    NavigationFinished,
    PageVerdict,
    PromptFailed,
    RendererTerminated,
    VerdictReceived,
    WatchdogExpired,
    WindowClosed,
)
from ps5_watch.rotator import URLRotator

URLS = [
    ("disc", "https://example.com/disc"),
    ("digital", "https://example.com/digital"),
]

PADDING = "<p>" + "Lorem ipsum dolor sit amet. " * 60 + "</p>"


def page(body: str) -> str:
    return f"<html><body>{body}{PADDING}</body></html>"


IN_STOCK = page(
    '<div class="productHero-info"><div class="button-placeholder">'
    '<button class="add-to-cart">Add to Cart</button></div></div>'
)
SOLD_OUT = page(
    '<div class="productHero-info"><div class="button-placeholder">'
    '<button class="add-to-cart hide">Add to Cart</button></div></div>'
)
CHALLENGE = page("<h2>We’re trying to get you in</h2>")
QUEUE = page("<p>When you reach the front of the queue you will be let in</p>")
UNREADABLE = "x" * 2000

HANG = object()
CRASH = object()
EVAL_FAIL = object()
NAV_FAIL = object()


class Delayed:
    """Markup delivered after a delay, regardless of cancellation"""

    def __init__(self, markup, delay):
        self.markup = markup
        self.delay = delay


class FakeRenderer:
    def __init__(self, pages):
        self.pages = list(pages)
        self.loads = []
        self.cancels = 0

    def load(self, attempt_id, url, post):
        self.loads.append(url.name)
        item = self.pages.pop(0)
        loop = asyncio.get_running_loop()
        loop.call_soon(post, LoadStarted(attempt_id))

        if item is HANG:
            return
        if item is CRASH:
            loop.call_soon(post, RendererTerminated(attempt_id))
            return
        if item is NAV_FAIL:
            loop.call_soon(post, NavigationFailed(attempt_id, "net::ERR_CONNECTION_RESET"))
            return
        if item is EVAL_FAIL:
            loop.call_soon(post, NavigationFinished(attempt_id))
            loop.call_soon(post, EvaluationFailed(attempt_id, "JavaScript evaluation failed"))
            return
        if isinstance(item, Delayed):
            loop.call_later(item.delay, post, NavigationFinished(attempt_id))
            loop.call_later(item.delay, post, MarkupReady(attempt_id, item.markup))
            return

        loop.call_soon(post, NavigationFinished(attempt_id))
        loop.call_soon(post, MarkupReady(attempt_id, item))

    def cancel(self):
        self.cancels += 1


class FakeNotifier:
    def __init__(self):
        self.cues = []

    async def play(self, cue):
        self.cues.append(cue)
        return True


class FakePrompt:
    def __init__(self, renderer):
        self.renderer = renderer
        self.loads_when_prompted = []

    async def wait(self):
        self.loads_when_prompted.append(len(self.renderer.loads))


def make_controller(pages, **kwargs):
    renderer = FakeRenderer(pages)
    notifier = FakeNotifier()
    prompt = kwargs.pop("prompt", None) or FakePrompt(renderer)
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("load_timeout", 1.0)
    controller = RetryController(
        renderer, URLRotator(URLS), notifier=notifier, prompt=prompt, **kwargs
    )
    return controller, renderer, notifier, prompt


async def run(controller):
    return await asyncio.wait_for(controller.run(), timeout=5)


# ============================================================================
# Decision table
# ============================================================================


def test_challenges_increment_streak_until_threshold_then_escalate():
    controller, *_ = make_controller([], retry_delay=3.0)
    challenged = VerdictReceived(1, PageVerdict.challenged())

    for expected in (1, 2, 3):
        decision = controller.decide(challenged)
        assert decision.action is Action.RELOAD
        assert decision.delay == 3.0
        assert controller.challenge_streak == expected

    assert controller.decide(challenged).action is Action.ESCALATE
    assert controller.challenge_streak == 3


@pytest.mark.parametrize("in_stock", [True, False])
def test_stocked_verdict_resets_streak(in_stock):
    controller, *_ = make_controller([])
    controller.challenge_streak = 2

    decision = controller.decide(VerdictReceived(1, PageVerdict.stocked(in_stock)))

    assert controller.challenge_streak == 0
    assert decision.action is (Action.SUCCEED if in_stock else Action.ROTATE)


def test_queue_and_stock_use_different_cues():
    controller, *_ = make_controller([])
    queued = controller.decide(VerdictReceived(1, PageVerdict.queued()))
    stocked = controller.decide(VerdictReceived(1, PageVerdict.stocked(True)))
    assert (queued.cue, stocked.cue) == ("alert", "success")


@pytest.mark.parametrize(
    "event",
    [WatchdogExpired(1), RendererTerminated(1)],
)
def test_watchdog_and_crash_reload_immediately_without_touching_streak(event):
    controller, *_ = make_controller([], retry_delay=3.0)
    controller.challenge_streak = 2

    decision = controller.decide(event)

    assert decision.action is Action.RELOAD
    assert decision.delay == 0
    assert controller.challenge_streak == 2


def test_crash_is_fatal_in_strict_mode():
    controller, *_ = make_controller([], fatal_renderer_termination=True)
    assert controller.decide(RendererTerminated(1)).action is Action.FAIL


@pytest.mark.parametrize(
    "event",
    [
        VerdictReceived(1, PageVerdict.unreadable("no elements")),
        EvaluationFailed(1, "boom"),
        WindowClosed(1),
        PromptFailed("EOF when reading a line"),
    ],
)
def test_unrecoverable_events_fail(event):
    controller, *_ = make_controller([])
    assert controller.decide(event).action is Action.FAIL


def test_navigation_failure_retries_after_delay():
    controller, *_ = make_controller([], retry_delay=3.0)
    decision = controller.decide(NavigationFailed(1, "offline"))
    assert decision.action is Action.RELOAD
    assert decision.delay == 3.0


# ============================================================================
# End-to-end scenarios
# ============================================================================


@pytest.mark.asyncio
async def test_in_stock_succeeds_once_with_one_notification():
    controller, renderer, notifier, _ = make_controller([IN_STOCK])

    outcome = await run(controller)
    await asyncio.sleep(0.05)

    assert outcome.is_success and outcome.code == 0
    assert notifier.cues == ["success"]
    assert renderer.loads == ["disc"]
    assert controller.phase is AttemptPhase.TERMINATED


@pytest.mark.asyncio
async def test_queue_page_succeeds_with_alert_cue():
    controller, renderer, notifier, _ = make_controller([QUEUE])

    outcome = await run(controller)

    assert outcome.is_success
    assert notifier.cues == ["alert"]


@pytest.mark.asyncio
async def test_sold_out_rotates_through_both_urls_before_repeating():
    controller, renderer, notifier, _ = make_controller([SOLD_OUT, SOLD_OUT, IN_STOCK])

    outcome = await run(controller)

    assert outcome.is_success
    assert renderer.loads == ["disc", "digital", "disc"]


@pytest.mark.asyncio
async def test_three_challenges_then_prompt_on_fourth():
    pages = [CHALLENGE, CHALLENGE, CHALLENGE, CHALLENGE, IN_STOCK]
    controller, renderer, notifier, prompt = make_controller(pages)

    outcome = await run(controller)

    assert outcome.is_success
    # No rotation while challenged, and the user is asked exactly once
    assert renderer.loads == ["disc"] * 5
    assert prompt.loads_when_prompted == [4]
    assert controller.challenge_streak == 0


@pytest.mark.asyncio
async def test_streak_resets_after_human_resumes():
    pages = [CHALLENGE] * 4 + [CHALLENGE] * 3 + [CHALLENGE, IN_STOCK]
    controller, renderer, notifier, prompt = make_controller(pages)

    outcome = await run(controller)

    assert outcome.is_success
    assert prompt.loads_when_prompted == [4, 8]


@pytest.mark.asyncio
async def test_unreadable_page_fails_without_notification():
    controller, renderer, notifier, _ = make_controller([UNREADABLE])

    outcome = await run(controller)

    assert not outcome.is_success
    assert outcome.code == 1
    assert notifier.cues == []
    assert renderer.loads == ["disc"]


@pytest.mark.asyncio
async def test_evaluation_failure_is_fatal():
    controller, renderer, notifier, _ = make_controller([EVAL_FAIL])

    outcome = await run(controller)

    assert outcome.code == 1
    assert "JavaScript evaluation failed" in str(outcome)


@pytest.mark.asyncio
async def test_watchdog_expiry_reloads_same_url():
    controller, renderer, notifier, _ = make_controller([HANG, IN_STOCK], load_timeout=0.05)

    outcome = await run(controller)

    assert outcome.is_success
    assert renderer.loads == ["disc", "disc"]
    assert renderer.cancels >= 1


@pytest.mark.asyncio
async def test_late_result_from_timed_out_attempt_is_ignored():
    # Attempt 1 answers "in stock" only after its watchdog fired; attempt 2 is the queue
    pages = [Delayed(IN_STOCK, 0.3), Delayed(QUEUE, 0.15)]
    controller, renderer, notifier, _ = make_controller(pages, load_timeout=0.2)

    outcome = await run(controller)

    assert outcome.is_success
    assert notifier.cues == ["alert"]


@pytest.mark.asyncio
async def test_renderer_crash_reloads_same_url():
    controller, renderer, notifier, _ = make_controller([CRASH, SOLD_OUT, IN_STOCK])

    outcome = await run(controller)

    assert outcome.is_success
    assert renderer.loads == ["disc", "disc", "digital"]


@pytest.mark.asyncio
async def test_renderer_crash_fails_in_strict_mode():
    controller, renderer, notifier, _ = make_controller([CRASH], fatal_renderer_termination=True)

    outcome = await run(controller)

    assert outcome.code == 1


@pytest.mark.asyncio
async def test_navigation_failure_retries_same_url():
    controller, renderer, notifier, _ = make_controller([NAV_FAIL, IN_STOCK])

    outcome = await run(controller)

    assert outcome.is_success
    assert renderer.loads == ["disc", "disc"]


@pytest.mark.asyncio
async def test_events_after_termination_are_ignored():
    controller, renderer, notifier, _ = make_controller([IN_STOCK])
    await run(controller)

    controller.post(MarkupReady(controller.attempt_id, QUEUE))
    await controller.handle(MarkupReady(controller.attempt_id, QUEUE))

    assert notifier.cues == ["success"]
    assert controller.outcome.is_success


@pytest.mark.asyncio
async def test_watchdog_expiry_after_navigation_finished_is_ignored():
    controller, renderer, notifier, _ = make_controller([])
    controller.attempt_id = 1
    controller.phase = AttemptPhase.EVALUATING

    await controller.handle(WatchdogExpired(1))

    assert controller.phase is AttemptPhase.EVALUATING
    assert renderer.loads == []


class StuckPrompt:
    """Never returns; the window is closed while the user is being asked"""

    def __init__(self):
        self.controller = None
        self.cancelled = False

    async def wait(self):
        self.controller.post(WindowClosed(self.controller.attempt_id))
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class BrokenPrompt:
    async def wait(self):
        raise OSError("stdin closed")


@pytest.mark.asyncio
async def test_window_closed_between_loads_fails():
    controller, renderer, notifier, _ = make_controller([SOLD_OUT, IN_STOCK], retry_delay=0.3)
    asyncio.get_running_loop().call_later(0.1, controller.post, WindowClosed(1))

    outcome = await run(controller)
    await asyncio.sleep(0.4)

    assert outcome.code == 1
    assert "Browser window was closed" in str(outcome)
    # The pending reload was cancelled
    assert renderer.loads == ["disc"]
    assert notifier.cues == []


@pytest.mark.asyncio
async def test_window_closed_while_awaiting_human_fails():
    prompt = StuckPrompt()
    controller, renderer, notifier, _ = make_controller([CHALLENGE] * 4, prompt=prompt)
    prompt.controller = controller

    outcome = await run(controller)
    await asyncio.sleep(0)

    assert outcome.code == 1
    assert "Browser window was closed" in str(outcome)
    assert renderer.loads == ["disc"] * 4
    assert prompt.cancelled


@pytest.mark.asyncio
async def test_failed_prompt_read_is_fatal():
    controller, renderer, notifier, _ = make_controller([CHALLENGE] * 4, prompt=BrokenPrompt())

    outcome = await run(controller)

    assert outcome.code == 1
    assert "stdin closed" in str(outcome)
    assert renderer.loads == ["disc"] * 4
    assert controller.phase is AttemptPhase.TERMINATED


@pytest.mark.asyncio
async def test_prompt_failure_outside_escalation_is_ignored():
    controller, renderer, notifier, _ = make_controller([])
    controller.attempt_id = 1
    controller.phase = AttemptPhase.LOADING

    await controller.handle(PromptFailed("stdin closed"))

    assert controller.outcome is None
    assert controller.phase is AttemptPhase.LOADING
