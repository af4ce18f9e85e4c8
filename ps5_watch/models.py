"""Data models, enums and controller events for the PS5 watcher"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlparse

from .exceptions import ConfigurationError


class PageState(Enum):
    """What a rendered product page turned out to be"""

    QUEUED = "queued"  # Waiting room is up
    CHALLENGED = "challenged"  # Rate-limit / CAPTCHA interstitial
    STOCKED = "stocked"  # Real product page, in stock or not
    UNREADABLE = "unreadable"  # Not a structured document


class AttemptPhase(Enum):
    """Controller phases, one attempt at a time"""

    IDLE = "idle"
    LOADING = "loading"
    EVALUATING = "evaluating"
    AWAITING_HUMAN = "awaiting_human"  # Idle, blocked on the resume prompt
    TERMINATED = "terminated"


class Action(Enum):
    """Next step chosen by the controller"""

    RELOAD = "reload"  # Same URL, optionally after a delay
    ROTATE = "rotate"  # Next URL after a delay
    ESCALATE = "escalate"  # Ask a human to solve the challenge
    SUCCEED = "succeed"
    FAIL = "fail"


@dataclass(frozen=True)
class MonitoredURL:
    """A product page the watcher loads"""

    name: str
    address: str

    def __post_init__(self):
        parsed = urlparse(self.address)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"Invalid product page URL: {self.address!r}")

    def __str__(self) -> str:
        return self.address


@dataclass(frozen=True)
class PageVerdict:
    """Classification of a single rendered page"""

    state: PageState
    in_stock: bool = False
    reason: Optional[str] = None

    @classmethod
    def queued(cls) -> "PageVerdict":
        return cls(PageState.QUEUED)

    @classmethod
    def challenged(cls) -> "PageVerdict":
        return cls(PageState.CHALLENGED)

    @classmethod
    def stocked(cls, in_stock: bool) -> "PageVerdict":
        return cls(PageState.STOCKED, in_stock=in_stock)

    @classmethod
    def unreadable(cls, reason: str) -> "PageVerdict":
        return cls(PageState.UNREADABLE, reason=reason)


@dataclass(frozen=True)
class ExitOutcome:
    """Terminal result of a run, produced once"""

    code: int
    message: Optional[str] = None

    @classmethod
    def success(cls, message: Optional[str] = None) -> "ExitOutcome":
        return cls(0, message)

    @classmethod
    def failure(cls, message: Optional[str] = None, code: int = 1) -> "ExitOutcome":
        return cls(code, message)

    @property
    def is_success(self) -> bool:
        return self.code == 0

    def __str__(self) -> str:
        status = "[SUCCESS] (0)" if self.is_success else f"[ERROR] ({self.code})"
        return ": ".join(part for part in (status, self.message) if part)


# ============================================================================
# Controller events
# ============================================================================


@dataclass(frozen=True)
class LoadStarted:
    attempt_id: int


@dataclass(frozen=True)
class NavigationFinished:
    attempt_id: int


@dataclass(frozen=True)
class MarkupReady:
    attempt_id: int
    markup: str


@dataclass(frozen=True)
class VerdictReceived:
    attempt_id: int
    verdict: PageVerdict


@dataclass(frozen=True)
class WatchdogExpired:
    attempt_id: int


@dataclass(frozen=True)
class RendererTerminated:
    attempt_id: int


@dataclass(frozen=True)
class EvaluationFailed:
    attempt_id: int
    error: str


@dataclass(frozen=True)
class NavigationFailed:
    attempt_id: int
    error: str


@dataclass(frozen=True)
class WindowClosed:
    attempt_id: int


@dataclass(frozen=True)
class HumanResumed:
    """Posted once by the prompt worker after the user presses Enter"""

    pass


@dataclass(frozen=True)
class PromptFailed:
    """Posted by the prompt worker when the terminal read fails"""

    error: str
