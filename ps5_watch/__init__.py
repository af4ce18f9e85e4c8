"""PS5 Watcher
Reloads PlayStation Direct product pages in a real browser until the queue
opens or the console comes back in stock
"""

__version__ = "1.1.0"

from .classifier import MarkupClassifier
from .controller import Decision, RetryController
from .exceptions import (
    ConfigurationError,
    MarkupParseError,
    RendererError,
    WatchError,
)
from .models import Action, AttemptPhase, ExitOutcome, MonitoredURL, PageState, PageVerdict
from .notifier import SoundNotifier
from .prompt import HumanPrompt
from .rotator import URLRotator
from .watchdog import LoadWatchdog

__all__ = [
    "__version__",
    "MarkupClassifier",
    "Decision",
    "RetryController",
    "ConfigurationError",
    "MarkupParseError",
    "RendererError",
    "WatchError",
    "Action",
    "AttemptPhase",
    "ExitOutcome",
    "MonitoredURL",
    "PageState",
    "PageVerdict",
    "SoundNotifier",
    "HumanPrompt",
    "URLRotator",
    "LoadWatchdog",
]
