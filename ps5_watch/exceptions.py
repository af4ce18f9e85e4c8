"""Custom exception classes for the PS5 watcher"""


class WatchError(Exception):
    """Base exception for watcher errors"""

    pass


class ConfigurationError(WatchError):
    """Raised at startup when compiled-in configuration is unusable"""

    pass


class RendererError(WatchError):
    """Raised when the browser cannot be started"""

    pass


class MarkupParseError(WatchError):
    """Raised when rendered markup is not a structured document

    The classifier turns this into an UNREADABLE verdict, which ends the run.
    """

    def __init__(self, message: str = "Markup could not be parsed"):
        self.reason = message
        super().__init__(message)
