"""Round-robin rotation over the monitored product pages"""

from typing import Iterable, List, Tuple, Union

from loguru import logger

from .exceptions import ConfigurationError
from .models import MonitoredURL


class URLRotator:
    """
    Ordered, fixed set of product pages with a wrapping cursor.
    Owned by the controller; not shared between tasks.
    """

    def __init__(self, urls: Iterable[Union[MonitoredURL, Tuple[str, str]]]):
        """
        Initialize rotator.

        Args:
            urls: MonitoredURL instances or (name, address) pairs

        Raises:
            ConfigurationError: If no URLs are configured or one is invalid
        """
        self._urls: List[MonitoredURL] = [
            url if isinstance(url, MonitoredURL) else MonitoredURL(*url) for url in urls
        ]
        if not self._urls:
            raise ConfigurationError("No product page URLs configured")

        self._cursor = 0

        logger.debug(f"URL rotator initialized with {len(self._urls)} pages")

    def __len__(self) -> int:
        return len(self._urls)

    @property
    def cursor(self) -> int:
        return self._cursor

    def current(self) -> MonitoredURL:
        return self._urls[self._cursor]

    def advance(self) -> MonitoredURL:
        """Move to the next page, wrapping at the end, and return it"""
        self._cursor = (self._cursor + 1) % len(self._urls)
        return self._urls[self._cursor]
