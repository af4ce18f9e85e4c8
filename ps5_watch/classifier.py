"""Page-state classifier for rendered product page markup"""

from typing import Optional, Sequence

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from loguru import logger

from .config import (
    CHALLENGE_MARKERS,
    HIDDEN_CLASS,
    MIN_MARKUP_LENGTH,
    QUEUE_MARKERS,
    STOCK_SELECTOR,
)
from .exceptions import MarkupParseError
from .models import PageVerdict


class MarkupClassifier:
    """
    Classify a rendered page as queued, challenged, stocked or unreadable.

    Checks run in a fixed order: the queue page is tested first so it is never
    mistaken for a challenge, and the stock selector only runs on pages that
    are neither queued nor challenged.
    """

    def __init__(
        self,
        queue_markers: Sequence[str] = QUEUE_MARKERS,
        challenge_markers: Sequence[str] = CHALLENGE_MARKERS,
        min_length: Optional[int] = MIN_MARKUP_LENGTH,
        stock_selector: str = STOCK_SELECTOR,
        hidden_class: str = HIDDEN_CLASS,
    ):
        """
        Initialize classifier.

        Args:
            queue_markers: Text that only appears on the waiting-room page
            challenge_markers: Text that only appears on the rate-limit page
            min_length: Markup shorter than this counts as a challenge (None disables)
            stock_selector: CSS path to the hero product's add-to-cart button
            hidden_class: Class present on the button while sold out
        """
        self.queue_markers = tuple(queue_markers)
        self.challenge_markers = tuple(challenge_markers)
        self.min_length = min_length
        self.stock_selector = stock_selector
        self.hidden_class = hidden_class

    def classify(self, markup: str) -> PageVerdict:
        if self._contains_any(markup, self.queue_markers):
            return PageVerdict.queued()

        if self._contains_any(markup, self.challenge_markers):
            return PageVerdict.challenged()

        if self.min_length is not None and len(markup) < self.min_length:
            logger.debug(f"Markup only {len(markup)} chars, treating as challenge")
            return PageVerdict.challenged()

        try:
            document = self.parse(markup)
        except MarkupParseError as e:
            return PageVerdict.unreadable(e.reason)

        return PageVerdict.stocked(self.hero_product_in_stock(document))

    def parse(self, markup: str) -> BeautifulSoup:
        """Parse markup, raising MarkupParseError if it holds no elements"""
        try:
            document = BeautifulSoup(markup, "html.parser")
        except ParserRejectedMarkup as e:
            raise MarkupParseError(f"Markup rejected by parser: {e}") from e

        if document.find() is None:
            raise MarkupParseError("Markup contains no HTML elements")

        return document

    def hero_product_in_stock(self, document: BeautifulSoup) -> bool:
        """Whether the hero product's add-to-cart button is shown"""
        button = document.select_one(self.stock_selector)
        if button is None:
            return False

        return self.hidden_class not in (button.get("class") or [])

    @staticmethod
    def _contains_any(markup: str, markers: Sequence[str]) -> bool:
        return any(marker in markup for marker in markers)
