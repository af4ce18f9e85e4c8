import pytest

from ps5_watch.config import MONITORED_URLS
from ps5_watch.exceptions import ConfigurationError
from ps5_watch.models import MonitoredURL
from ps5_watch.rotator import URLRotator


URLS = [
    ("first", "https://example.com/a"),
    ("second", "https://example.com/b"),
    ("third", "https://example.com/c"),
]


def test_starts_on_first_url():
    rotator = URLRotator(URLS)
    assert rotator.cursor == 0
    assert rotator.current().name == "first"


def test_cursor_after_k_advances_is_k_mod_len():
    rotator = URLRotator(URLS)
    for k in range(1, 11):
        url = rotator.advance()
        assert rotator.cursor == k % len(URLS)
        assert url is rotator.current()
        assert 0 <= rotator.cursor < len(rotator)


def test_single_url_wraps_onto_itself():
    rotator = URLRotator([("only", "https://example.com/only")])
    assert rotator.advance() == rotator.current()
    assert rotator.cursor == 0


def test_accepts_monitored_url_instances():
    url = MonitoredURL("x", "https://example.com/x")
    rotator = URLRotator([url])
    assert rotator.current() is url


def test_empty_list_is_configuration_error():
    with pytest.raises(ConfigurationError):
        URLRotator([])


def test_invalid_address_is_configuration_error():
    with pytest.raises(ConfigurationError):
        URLRotator([("bad", "not a url")])


def test_compiled_in_urls_are_valid():
    rotator = URLRotator(MONITORED_URLS)
    assert len(rotator) == 2
    assert "playstation5-console" in str(rotator.current())
    assert "digital-edition" in str(rotator.advance())
