import pytest

from merchant_lookup.config import Settings
from merchant_lookup.models import ScrapeResult

CDN = "https://cdn-assets.affirm.com"


def make_settings(**overrides) -> Settings:
    base = dict(
        use_mock=False,
        debug=False,
        hero_wait_seconds=0.0,
        search_input_wait_seconds=0.0,
        autocomplete_wait_seconds=0.0,
        poll_interval_seconds=0.0,
        typing_delay_ms=0,
    )
    base.update(overrides)
    return Settings(**base)


class FakeFetcher:
    """Maps URL substrings to JSON payloads or exceptions."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []

    async def get_json(self, url):
        self.calls.append(url)
        for fragment, outcome in self.routes.items():
            if fragment in url:
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        raise AssertionError(f"unexpected fetch {url}")


class FakeScraper:
    def __init__(self, by_key=None, by_search=None):
        self.by_key_result = by_key or ScrapeResult.failed("hero_not_found")
        self.by_search_result = by_search or ScrapeResult.failed("hero_not_found")
        self.key_calls = []
        self.search_calls = []

    async def by_merchant_key(self, merchant_key, merchant_name=None):
        self.key_calls.append((merchant_key, merchant_name))
        return self.by_key_result

    async def by_search(self, query):
        self.search_calls.append(query)
        return self.by_search_result


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def mock_settings():
    return make_settings(use_mock=True)
